#!/usr/bin/env python3
"""
Model Training Stage
Trains the model with hyperparameter tuning and cross-validation, saves the
best model and its training metrics, and optionally tracks the run in MLflow.
"""

import logging

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.shared.exceptions import StageFailure, TrainingFailure
from mlops_pipeline.stages.base import Stage, StageReport

logger = logging.getLogger(__name__)

TRAINING_CONFIG = 'config/training_config.yml'


class ModelTrainingStage(Stage):
    name = 'Model Training'
    failure_type = TrainingFailure

    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        logger.info("🏋️ Training base model...")
        self.python.run_script('src/models/train_model.py', '--config', TRAINING_CONFIG)

        logger.info("🎛️ Hyperparameter tuning...")
        self.python.run_script('src/models/hyperparameter_tuning.py', '--config', TRAINING_CONFIG)

        logger.info("🔁 Cross-validation...")
        self.python.run_script('src/models/cross_validation.py', '--config', TRAINING_CONFIG)

        logger.info("💾 Saving best model...")
        models_dir = self.artifacts.ensure(self.artifacts.models)
        self.python.run_script('src/models/save_model.py', '--model-dir', str(models_dir))

        metrics_dir = self.artifacts.ensure(self.artifacts.training_metrics)
        self.python.run_script('src/models/generate_metrics.py', '--output-dir', str(metrics_dir))

        report.details['model_dir'] = str(models_dir)
        report.details['metrics_dir'] = str(metrics_dir)

        if config.use_mlflow:
            logger.info(f"📒 Tracking run in MLflow experiment {config.model_name}")
            self.python.run_script('src/models/mlflow_tracking.py', '--experiment-name', config.model_name)
            report.details['mlflow_experiment'] = config.model_name

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        self.artifacts.capture_logs()

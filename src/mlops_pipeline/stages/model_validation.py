#!/usr/bin/env python3
"""
Model Validation Stage
Validates model performance against thresholds, the baseline model and
fairness checks, then enforces the quality gates.
"""

import logging

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.shared.exceptions import QualityGateFailure, StageFailure, ValidationFailure
from mlops_pipeline.stages.base import Stage, StageReport

logger = logging.getLogger(__name__)

VALIDATION_CONFIG = 'config/validation_config.yml'
BASELINE_MODEL = 'models/baseline_model.pkl'


class ModelValidationStage(Stage):
    name = 'Model Validation'
    failure_type = ValidationFailure

    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        model_path = str(self.artifacts.best_model)

        logger.info("📈 Validating model performance...")
        self.python.run_script('src/validation/model_validator.py', '--model-path', model_path)

        logger.info("🎯 Checking performance thresholds...")
        self.python.run_script('src/validation/performance_checker.py', '--config', VALIDATION_CONFIG)

        logger.info("⚖️ Comparing with baseline model...")
        self.python.run_script('src/validation/baseline_comparison.py', '--baseline-path', BASELINE_MODEL)

        logger.info("🔄 Model bias and fairness check...")
        self.python.run_script('src/validation/bias_checker.py', '--model-path', model_path)

        output_dir = self.artifacts.ensure(self.artifacts.model_validation)
        self.python.run_script('src/validation/validation_report.py', '--output-dir', str(output_dir))
        report.details['report_dir'] = str(output_dir)

        gate = self.python.run_script('src/validation/quality_gate.py', '--model-path', model_path, check=False)
        report.details['quality_gate_exit_code'] = gate.exit_code
        if not gate.is_success:
            raise QualityGateFailure("Model failed quality gates! Check validation report for details.")

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        output_dir = self.artifacts.ensure(self.artifacts.validation_failure)
        result = self.python.run_script('src/validation/failure_report.py', '--output-dir', str(output_dir),
                                        check=False)
        if not result.is_success:
            logger.warning("Could not generate failure report")

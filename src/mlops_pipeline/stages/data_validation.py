#!/usr/bin/env python3
"""
Data Validation Stage
Sets up the Python environment and validates data schema, quality,
distribution and drift using the project's validation scripts.
"""

import logging

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.shared.exceptions import StageFailure, ValidationFailure
from mlops_pipeline.stages.base import Stage, StageReport

logger = logging.getLogger(__name__)

DATA_VALIDATOR = 'src/validation/data_validator.py'
REPORT_GENERATOR = 'src/validation/generate_report.py'

DATA_CHECKS = [
    ('Checking data schema', '--check-schema'),
    ('Validating data quality', '--check-quality'),
    ('Checking data distribution', '--check-distribution'),
    ('Detecting data drift', '--check-drift'),
]


class DataValidationStage(Stage):
    name = 'Data Validation'
    failure_type = ValidationFailure

    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        self.python.create(config.python_version)

        for description, flag in DATA_CHECKS:
            logger.info(f"🔎 {description}...")
            self.python.run_script(DATA_VALIDATOR, flag)
            report.details.setdefault('checks', []).append(flag.lstrip('-'))

        output_dir = self.artifacts.ensure(self.artifacts.data_validation)
        self.python.run_script(REPORT_GENERATOR, '--output-dir', str(output_dir))
        report.details['report_dir'] = str(output_dir)

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        self.artifacts.capture_logs()

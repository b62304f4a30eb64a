#!/usr/bin/env python3
"""Well-known artifact locations under ``artifacts/``."""

import logging
import shutil
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


class ArtifactLayout:

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)
        self.root = self.workspace / 'artifacts'

        self.data_validation = self.root / 'data-validation'
        self.models = self.root / 'models'
        self.training_metrics = self.root / 'training-metrics'
        self.model_validation = self.root / 'model-validation'
        self.validation_failure = self.root / 'validation-failure'
        self.coverage = self.root / 'coverage'
        self.performance = self.root / 'performance'
        self.security = self.root / 'security'
        self.inference_tests = self.root / 'inference-tests'
        self.k8s_manifests = self.root / 'k8s-manifests'
        self.helm_charts = self.root / 'helm-charts'
        self.deployment = self.root / 'deployment'
        self.monitoring = self.root / 'monitoring'
        self.logs = self.root / 'logs'

        self.docker_image_file = self.root / 'docker-image.txt'
        self.model_metadata_file = self.root / 'model-metadata.json'
        self.trivy_report = self.root / 'trivy-report.json'
        self.best_model = self.models / 'best_model.pkl'

        self.test_results = self.workspace / 'test-results'

    def ensure(self, directory: Path) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def capture_logs(self, source_dir: str = 'logs') -> List[Path]:
        """Copy the project's ``logs/`` directory into ``artifacts/logs``."""
        source = self.workspace / source_dir
        if not source.is_dir():
            logger.info("No logs to copy")
            return []

        target = self.ensure(self.logs)
        copied = []
        for path in source.rglob('*'):
            if path.is_file():
                destination = target / path.relative_to(source)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, destination)
                copied.append(destination)

        logger.info(f"Copied {len(copied)} log files into {target}")
        return copied

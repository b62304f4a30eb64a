#!/usr/bin/env python3
"""
Model Packaging Stage
Packages the trained model into a Docker image and produces the deployment
artifacts: rendered Kubernetes manifests, an optional Helm chart, and the
model metadata.
"""

import logging
import shutil
from typing import List

import yaml

from mlops_pipeline.config.pipeline_config import (
    PACKAGING_BRANCHES,
    PRODUCTION_BRANCHES,
    BuildContext,
    PipelineConfig,
)
from mlops_pipeline.shared.exceptions import PackagingFailure, StageFailure
from mlops_pipeline.stages.base import Stage, StageReport

logger = logging.getLogger(__name__)

IMAGE_TAG_PLACEHOLDER = '{{IMAGE_TAG}}'
TEMPLATED_MANIFESTS = ['deployment.yml', 'service.yml']
OPTIONAL_MANIFESTS = ['configmap.yml', 'ingress.yml', 'hpa.yml']


def image_repository(config: PipelineConfig) -> str:
    return f"{config.docker_registry}/{config.model_name}"


def image_reference(config: PipelineConfig, context: BuildContext) -> str:
    return f"{image_repository(config)}:{context.model_version}"


class ModelPackagingStage(Stage):
    name = 'Model Packaging'
    branches = PACKAGING_BRANCHES
    failure_type = PackagingFailure

    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        docker_image = image_reference(config, context)
        report.details['docker_image'] = docker_image

        self._build_image(config, context, docker_image)

        if config.run_security_scan:
            self._scan_image(docker_image, report)

        self._push_image(config, context, docker_image)

        self.artifacts.ensure(self.artifacts.root)
        self.artifacts.docker_image_file.write_text(docker_image)

        report.details['manifests'] = self._render_manifests(context)

        if config.use_helm:
            report.details['helm_chart'] = self._package_helm_chart(context)

        logger.info("📝 Generating model metadata...")
        self.python.run_script(
            'src/packaging/generate_metadata.py',
            '--model-path', str(self.artifacts.best_model),
            '--version', context.model_version,
            '--output', str(self.artifacts.model_metadata_file),
        )

    def _build_image(self, config: PipelineConfig, context: BuildContext, docker_image: str) -> None:
        logger.info(f"🐳 Building Docker image: {docker_image}")
        workspace = self.services.workspace

        docker_models = workspace / 'docker' / 'models'
        docker_models.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.artifacts.best_model, docker_models / self.artifacts.best_model.name)

        self.runner.run(['docker', 'build', '-t', docker_image, '-f', 'Dockerfile', '.'], cwd=workspace)

        if context.branch in PRODUCTION_BRANCHES:
            self.runner.run(['docker', 'tag', docker_image, f"{image_repository(config)}:latest"], cwd=workspace)

    def _scan_image(self, docker_image: str, report: StageReport) -> None:
        logger.info("🔍 Scanning Docker image for vulnerabilities...")
        self.artifacts.ensure(self.artifacts.root)
        self.run_tolerated(
            report,
            ['docker', 'run', '--rm',
             '-v', '/var/run/docker.sock:/var/run/docker.sock',
             '-v', f"{self.artifacts.root}:/tmp/artifacts",
             'aquasec/trivy', 'image', '--format', 'json',
             '--output', f"/tmp/artifacts/{self.artifacts.trivy_report.name}", docker_image],
            "Vulnerability scan completed with findings",
        )

    def _push_image(self, config: PipelineConfig, context: BuildContext, docker_image: str) -> None:
        credentials = self.services.credentials.username_password(config.docker_credentials_id)

        logger.info("📤 Pushing Docker image to registry...")
        self.runner.run(
            ['docker', 'login', config.docker_registry, '-u', credentials.username, '--password-stdin'],
            input_text=credentials.password,
        )
        self.runner.run(['docker', 'push', docker_image])

        if context.branch in PRODUCTION_BRANCHES:
            self.runner.run(['docker', 'push', f"{image_repository(config)}:latest"])

    def _render_manifests(self, context: BuildContext) -> List[str]:
        logger.info("☸️ Generating Kubernetes manifests...")
        source_dir = self.services.workspace / 'k8s'
        target_dir = self.artifacts.ensure(self.artifacts.k8s_manifests)
        rendered = []

        for name in TEMPLATED_MANIFESTS:
            template = (source_dir / name).read_text()
            (target_dir / name).write_text(template.replace(IMAGE_TAG_PLACEHOLDER, context.model_version))
            rendered.append(name)

        for name in OPTIONAL_MANIFESTS:
            source = source_dir / name
            if source.is_file():
                shutil.copy2(source, target_dir / name)
                rendered.append(name)
            else:
                logger.info(f"No {name} found")

        return rendered

    def _package_helm_chart(self, context: BuildContext) -> str:
        logger.info("⛵ Packaging Helm chart...")
        chart_dir = self.services.workspace / 'helm-chart'
        chart_file = chart_dir / 'Chart.yaml'

        with open(chart_file, 'r') as f:
            chart = yaml.safe_load(f) or {}
        chart['version'] = context.model_version
        chart['appVersion'] = context.model_version
        with open(chart_file, 'w') as f:
            yaml.safe_dump(chart, f, sort_keys=False)

        target_dir = self.artifacts.ensure(self.artifacts.helm_charts)
        self.runner.run(['helm', 'package', str(chart_dir), '--destination', str(target_dir)],
                        cwd=self.services.workspace)

        for values_file in sorted(chart_dir.glob('values-*.yaml')):
            shutil.copy2(values_file, target_dir / values_file.name)

        return str(target_dir / f"{chart.get('name', chart_dir.name)}-{context.model_version}.tgz")

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        result = self.runner.run(['docker', 'rmi', image_reference(config, context)], check=False)
        if not result.is_success:
            logger.warning("Failed to remove Docker image")

#!/usr/bin/env python3
"""
Model Deployment Stage
Deploys the packaged model to the environment derived from the branch,
waits for the rollout, health-checks the service and, in production, rolls
back automatically when anything goes wrong.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict

import yaml

from mlops_pipeline.config.pipeline_config import (
    PRODUCTION_BRANCHES,
    BuildContext,
    DeploymentEnvironment,
    PipelineConfig,
)
from mlops_pipeline.deployment.health_check import HealthChecker
from mlops_pipeline.deployment.rollback import ROLLOUT_TIMEOUT, RolloutManager
from mlops_pipeline.shared.exceptions import CommandFailedError, DeploymentFailure, StageFailure
from mlops_pipeline.stages.base import Stage, StageReport

logger = logging.getLogger(__name__)

REQUIRED_MANIFESTS = ['deployment.yml', 'service.yml']
HELM_TIMEOUT = '10m'
# Chart repositories commonly ship the short values file names
HELM_VALUES_SHORT_NAMES = {
    DeploymentEnvironment.PRODUCTION: 'prod',
    DeploymentEnvironment.DEVELOPMENT: 'dev',
}


class ModelDeploymentStage(Stage):
    name = 'Model Deployment'
    branches = PRODUCTION_BRANCHES
    failure_type = DeploymentFailure

    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        environment = context.environment
        namespace = config.target_namespace(environment)
        env = self.services.cluster_env(config)

        logger.info(f"🌍 Deploying to environment: {environment.value}")
        logger.info(f"📦 Using namespace: {namespace}")
        report.details['environment'] = environment.value
        report.details['namespace'] = namespace

        docker_image = self._read_image()
        logger.info(f"🐳 Deploying image: {docker_image}")
        report.details['docker_image'] = docker_image

        if config.use_helm:
            self._deploy_with_helm(config, context, environment, namespace, env)
        else:
            self._apply_manifests(namespace, env, report)

        rollout = RolloutManager(self.runner, config.model_name, namespace, env)
        try:
            rollout.wait_for_rollout()
        except CommandFailedError as e:
            raise DeploymentFailure(
                f"deployment/{config.model_name} did not roll out within {ROLLOUT_TIMEOUT}: {e}", cause=e
            ) from e

        checker = HealthChecker(self.runner, config.model_name, namespace, env=env, sleep=self.services.sleep)
        report.details['health_check_attempts'] = checker.wait_until_healthy()

        if config.run_smoke_tests:
            logger.info("💨 Running smoke tests...")
            with checker.tunnel() as tunnel:
                self.python.run_script('tests/smoke/smoke_tests.py', '--base-url', tunnel.base_url)
            report.details['smoke_tests'] = 'passed'

        self._record_deployment(config, context, environment, namespace, docker_image, report)
        logger.info(f"🌐 Model is now available in {environment.value} environment")

    def _read_image(self) -> str:
        image_file = self.artifacts.docker_image_file
        try:
            docker_image = image_file.read_text().strip()
        except FileNotFoundError as e:
            raise DeploymentFailure(f"{image_file} not found; was the model packaged?", cause=e) from e
        if not docker_image:
            raise DeploymentFailure(f"{image_file} is empty")
        return docker_image

    def _apply_manifests(self, namespace: str, env: Dict[str, str], report: StageReport) -> None:
        logger.info("☸️ Deploying with Kubernetes manifests...")
        manifests_dir = self.artifacts.k8s_manifests

        for name in ['configmap.yml', *REQUIRED_MANIFESTS, 'ingress.yml', 'hpa.yml']:
            manifest = manifests_dir / name
            command = ['kubectl', 'apply', '-f', str(manifest), '-n', namespace]

            if name in REQUIRED_MANIFESTS:
                self.runner.run(command, env=env)
            elif manifest.is_file():
                self.run_tolerated(report, command, f"Could not apply {name}", env=env)
            else:
                logger.info(f"No {name} to apply")

    def _deploy_with_helm(self, config: PipelineConfig, context: BuildContext,
                          environment: DeploymentEnvironment, namespace: str, env: Dict[str, str]) -> None:
        logger.info("⛵ Deploying with Helm...")
        charts_dir = self.artifacts.helm_charts
        self.runner.run(
            ['helm', 'upgrade', '--install', config.model_name,
             str(charts_dir / f"{config.model_name}-{context.model_version}.tgz"),
             '--namespace', namespace,
             '--create-namespace',
             '--values', str(self._helm_values_file(environment)),
             '--set', f"image.tag={context.model_version}",
             '--wait', f"--timeout={HELM_TIMEOUT}"],
            env=env,
        )

    def _helm_values_file(self, environment: DeploymentEnvironment) -> Path:
        charts_dir = self.artifacts.helm_charts
        candidates = [f"values-{environment.value}.yaml"]
        if environment in HELM_VALUES_SHORT_NAMES:
            candidates.append(f"values-{HELM_VALUES_SHORT_NAMES[environment]}.yaml")

        for name in candidates:
            if (charts_dir / name).is_file():
                logger.info(f"Using Helm values file {name}")
                return charts_dir / name

        logger.warning(f"No Helm values file found for {environment.value} (tried {', '.join(candidates)})")
        return charts_dir / candidates[0]

    def _record_deployment(self, config: PipelineConfig, context: BuildContext,
                           environment: DeploymentEnvironment, namespace: str,
                           docker_image: str, report: StageReport) -> None:
        logger.info("📝 Recording deployment information...")
        output_dir = self.artifacts.ensure(self.artifacts.deployment)

        try:
            inspector = self.services.cluster_inspector(config)
            deployment_info = inspector.describe_deployment(config.model_name, namespace)
            service_info = inspector.describe_service(config.model_name, namespace)
        except Exception as e:
            report.warn(f"Could not record cluster state: {e}")
        else:
            with open(output_dir / 'deployment-info.yaml', 'w') as f:
                yaml.safe_dump(deployment_info, f, sort_keys=False)
            with open(output_dir / 'service-info.yaml', 'w') as f:
                yaml.safe_dump(service_info, f, sort_keys=False)

        summary = (
            "Deployment Summary\n"
            "==================\n"
            f"Environment: {environment.value}\n"
            f"Namespace: {namespace}\n"
            f"Image: {docker_image}\n"
            f"Version: {context.model_version}\n"
            f"Build: {context.build_number}\n"
            f"Branch: {context.branch}\n"
            f"Timestamp: {datetime.now().isoformat()}\n"
        )
        (output_dir / 'deployment-summary.txt').write_text(summary)
        report.details['deployment_dir'] = str(output_dir)

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        if context.environment is not DeploymentEnvironment.PRODUCTION or not config.auto_rollback:
            return

        namespace = config.target_namespace(context.environment)
        rollout = RolloutManager(self.runner, config.model_name, namespace, self.services.cluster_env(config))
        result = rollout.rollback()
        if result['status'] != 'success':
            logger.error(f"Rollback did not complete; deployment failure stands: {error}")

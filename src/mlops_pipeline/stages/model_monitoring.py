#!/usr/bin/env python3
"""
Model Monitoring Setup Stage
Sets up monitoring, alerting, and observability for the deployed model.

This stage is NON_FATAL: monitoring infrastructure problems are logged to
``artifacts/logs`` and never fail the pipeline.
"""

import logging
from typing import Dict, List, Sequence

import requests
import yaml
from prometheus_client.parser import text_string_to_metric_families

from mlops_pipeline.config.pipeline_config import PRODUCTION_BRANCHES, BuildContext, PipelineConfig
from mlops_pipeline.deployment.health_check import PortForwardTunnel
from mlops_pipeline.shared.exceptions import MonitoringSetupFailure, StageFailure
from mlops_pipeline.stages.base import FailurePolicy, Stage, StageReport

logger = logging.getLogger(__name__)

MONITORING_DIR = 'k8s/monitoring'
MONITORING_NAMESPACE = 'monitoring'

KEY_MODEL_METRICS = {
    'model_accuracy': 'Model accuracy',
    'prediction_duration_seconds': 'Prediction latency',
    'http_requests_total': 'Request rate',
    'http_requests_errors_total': 'Error rate',
    'data_drift_score': 'Data drift',
    'prediction_confidence': 'Model confidence',
}

CONFIGURED_ALERTS = [
    'High error rate (>5%)',
    'High latency (>1s)',
    'Low model confidence (<0.7)',
    'Data drift detected',
    'Model degradation',
]


class ModelMonitoringStage(Stage):
    name = 'Model Monitoring Setup'
    branches = PRODUCTION_BRANCHES
    failure_policy = FailurePolicy.NON_FATAL
    failure_type = MonitoringSetupFailure

    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        namespace = config.target_namespace(context.environment)
        env = self.services.cluster_env(config)
        components: List[str] = []

        if config.enable_prometheus:
            logger.info("📈 Setting up Prometheus monitoring...")
            self._apply(['servicemonitor.yml', 'prometheusrule.yml'], namespace, env)
            components.append('prometheus')

        if config.enable_grafana:
            logger.info("📊 Setting up Grafana dashboards...")
            self._install_dashboard(config, env)
            components.append('grafana')

        logger.info("🎯 Setting up model performance monitoring...")
        self._apply(['metrics-collector.yml', 'drift-detector.yml'], namespace, env)
        components.append('performance')

        if config.enable_alerting:
            logger.info("🚨 Setting up alerting...")
            self._apply(['alertmanager-config.yml'], MONITORING_NAMESPACE, env)
            if config.slack_webhook:
                self._apply_stdin(self._slack_secret(config.slack_webhook), env)
            components.append('alerting')

        if config.enable_logging:
            logger.info("📝 Setting up logging aggregation...")
            self._apply(['fluent-bit.yml', 'log-config.yml'], namespace, env)
            components.append('logging')

        if config.enable_explainability:
            logger.info("🔍 Setting up model explainability monitoring...")
            self._apply(['explainability-service.yml'], namespace, env)
            components.append('explainability')

        if config.enable_ab_testing:
            logger.info("🧪 Setting up A/B testing infrastructure...")
            self._apply(['traffic-splitter.yml', 'experiment-tracker.yml'], namespace, env)
            components.append('ab_testing')

        logger.info("🏥 Configuring health checks...")
        self.runner.run(
            ['kubectl', 'patch', 'deployment', config.model_name, '-n', namespace,
             '--patch-file', f"{MONITORING_DIR}/health-probes-patch.yml"],
            cwd=self.services.workspace, env=env,
        )

        report.details['components'] = components
        report.details['urls_file'] = str(self._write_monitoring_urls(config, namespace))

        logger.info("⏳ Waiting for monitoring components to be ready...")
        for deployment in ['metrics-collector', 'drift-detector']:
            self.run_tolerated(
                report,
                ['kubectl', 'rollout', 'status', f"deployment/{deployment}", '-n', namespace, '--timeout=300s'],
                f"{deployment} not ready",
                env=env,
            )

        report.details['exposed_metrics'] = self._validate_metrics_endpoint(config, namespace, env, report)
        logger.info("📊 Monitoring dashboards and alerts are now configured")

    def _apply(self, manifests: Sequence[str], namespace: str, env: Dict[str, str]) -> None:
        for manifest in manifests:
            self.runner.run(['kubectl', 'apply', '-f', f"{MONITORING_DIR}/{manifest}", '-n', namespace],
                            cwd=self.services.workspace, env=env)

    def _apply_stdin(self, manifest: str, env: Dict[str, str]) -> None:
        self.runner.run(['kubectl', 'apply', '-f', '-'], input_text=manifest, env=env)

    def _install_dashboard(self, config: PipelineConfig, env: Dict[str, str]) -> None:
        configmap = f"{config.model_name}-dashboard"
        rendered = self.runner.run(
            ['kubectl', 'create', 'configmap', configmap,
             f"--from-file={MONITORING_DIR}/grafana-dashboard.json",
             '-n', MONITORING_NAMESPACE, '--dry-run=client', '-o', 'yaml'],
            cwd=self.services.workspace, env=env,
        )
        self._apply_stdin(rendered.stdout, env)
        self.runner.run(
            ['kubectl', 'label', 'configmap', configmap, 'grafana_dashboard=1',
             '-n', MONITORING_NAMESPACE, '--overwrite'],
            env=env,
        )

    def _slack_secret(self, webhook: str) -> str:
        # Built here and piped through stdin so the webhook never appears in argv
        secret = {
            'apiVersion': 'v1',
            'kind': 'Secret',
            'metadata': {'name': 'slack-webhook', 'namespace': MONITORING_NAMESPACE},
            'type': 'Opaque',
            'stringData': {'url': webhook},
        }
        return yaml.safe_dump(secret, sort_keys=False)

    def _write_monitoring_urls(self, config: PipelineConfig, namespace: str):
        output_dir = self.artifacts.ensure(self.artifacts.monitoring)
        service_url = f"http://{config.model_name}.{namespace}.svc.cluster.local"

        lines = [
            "Monitoring Dashboard URLs",
            "=========================",
            f"Grafana Dashboard: {config.grafana_url}/d/{config.model_name}-dashboard",
            f"Prometheus Metrics: {config.prometheus_url}/graph",
            f"Model Metrics Endpoint: {service_url}/metrics",
            f"Health Check: {service_url}/health",
            "",
            "Key Metrics to Monitor:",
            *[f"- {label}: {metric}" for metric, label in KEY_MODEL_METRICS.items()],
            "",
            "Alerts Configured:",
            *[f"- {alert}" for alert in CONFIGURED_ALERTS],
        ]

        urls_file = output_dir / 'monitoring-urls.txt'
        urls_file.write_text('\n'.join(lines) + '\n')
        return urls_file

    def _validate_metrics_endpoint(self, config: PipelineConfig, namespace: str,
                                   env: Dict[str, str], report: StageReport) -> List[str]:
        logger.info("✅ Validating monitoring setup...")
        tunnel = PortForwardTunnel(self.runner, config.model_name, namespace, env=env, sleep=self.services.sleep)

        try:
            with tunnel:
                response = requests.get(f"{tunnel.base_url}/metrics", timeout=10)
                response.raise_for_status()
                payload = response.text
        except (requests.RequestException, OSError) as e:
            report.warn(f"Metrics endpoint not available yet: {e}")
            return []

        exposed = set()
        try:
            for family in text_string_to_metric_families(payload):
                exposed.add(family.name)
                exposed.update(sample.name for sample in family.samples)
        except ValueError as e:
            report.warn(f"Could not parse metrics endpoint output: {e}")
            return []

        missing = [metric for metric in KEY_MODEL_METRICS if metric not in exposed]
        if missing:
            report.warn(f"Model does not expose: {', '.join(missing)}")
        return sorted(metric for metric in KEY_MODEL_METRICS if metric in exposed)

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        logs_dir = self.artifacts.ensure(self.artifacts.logs)
        (logs_dir / 'monitoring-failure.log').write_text(f"Monitoring setup failed: {error}\n")

        namespace = config.target_namespace(context.environment)
        try:
            events = self.services.cluster_inspector(config).recent_events(namespace)
        except Exception as e:
            logger.warning(f"Could not get k8s events: {e}")
            events = [f"Could not get k8s events: {e}"]
        (logs_dir / 'k8s-events.log').write_text('\n'.join(events) + '\n')

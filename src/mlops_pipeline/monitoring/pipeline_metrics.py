#!/usr/bin/env python3
"""
Pipeline Metrics
Exports per-stage durations and results of a run in the Prometheus text
format so they can be archived with the build or picked up by a node
exporter textfile collector.
"""

import logging
from pathlib import Path
from typing import Union

from prometheus_client import CollectorRegistry, Counter, Gauge, write_to_textfile

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.orchestration.outcome import PipelineOutcome

logger = logging.getLogger(__name__)

METRICS_FILENAME = 'pipeline-metrics.prom'


class PipelineMetrics:
    """Prometheus metrics for one pipeline run, kept in a private registry."""

    def __init__(self, config: PipelineConfig, context: BuildContext):
        self.config = config
        self.context = context
        self.registry = CollectorRegistry()

        self.stage_duration = Gauge('mlops_pipeline_stage_duration_seconds',
                                    'Wall-clock duration of a pipeline stage',
                                    ['model', 'branch', 'stage'], registry=self.registry)
        self.stage_results = Counter('mlops_pipeline_stage_results_total',
                                     'Pipeline stage results by status',
                                     ['model', 'branch', 'stage', 'status'], registry=self.registry)
        self.stage_warnings = Gauge('mlops_pipeline_stage_warnings',
                                    'Warnings recorded by a pipeline stage',
                                    ['model', 'branch', 'stage'], registry=self.registry)
        self.pipeline_success = Gauge('mlops_pipeline_success',
                                      '1 if the pipeline run succeeded, 0 otherwise',
                                      ['model', 'branch'], registry=self.registry)
        self.pipeline_duration = Gauge('mlops_pipeline_duration_seconds',
                                       'Wall-clock duration of the pipeline run',
                                       ['model', 'branch'], registry=self.registry)
        self.build_number = Gauge('mlops_pipeline_build_number',
                                  'Build number of the last recorded run',
                                  ['model', 'branch'], registry=self.registry)

    def record(self, outcome: PipelineOutcome) -> None:
        model = self.config.model_name
        branch = self.context.branch or 'unknown'

        for result in outcome.stage_results:
            self.stage_duration.labels(model, branch, result.name).set(result.duration_seconds)
            self.stage_results.labels(model, branch, result.name, result.status.value).inc()
            self.stage_warnings.labels(model, branch, result.name).set(len(result.warnings))

        self.pipeline_success.labels(model, branch).set(1 if outcome.succeeded else 0)
        self.pipeline_duration.labels(model, branch).set(outcome.duration_seconds)

        try:
            self.build_number.labels(model, branch).set(int(self.context.build_number))
        except ValueError:
            logger.debug(f"Non-numeric build number {self.context.build_number!r} not exported")

    def write(self, output_dir: Union[str, Path]) -> Path:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        metrics_file = output_dir / METRICS_FILENAME
        write_to_textfile(str(metrics_file), self.registry)
        logger.info(f"📊 Pipeline metrics written to {metrics_file}")
        return metrics_file

#!/usr/bin/env python3
"""
MLOps Pipeline Orchestrator
Runs the stage sequence with branch gating and fail-fast semantics, then the
post-build actions, and reports exactly one outcome to the notifier.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.execution.command_runner import CommandRunner, SubprocessCommandRunner
from mlops_pipeline.execution.credentials import CredentialStore, EnvironmentCredentialStore
from mlops_pipeline.monitoring.pipeline_metrics import PipelineMetrics
from mlops_pipeline.notifications.notifier import Notifier
from mlops_pipeline.orchestration.outcome import PipelineOutcome
from mlops_pipeline.orchestration.post_actions import ArtifactArchiver, TestResultPublisher, WorkspaceCleaner
from mlops_pipeline.shared.logging_setup import attach_file_handler, detach_handler
from mlops_pipeline.stages.base import Stage, StageResult, StageServices
from mlops_pipeline.stages.registry import build_stages

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = 'pipeline-summary.json'
NOTIFICATIONS_FILENAME = 'notifications.json'


class PipelineOrchestrator:
    """Sequential stage runner for one build."""

    def __init__(self, config: PipelineConfig, context: BuildContext, services: StageServices,
                 stages: Optional[List[Stage]] = None, notifier: Optional[Notifier] = None):
        self.config = config
        self.context = context
        self.services = services
        self.stages = stages if stages is not None else build_stages(services)
        self.notifier = notifier or Notifier(config, context, services.credentials)

    @property
    def archive_target(self) -> Path:
        archive_root = Path(self.config.archive_dir)
        if not archive_root.is_absolute():
            archive_root = self.services.workspace / archive_root
        return archive_root / str(self.context.build_number)

    def run(self) -> PipelineOutcome:
        started_at = datetime.now()
        logger.info(f"🚀 Starting MLOps pipeline for {self.config.model_name} "
                    f"(build #{self.context.build_number}, branch '{self.context.branch}')")

        log_handler = attach_file_handler(self.services.artifacts.logs / 'pipeline.log')
        try:
            stage_results = self.run_stages()
        finally:
            detach_handler(log_handler)

        post_actions = self.run_post_actions()
        outcome = PipelineOutcome.from_results(stage_results, started_at, post_actions=post_actions)

        self._write_reports(outcome)

        if outcome.succeeded:
            logger.info(f"🎉 MLOps Pipeline completed successfully in {outcome.duration_string}")
        else:
            logger.error(f"💥 MLOps Pipeline failed at {outcome.failed_stage.name}: {outcome.failed_stage.reason}")

        outcome.notifications = self.notifier.notify(outcome)
        self._write_notification_log(outcome)
        return outcome

    def run_stages(self) -> List[StageResult]:
        results: List[StageResult] = []

        for index, stage in enumerate(self.stages):
            if not stage.is_enabled(self.context):
                reason = stage.skip_reason(self.context)
                logger.info(f"⏭️ Skipping {stage.name}: {reason}")
                results.append(StageResult.skipped(stage.name, reason))
                continue

            result = stage.execute(self.config, self.context)
            results.append(result)

            if result.is_failed:
                for remaining in self.stages[index + 1:]:
                    results.append(StageResult.skipped(remaining.name, f"not run: {stage.name} failed"))
                break

        return results

    def run_post_actions(self) -> Dict[str, Dict[str, Any]]:
        """Run every post-build action; one failing never prevents the others."""
        workspace = self.services.workspace
        archive_target = self.archive_target

        actions: List[tuple] = [
            ('archive_artifacts',
             ArtifactArchiver(workspace, archive_target.parent, self.context.build_number).archive),
            ('publish_test_results',
             TestResultPublisher(self.services.artifacts.test_results, archive_target).publish),
        ]
        if self.config.clean_workspace:
            actions.append(('clean_workspace', WorkspaceCleaner(workspace).clean))

        results = {}
        for name, action in actions:
            try:
                results[name] = action()
            except Exception as e:
                logger.error(f"Post action {name} failed: {e}")
                results[name] = {'status': 'error', 'error': str(e)}

        return results

    def _write_reports(self, outcome: PipelineOutcome) -> None:
        archive_target = self.archive_target
        try:
            metrics = PipelineMetrics(self.config, self.context)
            metrics.record(outcome)
            metrics.write(archive_target)

            summary = outcome.to_dict()
            summary['config'] = self.config.to_mapping(redact_secrets=True)
            with open(archive_target / SUMMARY_FILENAME, 'w') as f:
                json.dump(summary, f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Could not write pipeline reports: {e}")

    def _write_notification_log(self, outcome: PipelineOutcome) -> None:
        try:
            with open(self.archive_target / NOTIFICATIONS_FILENAME, 'w') as f:
                json.dump(outcome.notifications, f, indent=2)
        except OSError as e:
            logger.error(f"Could not write notification log: {e}")


def run_pipeline(config: Union[PipelineConfig, Mapping[str, Any], None],
                 context: Optional[BuildContext] = None,
                 workspace: Optional[Union[str, Path]] = None,
                 runner: Optional[CommandRunner] = None,
                 credentials: Optional[CredentialStore] = None,
                 notifier: Optional[Notifier] = None,
                 stages: Optional[List[Stage]] = None,
                 sleep: Optional[Callable[[float], None]] = None) -> PipelineOutcome:
    """Validate the configuration once and run the whole pipeline."""
    if not isinstance(config, PipelineConfig):
        config = PipelineConfig.from_mapping(config)

    context = context or BuildContext.from_environment()
    services_kwargs: Dict[str, Any] = {}
    if sleep is not None:
        services_kwargs['sleep'] = sleep

    services = StageServices(
        runner=runner or SubprocessCommandRunner(),
        credentials=credentials or EnvironmentCredentialStore(),
        workspace=Path(workspace) if workspace is not None else Path.cwd(),
        **services_kwargs
    )

    orchestrator = PipelineOrchestrator(config, context, services, stages=stages, notifier=notifier)
    return orchestrator.run()

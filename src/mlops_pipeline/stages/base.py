#!/usr/bin/env python3
"""
Stage contract shared by every pipeline stage.

A stage is built with StageServices (command runner, credential store,
workspace) and exposes ``execute(config, context) -> StageResult``. How an
exception inside a stage propagates is declared per stage through
``failure_policy`` instead of being decided inside each stage body:

* FATAL: the stage reports FAILED and the orchestrator halts the sequence.
* NON_FATAL: the failure is logged, recorded as a warning and the stage
  reports SUCCEEDED.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Type

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.deployment.cluster_inspector import ClusterInspector
from mlops_pipeline.execution.command_runner import CommandResult, CommandRunner
from mlops_pipeline.execution.credentials import CredentialStore
from mlops_pipeline.execution.python_env import PythonToolchain
from mlops_pipeline.shared.exceptions import CredentialNotFoundError, StageFailure
from mlops_pipeline.stages.artifacts import ArtifactLayout

logger = logging.getLogger(__name__)


class StageStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class FailurePolicy(Enum):
    FATAL = "fatal"
    NON_FATAL = "non_fatal"


@dataclass
class StageResult:
    """Outcome of one stage."""
    name: str
    status: StageStatus
    reason: Optional[str] = None
    error: Optional[BaseException] = None
    details: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @classmethod
    def succeeded(cls, name: str, details: Optional[Dict[str, Any]] = None,
                  warnings: Optional[List[str]] = None, duration_seconds: float = 0.0) -> 'StageResult':
        return cls(name=name, status=StageStatus.SUCCEEDED, details=details or {},
                   warnings=warnings or [], duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, name: str, reason: str, error: Optional[BaseException] = None,
               details: Optional[Dict[str, Any]] = None, warnings: Optional[List[str]] = None,
               duration_seconds: float = 0.0) -> 'StageResult':
        return cls(name=name, status=StageStatus.FAILED, reason=reason, error=error,
                   details=details or {}, warnings=warnings or [], duration_seconds=duration_seconds)

    @classmethod
    def skipped(cls, name: str, reason: str) -> 'StageResult':
        return cls(name=name, status=StageStatus.SKIPPED, reason=reason)

    @property
    def is_failed(self) -> bool:
        return self.status is StageStatus.FAILED

    @property
    def is_skipped(self) -> bool:
        return self.status is StageStatus.SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status.value,
            'reason': self.reason,
            'error_type': type(self.error).__name__ if self.error else None,
            'details': self.details,
            'warnings': self.warnings,
            'duration_seconds': round(self.duration_seconds, 3),
        }


class StageReport:
    """Mutable scratchpad a stage fills while it runs."""

    def __init__(self, stage_name: str):
        self.stage_name = stage_name
        self.details: Dict[str, Any] = {}
        self.warnings: List[str] = []

    def warn(self, message: str) -> None:
        logger.warning(f"⚠️ {self.stage_name}: {message}")
        self.warnings.append(message)


@dataclass
class StageServices:
    """Capabilities injected into every stage."""
    runner: CommandRunner
    credentials: CredentialStore
    workspace: Path
    sleep: Callable[[float], None] = time.sleep
    inspector_factory: Callable[[Optional[str]], ClusterInspector] = ClusterInspector

    def __post_init__(self):
        self.workspace = Path(self.workspace)
        self.artifacts = ArtifactLayout(self.workspace)
        self.python = PythonToolchain(self.runner, self.workspace)

    def kubeconfig_path(self, config: PipelineConfig) -> Optional[str]:
        """Resolve the kubeconfig credential, falling back to the default kube context."""
        try:
            return self.credentials.secret_file(config.kubeconfig_credentials_id)
        except CredentialNotFoundError as e:
            logger.warning(f"{e}; using the default kubectl context")
            return None

    def cluster_env(self, config: PipelineConfig) -> Dict[str, str]:
        kubeconfig = self.kubeconfig_path(config)
        return {'KUBECONFIG': kubeconfig} if kubeconfig else {}

    def cluster_inspector(self, config: PipelineConfig) -> ClusterInspector:
        return self.inspector_factory(self.kubeconfig_path(config))


class Stage(ABC):
    """A named unit of work in the pipeline."""

    name: str = ''
    # None means the stage runs on every branch
    branches: Optional[FrozenSet[str]] = None
    failure_policy: FailurePolicy = FailurePolicy.FATAL
    failure_type: Type[StageFailure] = StageFailure

    def __init__(self, services: StageServices):
        self.services = services
        self.runner = services.runner
        self.artifacts = services.artifacts
        self.python = services.python

    def is_enabled(self, context: BuildContext) -> bool:
        return self.branches is None or context.branch in self.branches

    def skip_reason(self, context: BuildContext) -> str:
        allowed = ', '.join(sorted(self.branches or ()))
        return f"branch '{context.branch}' not in [{allowed}]"

    @abstractmethod
    def run(self, config: PipelineConfig, context: BuildContext, report: StageReport) -> None:
        """Perform the stage's external actions; raise to signal failure."""

    def on_failure(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        """Best-effort cleanup or diagnostics after a failure."""

    def execute(self, config: PipelineConfig, context: BuildContext) -> StageResult:
        logger.info(f"▶️ Starting {self.name}...")
        report = StageReport(self.name)
        start_time = time.perf_counter()

        try:
            self.run(config, context, report)
        except Exception as e:
            error = self._as_failure(e)
            self._run_failure_hook(config, context, error)
            duration = time.perf_counter() - start_time

            if self.failure_policy is FailurePolicy.NON_FATAL:
                logger.warning(f"⚠️ {self.name} failed: {error}")
                logger.warning(f"⚠️ Continuing pipeline despite {self.name} failure")
                report.warnings.append(str(error))
                report.details['error'] = str(error)
                return StageResult.succeeded(self.name, details=report.details,
                                             warnings=report.warnings, duration_seconds=duration)

            logger.error(f"❌ {self.name} failed: {error}")
            return StageResult.failed(self.name, str(error), error=error, details=report.details,
                                      warnings=report.warnings, duration_seconds=duration)

        duration = time.perf_counter() - start_time
        logger.info(f"✅ {self.name} completed successfully in {duration:.1f}s")
        return StageResult.succeeded(self.name, details=report.details,
                                     warnings=report.warnings, duration_seconds=duration)

    def _as_failure(self, error: Exception) -> StageFailure:
        if isinstance(error, StageFailure):
            return error
        failure = self.failure_type(str(error), cause=error)
        failure.__cause__ = error
        return failure

    def _run_failure_hook(self, config: PipelineConfig, context: BuildContext, error: StageFailure) -> None:
        try:
            self.on_failure(config, context, error)
        except Exception as hook_error:
            logger.error(f"{self.name} failure handling raised: {hook_error}")

    def run_tolerated(self, report: StageReport, command: Sequence[str], message: str,
                      **kwargs: Any) -> CommandResult:
        """Run a command whose failure is only worth a warning."""
        result = self.runner.run(command, check=False, **kwargs)
        if not result.is_success:
            report.warn(f"{message} (exit {result.exit_code})")
        return result

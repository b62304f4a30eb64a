#!/usr/bin/env python3
"""
Error taxonomy for the MLOps pipeline.
Stage failures carry the stage-specific type; infrastructure errors
(configuration, credentials, external commands) sit beside them.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(PipelineError):
    """Invalid pipeline configuration value."""


class CredentialNotFoundError(PipelineError):
    """A named credential could not be resolved."""

    def __init__(self, credentials_id: str, detail: str = ""):
        self.credentials_id = credentials_id
        message = f"Credential '{credentials_id}' not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CommandFailedError(PipelineError):
    """External command exited with a non-zero status."""

    def __init__(self, result):
        self.result = result
        stderr = (result.stderr or "").strip()
        message = f"Command '{result.command}' exited with status {result.exit_code}"
        if stderr:
            message = f"{message}: {stderr[-500:]}"
        super().__init__(message)


class CommandTimeoutError(CommandFailedError):
    """External command did not finish within its timeout."""


class StageFailure(PipelineError):
    """Failure reported by a pipeline stage."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ValidationFailure(StageFailure):
    """Data or model validation did not pass."""


class TrainingFailure(StageFailure):
    """Model training did not complete."""


class QualityGateFailure(StageFailure):
    """Trained model did not meet the quality gates."""


class TestFailure(StageFailure):
    """Unit, integration, API or inference tests failed."""

    # keeps pytest from collecting this class
    __test__ = False


class PackagingFailure(StageFailure):
    """Image build, push or deployment artifact generation failed."""


class DeploymentFailure(StageFailure):
    """Deployment to the cluster failed."""


class HealthCheckExhausted(DeploymentFailure):
    """Deployed service never answered its liveness probe."""

    def __init__(self, attempts: int, last_error: Optional[str] = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"Health check failed after {attempts} attempts"
        if last_error:
            message = f"{message} (last error: {last_error})"
        super().__init__(message)


class MonitoringSetupFailure(StageFailure):
    """Monitoring infrastructure could not be configured."""


class NotificationFailure(PipelineError):
    """A notification channel could not deliver its message."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"{channel}: {message}")

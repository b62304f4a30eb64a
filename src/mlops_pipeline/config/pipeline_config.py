#!/usr/bin/env python3
"""
Pipeline configuration and build context.
The camelCase configuration mapping is validated and defaulted once at
pipeline entry; stages only ever see the frozen PipelineConfig.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

import yaml

from mlops_pipeline.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PRODUCTION_BRANCHES: FrozenSet[str] = frozenset({'main', 'master'})
PACKAGING_BRANCHES: FrozenSet[str] = frozenset({'main', 'master', 'develop'})
STAGING_BRANCHES: FrozenSet[str] = frozenset({'develop', 'staging'})

_TRUE_STRINGS = {'true', 'yes', '1', 'on'}
_FALSE_STRINGS = {'false', 'no', '0', 'off', ''}

# Webhook URLs embed their access token
SECRET_FIELDS = frozenset({'slack_webhook', 'teams_webhook'})
REDACTED = '***'


class DeploymentEnvironment(Enum):
    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"


def deployment_environment(branch: Optional[str]) -> DeploymentEnvironment:
    """Map a source branch to the environment it deploys to."""
    if branch in PRODUCTION_BRANCHES:
        return DeploymentEnvironment.PRODUCTION
    if branch in STAGING_BRANCHES:
        return DeploymentEnvironment.STAGING
    return DeploymentEnvironment.DEVELOPMENT


@dataclass(frozen=True)
class PipelineConfig:
    """Typed, immutable pipeline configuration.

    Field names are the snake_case forms of the documented camelCase keys,
    e.g. ``modelName`` -> ``model_name``.
    """
    model_name: str = 'diabetes-prediction'
    python_version: str = '3.9'
    docker_registry: str = 'docker.io'
    docker_credentials_id: str = 'docker-registry'
    kubeconfig_credentials_id: str = 'kubeconfig'
    namespace: Optional[str] = None

    use_helm: bool = False
    use_mlflow: bool = False
    run_load_tests: bool = False
    run_security_tests: bool = False
    run_security_scan: bool = False
    run_smoke_tests: bool = False
    auto_rollback: bool = False
    has_api: bool = False

    enable_prometheus: bool = False
    enable_grafana: bool = False
    enable_alerting: bool = False
    enable_logging: bool = False
    enable_explainability: bool = False
    enable_ab_testing: bool = False
    grafana_url: str = 'http://grafana.monitoring.svc.cluster.local:3000'
    prometheus_url: str = 'http://prometheus.monitoring.svc.cluster.local:9090'

    slack_channel: Optional[str] = None
    slack_webhook: Optional[str] = None
    email_recipients: Optional[str] = None
    smtp_host: str = 'localhost'
    smtp_port: int = 25
    email_sender: str = 'mlops-pipeline@localhost'
    teams_webhook: Optional[str] = None
    update_github_status: bool = False
    github_repo: Optional[str] = None
    github_token_id: str = 'github-token'

    archive_dir: str = 'build-archive'
    clean_workspace: bool = True

    def target_namespace(self, environment: DeploymentEnvironment) -> str:
        return self.namespace or f"mlops-{environment.value}"

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> 'PipelineConfig':
        """Build a config from camelCase keys, applying defaults and type checks."""
        raw = raw or {}
        known = {field_.name: field_ for field_ in fields(cls)}
        values: Dict[str, Any] = {}

        for key, value in raw.items():
            name = _KEY_ALIASES.get(key, key)
            field_ = known.get(name)
            if field_ is None:
                logger.warning(f"Ignoring unknown configuration key: {key}")
                continue
            if value is None:
                continue
            values[name] = _coerce(key, value, field_.default)

        return cls(**values)

    def to_mapping(self, redact_secrets: bool = False) -> Dict[str, Any]:
        """Inverse of from_mapping; the redacted form goes into the archived summary."""
        reverse = {name: key for key, name in _KEY_ALIASES.items()}
        mapping = {}
        for field_ in fields(self):
            value = getattr(self, field_.name)
            if redact_secrets and value and field_.name in SECRET_FIELDS:
                value = REDACTED
            mapping[reverse.get(field_.name, field_.name)] = value
        return mapping


def _camel_case(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.upper() if part == 'ab' else part.capitalize() for part in rest)


_KEY_ALIASES: Dict[str, str] = {
    _camel_case(field_.name): field_.name for field_ in fields(PipelineConfig)
}
_KEY_ALIASES.pop('updateGithubStatus')
_KEY_ALIASES['updateGitHubStatus'] = 'update_github_status'


def _coerce(key: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
            return True
        if isinstance(value, str) and value.strip().lower() in _FALSE_STRINGS:
            return False
        raise ConfigurationError(f"'{key}' must be a boolean, got {value!r}")

    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"'{key}' must be an integer, got {value!r}") from e

    if isinstance(value, (list, tuple)):
        # emailRecipients may be given as a YAML list
        return ', '.join(str(item) for item in value)

    if isinstance(value, (dict, set)):
        raise ConfigurationError(f"'{key}' must be a scalar value, got {type(value).__name__}")

    return str(value)


def load_pipeline_config(config_path: Union[str, Path]) -> PipelineConfig:
    """Load a pipeline configuration from a YAML file."""
    config_path = Path(config_path)
    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

    # Accept either a flat mapping or one nested under 'pipeline'
    section = config_data.get('pipeline', config_data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"'pipeline' section in {config_path} must be a mapping")

    logger.info(f"Loaded pipeline configuration from {config_path}")
    return PipelineConfig.from_mapping(section)


@dataclass(frozen=True)
class BuildContext:
    """Read-only facts about the current CI run."""
    build_number: str = '0'
    branch: str = ''
    commit: Optional[str] = None
    build_url: Optional[str] = None
    change_id: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def model_version(self) -> str:
        return self.build_number

    @property
    def environment(self) -> DeploymentEnvironment:
        return deployment_environment(self.branch)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> 'BuildContext':
        """Read the CI-provided variables (BUILD_NUMBER, BRANCH_NAME, ...)."""
        environ = os.environ if environ is None else environ

        branch = environ.get('BRANCH_NAME') or environ.get('GIT_BRANCH', '')
        if branch.startswith('origin/'):
            branch = branch[len('origin/'):]

        values: Dict[str, Any] = {
            'build_number': environ.get('BUILD_NUMBER') or '0',
            'branch': branch,
            'commit': environ.get('GIT_COMMIT') or None,
            'build_url': environ.get('BUILD_URL') or None,
            'change_id': environ.get('CHANGE_ID') or None,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

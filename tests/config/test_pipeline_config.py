#!/usr/bin/env python3
"""
Tests for pipeline configuration loading and the build context.
"""

import pytest

from mlops_pipeline.config.pipeline_config import (
    BuildContext,
    DeploymentEnvironment,
    PipelineConfig,
    deployment_environment,
    load_pipeline_config,
)
from mlops_pipeline.shared.exceptions import ConfigurationError


class TestPipelineConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        """Test documented defaults for an empty mapping."""
        config = PipelineConfig.from_mapping({})

        assert config.model_name == 'diabetes-prediction'
        assert config.python_version == '3.9'
        assert config.docker_registry == 'docker.io'
        assert config.docker_credentials_id == 'docker-registry'
        assert config.github_token_id == 'github-token'
        assert config.use_helm is False
        assert config.auto_rollback is False
        assert config.clean_workspace is True
        assert config.smtp_port == 25

    def test_camel_case_keys(self):
        """Test that documented camelCase keys map onto fields."""
        config = PipelineConfig.from_mapping({
            'modelName': 'churn',
            'useHelm': True,
            'enableABTesting': True,
            'updateGitHubStatus': True,
            'kubeconfigCredentialsId': 'prod-kube',
        })

        assert config.model_name == 'churn'
        assert config.use_helm is True
        assert config.enable_ab_testing is True
        assert config.update_github_status is True
        assert config.kubeconfig_credentials_id == 'prod-kube'

    def test_value_coercion(self):
        config = PipelineConfig.from_mapping({
            'autoRollback': 'true',
            'runLoadTests': 'no',
            'smtpPort': '2525',
            'pythonVersion': 3.10,
            'emailRecipients': ['a@example.com', 'b@example.com'],
        })

        assert config.auto_rollback is True
        assert config.run_load_tests is False
        assert config.smtp_port == 2525
        assert config.python_version == '3.1'
        assert config.email_recipients == 'a@example.com, b@example.com'

    def test_integer_booleans(self):
        config = PipelineConfig.from_mapping({'autoRollback': 1, 'useHelm': 0})

        assert config.auto_rollback is True
        assert config.use_helm is False

    def test_integer_boolean_out_of_range_rejected(self):
        with pytest.raises(ConfigurationError, match='autoRollback'):
            PipelineConfig.from_mapping({'autoRollback': 2})

    def test_invalid_boolean_rejected(self):
        with pytest.raises(ConfigurationError, match='useHelm'):
            PipelineConfig.from_mapping({'useHelm': 'sometimes'})

    def test_invalid_integer_rejected(self):
        with pytest.raises(ConfigurationError, match='smtpPort'):
            PipelineConfig.from_mapping({'smtpPort': 'twenty-five'})

    def test_mapping_value_rejected(self):
        with pytest.raises(ConfigurationError):
            PipelineConfig.from_mapping({'modelName': {'nested': 'value'}})

    def test_unknown_keys_ignored(self):
        config = PipelineConfig.from_mapping({'notAKey': 1, 'modelName': 'churn'})
        assert config.model_name == 'churn'

    def test_none_values_keep_defaults(self):
        config = PipelineConfig.from_mapping({'dockerRegistry': None})
        assert config.docker_registry == 'docker.io'

    def test_config_is_frozen(self):
        config = PipelineConfig()
        with pytest.raises(AttributeError):
            config.model_name = 'other'

    def test_target_namespace(self):
        """Test namespace defaulting to mlops-<environment>."""
        assert PipelineConfig().target_namespace(DeploymentEnvironment.PRODUCTION) == 'mlops-production'
        assert PipelineConfig(namespace='models').target_namespace(DeploymentEnvironment.STAGING) == 'models'

    def test_to_mapping_round_trips_keys(self):
        mapping = PipelineConfig(use_helm=True).to_mapping()

        assert mapping['useHelm'] is True
        assert mapping['enableABTesting'] is False
        assert 'updateGitHubStatus' in mapping
        assert PipelineConfig.from_mapping(mapping) == PipelineConfig(use_helm=True)

    def test_to_mapping_redacts_webhooks(self):
        config = PipelineConfig(slack_channel='#ml', slack_webhook='https://hooks.slack.com/services/T0/B0/x')

        redacted = config.to_mapping(redact_secrets=True)

        assert redacted['slackWebhook'] == '***'
        assert redacted['teamsWebhook'] is None
        assert redacted['slackChannel'] == '#ml'
        assert config.to_mapping()['slackWebhook'].startswith('https://hooks.slack.com')


class TestLoadPipelineConfig:
    """Test YAML configuration loading."""

    def test_nested_pipeline_section(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('pipeline:\n  modelName: churn\n  pythonVersion: "3.11"\n')

        config = load_pipeline_config(config_file)

        assert config.model_name == 'churn'
        assert config.python_version == '3.11'

    def test_flat_mapping(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('modelName: churn\nuseHelm: true\n')

        config = load_pipeline_config(config_file)

        assert config.use_helm is True

    def test_empty_file_uses_defaults(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('')

        assert load_pipeline_config(config_file) == PipelineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match='not found'):
            load_pipeline_config(tmp_path / 'missing.yml')

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('pipeline: [unclosed\n')

        with pytest.raises(ConfigurationError, match='Invalid YAML'):
            load_pipeline_config(config_file)

    def test_non_mapping_document(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('- just\n- a list\n')

        with pytest.raises(ConfigurationError):
            load_pipeline_config(config_file)


class TestBuildContext:
    """Test branch to environment mapping and CI variable parsing."""

    @pytest.mark.parametrize('branch,environment', [
        ('main', DeploymentEnvironment.PRODUCTION),
        ('master', DeploymentEnvironment.PRODUCTION),
        ('develop', DeploymentEnvironment.STAGING),
        ('staging', DeploymentEnvironment.STAGING),
        ('feature/x', DeploymentEnvironment.DEVELOPMENT),
        (None, DeploymentEnvironment.DEVELOPMENT),
    ])
    def test_deployment_environment(self, branch, environment):
        assert deployment_environment(branch) is environment

    def test_from_environment(self):
        context = BuildContext.from_environment({
            'BUILD_NUMBER': '17',
            'BRANCH_NAME': 'develop',
            'GIT_COMMIT': 'deadbeef',
            'BUILD_URL': 'https://ci.example.com/job/17/',
            'CHANGE_ID': '5',
        })

        assert context.build_number == '17'
        assert context.model_version == '17'
        assert context.branch == 'develop'
        assert context.environment is DeploymentEnvironment.STAGING
        assert context.commit == 'deadbeef'
        assert context.change_id == '5'

    def test_git_branch_fallback_strips_remote(self):
        context = BuildContext.from_environment({'GIT_BRANCH': 'origin/main'})

        assert context.branch == 'main'
        assert context.build_number == '0'
        assert context.change_id is None

    def test_overrides_win_unless_none(self):
        context = BuildContext.from_environment({'BUILD_NUMBER': '3', 'BRANCH_NAME': 'main'},
                                                branch='develop', build_number=None)

        assert context.branch == 'develop'
        assert context.build_number == '3'

#!/usr/bin/env python3
"""
Tests for the mlops-pipeline command line entry point.
"""

from unittest.mock import Mock, patch

import pytest

from mlops_pipeline.cli import EXIT_CONFIG_ERROR, EXIT_FAILURE, EXIT_SUCCESS, main


class TestCli:
    """Test exit codes and argument handling."""

    @pytest.fixture
    def config_file(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('pipeline:\n  modelName: churn\n')
        return config_file

    def test_success_exit_code(self, config_file, tmp_path):
        with patch('mlops_pipeline.cli.run_pipeline', return_value=Mock(succeeded=True)) as mock_run:
            exit_code = main(['--config', str(config_file), '--workspace', str(tmp_path),
                              '--branch', 'develop', '--build-number', '12'])

        assert exit_code == EXIT_SUCCESS
        config = mock_run.call_args.args[0]
        context = mock_run.call_args.kwargs['context']
        assert config.model_name == 'churn'
        assert context.branch == 'develop'
        assert context.build_number == '12'
        assert mock_run.call_args.kwargs['workspace'] == tmp_path

    def test_failure_exit_code(self, config_file):
        with patch('mlops_pipeline.cli.run_pipeline', return_value=Mock(succeeded=False)):
            assert main(['--config', str(config_file)]) == EXIT_FAILURE

    def test_config_relative_to_workspace(self, config_file, tmp_path):
        with patch('mlops_pipeline.cli.run_pipeline', return_value=Mock(succeeded=True)) as mock_run:
            main(['--config', 'pipeline.yml', '--workspace', str(tmp_path)])

        assert mock_run.call_args.args[0].model_name == 'churn'

    def test_missing_config(self, tmp_path):
        with patch('mlops_pipeline.cli.run_pipeline') as mock_run:
            exit_code = main(['--config', str(tmp_path / 'missing.yml')])

        assert exit_code == EXIT_CONFIG_ERROR
        mock_run.assert_not_called()

    def test_invalid_config_value(self, tmp_path):
        config_file = tmp_path / 'pipeline.yml'
        config_file.write_text('useHelm: maybe\n')

        assert main(['--config', str(config_file)]) == EXIT_CONFIG_ERROR

    def test_config_is_required(self):
        with pytest.raises(SystemExit):
            main([])

#!/usr/bin/env python3
"""
Tests for the subprocess-backed command runner.
"""

import subprocess
from unittest.mock import Mock, patch

import pytest

from mlops_pipeline.execution.command_runner import SubprocessCommandRunner, format_command
from mlops_pipeline.shared.exceptions import CommandFailedError, CommandTimeoutError


class TestSubprocessCommandRunner:
    """Test command execution, failure and timeout handling."""

    @pytest.fixture
    def command_runner(self):
        return SubprocessCommandRunner(base_env={'CI': 'true'})

    def test_successful_command(self, command_runner):
        completed = subprocess.CompletedProcess(['kubectl', 'version'], 0, stdout='v1.29\n', stderr='')

        with patch('mlops_pipeline.execution.command_runner.subprocess.run', return_value=completed) as mock_run:
            result = command_runner.run(['kubectl', 'version'], env={'KUBECONFIG': '/tmp/kube'})

        assert result.is_success
        assert result.stdout == 'v1.29\n'
        assert result.command == 'kubectl version'

        kwargs = mock_run.call_args.kwargs
        assert kwargs['env']['KUBECONFIG'] == '/tmp/kube'
        assert kwargs['env']['CI'] == 'true'
        assert kwargs['capture_output'] is True

    def test_non_zero_exit_raises(self, command_runner):
        completed = subprocess.CompletedProcess(['helm'], 1, stdout='', stderr='release failed')

        with patch('mlops_pipeline.execution.command_runner.subprocess.run', return_value=completed):
            with pytest.raises(CommandFailedError) as exc_info:
                command_runner.run(['helm', 'upgrade'])

        assert exc_info.value.result.exit_code == 1
        assert 'release failed' in str(exc_info.value)

    def test_non_zero_exit_without_check(self, command_runner):
        completed = subprocess.CompletedProcess(['bandit'], 1, stdout='', stderr='')

        with patch('mlops_pipeline.execution.command_runner.subprocess.run', return_value=completed):
            result = command_runner.run(['bandit', '-r', 'src/'], check=False)

        assert not result.is_success
        assert result.exit_code == 1

    def test_timeout(self, command_runner):
        timeout = subprocess.TimeoutExpired(['kubectl'], 5)

        with patch('mlops_pipeline.execution.command_runner.subprocess.run', side_effect=timeout):
            with pytest.raises(CommandTimeoutError) as exc_info:
                command_runner.run(['kubectl', 'rollout', 'status'], timeout=5)

        assert exc_info.value.result.is_timeout
        assert not exc_info.value.result.is_success

    def test_missing_executable(self, command_runner):
        with patch('mlops_pipeline.execution.command_runner.subprocess.run', side_effect=FileNotFoundError()):
            result = command_runner.run(['trivy', 'image'], check=False)

        assert result.exit_code == 127
        assert 'trivy' in result.stderr

    def test_input_text_is_passed(self, command_runner):
        completed = subprocess.CompletedProcess(['docker'], 0, stdout='', stderr='')

        with patch('mlops_pipeline.execution.command_runner.subprocess.run', return_value=completed) as mock_run:
            command_runner.run(['docker', 'login', '--password-stdin'], input_text='s3cret')

        assert mock_run.call_args.kwargs['input'] == 's3cret'

    def test_spawn_and_stop(self, command_runner):
        process = Mock()
        process.poll.return_value = None

        with patch('mlops_pipeline.execution.command_runner.subprocess.Popen', return_value=process):
            background = command_runner.spawn(['kubectl', 'port-forward', 'service/model', '8080:80'])

        assert background.is_running()
        background.stop()
        process.terminate.assert_called_once()
        process.wait.assert_called_once()

    def test_format_command_quotes_arguments(self):
        assert format_command(['echo', 'hello world']) == "echo 'hello world'"

#!/usr/bin/env python3
"""
Shared fixtures: a recording CommandRunner that never touches real tools,
and StageServices wired to a temporary workspace.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.execution.command_runner import (
    BackgroundProcess,
    CommandResult,
    CommandRunner,
    format_command,
)
from mlops_pipeline.execution.credentials import StaticCredentialStore
from mlops_pipeline.shared.exceptions import CommandFailedError
from mlops_pipeline.stages.base import StageServices


@dataclass
class RecordedCall:
    command: List[str]
    cwd: Optional[str]
    env: Optional[Dict[str, str]]
    input_text: Optional[str]
    timeout: Optional[float]
    check: bool

    @property
    def line(self) -> str:
        return ' '.join(self.command)


class FakeProcess(BackgroundProcess):

    def __init__(self, command: List[str]):
        self.command = command
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    def is_running(self) -> bool:
        return not self.stopped


class FakeCommandRunner(CommandRunner):
    """Records every command; exit codes and output come from registered rules."""

    def __init__(self):
        self.calls: List[RecordedCall] = []
        self.spawned: List[FakeProcess] = []
        self._rules: List[tuple] = []

    def fail_on(self, fragment: str, exit_code: int = 1, stderr: str = 'boom') -> None:
        self._rules.append((fragment, exit_code, '', stderr))

    def respond(self, fragment: str, stdout: str) -> None:
        self._rules.append((fragment, 0, stdout, ''))

    def run(self, command, cwd=None, env=None, input_text=None, timeout=None, check=True) -> CommandResult:
        args = [str(part) for part in command]
        call = RecordedCall(args, str(cwd) if cwd else None, env, input_text, timeout, check)
        self.calls.append(call)

        exit_code, stdout, stderr = 0, '', ''
        # Last matching rule wins
        for fragment, code, out, err in reversed(self._rules):
            if fragment in call.line:
                exit_code, stdout, stderr = code, out, err
                break

        result = CommandResult(format_command(args), exit_code, stdout, stderr, 0.0)
        if check and exit_code != 0:
            raise CommandFailedError(result)
        return result

    def spawn(self, command, cwd=None, env=None) -> FakeProcess:
        process = FakeProcess([str(part) for part in command])
        self.spawned.append(process)
        return process

    @property
    def lines(self) -> List[str]:
        return [call.line for call in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in line for line in self.lines)

    def count(self, fragment: str) -> int:
        return sum(1 for line in self.lines if fragment in line)

    def find(self, fragment: str) -> RecordedCall:
        return next(call for call in self.calls if fragment in call.line)


@pytest.fixture
def runner():
    return FakeCommandRunner()


@pytest.fixture
def credentials():
    return StaticCredentialStore({
        'docker-registry': ('ci-bot', 's3cret'),
        'github-token': 'ghp_token',
    })


@pytest.fixture
def workspace(tmp_path):
    """Minimal project checkout with a trained model and manifest templates."""
    root = tmp_path / 'workspace'
    (root / 'artifacts' / 'models').mkdir(parents=True)
    (root / 'artifacts' / 'models' / 'best_model.pkl').write_bytes(b'model-bytes')

    k8s = root / 'k8s'
    k8s.mkdir()
    (k8s / 'deployment.yml').write_text(
        'kind: Deployment\nspec:\n  image: docker.io/diabetes-prediction:{{IMAGE_TAG}}\n'
    )
    (k8s / 'service.yml').write_text('kind: Service\nmetadata:\n  version: "{{IMAGE_TAG}}"\n')

    (root / 'src').mkdir()
    (root / 'src' / 'app.py').write_text('print("model")\n')
    return root


@pytest.fixture
def inspector():
    inspector = Mock()
    inspector.describe_deployment.return_value = {'kind': 'Deployment', 'metadata': {'name': 'diabetes-prediction'}}
    inspector.describe_service.return_value = {'kind': 'Service', 'metadata': {'name': 'diabetes-prediction'}}
    inspector.recent_events.return_value = ['2024-01-01T00:00:00 Warning BackOff Pod/model-0: restarting']
    return inspector


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def services(runner, credentials, workspace, sleep, inspector):
    return StageServices(
        runner=runner,
        credentials=credentials,
        workspace=workspace,
        sleep=sleep,
        inspector_factory=Mock(return_value=inspector),
    )


@pytest.fixture
def config():
    return PipelineConfig()


@pytest.fixture
def main_context():
    return BuildContext(build_number='42', branch='main', commit='abc123',
                        build_url='https://ci.example.com/job/model/42/')


@pytest.fixture
def develop_context():
    return BuildContext(build_number='42', branch='develop', commit='abc123')


@pytest.fixture
def feature_context():
    return BuildContext(build_number='42', branch='feature/new-model', commit='abc123')

#!/usr/bin/env python3
"""Virtualenv used by the stages to run the project's Python scripts."""

import logging
import os
from pathlib import Path
from typing import List, Optional

from mlops_pipeline.execution.command_runner import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


class PythonToolchain:
    """Creates ``venv/`` in the workspace and runs scripts with its interpreter."""

    def __init__(self, runner: CommandRunner, workspace: Path, venv_name: str = 'venv'):
        self.runner = runner
        self.workspace = Path(workspace)
        self.venv_dir = self.workspace / venv_name

    @property
    def bin_dir(self) -> Path:
        return self.venv_dir / ('Scripts' if os.name == 'nt' else 'bin')

    @property
    def python(self) -> str:
        return str(self.bin_dir / ('python.exe' if os.name == 'nt' else 'python'))

    def executable(self, name: str) -> str:
        """Path of a console script installed into the venv (pytest, bandit...)."""
        return str(self.bin_dir / name)

    def create(self, python_version: str, requirements: str = 'requirements.txt') -> None:
        logger.info(f"Creating virtualenv with python{python_version} at {self.venv_dir}")
        self.runner.run([f"python{python_version}", '-m', 'venv', str(self.venv_dir)], cwd=self.workspace)
        self.runner.run([self.python, '-m', 'pip', 'install', '--upgrade', 'pip'], cwd=self.workspace)
        self.runner.run([self.python, '-m', 'pip', 'install', '-r', requirements], cwd=self.workspace)

    def script_command(self, script: str, *args: str) -> List[str]:
        return [self.python, script, *args]

    def run_script(self, script: str, *args: str, check: bool = True,
                   timeout: Optional[float] = None) -> CommandResult:
        return self.runner.run(self.script_command(script, *args), cwd=self.workspace,
                               check=check, timeout=timeout)

    def run_module(self, module: str, *args: str, check: bool = True,
                   timeout: Optional[float] = None) -> CommandResult:
        return self.runner.run([self.python, '-m', module, *args], cwd=self.workspace,
                               check=check, timeout=timeout)

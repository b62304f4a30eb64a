#!/usr/bin/env python3
"""
Shell execution capability.
Stages never call subprocess directly; they receive a CommandRunner so the
tools they drive (kubectl, helm, docker, python) can be replaced in tests.
"""

import logging
import os
import shlex
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from mlops_pipeline.shared.exceptions import CommandFailedError, CommandTimeoutError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration: float
    is_timeout: bool = False

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0 and not self.is_timeout


class BackgroundProcess(ABC):
    """Handle on a long-running command such as a port-forward tunnel."""

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def is_running(self) -> bool:
        ...


class CommandRunner(ABC):
    """Runs external commands given as argument lists."""

    @abstractmethod
    def run(self,
            command: Sequence[str],
            cwd: Optional[PathLike] = None,
            env: Optional[Dict[str, str]] = None,
            input_text: Optional[str] = None,
            timeout: Optional[float] = None,
            check: bool = True) -> CommandResult:
        """Run a command to completion.

        Raises CommandFailedError on a non-zero exit when ``check`` is set.
        """

    @abstractmethod
    def spawn(self,
              command: Sequence[str],
              cwd: Optional[PathLike] = None,
              env: Optional[Dict[str, str]] = None) -> BackgroundProcess:
        """Start a command in the background and return immediately."""


def format_command(command: Sequence[str]) -> str:
    return ' '.join(shlex.quote(str(part)) for part in command)


class _PopenProcess(BackgroundProcess):

    def __init__(self, process: subprocess.Popen, command: str, stop_timeout: float = 10.0):
        self.process = process
        self.command = command
        self.stop_timeout = stop_timeout

    def is_running(self) -> bool:
        return self.process.poll() is None

    def stop(self) -> None:
        if not self.is_running():
            logger.debug(f"Background process already stopped: {self.command}")
            return

        self.process.terminate()
        try:
            self.process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Killing background process that ignored SIGTERM: {self.command}")
            self.process.kill()
            self.process.wait()


class SubprocessCommandRunner(CommandRunner):
    """CommandRunner backed by the subprocess module."""

    def __init__(self, default_timeout: Optional[float] = None, base_env: Optional[Dict[str, str]] = None):
        self.default_timeout = default_timeout
        self.base_env = dict(base_env) if base_env else {}

    def _environment(self, env: Optional[Dict[str, str]]) -> Dict[str, str]:
        run_env = os.environ.copy()
        run_env.update(self.base_env)
        if env:
            run_env.update(env)
        return run_env

    def run(self,
            command: Sequence[str],
            cwd: Optional[PathLike] = None,
            env: Optional[Dict[str, str]] = None,
            input_text: Optional[str] = None,
            timeout: Optional[float] = None,
            check: bool = True) -> CommandResult:
        cmd_args = [str(part) for part in command]
        cmd_str = format_command(cmd_args)
        timeout_val = timeout if timeout is not None else self.default_timeout

        logger.info(f"$ {cmd_str}")
        start_time = time.perf_counter()

        try:
            completed = subprocess.run(
                cmd_args,
                cwd=str(cwd) if cwd else None,
                env=self._environment(env),
                input=input_text,
                capture_output=True,
                text=True,
                timeout=timeout_val,
            )
        except subprocess.TimeoutExpired as e:
            result = CommandResult(
                command=cmd_str,
                exit_code=-1,
                stdout=_decode(e.stdout),
                stderr=f"Command timed out after {timeout_val}s",
                duration=time.perf_counter() - start_time,
                is_timeout=True,
            )
            logger.warning(f"Command timed out after {timeout_val}s: {cmd_str}")
            if check:
                raise CommandTimeoutError(result) from e
            return result
        except FileNotFoundError as e:
            result = CommandResult(
                command=cmd_str,
                exit_code=127,
                stdout='',
                stderr=f"Executable not found: {cmd_args[0]}",
                duration=time.perf_counter() - start_time,
            )
            logger.warning(result.stderr)
            if check:
                raise CommandFailedError(result) from e
            return result

        result = CommandResult(
            command=cmd_str,
            exit_code=completed.returncode,
            stdout=completed.stdout or '',
            stderr=completed.stderr or '',
            duration=time.perf_counter() - start_time,
        )

        if result.stdout.strip():
            logger.debug(result.stdout.rstrip())

        if not result.is_success:
            logger.warning(f"Command exited with {result.exit_code}: {cmd_str}")
            if check:
                raise CommandFailedError(result)

        return result

    def spawn(self,
              command: Sequence[str],
              cwd: Optional[PathLike] = None,
              env: Optional[Dict[str, str]] = None) -> BackgroundProcess:
        cmd_args = [str(part) for part in command]
        cmd_str = format_command(cmd_args)
        logger.info(f"$ {cmd_str} &")

        process = subprocess.Popen(
            cmd_args,
            cwd=str(cwd) if cwd else None,
            env=self._environment(env),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return _PopenProcess(process, cmd_str)


def _decode(output) -> str:
    if output is None:
        return ''
    if isinstance(output, bytes):
        return output.decode('utf-8', errors='replace')
    return output

"""Process execution abstraction layer.

This module provides an interface for running external tools as asyncio
subprocesses, allowing for better testability and dependency injection.
"""

from __future__ import annotations

import asyncio
import platform
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Sequence

from buildtree.errors import SubprocessFailure
from buildtree.logging import Logger

__all__ = [
    "ProcessRunner",
    "PassthroughProcessRunner",
    "SilentProcessRunner",
    "StdoutOnlyProcessRunner",
    "StderrOnlyProcessRunner",
    "TaskOutputTypes",
    "get_platform_default_shell",
    "make_process_runner",
    "run_command",
    "shell_command",
]


class TaskOutputTypes(Enum):
    """
    Enum defining task output control modes.
    """

    ALL = "all"
    NONE = "none"
    OUT = "out"
    ERR = "err"


class ProcessRunner(ABC):
    """
    Abstract interface for running subprocess commands.
    """

    # Overridden by subclasses; None inherits the parent's stream
    stdout: Any = None
    stderr: Any = None

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger

    @abstractmethod
    async def run(
        self,
        cmd: Sequence[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> int:
        """
        Run a command to completion.

        Args:
        cmd: Program and arguments
        cwd: Working directory
        env: Environment variables (defaults to the current environment)

        Returns:
        The process exit code
        """
        ...

    async def _exec(
        self,
        cmd: Sequence[str],
        cwd: Path | None,
        env: dict[str, str] | None,
    ) -> int:
        if self._logger:
            self._logger.trace(f"Executing: {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            env=env,
            stdout=self.stdout,
            stderr=self.stderr,
        )
        return await process.wait()


class PassthroughProcessRunner(ProcessRunner):
    """
    Process runner that lets the tool write directly to the terminal.
    """

    async def run(self, cmd, cwd=None, env=None) -> int:
        return await self._exec(cmd, cwd, env)


class SilentProcessRunner(ProcessRunner):
    """
    Process runner that suppresses all subprocess output by redirecting to DEVNULL.
    """

    stdout = subprocess.DEVNULL
    stderr = subprocess.DEVNULL

    async def run(self, cmd, cwd=None, env=None) -> int:
        return await self._exec(cmd, cwd, env)


class StdoutOnlyProcessRunner(ProcessRunner):
    """
    Process runner that shows stdout while suppressing stderr.
    """

    stderr = subprocess.DEVNULL

    async def run(self, cmd, cwd=None, env=None) -> int:
        return await self._exec(cmd, cwd, env)


class StderrOnlyProcessRunner(ProcessRunner):
    """
    Process runner that shows stderr while suppressing stdout.
    """

    stdout = subprocess.DEVNULL

    async def run(self, cmd, cwd=None, env=None) -> int:
        return await self._exec(cmd, cwd, env)


def make_process_runner(output_type: TaskOutputTypes, logger: Optional[Logger] = None) -> ProcessRunner:
    """
    Factory function for creating ProcessRunner instances.

    Raises:
    ValueError: If an invalid TaskOutputTypes value is provided
    """
    match output_type:
        case TaskOutputTypes.ALL:
            return PassthroughProcessRunner(logger)
        case TaskOutputTypes.NONE:
            return SilentProcessRunner(logger)
        case TaskOutputTypes.OUT:
            return StdoutOnlyProcessRunner(logger)
        case TaskOutputTypes.ERR:
            return StderrOnlyProcessRunner(logger)
        case _:
            raise ValueError(f"Invalid TaskOutputTypes: {output_type}")


def get_platform_default_shell() -> tuple[str, list[str]]:
    """Get default shell and args for current platform.

    Returns:
        Tuple of (shell, args) for platform default
    """
    if platform.system() == "Windows":
        return ("cmd", ["/c"])
    return ("bash", ["-c"])


def shell_command(command: str, shell: str = "", shell_args: Sequence[str] | None = None) -> list[str]:
    """Build the argv that runs ``command`` through a shell."""
    if not shell:
        shell, default_args = get_platform_default_shell()
        if shell_args is None:
            shell_args = default_args
    return [shell, *(shell_args or [])] + [command]


async def run_command(
    runner: ProcessRunner,
    cmd: Sequence[str],
    task_name: str,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    display: str | None = None,
) -> None:
    """
    Run an external tool on behalf of a task.

    Args:
    runner: ProcessRunner used to spawn the tool
    cmd: Program and arguments
    task_name: Task the failure is attributed to
    display: Text naming the command in failure messages (defaults to argv)

    Raises:
    SubprocessFailure: If the tool exits non-zero or cannot be started
    """
    display = display or " ".join(cmd)
    try:
        exit_code = await runner.run(cmd, cwd=cwd, env=env)
    except FileNotFoundError:
        raise SubprocessFailure(task_name, cmd[0], 127)
    if exit_code != 0:
        raise SubprocessFailure(task_name, display, exit_code)

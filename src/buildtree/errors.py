"""Exception taxonomy for build orchestration."""

from __future__ import annotations


class BuildError(Exception):
    """Base class for all buildtree errors."""

    pass


class DuplicateTaskError(BuildError):
    """Raised when a task name is registered twice."""

    pass


class UnknownTaskError(BuildError):
    """Raised when a task name is not registered."""

    pass


class CycleError(BuildError):
    """Raised when composite tasks reference each other in a cycle."""

    pass


class RecordNotFoundError(BuildError, KeyError):
    """Raised when the modification store has no record for a key."""

    pass


class ConfigError(BuildError):
    """Raised when a configuration file is invalid."""

    pass


class RecipeError(BuildError):
    """Raised when a recipe file is invalid."""

    pass


class TaskBodyFailure(BuildError):
    """Raised when the work of a task fails.

    Carries the name of the task whose body failed. Enclosing composite tasks
    re-raise it unchanged so the caller always learns the originating task.
    """

    def __init__(self, task_name: str, message: str) -> None:
        super().__init__(message)
        self.task_name = task_name
        self.message = message

    def __str__(self) -> str:
        return self.message


class SubprocessFailure(TaskBodyFailure):
    """Raised when an external tool invoked by a task exits non-zero."""

    def __init__(self, task_name: str, command: str, exit_code: int) -> None:
        super().__init__(task_name, f"{command} exited with code {exit_code}")
        self.command = command
        self.exit_code = exit_code

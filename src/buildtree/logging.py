"""Logging infrastructure for buildtree.

Provides the Logger interface used for dependency injection of diagnostic
output throughout the build engine.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod


class LogLevel(enum.Enum):
    """Log verbosity levels for buildtree diagnostic messages.

    Lower numeric values represent higher severity / less verbosity.
    """
    FATAL = 0  # Only unrecoverable errors (malformed recipes, unknown tasks)
    ERROR = 1  # Fatal errors plus task failures
    WARN = 2   # Errors plus warnings about configuration issues
    INFO = 3   # Warnings plus normal build progress (default)
    DEBUG = 4  # Info plus freshness decisions and resolved paths
    TRACE = 5  # Debug plus store reads and writes

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """Look up a level by case-insensitive name.

        Raises:
            ValueError: If the name is not a known level
        """
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = ", ".join(level.name.lower() for level in cls)
            raise ValueError(f"Invalid log level '{name}'. Valid levels: {valid}")


class Logger(ABC):
    """Abstract logger with level filtering.

    Implementations decide where output goes; callers only pick a level.
    """

    @abstractmethod
    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        ...

    @abstractmethod
    def push_level(self, level: LogLevel) -> None:
        ...

    @abstractmethod
    def pop_level(self) -> LogLevel:
        ...

    def fatal(self, *args, **kwargs) -> None:
        self.log(LogLevel.FATAL, *args, **kwargs)

    def error(self, *args, **kwargs) -> None:
        self.log(LogLevel.ERROR, *args, **kwargs)

    def warn(self, *args, **kwargs) -> None:
        self.log(LogLevel.WARN, *args, **kwargs)

    def info(self, *args, **kwargs) -> None:
        self.log(LogLevel.INFO, *args, **kwargs)

    def debug(self, *args, **kwargs) -> None:
        self.log(LogLevel.DEBUG, *args, **kwargs)

    def trace(self, *args, **kwargs) -> None:
        self.log(LogLevel.TRACE, *args, **kwargs)

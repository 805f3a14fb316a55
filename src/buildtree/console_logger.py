from rich.console import Console

from buildtree.logging import Logger, LogLevel


class ConsoleLogger(Logger):
    """Logger that prints rich renderables and markup to a Console.

    The active level is the top of a stack whose bottom entry (the level given
    at construction) can never be removed. ``bt -L debug`` sets the base; a
    project config's ``log_level`` is pushed on top when no flag was given.
    """

    def __init__(self, console: Console, level: LogLevel = LogLevel.INFO) -> None:
        self._console = console
        self._levels = [level]

    @property
    def level(self) -> LogLevel:
        return self._levels[-1]

    def enabled(self, level: LogLevel) -> bool:
        return level.value <= self.level.value

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        # Arguments go to Console.print untouched, so tables and trees work too
        if self.enabled(level):
            self._console.print(*args, **kwargs)

    def push_level(self, level: LogLevel) -> None:
        self._levels.append(level)

    def pop_level(self) -> LogLevel:
        """
        Raises:
            RuntimeError: If only the base level is left
        """
        if len(self._levels) == 1:
            raise RuntimeError("Cannot pop the base log level")
        return self._levels.pop()

"""Timing and pass/fail presentation for build runs."""

from __future__ import annotations

import time
from typing import Callable

from rich.markup import escape

from buildtree.errors import TaskBodyFailure
from buildtree.logging import Logger

SUCCESS_BANNER = "   BUILD OK   "
FAILURE_BANNER = "   BUILD FAILURE   "


class Reporter:
    """
    Presents build progress. Consumes events from the scheduler and makes no
    decisions of its own.

    Task names are never printed on success: a task's ``desc`` header is shown
    when its work starts and its elapsed time when it finishes.
    """

    def __init__(self, logger: Logger, clock: Callable[[], float] = time.perf_counter) -> None:
        self._logger = logger
        self._clock = clock
        self._started: dict[str, float] = {}

    def task_started(self, task_name: str, desc: str = "") -> None:
        self._started[task_name] = self._clock()
        self._logger.debug(f"[dim]Starting {task_name}[/dim]")
        if desc:
            self._logger.info(escape(desc), end="")

    def task_finished(self, task_name: str, desc: str = "") -> float:
        started = self._started.pop(task_name, None)
        elapsed = self._clock() - started if started is not None else 0.0
        if desc:
            self._logger.info(f"[bright_black] ({elapsed:.2f}s)[/bright_black]")
        self._logger.debug(f"[dim]Finished {task_name} ({elapsed:.2f}s)[/dim]")
        return elapsed

    def task_skipped(self, task_name: str, reason: str = "fresh") -> None:
        self._logger.debug(f"[dim]Skipping {task_name} ({reason})[/dim]")

    def task_failed(self, task_name: str, desc: str = "") -> None:
        self._started.pop(task_name, None)
        if desc:
            # Terminate the header line left open by task_started
            self._logger.info("")

    def build_succeeded(self, elapsed: float) -> None:
        self._logger.info(
            f"\n[bold black on bright_green]{SUCCESS_BANNER}[/bold black on bright_green]"
            f" [bright_black]({elapsed:.2f}s)[/bright_black]"
        )

    def build_failed(self, failure: TaskBodyFailure, elapsed: float) -> None:
        self._logger.error(
            f"\n[bold white on bright_red]{FAILURE_BANNER}[/bold white on bright_red]"
        )
        self._logger.error(
            f"[bold bright_red]Task '{escape(failure.task_name)}' failed: "
            f"{escape(failure.message)}[/bold bright_red]"
        )
        self._logger.error(f"[bright_black]({elapsed:.2f}s)[/bright_black]")

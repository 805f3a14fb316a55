"""Task scheduling and incremental execution."""

from __future__ import annotations

import asyncio
import enum
import inspect
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from buildtree.dependencies import DependencyResolver, FreshnessReport
from buildtree.errors import CycleError, TaskBodyFailure, UnknownTaskError
from buildtree.graph import BuildGraph, Task, TaskKind
from buildtree.logging import Logger
from buildtree.reporter import Reporter
from buildtree.state import suffix_for_task


class TaskOutcome(enum.Enum):
    RAN = "ran"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TraceEntry:
    """One dispatch of a task, in completion order."""

    task_name: str
    kind: TaskKind
    outcome: TaskOutcome
    reason: str = ""


@dataclass
class TaskStatus:
    """Status of a task for execution planning."""

    task_name: str
    kind: TaskKind
    will_run: bool
    reason: str  # "fresh", "inputs_changed", "no_dependencies", "forced", "always"
    stale_files: list[Path] = field(default_factory=list)


@dataclass
class TaskRunResult:
    """Outcome of a build run.

    ``failed_task`` names the leaf task whose work failed, never an enclosing
    composite. It is None when the run succeeded.
    """

    ok: bool
    failed_task: str | None = None
    message: str | None = None
    elapsed: float = 0.0
    trace: list[TraceEntry] = field(default_factory=list)


@dataclass
class TaskContext:
    """What a task body gets to work with while it runs."""

    task: Task
    scheduler: "Scheduler"
    files: list[Path] = field(default_factory=list)
    stale_files: list[Path] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.task.name

    @property
    def logger(self) -> Logger | None:
        return self.scheduler.logger

    @property
    def project_root(self) -> Path:
        return self.scheduler.resolver.project_root

    async def run_tasks(self, names: Sequence[str]) -> None:
        """Run other tasks from inside this body, in order, stopping at the first failure."""
        await self.scheduler.run_task_list(names)

    def is_modified(self, path: Path, suffix: str | None = None) -> bool:
        """Check one file against its record (suffix defaults to this task)."""
        resolver = self.scheduler.resolver
        return resolver.is_modified(path, resolver.dependency_key(path, suffix or suffix_for_task(self.name)))

    def record(self, path: Path, suffix: str | None = None) -> bool:
        """Record one file as successfully processed (suffix defaults to this task)."""
        resolver = self.scheduler.resolver
        return resolver.record(path, resolver.dependency_key(path, suffix or suffix_for_task(self.name)))

    def fail(self, message: str) -> None:
        """Fail this task with a message.

        Raises:
            TaskBodyFailure: Always
        """
        raise TaskBodyFailure(self.name, message)


class Scheduler:
    """Runs tasks from a BuildGraph sequentially, skipping fresh incremental work.

    Task bodies may suspend while awaiting subprocesses, but each task is
    awaited to completion before the next one starts.
    """

    def __init__(
        self,
        graph: BuildGraph,
        resolver: DependencyResolver,
        logger: Optional[Logger] = None,
        reporter: Optional[Reporter] = None,
        force: bool = False,
    ):
        """Initialize scheduler.

        Args:
            graph: Registered tasks
            resolver: Freshness checks and record writes for incremental tasks
            logger: Optional logger for diagnostic output
            reporter: Presentation of timing and outcome (defaults to one on ``logger``)
            force: If True, treat every incremental task as stale
        """
        self.graph = graph
        self.resolver = resolver
        self.logger = logger
        if reporter is None and logger is not None:
            reporter = Reporter(logger)
        self.reporter = reporter
        self.force = force
        self.trace: list[TraceEntry] = []
        self._active: list[str] = []

    async def run(self, names: str | Sequence[str]) -> TaskRunResult:
        """Run a task or an ordered list of tasks and report the outcome.

        Returns:
            TaskRunResult naming the failed task, if any

        Raises:
            UnknownTaskError: If a task (or a composite's sub-task) is not registered
            CycleError: If tasks reach themselves through sub-tasks or 'before' lists
        """
        if isinstance(names, str):
            names = [names]
        names = list(names)
        self.graph.validate(names)
        self.trace = []

        start = time.perf_counter()
        try:
            await self.run_task_list(names)
        except TaskBodyFailure as failure:
            elapsed = time.perf_counter() - start
            if self.reporter:
                self.reporter.build_failed(failure, elapsed)
            return TaskRunResult(
                ok=False,
                failed_task=failure.task_name,
                message=failure.message,
                elapsed=elapsed,
                trace=list(self.trace),
            )

        elapsed = time.perf_counter() - start
        if self.reporter:
            self.reporter.build_succeeded(elapsed)
        return TaskRunResult(ok=True, elapsed=elapsed, trace=list(self.trace))

    def run_sync(self, names: str | Sequence[str]) -> TaskRunResult:
        """Run from synchronous code (e.g. the CLI)."""
        return asyncio.run(self.run(names))

    async def run_task_list(self, names: Sequence[str]) -> None:
        """Run tasks strictly in order, stopping at the first failure.

        Raises:
            TaskBodyFailure: From the first task that fails
        """
        if isinstance(names, str):
            names = [names]
        for name in names:
            await self.run_task(name)

    async def run_task(self, name: str) -> None:
        """Run a single task according to its kind.

        Raises:
            TaskBodyFailure: If the task's work (or a sub-task's) fails
            UnknownTaskError: If the task is not registered
            CycleError: If the task is already running further up the stack
        """
        task = self.graph.lookup(name)
        if name in self._active:
            chain = " -> ".join(self._active[self._active.index(name):] + [name])
            raise CycleError(f"Task recursion detected: {chain}")

        self._active.append(name)
        try:
            match task.kind:
                case TaskKind.SIMPLE:
                    await self._invoke(task, TaskContext(task=task, scheduler=self))
                    self._record_trace(task, TaskOutcome.RAN)
                case TaskKind.INCREMENTAL:
                    await self._run_incremental(task)
                case TaskKind.COMPOSITE:
                    try:
                        await self.run_task_list(task.subtasks)
                    except TaskBodyFailure:
                        self._record_trace(task, TaskOutcome.FAILED)
                        raise
                    self._record_trace(task, TaskOutcome.RAN)
        finally:
            self._active.pop()

    async def _run_incremental(self, task: Task) -> None:
        files = self.resolver.resolve(task)
        if self.force:
            report = FreshnessReport(task_name=task.name, files=files, stale_files=list(files))
            reason = "forced"
        else:
            report = await self.resolver.check(task, files)
            reason = report.reason

        if report.fresh:
            if self.reporter:
                self.reporter.task_skipped(task.name, reason)
            self._record_trace(task, TaskOutcome.SKIPPED, reason)
            return

        context = TaskContext(
            task=task,
            scheduler=self,
            files=list(report.files),
            stale_files=list(report.stale_files),
        )
        await self._invoke(task, context, reason)

        # Only a successful body may mark its inputs as up to date
        self.resolver.record_success(task)
        self._record_trace(task, TaskOutcome.RAN, reason)

    async def _invoke(self, task: Task, context: TaskContext, reason: str = "") -> None:
        # Prerequisites print their own headers, so they finish before ours starts
        if task.before:
            try:
                await self.run_task_list(task.before)
            except TaskBodyFailure:
                self._record_trace(task, TaskOutcome.FAILED, reason)
                raise

        if self.reporter:
            self.reporter.task_started(task.name, task.desc)
        try:
            result = task.body(context)
            if inspect.isawaitable(result):
                await result
        except (UnknownTaskError, CycleError):
            raise
        except TaskBodyFailure:
            self._fail(task, reason)
            raise
        except Exception as e:
            self._fail(task, reason)
            raise TaskBodyFailure(task.name, str(e) or type(e).__name__) from e

        if self.reporter:
            self.reporter.task_finished(task.name, task.desc)

    def _fail(self, task: Task, reason: str) -> None:
        if self.reporter:
            self.reporter.task_failed(task.name, task.desc)
        self._record_trace(task, TaskOutcome.FAILED, reason)

    def _record_trace(self, task: Task, outcome: TaskOutcome, reason: str = "") -> None:
        self.trace.append(TraceEntry(task.name, task.kind, outcome, reason))
        if self.logger:
            self.logger.trace(f"{task.name}: {outcome.value}{f' ({reason})' if reason else ''}")

    async def plan(self, names: str | Sequence[str]) -> list[TaskStatus]:
        """Work out which tasks a run would execute, without running anything.

        Composite tasks are expanded in order; each leaf appears once. A task's
        'before' tasks are listed ahead of it when it would run. Tasks started
        from inside bodies are not visible here.
        """
        if isinstance(names, str):
            names = [names]
        self.graph.validate(names)

        statuses: list[TaskStatus] = []
        seen: set[str] = set()

        async def visit(name: str) -> None:
            task = self.graph.lookup(name)
            if task.kind is TaskKind.COMPOSITE:
                for sub in task.subtasks:
                    await visit(sub)
                return
            if name in seen:
                return
            seen.add(name)
            status = await self.check_task_status(task)
            if status.will_run:
                for pre in task.before:
                    await visit(pre)
            statuses.append(status)

        for name in names:
            await visit(name)
        return statuses

    async def check_task_status(self, task: Task) -> TaskStatus:
        """Check whether a single simple or incremental task would run."""
        if task.kind is not TaskKind.INCREMENTAL:
            return TaskStatus(task.name, task.kind, will_run=True, reason="always")
        if self.force:
            return TaskStatus(task.name, task.kind, will_run=True, reason="forced")

        report = await self.resolver.check(task)
        return TaskStatus(
            task_name=task.name,
            kind=task.kind,
            will_run=not report.fresh,
            reason=report.reason,
            stale_files=report.stale_files,
        )

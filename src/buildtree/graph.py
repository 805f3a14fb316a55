"""Task registry and composite-task structure."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Sequence, Union

from buildtree.errors import CycleError, DuplicateTaskError, UnknownTaskError

if TYPE_CHECKING:
    from buildtree.executor import TaskContext

# A task body receives the run context and may be a plain function or a coroutine
TaskBody = Callable[["TaskContext"], Union[Awaitable[None], None]]

# Glob pattern or path relative to the project root, or a callable listing files
DependencyDescriptor = Union[str, Path, Callable[[], Iterable[Union[str, Path]]]]


class TaskKind(enum.Enum):
    SIMPLE = "simple"
    INCREMENTAL = "incremental"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class Task:
    """A registered unit of build work."""

    name: str
    kind: TaskKind
    body: TaskBody | None = None
    dependency_files: tuple[DependencyDescriptor, ...] = ()
    subtasks: tuple[str, ...] = ()
    before: tuple[str, ...] = ()
    desc: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


class BuildGraph:
    """
    Registry of named tasks.

    Constructed by the caller and handed to a Scheduler; there is no
    process-wide registry, so independent graphs can coexist.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def register(
        self,
        name: str,
        kind: TaskKind,
        body: TaskBody | None = None,
        dependency_files: Sequence[DependencyDescriptor] | None = None,
        subtasks: Sequence[str] | None = None,
        desc: str = "",
        before: Sequence[str] | None = None,
        **metadata: Any,
    ) -> Task:
        """Register a task.

        Args:
            name: Unique task name
            kind: Simple, incremental or composite
            body: Work to perform (simple and incremental tasks)
            dependency_files: Files gating re-execution (incremental tasks)
            subtasks: Ordered task names (composite tasks)
            desc: Header printed before the task's work
            before: Tasks run ahead of this task's header and body, once it
                is known to have work to do (simple and incremental tasks)

        Returns:
            The registered Task

        Raises:
            DuplicateTaskError: If the name is already registered
            ValueError: If the definition does not fit the task kind
        """
        if not name:
            raise ValueError("Task name must not be empty")
        if name in self._tasks:
            raise DuplicateTaskError(f"Task already registered: {name}")

        kind = TaskKind(kind)
        if kind is TaskKind.COMPOSITE:
            if not subtasks:
                raise ValueError(f"Composite task '{name}' must list at least one sub-task")
            if body is not None:
                raise ValueError(f"Composite task '{name}' cannot have a body")
            if before:
                raise ValueError(f"Composite task '{name}' cannot list 'before' tasks")
            if isinstance(subtasks, str):
                subtasks = [subtasks]
        else:
            if body is None:
                raise ValueError(f"Task '{name}' must have a body")
            if subtasks:
                raise ValueError(f"Only composite tasks can list sub-tasks ('{name}')")
        if kind is TaskKind.INCREMENTAL and dependency_files is None:
            raise ValueError(f"Incremental task '{name}' must declare dependency files")
        if kind is not TaskKind.INCREMENTAL and dependency_files:
            raise ValueError(f"Only incremental tasks can declare dependency files ('{name}')")
        if isinstance(dependency_files, (str, Path)):
            dependency_files = [dependency_files]
        if isinstance(before, str):
            before = [before]

        task = Task(
            name=name,
            kind=kind,
            body=body,
            dependency_files=tuple(dependency_files or ()),
            subtasks=tuple(subtasks or ()),
            before=tuple(before or ()),
            desc=desc,
            metadata=dict(metadata),
        )
        self._tasks[name] = task
        return task

    def task(
        self,
        name: str,
        body: TaskBody,
        desc: str = "",
        before: Sequence[str] | None = None,
        **metadata: Any,
    ) -> Task:
        """Register a simple task."""
        return self.register(name, TaskKind.SIMPLE, body, desc=desc, before=before, **metadata)

    def incremental_task(
        self,
        name: str,
        dependency_files: Sequence[DependencyDescriptor],
        body: TaskBody,
        desc: str = "",
        before: Sequence[str] | None = None,
        **metadata: Any,
    ) -> Task:
        """Register an incremental task."""
        return self.register(
            name,
            TaskKind.INCREMENTAL,
            body,
            dependency_files=dependency_files,
            desc=desc,
            before=before,
            **metadata,
        )

    def composite_task(self, name: str, subtasks: Sequence[str], desc: str = "") -> Task:
        """Register a composite task that runs ``subtasks`` in order."""
        return self.register(name, TaskKind.COMPOSITE, subtasks=subtasks, desc=desc)

    def lookup(self, name: str) -> Task:
        """Get a task by name.

        Raises:
            UnknownTaskError: If no task has that name
        """
        task = self._tasks.get(name)
        if task is None:
            raise UnknownTaskError(f"Task not found: {name}")
        return task

    def get_task(self, name: str) -> Task | None:
        return self._tasks.get(name)

    def task_names(self) -> list[str]:
        return list(self._tasks.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def validate(self, names: Iterable[str] | None = None) -> None:
        """Check sub-task and 'before' references, and cycles through either.

        Args:
            names: Roots to check (defaults to every registered task)

        Raises:
            UnknownTaskError: If a root, a sub-task or a 'before' task is not registered
            CycleError: If tasks reach themselves through sub-tasks or 'before' lists
        """
        roots = list(self._tasks) if names is None else list(names)
        done: set[str] = set()

        def visit(name: str, path: list[str]) -> None:
            if name in path:
                cycle = " -> ".join(path[path.index(name):] + [name])
                raise CycleError(f"Task cycle detected: {cycle}")
            if name in done:
                return

            task = self._tasks.get(name)
            if task is None:
                if path:
                    raise UnknownTaskError(
                        f"Task '{path[-1]}' references unknown task: {name}"
                    )
                raise UnknownTaskError(f"Task not found: {name}")

            for sub in task.before + task.subtasks:
                visit(sub, path + [name])
            done.add(name)

        for root in roots:
            visit(root, [])

    def build_dependency_tree(self, target_task: str) -> dict:
        """Build a tree of the composite structure for visualization.

        Returns:
            Nested dictionary with ``name``, ``kind``, ``subtasks`` and, where a
            task re-enters its own ancestry, ``cycle: True``

        Raises:
            UnknownTaskError: If any task in the tree is not registered
        """
        visited: set[str] = set()

        def build_tree(task_name: str) -> dict:
            task = self.lookup(task_name)

            if task_name in visited:
                return {"name": task_name, "kind": task.kind, "subtasks": [], "cycle": True}

            visited.add(task_name)
            tree = {
                "name": task_name,
                "kind": task.kind,
                "subtasks": [build_tree(sub) for sub in task.subtasks],
            }
            visited.remove(task_name)

            return tree

        return build_tree(target_task)

"""Parse recipe YAML files into build graphs."""

from __future__ import annotations

import glob
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from buildtree.config import BuildConfig
from buildtree.errors import RecipeError, SubprocessFailure
from buildtree.executor import TaskContext
from buildtree.graph import BuildGraph, TaskKind
from buildtree.logging import Logger
from buildtree.process_runner import ProcessRunner, run_command, shell_command

RECIPE_FILENAMES = ["buildtree.yaml", "buildtree.yml", "bt.yaml"]

FILE_PLACEHOLDER = "{{ file }}"

_TASK_FIELDS = {"desc", "cmd", "deps", "run", "before", "each", "remove", "kind"}


@dataclass
class TaskDefinition:
    """Represents a task definition as written in a recipe file."""

    name: str
    kind: TaskKind
    desc: str = ""
    cmd: str = ""
    deps: list[str] = field(default_factory=list)
    run: list[str] = field(default_factory=list)
    before: list[str] = field(default_factory=list)
    each: bool = False
    remove: list[str] = field(default_factory=list)


@dataclass
class Recipe:
    """Represents a parsed recipe file with all task definitions."""

    tasks: dict[str, TaskDefinition]
    project_root: Path
    recipe_path: Path | None = None

    def get_task(self, name: str) -> TaskDefinition | None:
        return self.tasks.get(name)

    def task_names(self) -> list[str]:
        return list(self.tasks.keys())


def find_recipe_file(start_dir: Path | None = None) -> Path | None:
    """Find a recipe file in the current or parent directories.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to recipe file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        for filename in RECIPE_FILENAMES:
            recipe_path = current / filename
            if recipe_path.exists():
                return recipe_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _string_list(task_name: str, key: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise RecipeError(f"Task '{task_name}': '{key}' must be a string or a list of strings")
    return list(value)


def _infer_kind(task_name: str, data: dict[str, Any]) -> TaskKind:
    if "kind" in data:
        try:
            return TaskKind(str(data["kind"]).lower())
        except ValueError:
            valid = ", ".join(kind.value for kind in TaskKind)
            raise RecipeError(f"Task '{task_name}': 'kind' must be one of: {valid}")
    if "run" in data:
        return TaskKind.COMPOSITE
    if "deps" in data:
        return TaskKind.INCREMENTAL
    return TaskKind.SIMPLE


def _parse_task(task_name: str, data: Any) -> TaskDefinition:
    if data is None:
        data = {}
    if isinstance(data, list):
        # Shorthand for a composite task: "quick: [lint, test]"
        data = {"run": data}
    if not isinstance(data, dict):
        raise RecipeError(f"Task '{task_name}' must be a dictionary")

    unknown = sorted(set(data) - _TASK_FIELDS)
    if unknown:
        raise RecipeError(f"Task '{task_name}': unknown field(s): {', '.join(unknown)}")

    kind = _infer_kind(task_name, data)
    definition = TaskDefinition(
        name=task_name,
        kind=kind,
        desc=str(data.get("desc") or ""),
        cmd=str(data.get("cmd") or ""),
        deps=_string_list(task_name, "deps", data.get("deps")),
        run=_string_list(task_name, "run", data.get("run")),
        before=_string_list(task_name, "before", data.get("before")),
        each=bool(data.get("each", False)),
        remove=_string_list(task_name, "remove", data.get("remove")),
    )

    if kind is TaskKind.COMPOSITE:
        if not definition.run:
            raise RecipeError(f"Composite task '{task_name}' must list tasks under 'run'")
        extra = [key for key in ("cmd", "deps", "before", "each", "remove") if key in data]
        if extra:
            raise RecipeError(
                f"Composite task '{task_name}' cannot define: {', '.join(extra)}"
            )
    else:
        if definition.run:
            raise RecipeError(f"Only composite tasks can define 'run' ('{task_name}')")
        if not definition.cmd and not definition.remove and not definition.before:
            raise RecipeError(f"Task '{task_name}' must define 'cmd', 'remove' or 'before'")

    if kind is TaskKind.INCREMENTAL and not definition.deps:
        raise RecipeError(f"Incremental task '{task_name}' must list files under 'deps'")
    if kind is not TaskKind.INCREMENTAL and definition.deps:
        raise RecipeError(f"Only incremental tasks can define 'deps' ('{task_name}')")
    if definition.each:
        if kind is not TaskKind.INCREMENTAL:
            raise RecipeError(f"Task '{task_name}': 'each' requires an incremental task")
        if FILE_PLACEHOLDER not in definition.cmd:
            raise RecipeError(
                f"Task '{task_name}': 'each' requires '{FILE_PLACEHOLDER}' in 'cmd'"
            )

    return definition


def parse_recipe(recipe_path: Path, project_root: Path | None = None) -> Recipe:
    """Parse a recipe file.

    Args:
        recipe_path: Path to the recipe file
        project_root: Root for relative paths (defaults to the recipe's directory)

    Returns:
        Recipe with every task definition

    Raises:
        FileNotFoundError: If recipe file doesn't exist
        RecipeError: If the recipe is malformed
    """
    if not recipe_path.exists():
        raise FileNotFoundError(f"Recipe file not found: {recipe_path}")

    if project_root is None:
        project_root = recipe_path.resolve().parent

    try:
        with open(recipe_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RecipeError(f"Error parsing YAML in recipe '{recipe_path}': {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise RecipeError(f"Recipe '{recipe_path}' must be a dictionary")

    unknown = sorted(set(data) - {"tasks"})
    if unknown:
        raise RecipeError(f"Recipe '{recipe_path}': unknown top-level key(s): {', '.join(unknown)}")

    tasks_data = data.get("tasks") or {}
    if not isinstance(tasks_data, dict):
        raise RecipeError(f"Recipe '{recipe_path}': 'tasks' must be a dictionary")

    tasks = {}
    for task_name, task_data in tasks_data.items():
        task_name = str(task_name)
        tasks[task_name] = _parse_task(task_name, task_data)

    return Recipe(tasks=tasks, project_root=project_root, recipe_path=recipe_path)


def get_recipe(logger: Logger, recipe_file: Optional[str] = None) -> Recipe | None:
    """Locate and parse the recipe, or return None if there is none.

    Raises:
        RecipeError: If the recipe is malformed
        FileNotFoundError: If an explicit recipe file doesn't exist
    """
    if recipe_file:
        recipe_path = Path(recipe_file)
    else:
        recipe_path = find_recipe_file()
        if recipe_path is None:
            return None
    logger.trace(f"Using recipe {recipe_path}")
    return parse_recipe(recipe_path)


class _CommandBody:
    """Task body that drives an external tool through the configured shell."""

    def __init__(
        self,
        definition: TaskDefinition,
        project_root: Path,
        config: BuildConfig,
        runner: ProcessRunner,
    ) -> None:
        self.definition = definition
        self.project_root = project_root
        self.config = config
        self.runner = runner

    async def __call__(self, context: TaskContext) -> None:
        if self.definition.remove:
            self._remove(context)
        if not self.definition.cmd:
            return
        if self.definition.each:
            await self._run_each(context)
        else:
            await self._run(context.name, self.definition.cmd)

    async def _run(self, task_name: str, cmd: str) -> None:
        argv = shell_command(cmd, self.config.shell, self.config.shell_args)
        await run_command(self.runner, argv, task_name, cwd=self.project_root, display=cmd)

    async def _run_each(self, context: TaskContext) -> None:
        """Run the command once per stale file, recording each file as it succeeds.

        Every stale file is attempted so one run reports all failures; files that
        passed stay fresh for the next run.
        """
        failed = []
        for path in context.stale_files:
            relative = _display_path(path, self.project_root)
            try:
                await self._run(context.name, self.definition.cmd.replace(FILE_PLACEHOLDER, relative))
            except SubprocessFailure:
                failed.append(relative)
                continue
            context.record(path)
        if failed:
            context.fail(f"{len(failed)} file(s) failed: {', '.join(failed)}")

    def _remove(self, context: TaskContext) -> None:
        for pattern in self.definition.remove:
            for match in sorted(glob.glob(pattern, root_dir=self.project_root, recursive=True)):
                path = self.project_root / match
                if context.logger:
                    context.logger.trace(f"Removing {path}")
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)


def _display_path(path: Path, project_root: Path) -> str:
    try:
        return path.relative_to(project_root).as_posix()
    except ValueError:
        return str(path)


def build_graph(recipe: Recipe, config: BuildConfig, runner: ProcessRunner) -> BuildGraph:
    """Register every recipe task in a new BuildGraph.

    'before' lists become scheduler prerequisites, so they run ahead of the
    task's header rather than from inside its command body.

    Raises:
        UnknownTaskError: If a composite or 'before' list names a missing task
        CycleError: If tasks reach themselves through sub-tasks or 'before' lists
    """
    graph = BuildGraph()
    for definition in recipe.tasks.values():
        if definition.kind is TaskKind.COMPOSITE:
            graph.composite_task(definition.name, definition.run, desc=definition.desc)
            continue

        body = _CommandBody(definition, recipe.project_root, config, runner)
        graph.register(
            definition.name,
            definition.kind,
            body,
            dependency_files=definition.deps if definition.kind is TaskKind.INCREMENTAL else None,
            desc=definition.desc,
            before=definition.before,
        )

    graph.validate()
    return graph

from __future__ import annotations

from rich.markup import escape
from rich.table import Table

from buildtree.graph import TaskKind
from buildtree.logging import Logger
from buildtree.recipe import Recipe, TaskDefinition


def list_tasks(logger: Logger, recipe: Recipe) -> None:
    """
    List all available tasks with their kind and what they do.
    """
    max_task_name_len = max((len(name) for name in recipe.task_names()), default=0)

    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Task", style="bold cyan", no_wrap=True, width=max_task_name_len)
    table.add_column("Kind", style="dim", no_wrap=True)
    table.add_column("Details", style="white", max_width=80)

    for task_name in sorted(recipe.task_names()):
        definition = recipe.get_task(task_name)
        table.add_row(task_name, definition.kind.value, _format_details(definition))

    logger.info(table)


def _format_details(definition: TaskDefinition) -> str:
    """
    Summarise a task for list output.

    Examples:
    composite [lint, test] -> "lint → test"
    incremental with deps ["src/**/*.ts"] -> "Compiling: [dim]deps: src/**/*.ts[/dim]"
    """
    if definition.kind is TaskKind.COMPOSITE:
        return " → ".join(escape(name) for name in definition.run)

    parts = []
    if definition.desc:
        parts.append(escape(definition.desc.strip()))
    if definition.deps:
        parts.append(f"[dim]deps: {escape(', '.join(definition.deps))}[/dim]")
    if definition.each:
        parts.append("[dim](per file)[/dim]")
    return " ".join(parts)

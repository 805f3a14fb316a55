from __future__ import annotations

import typer
from rich.markup import escape
from rich.tree import Tree

from buildtree.errors import BuildError
from buildtree.graph import BuildGraph, TaskKind
from buildtree.logging import Logger


def show_tree(logger: Logger, graph: BuildGraph, task_name: str) -> None:
    """
    Show the composite structure of a task.
    """
    if task_name not in graph:
        logger.error(f"[red]Task not found: {escape(task_name)}[/red]")
        raise typer.Exit(1)

    try:
        dep_tree = graph.build_dependency_tree(task_name)
    except BuildError as e:
        logger.error(f"[red]Error building task tree: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    logger.info(_build_rich_tree(dep_tree))


def _build_rich_tree(dep_tree: dict) -> Tree:
    """
    Build a Rich Tree visualization from a task tree structure.

    Args:
        dep_tree: Nested dictionary representing composite tasks

    Returns:
        Rich Tree object for terminal display
    """
    label = escape(dep_tree["name"])
    if dep_tree.get("cycle"):
        label = f"[red]{label} (cycle)[/red]"
    elif dep_tree["kind"] is TaskKind.INCREMENTAL:
        label = f"{label} [dim](incremental)[/dim]"
    tree = Tree(label)

    for sub in dep_tree.get("subtasks", []):
        tree.add(_build_rich_tree(sub))

    return tree

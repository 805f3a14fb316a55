"""Clean state command implementation."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from buildtree.config import BuildConfig
from buildtree.logging import Logger
from buildtree.recipe import find_recipe_file
from buildtree.state import ModificationStore


def clean_state(logger: Logger, config: BuildConfig, tasks_file: Optional[str] = None) -> None:
    """
    Delete the incremental state directory so every incremental task runs on the next build.
    """
    if tasks_file:
        recipe_path = Path(tasks_file)
        if not recipe_path.exists():
            logger.error(f"[red]Recipe file not found: {escape(tasks_file)}[/red]")
            raise typer.Exit(1)
    else:
        recipe_path = find_recipe_file()
        if recipe_path is None:
            logger.warn("[yellow]No recipe file found[/yellow]")
            logger.info("State location depends on recipe file location")
            raise typer.Exit(1)

    project_root = recipe_path.resolve().parent
    store = ModificationStore(config.incremental_path(project_root), logger)

    if store.clear():
        logger.info(
            f"[green]Removed {escape(str(store.incremental_dir))}[/green]",
        )
        logger.info("All incremental tasks will run on next build")
    else:
        logger.info(f"[yellow]No incremental state found at {escape(str(store.incremental_dir))}[/yellow]")

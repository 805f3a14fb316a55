"""Command-line interface for buildtree."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from buildtree import __version__
from buildtree.cli_commands.clean_state import clean_state
from buildtree.cli_commands.init_recipe import init_recipe
from buildtree.cli_commands.list_tasks import list_tasks
from buildtree.cli_commands.run_tasks import create_scheduler, dry_run, run_tasks
from buildtree.cli_commands.show_tree import show_tree
from buildtree.config import load_config
from buildtree.console_logger import ConsoleLogger
from buildtree.errors import BuildError, ConfigError, RecipeError
from buildtree.executor import TaskRunResult
from buildtree.logging import Logger, LogLevel
from buildtree.process_runner import TaskOutputTypes, make_process_runner
from buildtree.recipe import build_graph, get_recipe

DEFAULT_TASK = "default"

app = typer.Typer(
    help="buildtree - An incremental build-task orchestrator",
    add_completion=False,
    no_args_is_help=False,
)


def exit_code_for(result: TaskRunResult) -> int:
    """Map a run result to a process exit code."""
    return 0 if result.ok else 1


def _parse_log_level(value: str) -> LogLevel:
    try:
        return LogLevel.from_name(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level")


def _parse_task_output(value: str) -> TaskOutputTypes:
    try:
        return TaskOutputTypes(value.lower())
    except ValueError:
        valid = ", ".join(t.value for t in TaskOutputTypes)
        raise typer.BadParameter(f"must be one of: {valid}", param_hint="--task-output")


def _show_available_tasks(logger: Logger, names: list[str]) -> None:
    logger.info("[bold]Available tasks:[/bold]")
    for task_name in sorted(names):
        logger.info(f"  - {escape(task_name)}")
    logger.info("\nUse [cyan]bt --list[/cyan] for detailed information")
    logger.info("Use [cyan]bt <task-name>...[/cyan] to run tasks")


@app.command()
def main(
    tasks: Optional[List[str]] = typer.Argument(None, help="Tasks to run, in order"),
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
    list_opt: bool = typer.Option(False, "--list", "-l", help="List all available tasks"),
    tree: Optional[str] = typer.Option(None, "--tree", help="Show the composite structure of a task"),
    dry_run_opt: bool = typer.Option(False, "--dry-run", help="Show which tasks would run"),
    force: bool = typer.Option(False, "--force", "-f", help="Run incremental tasks even if fresh"),
    clean: bool = typer.Option(
        False, "--clean-state", "--clean", "--reset", help="Delete incremental state"
    ),
    init: bool = typer.Option(False, "--init", help="Create a blank buildtree.yaml"),
    tasks_file: Optional[str] = typer.Option(None, "--tasks", "-T", help="Path to the recipe file"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-L", help="fatal, error, warn, info, debug or trace"
    ),
    task_output: Optional[str] = typer.Option(
        None, "--task-output", "-O", help="Tool output to show: all, none, out or err"
    ),
) -> None:
    """Run build tasks in order, skipping incremental work whose files are unchanged."""
    console = Console()
    level = _parse_log_level(log_level) if log_level else None
    logger = ConsoleLogger(console, level or LogLevel.INFO)

    if version:
        logger.info(f"buildtree version {__version__}")
        return

    if init:
        init_recipe(logger)
        return

    try:
        config = load_config(Path.cwd())
    except ConfigError as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if level is None and config.log_level is not LogLevel.INFO:
        logger.push_level(config.log_level)

    if clean:
        clean_state(logger, config, tasks_file)
        return

    try:
        recipe = get_recipe(logger, tasks_file)
    except (RecipeError, FileNotFoundError) as e:
        logger.error(f"[red]Error parsing recipe: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if recipe is None:
        logger.error("[red]No recipe file found (buildtree.yaml, buildtree.yml or bt.yaml)[/red]")
        logger.info("Run [cyan]bt --init[/cyan] to create a blank recipe file")
        raise typer.Exit(1)

    if list_opt:
        list_tasks(logger, recipe)
        return

    output_type = _parse_task_output(task_output) if task_output else config.task_output
    try:
        graph = build_graph(recipe, config, make_process_runner(output_type, logger))
    except BuildError as e:
        logger.error(f"[red]Error in recipe: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if tree is not None:
        show_tree(logger, graph, tree)
        return

    names = list(tasks or [])
    if not names:
        if DEFAULT_TASK not in graph:
            _show_available_tasks(logger, graph.task_names())
            return
        names = [DEFAULT_TASK]

    unknown = [name for name in names if name not in graph]
    if unknown:
        logger.error(f"[red]Task not found: {escape(', '.join(unknown))}[/red]")
        _show_available_tasks(logger, graph.task_names())
        raise typer.Exit(1)

    scheduler = create_scheduler(logger, recipe, graph, config, force=force)

    if dry_run_opt:
        dry_run(logger, scheduler, names)
        return

    try:
        result = run_tasks(logger, scheduler, names)
    except BuildError as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    raise typer.Exit(exit_code_for(result))


if __name__ == "__main__":
    app()

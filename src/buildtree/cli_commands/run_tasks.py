"""Run tasks command implementation."""

from __future__ import annotations

import asyncio

from rich.markup import escape

from buildtree.config import BuildConfig
from buildtree.dependencies import DependencyResolver
from buildtree.executor import Scheduler, TaskRunResult
from buildtree.freshness import make_freshness_policy
from buildtree.graph import BuildGraph, TaskKind
from buildtree.logging import Logger
from buildtree.recipe import Recipe
from buildtree.state import ModificationStore, suffix_for_task


def create_scheduler(
    logger: Logger,
    recipe: Recipe,
    graph: BuildGraph,
    config: BuildConfig,
    force: bool = False,
) -> Scheduler:
    """
    Wire the store, freshness policy and resolver for a recipe's project.
    """
    store = ModificationStore(config.incremental_path(recipe.project_root), logger)
    resolver = DependencyResolver(
        recipe.project_root, store, make_freshness_policy(config.freshness), logger
    )
    return Scheduler(graph, resolver, logger, force=force)


def run_tasks(logger: Logger, scheduler: Scheduler, names: list[str]) -> TaskRunResult:
    """
    Run tasks in order, stopping at the first failure.

    Args:
    logger: Logger interface for output
    scheduler: Scheduler bound to the recipe's graph
    names: Task names, run in the order given

    Returns:
    The run result; ``failed_task`` names the task that failed
    """
    graph = scheduler.graph
    valid_suffixes = {
        suffix_for_task(name)
        for name in graph.task_names()
        if graph.lookup(name).kind is TaskKind.INCREMENTAL
    }
    pruned = scheduler.resolver.store.prune(valid_suffixes)
    if pruned:
        logger.debug(f"Dropped {len(pruned)} record(s) of tasks no longer in the recipe")

    return scheduler.run_sync(names)


def dry_run(logger: Logger, scheduler: Scheduler, names: list[str]) -> None:
    """
    Show which tasks would run without running anything.
    """
    statuses = asyncio.run(scheduler.plan(names))

    logger.info(f"[bold]Execution plan for {escape(', '.join(names))}:[/bold]\n")

    will_run = [status for status in statuses if status.will_run]
    will_skip = [status for status in statuses if not status.will_run]

    if will_run:
        logger.info(f"[yellow]Will execute ({len(will_run)} tasks):[/yellow]")
        for i, status in enumerate(will_run, 1):
            logger.info(f"  {i}. [cyan]{escape(status.task_name)}[/cyan]")
            logger.info(f"     - {status.reason}")
            if status.stale_files:
                changed = ", ".join(
                    _relative(path, scheduler.resolver.project_root) for path in status.stale_files
                )
                logger.info(f"     - changed files: {escape(changed)}")
        logger.info()

    if will_skip:
        logger.info(f"[green]Will skip ({len(will_skip)} tasks):[/green]")
        for status in will_skip:
            logger.info(f"  - {escape(status.task_name)} (fresh)")


def _relative(path, root) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)

"""Initialize a new buildtree recipe file."""

from __future__ import annotations

from pathlib import Path

import typer

from buildtree.logging import Logger

TEMPLATE = """# buildtree recipe
#
# Tasks run in the order they are listed. Tasks with 'deps' are incremental:
# they are skipped when none of their files changed since their last success.

tasks:
  # default: [clean, quick, bundle]

  # quick: [lint, test]

  # clean:
  #   desc: "Deleting generated files: "
  #   remove: [generated/*]

  # lint:
  #   desc: "Linting: "
  #   deps: ["src/**/*.js"]
  #   each: true
  #   cmd: eslint {{ file }}

  # compile:
  #   desc: "Compiling: "
  #   deps: ["src/**/*.ts"]
  #   cmd: tsc --outDir generated/compiled

  # test:
  #   desc: "Testing: "
  #   deps: ["src/**/*.ts"]
  #   before: [compile]
  #   cmd: npm test

# Uncomment and modify the examples above to define your tasks
"""


def init_recipe(logger: Logger) -> None:
    """
    Create a blank recipe file with commented examples.
    """
    recipe_path = Path("buildtree.yaml")
    if recipe_path.exists():
        logger.error("[red]buildtree.yaml already exists[/red]")
        raise typer.Exit(1)

    recipe_path.write_text(TEMPLATE)
    logger.info(f"[green]Created {recipe_path}[/green]")
    logger.info("Edit the file to define your tasks")

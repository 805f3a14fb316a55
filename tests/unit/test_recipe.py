"""Tests for recipe module."""

import os
import time
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from buildtree.config import BuildConfig
from buildtree.dependencies import DependencyResolver
from buildtree.errors import CycleError, RecipeError, UnknownTaskError
from buildtree.executor import Scheduler
from buildtree.graph import TaskKind
from buildtree.recipe import build_graph, find_recipe_file, parse_recipe
from buildtree.state import ModificationStore

from helpers.process_runner import MockProcessRunner


class RecipeTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.recipe_path = self.root / "buildtree.yaml"

    def tearDown(self):
        self._tmp.cleanup()

    def write_recipe(self, content: str):
        self.recipe_path.write_text(content)
        return parse_recipe(self.recipe_path)


class TestParseRecipe(RecipeTestCase):
    def test_kinds_are_inferred(self):
        recipe = self.write_recipe(
            """
tasks:
  clean:
    cmd: rm -rf dist
  compile:
    desc: Compiling
    deps: ["src/**/*.ts"]
    cmd: tsc
  quick: [compile]
  default:
    run: [clean, quick]
"""
        )
        self.assertEqual(recipe.task_names(), ["clean", "compile", "quick", "default"])
        self.assertEqual(recipe.get_task("clean").kind, TaskKind.SIMPLE)
        self.assertEqual(recipe.get_task("compile").kind, TaskKind.INCREMENTAL)
        self.assertEqual(recipe.get_task("compile").deps, ["src/**/*.ts"])
        self.assertEqual(recipe.get_task("compile").desc, "Compiling")
        self.assertEqual(recipe.get_task("quick").kind, TaskKind.COMPOSITE)
        self.assertEqual(recipe.get_task("default").run, ["clean", "quick"])
        self.assertEqual(recipe.project_root, self.root)

    def test_single_string_deps(self):
        recipe = self.write_recipe("tasks:\n  lint:\n    deps: src/a.js\n    cmd: eslint\n")
        self.assertEqual(recipe.get_task("lint").deps, ["src/a.js"])

    def test_empty_recipe(self):
        self.assertEqual(self.write_recipe("").tasks, {})

    def test_invalid_recipes(self):
        cases = {
            "unknown top-level key": "variables: {}\n",
            "unknown field": "tasks:\n  a:\n    cmd: x\n    args: [y]\n",
            "no command": "tasks:\n  a:\n    desc: nothing\n",
            "composite with cmd": "tasks:\n  a:\n    run: [b]\n    cmd: x\n",
            "empty composite": "tasks:\n  a: []\n",
            "incremental without deps": "tasks:\n  a:\n    kind: incremental\n    cmd: x\n",
            "simple with deps": "tasks:\n  a:\n    kind: simple\n    deps: [x]\n    cmd: x\n",
            "bad kind": "tasks:\n  a:\n    kind: sometimes\n    cmd: x\n",
            "each without placeholder": "tasks:\n  a:\n    deps: [x]\n    each: true\n    cmd: lint\n",
            "each on simple task": "tasks:\n  a:\n    each: true\n    cmd: lint {{ file }}\n",
            "task not a mapping": "tasks:\n  a: 3\n",
            "malformed yaml": "tasks: [\n",
        }
        for label, content in cases.items():
            with self.subTest(label):
                with self.assertRaises(RecipeError):
                    self.write_recipe(content)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            parse_recipe(self.root / "nope.yaml")

    def test_find_recipe_file_in_parent(self):
        self.recipe_path.write_text("tasks: {}\n")
        nested = self.root / "src" / "deep"
        nested.mkdir(parents=True)
        self.assertEqual(find_recipe_file(nested), self.recipe_path)


class TestBuildGraph(RecipeTestCase):
    def test_unknown_subtask(self):
        recipe = self.write_recipe("tasks:\n  quick: [missing]\n")
        with self.assertRaises(UnknownTaskError):
            build_graph(recipe, BuildConfig(), MockProcessRunner())

    def test_unknown_before_task(self):
        recipe = self.write_recipe("tasks:\n  build:\n    before: [missing]\n    cmd: make\n")
        with self.assertRaises(UnknownTaskError):
            build_graph(recipe, BuildConfig(), MockProcessRunner())

    def test_composite_cycle(self):
        recipe = self.write_recipe("tasks:\n  a: [b]\n  b: [a]\n")
        with self.assertRaises(CycleError):
            build_graph(recipe, BuildConfig(), MockProcessRunner())


class TestCommandBodies(RecipeTestCase):
    def setUp(self):
        super().setUp()
        (self.root / "src").mkdir()
        past = time.time() - 100
        for name in ["a.js", "b.js"]:
            path = self.root / "src" / name
            path.write_text(name)
            os.utime(path, (past, past))
        self.store = ModificationStore(self.root / ".buildtree" / "incremental")

    def run_recipe(self, content: str, names, runner: MockProcessRunner, config=None):
        recipe = self.write_recipe(content)
        config = config or BuildConfig()
        graph = build_graph(recipe, config, runner)
        scheduler = Scheduler(graph, DependencyResolver(self.root, self.store))
        return scheduler.run_sync(names)

    def test_command_runs_through_shell_in_project_root(self):
        runner = MockProcessRunner()
        config = BuildConfig(shell="/bin/sh", shell_args=["-c"])

        result = self.run_recipe("tasks:\n  build:\n    cmd: make all\n", "build", runner, config)

        self.assertTrue(result.ok)
        self.assertEqual(runner.calls, [(["/bin/sh", "-c", "make all"], self.root)])

    def test_failing_command_names_task(self):
        runner = MockProcessRunner(exit_code=2)
        result = self.run_recipe("tasks:\n  build:\n    cmd: make all\n", "build", runner)

        self.assertFalse(result.ok)
        self.assertEqual(result.failed_task, "build")
        self.assertEqual(result.message, "make all exited with code 2")

    def test_incremental_command_skipped_when_fresh(self):
        runner = MockProcessRunner()
        content = "tasks:\n  compile:\n    deps: ['src/*.js']\n    cmd: tsc\n"

        self.run_recipe(content, "compile", runner)
        self.run_recipe(content, "compile", runner)

        self.assertEqual(runner.commands, ["tsc"])

    def test_before_runs_first(self):
        runner = MockProcessRunner()
        content = """
tasks:
  clean:
    cmd: rm -rf dist
  build:
    before: [clean]
    cmd: make
"""
        self.run_recipe(content, "build", runner)
        self.assertEqual(runner.commands, ["rm -rf dist", "make"])

    def test_remove(self):
        (self.root / "dist" / "js").mkdir(parents=True)
        (self.root / "dist" / "js" / "app.js").write_text("")
        (self.root / "app.log").write_text("")
        runner = MockProcessRunner()

        result = self.run_recipe(
            "tasks:\n  clean:\n    remove: [dist, '*.log']\n", "clean", runner
        )

        self.assertTrue(result.ok)
        self.assertFalse((self.root / "dist").exists())
        self.assertFalse((self.root / "app.log").exists())
        self.assertEqual(runner.calls, [])

    def test_each_runs_per_stale_file(self):
        runner = MockProcessRunner()
        content = "tasks:\n  lint:\n    deps: ['src/*.js']\n    each: true\n    cmd: eslint {{ file }}\n"

        self.run_recipe(content, "lint", runner)
        future = time.time() + 100
        os.utime(self.root / "src" / "b.js", (future, future))
        self.run_recipe(content, "lint", runner)

        self.assertEqual(runner.commands, ["eslint src/a.js", "eslint src/b.js", "eslint src/b.js"])

    def test_each_keeps_passing_files_recorded(self):
        """Test that files which passed stay fresh when another file fails."""
        content = "tasks:\n  lint:\n    deps: ['src/*.js']\n    each: true\n    cmd: eslint {{ file }}\n"

        failing = MockProcessRunner(exit_codes={"b.js": 1})
        result = self.run_recipe(content, "lint", failing)
        self.assertFalse(result.ok)
        self.assertEqual(result.failed_task, "lint")
        self.assertIn("src/b.js", result.message)

        runner = MockProcessRunner()
        self.run_recipe(content, "lint", runner)
        self.assertEqual(runner.commands, ["eslint src/b.js"])


if __name__ == "__main__":
    unittest.main()

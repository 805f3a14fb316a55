"""Integration tests for CLI options."""

import unittest

from buildtree import __version__

from helpers.cli import ProjectTestCase

RECIPE = """
tasks:
  tree:
    desc: "Task named like an option"
    cmd: echo tree >> runs.log
  clean:
    cmd: echo clean >> runs.log
  compile:
    desc: "Compiling"
    deps: ["src/*.js"]
    cmd: echo compile >> runs.log
  test:
    deps: ["src/*.js"]
    cmd: echo test >> runs.log
  quick: [compile, test]
"""


class TestCLIOptions(ProjectTestCase):
    def setUp(self):
        super().setUp()
        self.write_recipe(RECIPE)
        self.write_file("src/a.js", "a")

    def test_version(self):
        result = self.invoke("--version")
        self.assertEqual(result.exit_code, 0)
        self.assertIn(__version__, result.clean_output)

    def test_help(self):
        result = self.invoke("--help")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("--dry-run", result.clean_output)

    def test_task_named_like_option(self):
        result = self.invoke("tree")
        self.assertEqual(result.exit_code, 0, result.clean_output)
        self.assertEqual(self.lines("runs.log"), ["tree"])

    def test_list(self):
        result = self.invoke("--list")

        self.assertEqual(result.exit_code, 0, result.clean_output)
        for name in ["clean", "compile", "quick", "test", "tree"]:
            self.assertIn(name, result.clean_output)
        self.assertIn("compile → test", result.clean_output)
        self.assertIn("incremental", result.clean_output)
        self.assertEqual(self.lines("runs.log"), [])

    def test_tree(self):
        result = self.invoke("--tree", "quick")

        self.assertEqual(result.exit_code, 0, result.clean_output)
        self.assertIn("quick", result.clean_output)
        self.assertIn("compile (incremental)", result.clean_output)

    def test_tree_unknown_task(self):
        result = self.invoke("--tree", "missing")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Task not found", result.clean_output)

    def test_dry_run(self):
        self.invoke("compile")

        result = self.invoke("--dry-run", "clean", "quick")

        self.assertEqual(result.exit_code, 0, result.clean_output)
        self.assertIn("Will execute (2 tasks)", result.clean_output)
        self.assertIn("Will skip (1 tasks)", result.clean_output)
        self.assertIn("compile (fresh)", result.clean_output)
        self.assertIn("changed files: src/a.js", result.clean_output)
        self.assertEqual(self.lines("runs.log"), ["compile"])

    def test_unknown_task(self):
        result = self.invoke("deploy")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Task not found: deploy", result.clean_output)
        self.assertIn("Available tasks", result.clean_output)

    def test_no_tasks_and_no_default_lists_tasks(self):
        result = self.invoke()

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Available tasks", result.clean_output)
        self.assertEqual(self.lines("runs.log"), [])

    def test_tasks_file_option(self):
        other = self.project_root / "other.yaml"
        other.write_text("tasks:\n  hello:\n    cmd: echo hello >> runs.log\n")

        result = self.invoke("--tasks", str(other), "hello")

        self.assertEqual(result.exit_code, 0, result.clean_output)
        self.assertEqual(self.lines("runs.log"), ["hello"])

    def test_invalid_log_level(self):
        result = self.invoke("--log-level", "chatty", "clean")
        self.assertNotEqual(result.exit_code, 0)

    def test_debug_log_level_shows_skip_reason(self):
        self.invoke("compile")
        result = self.invoke("--log-level", "debug", "compile")
        self.assertIn("Skipping compile (fresh)", result.clean_output)

    def test_task_output_none(self):
        self.write_recipe("tasks:\n  hello:\n    cmd: echo hello\n")
        result = self.invoke("--task-output", "none", "hello")
        self.assertEqual(result.exit_code, 0, result.clean_output)


class TestRecipeErrors(ProjectTestCase):
    def test_no_recipe(self):
        result = self.invoke("build")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No recipe file found", result.clean_output)

    def test_malformed_recipe(self):
        self.write_recipe("tasks:\n  build:\n    command: make\n")
        result = self.invoke("build")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("unknown field", result.clean_output)

    def test_composite_cycle(self):
        self.write_recipe("tasks:\n  a: [b]\n  b: [a]\n")
        result = self.invoke("a")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("a -> b -> a", result.clean_output)

    def test_init_creates_recipe(self):
        result = self.invoke("--init")

        self.assertEqual(result.exit_code, 0)
        recipe = self.project_root / "buildtree.yaml"
        self.assertTrue(recipe.exists())
        self.assertIn("tasks:", recipe.read_text())

        again = self.invoke("--init")
        self.assertEqual(again.exit_code, 1)

    def test_initial_recipe_is_valid(self):
        self.invoke("--init")
        result = self.invoke("--list")
        self.assertEqual(result.exit_code, 0, result.clean_output)


if __name__ == "__main__":
    unittest.main()

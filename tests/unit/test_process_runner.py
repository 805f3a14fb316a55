"""Unit tests for process_runner module."""

import asyncio
import subprocess
import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import AsyncMock, MagicMock, patch

from buildtree.errors import SubprocessFailure
from buildtree.process_runner import (
    PassthroughProcessRunner,
    ProcessRunner,
    SilentProcessRunner,
    StderrOnlyProcessRunner,
    StdoutOnlyProcessRunner,
    TaskOutputTypes,
    make_process_runner,
    run_command,
    shell_command,
)
from helpers.logging import logger_stub
from helpers.process_runner import MockProcessRunner


def python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestProcessRunner(unittest.TestCase):
    def test_process_runner_is_abstract(self):
        with self.assertRaises(TypeError):
            ProcessRunner()

    def test_returns_exit_code(self):
        runner = SilentProcessRunner(logger_stub)
        self.assertEqual(asyncio.run(runner.run(python("pass"))), 0)
        self.assertEqual(asyncio.run(runner.run(python("import sys; sys.exit(3)"))), 3)

    def test_runs_in_cwd(self):
        with TemporaryDirectory() as tmpdir:
            runner = SilentProcessRunner()
            asyncio.run(runner.run(python("open('marker', 'w').close()"), cwd=Path(tmpdir)))
            self.assertTrue((Path(tmpdir) / "marker").exists())

    def test_passes_env(self):
        runner = SilentProcessRunner()
        code = "import os, sys; sys.exit(0 if os.environ.get('BT_TEST') == 'yes' else 1)"
        exit_code = asyncio.run(runner.run(python(code), env={"BT_TEST": "yes"}))
        self.assertEqual(exit_code, 0)


class TestStreamRedirection(unittest.TestCase):
    """Each runner hands its stream settings to asyncio.create_subprocess_exec."""

    def _spawn_kwargs(self, runner: ProcessRunner) -> dict:
        process = MagicMock()
        process.wait = AsyncMock(return_value=0)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as spawn:
            asyncio.run(runner.run(["tool", "arg"]))
        spawn.assert_called_once()
        self.assertEqual(spawn.call_args.args, ("tool", "arg"))
        return spawn.call_args.kwargs

    def test_passthrough(self):
        kwargs = self._spawn_kwargs(PassthroughProcessRunner())
        self.assertIsNone(kwargs["stdout"])
        self.assertIsNone(kwargs["stderr"])

    def test_silent(self):
        kwargs = self._spawn_kwargs(SilentProcessRunner())
        self.assertEqual(kwargs["stdout"], subprocess.DEVNULL)
        self.assertEqual(kwargs["stderr"], subprocess.DEVNULL)

    def test_stdout_only(self):
        kwargs = self._spawn_kwargs(StdoutOnlyProcessRunner())
        self.assertIsNone(kwargs["stdout"])
        self.assertEqual(kwargs["stderr"], subprocess.DEVNULL)

    def test_stderr_only(self):
        kwargs = self._spawn_kwargs(StderrOnlyProcessRunner())
        self.assertEqual(kwargs["stdout"], subprocess.DEVNULL)
        self.assertIsNone(kwargs["stderr"])


class TestMakeProcessRunner(unittest.TestCase):
    def test_each_output_type(self):
        expected = {
            TaskOutputTypes.ALL: PassthroughProcessRunner,
            TaskOutputTypes.NONE: SilentProcessRunner,
            TaskOutputTypes.OUT: StdoutOnlyProcessRunner,
            TaskOutputTypes.ERR: StderrOnlyProcessRunner,
        }
        for output_type, runner_type in expected.items():
            with self.subTest(output_type=output_type):
                self.assertIsInstance(make_process_runner(output_type, logger_stub), runner_type)

    def test_invalid_output_type(self):
        with self.assertRaises(ValueError):
            make_process_runner("loud")


class TestShellCommand(unittest.TestCase):
    @patch("platform.system", return_value="Linux")
    def test_platform_default(self, _):
        self.assertEqual(shell_command("make all"), ["bash", "-c", "make all"])

    @patch("platform.system", return_value="Windows")
    def test_platform_default_windows(self, _):
        self.assertEqual(shell_command("make all"), ["cmd", "/c", "make all"])

    def test_configured_shell(self):
        self.assertEqual(
            shell_command("make", "/bin/sh", ["-e", "-c"]), ["/bin/sh", "-e", "-c", "make"]
        )

    def test_configured_shell_without_args(self):
        self.assertEqual(shell_command("script.sh", "/usr/bin/env"), ["/usr/bin/env", "script.sh"])


class TestRunCommand(unittest.TestCase):
    def test_success(self):
        runner = MockProcessRunner()
        asyncio.run(run_command(runner, ["bash", "-c", "make"], "build", cwd=Path("/project")))
        self.assertEqual(runner.calls, [(["bash", "-c", "make"], Path("/project"))])

    def test_nonzero_exit_raises(self):
        runner = MockProcessRunner(exit_code=2)
        with self.assertRaises(SubprocessFailure) as cm:
            asyncio.run(run_command(runner, ["bash", "-c", "make"], "build", display="make"))
        self.assertEqual(cm.exception.task_name, "build")
        self.assertEqual(cm.exception.exit_code, 2)
        self.assertEqual(str(cm.exception), "make exited with code 2")

    def test_missing_program(self):
        runner = SilentProcessRunner()
        with self.assertRaises(SubprocessFailure) as cm:
            asyncio.run(run_command(runner, ["definitely-not-a-real-tool-xyz"], "build"))
        self.assertEqual(cm.exception.exit_code, 127)


if __name__ == "__main__":
    unittest.main()

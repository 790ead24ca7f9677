import contextlib
import io
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from backend_fakes import ScriptedBackend
from rich.console import Console

from shellm import __version__
from shellm.cli.main import (
    EXIT_CODE_BACKEND_FAILURE,
    EXIT_CODE_OK,
    EXIT_CODE_STARTUP_FAILURE,
    execute,
    main,
    parse_args,
)
from shellm.config.paths import ShellmPaths
from shellm.modes import Mode


def _env_without_shellm() -> dict:
    return {key: value for key, value in os.environ.items() if not key.startswith("SHELLM_")}


class ParseArgsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        args = parse_args([])
        self.assertEqual(args.mode, Mode.GENERAL)
        self.assertIsNone(args.query)
        self.assertIsNone(args.max)
        self.assertFalse(args.shell)

    def test_mode_flags(self) -> None:
        cases = {
            "-b": Mode.COMMAND,
            "--bash": Mode.COMMAND,
            "--command": Mode.COMMAND,
            "-c": Mode.CODE,
            "-m": Mode.MATH,
            "-w": Mode.WRITING,
            "-g": Mode.GENERAL,
        }
        for flag, mode in cases.items():
            self.assertEqual(parse_args([flag]).mode, mode, flag)

    def test_modes_are_mutually_exclusive(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                parse_args(["-b", "-c"])
        self.assertEqual(ctx.exception.code, 2)

    def test_max_must_be_positive(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parse_args(["--max", "0"])

    def test_session_and_output_options(self) -> None:
        args = parse_args(["-s", "--load", "a.bin", "--save", "b.bin", "-c", "-p", "out.py", "-q", "hi"])
        self.assertTrue(args.shell)
        self.assertEqual(args.load, "a.bin")
        self.assertEqual(args.save, "b.bin")
        self.assertEqual(args.prog_out, "out.py")
        self.assertEqual(args.query, "hi")

    def test_debug_flag_defaults_to_all(self) -> None:
        self.assertEqual(parse_args(["--debug"]).debug, "all")
        self.assertEqual(parse_args(["--debug", "error"]).debug, "error")


class ExecuteTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.paths = ShellmPaths(home=self.tmp)
        self.buffer = io.StringIO()
        self.console = Console(file=self.buffer, force_terminal=False, color_system=None, width=200)
        self.errors = io.StringIO()
        self.error_console = Console(file=self.errors, force_terminal=False, color_system=None, width=200)
        env = mock.patch.dict(os.environ, _env_without_shellm(), clear=True)
        env.start()
        self.addCleanup(env.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_execute(self, argv, backend_factory=None) -> int:
        kwargs = {"console": self.console, "error_console": self.error_console, "paths": self.paths}
        if backend_factory is not None:
            kwargs["backend_factory"] = backend_factory
        return execute(parse_args(argv), **kwargs)

    def test_missing_model_is_a_startup_failure(self) -> None:
        code = self.run_execute(["-q", "hi"])
        self.assertEqual(code, EXIT_CODE_STARTUP_FAILURE)
        self.assertIn("No model configured", self.errors.getvalue())
        self.assertEqual(self.buffer.getvalue(), "")

    def test_single_query_with_model(self) -> None:
        seen = []

        def factory(settings):
            seen.append(settings)
            return ScriptedBackend(["hello from the model"])

        code = self.run_execute(["--model", "/models/tiny.gguf", "-q", "hi"], factory)

        self.assertEqual(code, EXIT_CODE_OK)
        self.assertIn("hello from the model", self.buffer.getvalue())
        self.assertEqual(seen[0].model_path, "/models/tiny.gguf")

    def test_missing_query_exits_ok(self) -> None:
        code = self.run_execute(["--model", "m.gguf"], lambda _settings: ScriptedBackend())
        self.assertEqual(code, EXIT_CODE_OK)
        self.assertIn("No query provided", self.errors.getvalue())
        self.assertNotIn("No query provided", self.buffer.getvalue())

    def test_backend_construction_failure(self) -> None:
        def factory(_settings):
            raise FileNotFoundError("m.gguf")

        code = self.run_execute(["--model", "m.gguf", "-q", "hi"], factory)

        self.assertEqual(code, EXIT_CODE_STARTUP_FAILURE)
        self.assertIn("Could not start the model backend", self.errors.getvalue())

    def test_unloadable_session_is_a_startup_failure(self) -> None:
        missing = self.tmp / "nope.bin"
        code = self.run_execute(
            ["--model", "m.gguf", "--load", str(missing), "-q", "hi"],
            lambda _settings: ScriptedBackend(),
        )
        self.assertEqual(code, EXIT_CODE_STARTUP_FAILURE)
        self.assertIn(f"Could not load session {missing}!", self.errors.getvalue())

    def test_backend_failure_during_generation(self) -> None:
        code = self.run_execute(
            ["--model", "m.gguf", "-q", "hi"],
            lambda _settings: ScriptedBackend(fail_on_call=1),
        )
        self.assertEqual(code, EXIT_CODE_BACKEND_FAILURE)
        self.assertIn("Model backend failed", self.errors.getvalue())

    def test_max_tokens_is_capped(self) -> None:
        with mock.patch("shellm.cli.main.ShellmCLI") as cli_cls:
            cli_cls.return_value.run.return_value = 0
            self.run_execute(
                ["--model", "m.gguf", "--max", "50000", "-q", "hi"],
                lambda _settings: ScriptedBackend(),
            )
        self.assertEqual(cli_cls.call_args.kwargs["max_tokens"], 30000)

    def test_max_tokens_defaults_to_config(self) -> None:
        with mock.patch("shellm.cli.main.ShellmCLI") as cli_cls:
            cli_cls.return_value.run.return_value = 0
            self.run_execute(["--model", "m.gguf", "-q", "hi"], lambda _settings: ScriptedBackend())
        self.assertEqual(cli_cls.call_args.kwargs["max_tokens"], 10000)

    def test_debug_flag_writes_session_log(self) -> None:
        self.run_execute(
            ["--model", "m.gguf", "--debug", "-q", "hi"],
            lambda _settings: ScriptedBackend(["logged answer"]),
        )
        files = list(self.paths.logs_dir.glob("shellm_session_*.md"))
        self.assertEqual(len(files), 1)
        text = files[0].read_text(encoding="utf-8")
        self.assertIn("prompt.user", text)
        self.assertIn("logged answer", text)


class MainTests(unittest.TestCase):
    def test_version_flag(self) -> None:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            main(["--version"])
        self.assertEqual(out.getvalue().strip(), f"shellm {__version__}")

    def test_exit_code_is_propagated(self) -> None:
        with mock.patch("shellm.cli.main.execute", return_value=EXIT_CODE_STARTUP_FAILURE):
            with self.assertRaises(SystemExit) as ctx:
                main(["-q", "hi"])
        self.assertEqual(ctx.exception.code, EXIT_CODE_STARTUP_FAILURE)

    def test_broken_pipe_ends_quietly(self) -> None:
        with mock.patch("shellm.cli.main.execute", side_effect=BrokenPipeError()):
            main(["-q", "hi"])


if __name__ == "__main__":
    unittest.main()

import io
import subprocess
import unittest
from unittest import mock

from rich.console import Console

from shellm.cli.gate import CommandGate, GateOutcome, should_execute


def _gate(response: str | BaseException) -> tuple[CommandGate, io.StringIO, io.StringIO]:
    buffer = io.StringIO()
    errors = io.StringIO()
    console = Console(file=buffer, force_terminal=False, color_system=None, width=120)
    error_console = Console(file=errors, force_terminal=False, color_system=None, width=120)

    def read_line(_prompt: str) -> str:
        if isinstance(response, BaseException):
            raise response
        return response

    gate = CommandGate(console, error_console=error_console, read_line=read_line, reveal_delay=0)
    return gate, buffer, errors


class ShouldExecuteTests(unittest.TestCase):
    def test_only_e_confirms(self) -> None:
        for response in ("e\n", "E\n", "e", "  E  "):
            self.assertTrue(should_execute(response), response)
        for response in ("a\n", "", "\n", "yes\n", "ee\n", "execute", None):
            self.assertFalse(should_execute(response), response)


class CommandGateTests(unittest.TestCase):
    def test_confirmed_command_runs_in_shell(self) -> None:
        for response in ("e\n", "E\n"):
            gate, _, _ = _gate(response)
            completed = subprocess.CompletedProcess("ls -la", 0)
            with mock.patch("shellm.cli.gate.subprocess.run", return_value=completed) as run:
                outcome = gate.review("ls -la\n")
            self.assertEqual(outcome, GateOutcome.EXECUTED)
            run.assert_called_once_with("ls -la", shell=True)

    def test_other_input_aborts_without_spawning(self) -> None:
        for response in ("a\n", "", "yes\n"):
            gate, buffer, _ = _gate(response)
            with mock.patch("shellm.cli.gate.subprocess.run") as run:
                outcome = gate.review("rm -rf build")
            self.assertEqual(outcome, GateOutcome.ABORTED)
            run.assert_not_called()
            self.assertIn("Aborted", buffer.getvalue())

    def test_end_of_input_aborts(self) -> None:
        gate, _, _ = _gate(EOFError())
        with mock.patch("shellm.cli.gate.subprocess.run") as run:
            outcome = gate.review("shutdown now")
        self.assertEqual(outcome, GateOutcome.ABORTED)
        run.assert_not_called()

    def test_shows_command_and_disclaimer(self) -> None:
        gate, buffer, _ = _gate("a")
        gate.review("du -sh .")
        output = buffer.getvalue()
        self.assertIn("Generated command:", output)
        self.assertIn("      du -sh .", output)
        self.assertIn("Cannot guarantee that the command is 'safe.'", output)

    def test_non_zero_exit_is_reported_as_warning(self) -> None:
        gate, buffer, errors = _gate("e")
        completed = subprocess.CompletedProcess("false", 1)
        with mock.patch("shellm.cli.gate.subprocess.run", return_value=completed):
            outcome = gate.review("false")
        self.assertEqual(outcome, GateOutcome.FAILED)
        self.assertIn("Command could not execute successfully", errors.getvalue())
        self.assertNotIn("Command could not execute successfully", buffer.getvalue())

    def test_spawn_error_is_reported(self) -> None:
        gate, _, errors = _gate("e")
        with mock.patch("shellm.cli.gate.subprocess.run", side_effect=OSError("no shell")):
            outcome = gate.review("ls")
        self.assertEqual(outcome, GateOutcome.FAILED)
        self.assertIn("no shell", errors.getvalue())

    def test_runs_real_shell_command(self) -> None:
        gate, _, _ = _gate("e")
        self.assertEqual(gate.review("exit 0"), GateOutcome.EXECUTED)
        self.assertEqual(gate.review("exit 3"), GateOutcome.FAILED)

    def test_word_reveal_prints_full_text(self) -> None:
        buffer = io.StringIO()
        console = Console(file=buffer, force_terminal=False, color_system=None, width=120)
        gate = CommandGate(console, read_line=lambda _p: "a", reveal_delay=0.0001)
        gate.review("echo hi")
        self.assertIn("      echo hi", buffer.getvalue())
        self.assertIn("Verify the command if you're uncertain.", buffer.getvalue())


if __name__ == "__main__":
    unittest.main()

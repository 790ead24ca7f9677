from __future__ import annotations

import subprocess
import time
from enum import Enum
from typing import Callable, Optional

from rich.console import Console
from rich.text import Text

from ..core.errors import SubprocessFailure
from ..core.session_log import log_exception, log_info, log_warn
from .style import GREEN, GREY, RED, colorify

REVEAL_DELAY_S = 0.125
EXECUTE_KEY = "e"
CHOICE_PROMPT = "     [E]xecute [A]bort (default) "
DISCLAIMER = "Cannot guarantee that the command is 'safe.'\nVerify the command if you're uncertain.\n"


class GateOutcome(str, Enum):
    EXECUTED = "executed"
    FAILED = "failed"
    ABORTED = "aborted"


def should_execute(response: str | None) -> bool:
    return (response or "").strip().lower() == EXECUTE_KEY


class CommandGate:
    """Shows a generated command and runs it only on an explicit ``e``."""

    def __init__(
        self,
        console: Console,
        *,
        error_console: Optional[Console] = None,
        read_line: Optional[Callable[[str], str]] = None,
        reveal_delay: float = REVEAL_DELAY_S,
    ) -> None:
        self.console = console
        self.error_console = error_console or Console(stderr=True)
        self.read_line = read_line or (lambda prompt: self.console.input(Text(prompt)))
        self.reveal_delay = reveal_delay

    def review(self, command: str) -> GateOutcome:
        command = command.strip()
        self._reveal(self._render(command))
        try:
            response = self.read_line(CHOICE_PROMPT)
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            response = ""
        if not should_execute(response):
            self.console.print(colorify("Aborted", RED))
            log_info("gate", "command.abort", {"command": command})
            return GateOutcome.ABORTED

        log_info("gate", "command.execute", {"command": command})
        try:
            self.execute(command)
        except SubprocessFailure as exc:
            log_warn("gate", "command.failed", {"command": command, "returncode": exc.returncode})
            self.error_console.print(colorify(str(exc), RED))
            return GateOutcome.FAILED
        return GateOutcome.EXECUTED

    def execute(self, command: str) -> None:
        """Run ``command`` through the shell with the terminal's own streams."""
        try:
            completed = subprocess.run(command, shell=True)
        except OSError as exc:
            log_exception("gate", exc)
            raise SubprocessFailure(command, None, str(exc)) from exc
        if completed.returncode != 0:
            raise SubprocessFailure(command, completed.returncode)

    def _render(self, command: str) -> Text:
        text = Text()
        text.append_text(colorify("Generated command:", GREY))
        text.append("\n\n      ")
        text.append_text(colorify(command, GREEN))
        text.append("\n\n")
        text.append_text(colorify(DISCLAIMER, GREY))
        return text

    def _reveal(self, text: Text) -> None:
        """Print ``text`` a word at a time."""
        if self.reveal_delay <= 0:
            self.console.print(text, end="", soft_wrap=True)
            return
        plain = text.plain
        start = 0
        while start < len(plain):
            end = plain.find(" ", start)
            end = len(plain) if end == -1 else end + 1
            word = text[start:end]
            self.console.print(word, end="", soft_wrap=True)
            if word.plain.strip():
                time.sleep(self.reveal_delay)
            start = end

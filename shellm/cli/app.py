from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.text import Text

from ..config.manager import DEFAULT_MAX_TOKENS
from ..config.paths import ShellmPaths
from ..core.context import augment_query
from ..core.conversation import ConversationLog, Role
from ..core.errors import BackendError, ContextWindowExceeded, EmptyQuery, SaveError
from ..core.generation import GenerationResult, GenerationSession
from ..core.session_log import get_active_logger, log_exception, log_warn
from ..modes import MODE_PROFILES, Mode
from .gate import CommandGate
from .indicator import ProgressIndicator
from .style import BANNER_LINES, BLUE, GREY, LAVENDER, PURPLE, RED, colorify

EXIT_COMMAND = "exit"
CODE_FENCE = "```"
SHELL_TAG = "🔮"


def clean_code_block(text: str) -> str:
    """Drop a leading ``` fence line and its closing fence, if present."""
    lines = text.strip("\n").splitlines()
    if lines and lines[0].lstrip().startswith(CODE_FENCE):
        lines = lines[1:]
        if lines and lines[-1].strip() == CODE_FENCE:
            lines = lines[:-1]
    return "\n".join(lines) + "\n" if lines else ""


class ShellmCLI:
    """Runs one generation session as a single query or an interactive shell."""

    def __init__(
        self,
        session: GenerationSession,
        mode: Mode = Mode.GENERAL,
        *,
        query: Optional[str] = None,
        interactive: bool = False,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        save_path: Optional[str] = None,
        output_file: Optional[str | Path] = None,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
        paths: Optional[ShellmPaths] = None,
        root: Optional[Path] = None,
        read_line: Optional[Callable[[str], str]] = None,
        gate: Optional[CommandGate] = None,
        indicator_factory: Callable[[Console], ProgressIndicator] = ProgressIndicator,
    ) -> None:
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)
        self.session = session
        self.mode = mode
        self.profile = MODE_PROFILES[mode]
        self.interactive = interactive
        self.max_tokens = max_tokens
        self.save_path = save_path
        self.output_file = Path(output_file) if output_file else None
        self.paths = paths or ShellmPaths()
        self.root = root
        self.gate = gate or CommandGate(self.console, error_console=self.error_console)
        self.indicator_factory = indicator_factory
        self.generations = 0
        self._read_line = read_line
        self._prompt_session: PromptSession | None = None
        self.conversation = ConversationLog.for_mode(mode)
        logger = get_active_logger()
        if logger is not None:
            logger.log_system_prompt("cli", self.profile.system_prompt)
        if query and query.strip():
            self._add_user_turn(query)

    def run(self) -> int:
        if self.interactive:
            self._print_banner()
            self.run_shell()
            return 0
        try:
            self.run_once()
        except EmptyQuery as exc:
            self.error_console.print(colorify(str(exc), RED))
        return 0

    def run_once(self) -> None:
        if not self.conversation.has_pending_turn():
            raise EmptyQuery("No query provided")
        self._process_turn()

    def run_shell(self) -> None:
        while True:
            if not self.conversation.has_pending_turn():
                try:
                    line = self._read_input()
                except (EOFError, KeyboardInterrupt):
                    self.console.print()
                    self.exit_shell()
                    break
                line = line.rstrip("\r\n")
                if line == EXIT_COMMAND:
                    self.exit_shell()
                    break
                if not line.strip():
                    continue
                self._add_user_turn(line)
            self._process_turn()

    def exit_shell(self) -> None:
        if self.save_path:
            try:
                saved = self.session.save_session(self.save_path)
            except (SaveError, BackendError) as exc:
                log_exception("cli", exc)
                self.error_console.print(colorify(f"Could not save session! {exc}", RED))
            else:
                self.console.print(colorify(f"Session saved to {saved}", GREY))
        self.console.print(colorify(f"{SHELL_TAG} Bye", LAVENDER))

    def _add_user_turn(self, text: str) -> None:
        if self.profile.augment_query:
            text = augment_query(text, self.root)
        self.conversation.append(Role.USER, text)
        logger = get_active_logger()
        if logger is not None:
            logger.log_user_prompt("cli", text)

    def _process_turn(self) -> None:
        try:
            self._dispatch()
        except ContextWindowExceeded as exc:
            log_warn("cli", "generation.context_full", {"required": exc.required})
            self.error_console.print(colorify(str(exc), RED))
        finally:
            self.conversation.reset(self.profile.system_prompt)

    def _dispatch(self) -> None:
        if self.mode is Mode.COMMAND:
            result = self._generate_blocking()
            self.gate.review(result.text)
            return
        result = self._generate_streaming()
        if self.mode is Mode.CODE and self.output_file is not None:
            self._write_code(result.text)

    def _generate_blocking(self) -> GenerationResult:
        indicator = self.indicator_factory(self.console)
        indicator.start()
        try:
            result = self.session.generate(self.conversation, self.max_tokens)
        finally:
            indicator.stop()
        self._record(result)
        return result

    def _generate_streaming(self) -> GenerationResult:
        indicator = self.indicator_factory(self.console)
        indicator.start()
        try:
            result = self.session.generate(
                self.conversation,
                self.max_tokens,
                streaming=True,
                on_first_token=indicator.stop,
                on_text=self._print_chunk,
            )
        finally:
            indicator.stop()
        if not result.text.endswith("\n"):
            self.console.print()
        self._record(result)
        return result

    def _print_chunk(self, chunk: str) -> None:
        self.console.print(chunk, end="", markup=False, highlight=False, emoji=False, soft_wrap=True)

    def _record(self, result: GenerationResult) -> None:
        self.generations += 1
        logger = get_active_logger()
        if logger is not None:
            logger.log_assistant_text("cli", result.text)

    def _write_code(self, text: str) -> None:
        if self.output_file is None:
            return
        try:
            self.output_file.write_text(clean_code_block(text), encoding="utf-8")
        except OSError as exc:
            log_exception("cli", exc)
            self.error_console.print(colorify(f"Could not write {self.output_file}: {exc}", RED))
            return
        self.console.print(colorify(f"Saved code to {self.output_file}", GREY))

    def _print_banner(self) -> None:
        for line, rgb in BANNER_LINES:
            self.console.print(colorify(line, rgb))
        self.console.print()

    def _read_input(self) -> str:
        if self._read_line is not None:
            return self._read_line(f"{SHELL_TAG} ~ ")
        session = self._ensure_prompt_session()
        if session is None:
            prompt = Text()
            prompt.append_text(colorify(SHELL_TAG, PURPLE))
            prompt.append(" ")
            prompt.append_text(colorify("~", BLUE))
            prompt.append(" ")
            return self.console.input(prompt)
        return session.prompt(
            FormattedText(
                [
                    ("#813beb", SHELL_TAG),
                    ("", " "),
                    ("#3b96eb", "~"),
                    ("", " "),
                ]
            )
        )

    def _ensure_prompt_session(self) -> PromptSession | None:
        if self._prompt_session is not None:
            return self._prompt_session
        if not (sys.stdin.isatty() and sys.stdout.isatty()):
            return None
        self.paths.global_dir.mkdir(parents=True, exist_ok=True)
        self._prompt_session = PromptSession(history=FileHistory(str(self.paths.input_history_file)))
        return self._prompt_session

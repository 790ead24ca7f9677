from __future__ import annotations

import json
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from ..config.paths import ShellmPaths

LOG_LEVELS = ("error", "warn", "info", "debug")
LOG_TYPE_SESSION = "session"

_OFF_WORDS = frozenset({"", "none", "null", "off", "false", "0", "no", "n"})
_ALL_WORDS = frozenset({"true", "1", "yes", "y", "on", "all"})


@dataclass(frozen=True)
class LogSelection:
    enabled_types: frozenset[str]
    enabled_levels: frozenset[str]

    @property
    def enabled(self) -> bool:
        return bool(self.enabled_types or self.enabled_levels)


def _selection_words(raw: Any) -> Iterable[str]:
    if raw is True:
        return ["all"]
    if isinstance(raw, str):
        return raw.split(",")
    if isinstance(raw, (list, tuple, set)):
        return [item for item in raw if isinstance(item, str)]
    return []


def resolve_debug_config(raw: Any) -> LogSelection:
    """Turn a ``debug`` config value into the enabled log types and levels.

    Accepts booleans, a comma separated string or a list of words. A level
    word enables that level and every more severe one.
    """
    types: set[str] = set()
    levels: set[str] = set()
    for word in _selection_words(raw):
        word = word.strip().lower()
        if word in _OFF_WORDS:
            continue
        if word in _ALL_WORDS:
            types.add(LOG_TYPE_SESSION)
            levels.update(LOG_LEVELS)
        elif word == LOG_TYPE_SESSION:
            types.add(word)
        elif word in LOG_LEVELS:
            levels.update(LOG_LEVELS[: LOG_LEVELS.index(word) + 1])
    return LogSelection(frozenset(types), frozenset(levels))


class SessionLogger:
    """Markdown debug log under ``~/.shellm/logs``, one file per process.

    Entries are appended in the order they happen. Nothing touches the disk
    until the first enabled entry is written.
    """

    def __init__(self, paths: ShellmPaths, debug_config: Any) -> None:
        self.paths = paths
        self._started_at = datetime.now(timezone.utc)
        self._session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._path: Path | None = None
        self._last_system_prompt: str | None = None
        self._selection = resolve_debug_config(debug_config)
        self.enabled = self._selection.enabled

    def close(self) -> None:
        self.enabled = False

    def log_system_prompt(self, source: str, prompt: str) -> None:
        # repeated system prompts are logged once
        if prompt == self._last_system_prompt:
            return
        if self._session_event(source, "prompt.system", prompt):
            self._last_system_prompt = prompt

    def log_user_prompt(self, source: str, prompt: str) -> None:
        self._session_event(source, "prompt.user", prompt)

    def log_assistant_text(self, source: str, text: str) -> None:
        self._session_event(source, "assistant.text", text)

    def log_level(self, source: str, level: str, event: str, content: Any | None = None) -> None:
        if self.enabled and level in self._selection.enabled_levels:
            self._append(f"{level}/{source}", event, content)

    def log_exception(self, source: str, exc: BaseException) -> None:
        frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
        location = f"{frames[-1].filename}:{frames[-1].lineno} in {frames[-1].name}" if frames else None
        self.log_level(
            source,
            "error",
            "exception",
            {
                "type": type(exc).__name__,
                "message": str(exc),
                "location": location,
                "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            },
        )

    def _session_event(self, source: str, event: str, content: str) -> bool:
        if not (self.enabled and content and LOG_TYPE_SESSION in self._selection.enabled_types):
            return False
        self._append(f"{LOG_TYPE_SESSION}/{source}", event, content)
        return True

    def _open_log(self) -> Path:
        if self._path is None:
            self.paths.logs_dir.mkdir(parents=True, exist_ok=True)
            self._path = self.paths.logs_dir / f"shellm_session_{self._session_id}.md"
            if not self._path.exists():
                self._path.write_text(
                    "# shellm Session Log\n\n"
                    f"- Session: {self._session_id}\n"
                    f"- Started: {self._started_at.isoformat()}\n\n"
                    "---\n\n",
                    encoding="utf-8",
                )
        return self._path

    def _append(self, kind: str, event: str, content: Any) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        entry = f"## {timestamp} · {kind} · {event}\n{_fenced(content)}\n\n"
        try:
            with self._open_log().open("a", encoding="utf-8") as handle:
                handle.write(entry)
        except OSError:
            # a log that cannot be written is dropped for the rest of the run
            self.close()


def _fenced(content: Any) -> str:
    if isinstance(content, (dict, list)):
        return f"```json\n{json.dumps(content, indent=2, ensure_ascii=False)}\n```"
    body = "" if content is None else str(content).rstrip()
    return f"```markdown\n{body}\n```"


_ACTIVE_LOGGER: SessionLogger | None = None


def set_active_logger(logger: SessionLogger | None) -> None:
    global _ACTIVE_LOGGER
    _ACTIVE_LOGGER = logger


def get_active_logger() -> SessionLogger | None:
    return _ACTIVE_LOGGER


def log_exception(source: str, exc: BaseException) -> None:
    if _ACTIVE_LOGGER is not None:
        _ACTIVE_LOGGER.log_exception(source, exc)


def log_warn(source: str, event: str, content: Any | None = None) -> None:
    if _ACTIVE_LOGGER is not None:
        _ACTIVE_LOGGER.log_level(source, "warn", event, content)


def log_info(source: str, event: str, content: Any | None = None) -> None:
    if _ACTIVE_LOGGER is not None:
        _ACTIVE_LOGGER.log_level(source, "info", event, content)


def log_debug(source: str, event: str, content: Any | None = None) -> None:
    if _ACTIVE_LOGGER is not None:
        _ACTIVE_LOGGER.log_level(source, "debug", event, content)

from __future__ import annotations

import codecs
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from ..backend.base import Backend
from .conversation import ConversationLog
from .errors import BackendError, ContextWindowExceeded, LoadError, SaveError
from .session_log import log_debug, log_info

DEFAULT_SESSION_FILE = "session.bin"


class GenerationState(str, Enum):
    IDLE = "idle"
    DECODING_PROMPT = "decoding_prompt"
    GENERATING = "generating"


class StopReason(str, Enum):
    END_TOKEN = "end_token"
    MAX_TOKENS = "max_tokens"
    CONTEXT_FULL = "context_full"


@dataclass
class GenerationResult:
    tokens: List[int] = field(default_factory=list)
    text: str = ""
    stop_reason: StopReason = StopReason.END_TOKEN


def select_greedy(distribution: Any) -> int:
    """Index of the highest score; the first one wins ties."""
    argmax = getattr(distribution, "argmax", None)
    if callable(argmax):
        return int(argmax())
    if not len(distribution):
        raise BackendError("backend returned an empty distribution")
    return max(range(len(distribution)), key=distribution.__getitem__)


class TokenTextDecoder:
    """Turns token bytes into text without splitting multi-byte characters."""

    def __init__(self, backend: Backend) -> None:
        self._backend = backend
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, token: int) -> str:
        return self._decoder.decode(self._backend.token_bytes(token))

    def flush(self) -> str:
        return self._decoder.decode(b"", final=True)


class GenerationSession:
    """Owns one backend context and the token history fed to it.

    The history only grows: every turn's prompt and generated tokens stay in
    it, and ``_processed`` tracks how much of it the backend has already seen
    so no token is decoded twice.
    """

    def __init__(self, backend: Backend) -> None:
        self._backend = backend
        self._history: List[int] = []
        self._processed = 0
        self._owner = threading.get_ident()
        self._broken = False
        self.state = GenerationState.IDLE

    @classmethod
    def load_session(cls, backend: Backend, path: Path | str | None = None) -> "GenerationSession":
        """Build a session whose history comes from a saved snapshot."""
        target = Path(path or DEFAULT_SESSION_FILE)
        session = cls(backend)
        try:
            tokens = list(backend.load_snapshot(target))
        except (OSError, ValueError) as exc:
            raise LoadError(target, str(exc)) from exc
        if len(tokens) > backend.context_window:
            raise LoadError(
                target,
                f"{len(tokens)} tokens do not fit the {backend.context_window}-token context window",
            )
        session._history = tokens
        session._processed = len(tokens)
        log_info("generation", "session.load", {"path": str(target), "tokens": len(tokens)})
        return session

    @property
    def token_history(self) -> Sequence[int]:
        return tuple(self._history)

    @property
    def context_window(self) -> int:
        return self._backend.context_window

    def tokenize(self, conversation: ConversationLog) -> List[int]:
        self._check_usable()
        return self._call_backend(conversation.to_tokens, self._backend)

    def generate(
        self,
        conversation: ConversationLog,
        max_tokens: int,
        *,
        streaming: bool = False,
        on_first_token: Optional[Callable[[], None]] = None,
        on_text: Optional[Callable[[str], None]] = None,
    ) -> GenerationResult:
        if max_tokens < 1:
            raise ValueError(f"max_tokens must be at least 1, got {max_tokens}")
        prompt = self.tokenize(conversation)
        required = len(self._history) + len(prompt)
        # the window must keep room for at least one generated token
        if required >= self.context_window:
            raise ContextWindowExceeded(required, self.context_window)

        result = GenerationResult()
        decoder = TokenTextDecoder(self._backend)
        pieces: List[str] = []

        def emit(text: str) -> None:
            if not text:
                return
            pieces.append(text)
            if streaming and on_text is not None:
                on_text(text)

        self._history.extend(prompt)
        self.state = GenerationState.DECODING_PROMPT
        try:
            distribution = self._prime()
            self.state = GenerationState.GENERATING
            while True:
                token = select_greedy(distribution)
                if self._call_backend(self._backend.is_end_token, token):
                    result.stop_reason = StopReason.END_TOKEN
                    break
                if not result.tokens and on_first_token is not None:
                    on_first_token()
                result.tokens.append(token)
                self._history.append(token)
                emit(self._call_backend(decoder.feed, token))
                if len(result.tokens) >= max_tokens:
                    result.stop_reason = StopReason.MAX_TOKENS
                    break
                if len(self._history) >= self.context_window:
                    result.stop_reason = StopReason.CONTEXT_FULL
                    break
                distribution = self._call_backend(
                    self._backend.decode, [token], len(self._history) - 1
                )
                self._processed = len(self._history)
            emit(decoder.flush())
        finally:
            self.state = GenerationState.IDLE

        result.text = "".join(pieces)
        log_debug(
            "generation",
            "generation.finished",
            {
                "prompt_tokens": len(prompt),
                "generated_tokens": len(result.tokens),
                "history_tokens": len(self._history),
                "stop_reason": result.stop_reason.value,
            },
        )
        return result

    def save_session(self, path: Path | str | None = None) -> Path:
        """Persist the history and backend state; raises SaveError on failure."""
        target = Path(path or DEFAULT_SESSION_FILE)
        self._check_usable()
        if self._processed < len(self._history):
            # the last generated token has not been submitted yet
            self._prime()
        try:
            self._backend.save_snapshot(target, list(self._history))
        except (OSError, ValueError) as exc:
            raise SaveError(target, str(exc)) from exc
        log_info("generation", "session.save", {"path": str(target), "tokens": len(self._history)})
        return target

    def _prime(self) -> Any:
        pending = self._history[self._processed:]
        distribution = self._call_backend(self._backend.decode, pending, self._processed)
        self._processed = len(self._history)
        return distribution

    def _check_usable(self) -> None:
        if self._broken:
            raise BackendError("session is unusable after an earlier backend failure")
        if threading.get_ident() != self._owner:
            raise BackendError("backend context accessed from a thread that does not own it")

    def _call_backend(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except BackendError:
            self._broken = True
            raise
        except Exception as exc:  # noqa: BLE001
            self._broken = True
            raise BackendError(f"backend failure: {exc}") from exc

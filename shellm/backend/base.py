from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from ..core.conversation import Message


@runtime_checkable
class Backend(Protocol):
    """Narrow text-generation capability driven by a generation session.

    A backend owns one live decode context. ``decode`` submits ``tokens``
    starting at ``position`` and returns the scores for the token that
    follows the last one submitted: any float sequence, or an array type
    exposing ``argmax()``.
    """

    context_window: int

    def format_chat(self, messages: Sequence["Message"]) -> str: ...

    def tokenize(self, text: str) -> List[int]: ...

    def decode(self, tokens: Sequence[int], position: int) -> Any: ...

    def is_end_token(self, token: int) -> bool: ...

    def token_bytes(self, token: int) -> bytes: ...

    def save_snapshot(self, path: Path, tokens: Sequence[int]) -> None: ...

    def load_snapshot(self, path: Path) -> List[int]: ...

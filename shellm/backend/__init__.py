"""Text-generation backends."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import Backend

if TYPE_CHECKING:
    from .llama import LlamaCppBackend

__all__ = ["Backend", "LlamaCppBackend"]


def __getattr__(name: str) -> Any:
    # llama_cpp loads native libraries on import; defer until a model is needed
    if name == "LlamaCppBackend":
        from .llama import LlamaCppBackend

        return LlamaCppBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

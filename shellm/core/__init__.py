"""Conversation state, generation and persistence."""

from .conversation import ConversationLog, Message, Role
from .errors import (
    BackendError,
    ContextWindowExceeded,
    EmptyQuery,
    LoadError,
    SaveError,
    SessionCreationError,
    ShellmError,
    SubprocessFailure,
)
from .generation import GenerationResult, GenerationSession, GenerationState, StopReason
from .session_log import SessionLogger

__all__ = [
    "ConversationLog",
    "Message",
    "Role",
    "BackendError",
    "ContextWindowExceeded",
    "EmptyQuery",
    "LoadError",
    "SaveError",
    "SessionCreationError",
    "ShellmError",
    "SubprocessFailure",
    "GenerationResult",
    "GenerationSession",
    "GenerationState",
    "StopReason",
    "SessionLogger",
]

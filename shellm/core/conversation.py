from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Tuple

from ..modes import Mode, system_prompt

if TYPE_CHECKING:
    from ..backend.base import Backend


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str


class ConversationLog:
    """Ordered role-tagged messages that make up the next prompt."""

    def __init__(self) -> None:
        self._messages: List[Message] = []

    @classmethod
    def for_mode(cls, mode: Mode) -> "ConversationLog":
        log = cls()
        log.append(Role.SYSTEM, system_prompt(mode))
        return log

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def append(self, role: Role | str, content: str) -> Message:
        message = Message(role=Role(role), content=content)
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages.clear()

    def reset(self, system: str) -> None:
        """Drop every message and re-establish the system message."""
        self.clear()
        self.append(Role.SYSTEM, system)

    def turn_count(self) -> int:
        return len(self._messages)

    def has_pending_turn(self) -> bool:
        return bool(self._messages) and self._messages[-1].role is Role.USER

    def to_prompt(self, backend: "Backend") -> str:
        return backend.format_chat(self.messages)

    def to_tokens(self, backend: "Backend") -> List[int]:
        return list(backend.tokenize(self.to_prompt(backend)))

    def __len__(self) -> int:
        return len(self._messages)

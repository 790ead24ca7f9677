"""Failures raised by the shellm core."""

from __future__ import annotations

from pathlib import Path


class ShellmError(Exception):
    pass


class SessionCreationError(ShellmError):
    """Backend construction or session restore failed during startup."""


class LoadError(ShellmError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Could not load session {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class SaveError(ShellmError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Could not save session {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class SubprocessFailure(ShellmError):
    def __init__(self, command: str, returncode: int | None, reason: str | None = None) -> None:
        detail = reason or f"exit status {returncode}"
        super().__init__(f"Command could not execute successfully ({detail})")
        self.command = command
        self.returncode = returncode


class EmptyQuery(ShellmError):
    """No query was given outside interactive mode. Benign."""


class BackendError(ShellmError):
    """The backend failed mid-decode; the session state is not resumable."""


class ContextWindowExceeded(ShellmError):
    def __init__(self, required: int, context_window: int) -> None:
        super().__init__(
            f"Conversation needs {required} tokens plus room for a reply, "
            f"but the context window holds {context_window}"
        )
        self.required = required
        self.context_window = context_window

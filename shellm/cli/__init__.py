"""Terminal front end: session controller, command gate and progress indicator."""

from .app import ShellmCLI, clean_code_block
from .gate import CommandGate, GateOutcome
from .indicator import ProgressIndicator
from .main import main

__all__ = [
    "ShellmCLI",
    "clean_code_block",
    "CommandGate",
    "GateOutcome",
    "ProgressIndicator",
    "main",
]

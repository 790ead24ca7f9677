"""shellm package initialization."""

from importlib.metadata import version

__all__ = [
    "backend",
    "cli",
    "config",
    "core",
    "modes",
]

# Single source of truth comes from package metadata defined in pyproject.toml
__version__ = version("shellm")

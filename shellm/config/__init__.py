"""Settings, filesystem locations and bundled resources."""

from .manager import ConfigManager, ShellmSettings
from .paths import ShellmPaths

__all__ = ["ConfigManager", "ShellmSettings", "ShellmPaths"]

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from .. import __version__
from .paths import ShellmPaths

DEFAULT_CONTEXT_WINDOW = 30000
DEFAULT_MAX_TOKENS = 10000
MAX_TOKENS_CEILING = 30000

DEFAULT_GLOBAL_CONFIG: Dict[str, Any] = {
    "model_path": None,
    "context_window": DEFAULT_CONTEXT_WINDOW,
    "threads": None,
    "max_tokens": DEFAULT_MAX_TOKENS,
    "debug": None,
}


@dataclass
class ShellmSettings:
    model_path: Optional[str]
    context_window: int
    threads: int
    max_tokens: int
    debug: Any


def default_threads() -> int:
    return max(1, (os.cpu_count() or 1) * 3 // 4)


def clamp_max_tokens(value: int) -> int:
    return min(value, MAX_TOKENS_CEILING)


class ConfigManager:
    """Handles ~/.shellm/shellm.json and environment overrides."""

    def __init__(self, paths: ShellmPaths | None = None, console: Optional[Console] = None) -> None:
        self.paths = paths or ShellmPaths()
        self.console = console or Console()
        self._ensure_home_bootstrap()

    def load_settings(self) -> ShellmSettings:
        """Merge the global config file and environment variables."""
        config = self._merge_dicts(DEFAULT_GLOBAL_CONFIG, self._read_json(self.paths.config_file))
        env_cfg = self._env_settings()
        resolved: Dict[str, Any] = {}
        for key in ("model_path", "context_window", "threads", "max_tokens"):
            value = env_cfg.get(key)
            resolved[key] = value if value is not None else config.get(key)

        context_window = self._positive_int(resolved["context_window"], "context_window")
        threads = self._positive_int(resolved["threads"], "threads")
        max_tokens = self._positive_int(resolved["max_tokens"], "max_tokens")
        model_path = resolved["model_path"]
        if model_path is not None:
            model_path = os.path.expanduser(str(model_path))
        return ShellmSettings(
            model_path=model_path or None,
            context_window=context_window or DEFAULT_CONTEXT_WINDOW,
            threads=threads or default_threads(),
            max_tokens=clamp_max_tokens(max_tokens or DEFAULT_MAX_TOKENS),
            debug=config.get("debug"),
        )

    def _env_settings(self) -> Dict[str, Any]:
        return {
            "model_path": os.getenv("SHELLM_MODEL_PATH"),
            "context_window": self._to_int(os.getenv("SHELLM_CONTEXT_WINDOW")),
            "threads": self._to_int(os.getenv("SHELLM_THREADS")),
            "max_tokens": self._to_int(os.getenv("SHELLM_MAX_TOKENS")),
        }

    def _positive_int(self, value: Any, key: str) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            self.console.print(
                f"[yellow]Ignoring {key}={value!r}: expected a positive integer.[/yellow]"
            )
            return None
        return value

    def _merge_dicts(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        if not override:
            return dict(base)
        merged: Dict[str, Any] = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = self._merge_dicts(merged[key], value)  # type: ignore[arg-type]
            else:
                merged[key] = value
        return merged

    def _read_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            self.console.print(
                f"[red]Failed to parse JSON config at {path}. Using defaults.[/red]"
            )
            return {}
        if not isinstance(data, dict):
            self.console.print(
                f"[yellow]Ignoring {path}: expected a JSON object.[/yellow]"
            )
            return {}
        return data

    def _ensure_home_bootstrap(self) -> None:
        home_dir = self.paths.global_dir
        if not home_dir.exists():
            home_dir.mkdir(parents=True, exist_ok=True)
        if self.paths.config_file.exists():
            return
        default_config = dict(DEFAULT_GLOBAL_CONFIG)
        default_config["version"] = __version__
        try:
            self.paths.config_file.write_text(
                json.dumps(default_config, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
            self.console.print(
                f"[cyan]Created default config at {self.paths.config_file}. Set model_path to your GGUF model.[/cyan]"
            )
        except PermissionError:
            self.console.print(
                f"[yellow]Cannot write {self.paths.config_file}. Please create it manually.[/yellow]"
            )

    def _to_int(self, value: Optional[str]) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

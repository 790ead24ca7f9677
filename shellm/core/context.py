from __future__ import annotations

import os
from pathlib import Path

from .session_log import log_warn


def list_entries(root: Path) -> list[str]:
    """Sorted immediate entries of ``root``; directories end with a separator."""
    entries: list[str] = []
    with os.scandir(root) as it:
        for entry in it:
            try:
                is_dir = entry.is_dir()
            except OSError:
                is_dir = False
            entries.append(f"{entry.name}/" if is_dir else entry.name)
    entries.sort()
    return entries


def augment_query(query: str, root: Path | None = None) -> str:
    """Append the working directory and its listing to a command request."""
    cwd = (root or Path.cwd()).resolve()
    try:
        files = ", ".join(list_entries(cwd))
    except OSError as exc:
        log_warn("context", "context.listing_failed", {"path": str(cwd), "error": str(exc)})
        files = ""
    return f"{query} WD: {cwd} FILES: {files}"

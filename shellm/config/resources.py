from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from importlib.resources.abc import Traversable

PROMPTS_DIR = "prompts"


def resource_path(*parts: str) -> "Traversable":
    data = resources.files("shellm")
    for part in parts:
        data = data.joinpath(part)
    return data


@lru_cache(maxsize=None)
def read_prompt_text(name: str) -> str:
    """Text of ``prompts/<name>``; a prompt missing from the package is an error."""
    path = resource_path(PROMPTS_DIR, name)
    if not path.is_file():
        raise FileNotFoundError(f"prompt {name!r} is not bundled with shellm")
    return path.read_text(encoding="utf-8")

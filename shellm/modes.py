from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from .config.resources import read_prompt_text


class Mode(str, Enum):
    COMMAND = "command"
    CODE = "code"
    MATH = "math"
    WRITING = "writing"
    GENERAL = "general"


@dataclass(frozen=True)
class ModeProfile:
    system_prompt: str
    augment_query: bool = False


def _load_profiles() -> Mapping[Mode, ModeProfile]:
    profiles = {
        mode: ModeProfile(
            system_prompt=read_prompt_text(f"{mode.value}.md").strip(),
            augment_query=mode is Mode.COMMAND,
        )
        for mode in Mode
    }
    return MappingProxyType(profiles)


MODE_PROFILES: Mapping[Mode, ModeProfile] = _load_profiles()


def system_prompt(mode: Mode) -> str:
    return MODE_PROFILES[mode].system_prompt


def requires_augmentation(mode: Mode) -> bool:
    return MODE_PROFILES[mode].augment_query

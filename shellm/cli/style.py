from __future__ import annotations

import colorsys

from rich.color import Color
from rich.style import Style
from rich.text import Text

PURPLE = (129, 59, 235)
LAVENDER = (201, 168, 255)
BLUE = (59, 150, 235)
GREEN = (59, 235, 115)
GREY = (150, 150, 150)
RED = (247, 89, 89)

BANNER_LINES = (
    (" ____  _  _  ____  __    __    _  _ ", PURPLE),
    ("/ ___)/ )( \\(  __)(  )  (  )  ( \\/ )", LAVENDER),
    ("\\___ \\) __ ( ) _) / (_/\\/ (_/\\/ \\/ \\", PURPLE),
    ("(____/\\_)(_/(____)\\____/\\____/\\_)(_/", LAVENDER),
)


def rgb_style(rgb: tuple[int, int, int]) -> Style:
    return Style(color=Color.from_rgb(*rgb))


def colorify(content: str, rgb: tuple[int, int, int]) -> Text:
    return Text(content, style=rgb_style(rgb))


def gradient_text(content: str, offset: float) -> Text:
    """Rainbow-colour ``content``; ``offset`` in [0, 1) rotates the hues."""
    text = Text()
    length = len(content) or 1
    for index, char in enumerate(content):
        hue = (index / (2.5 * length) + offset) % 1.0
        red, green, blue = colorsys.hsv_to_rgb(hue, 1.0, 1.0)
        text.append(char, style=Style(color=Color.from_rgb(red * 255, green * 255, blue * 255)))
    return text

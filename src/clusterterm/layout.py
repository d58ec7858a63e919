"""Initial window placement: a row-major grid across the screen."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .config import ScreenSettings, TerminalSettings

DEFAULT_SCREEN = (1920, 1080)


@dataclass(frozen=True)
class Placement:
    """Window position and size in pixels."""

    x: int
    y: int
    width: int
    height: int


def tile(
    count: int,
    screen_size: tuple[int, int],
    terminal: TerminalSettings,
    screen: ScreenSettings,
) -> list[Placement]:
    """Place ``count`` windows left to right, top to bottom.

    The result depends only on its arguments, so the same number of targets on
    the same screen always gets the same layout.
    """
    if count <= 0:
        return []
    screen_w, screen_h = screen_size

    width = terminal.columns * terminal.font_width + terminal.decoration_width
    height = terminal.rows * terminal.font_height + terminal.decoration_height
    slot_w = max(1, width + terminal.reserve_left + terminal.reserve_right)

    usable_w = screen_w - screen.reserve_left - screen.reserve_right
    columns = max(1, usable_w // slot_w)
    rows = math.ceil(count / columns)

    # Shrink windows vertically so every row fits on screen
    usable_h = screen_h - screen.reserve_top - screen.reserve_bottom
    fit = (usable_h - rows * (terminal.reserve_top + terminal.reserve_bottom)) // rows
    if 0 < fit < height:
        height = fit
    slot_h = height + terminal.reserve_top + terminal.reserve_bottom

    left = screen.reserve_left + terminal.reserve_left
    top = screen.reserve_top + terminal.reserve_top
    return [
        Placement(
            x=left + (i % columns) * slot_w,
            y=top + (i // columns) * slot_h,
            width=width,
            height=height,
        )
        for i in range(count)
    ]

"""Tests for window tiling."""

from clusterterm.config import ScreenSettings, TerminalSettings
from clusterterm.layout import Placement, tile

TERMINAL = TerminalSettings()
SCREEN = ScreenSettings()


def test_empty():
    assert tile(0, (1920, 1080), TERMINAL, SCREEN) == []


def test_row_major_grid():
    # 80x6+8 = 488 wide, 24x13+10 = 322 tall, 5px gap left and top
    placements = tile(5, (1920, 1080), TERMINAL, SCREEN)
    assert placements[0] == Placement(5, 5, 488, 322)
    assert placements[1] == Placement(498, 5, 488, 322)
    assert placements[2] == Placement(991, 5, 488, 322)
    assert placements[3] == Placement(5, 332, 488, 322)
    assert placements[4] == Placement(498, 332, 488, 322)


def test_rows_shrink_to_fit():
    placements = tile(12, (1000, 700), TERMINAL, SCREEN)
    # Two columns, six rows squeezed into 640px
    assert {p.x for p in placements} == {5, 498}
    assert len({p.y for p in placements}) == 6
    assert all(p.height == 101 for p in placements)
    assert placements[-1].y + placements[-1].height <= 700 - SCREEN.reserve_bottom


def test_deterministic():
    assert tile(7, (1280, 1024), TERMINAL, SCREEN) == tile(7, (1280, 1024), TERMINAL, SCREEN)


def test_narrow_screen_still_has_one_column():
    placements = tile(2, (100, 1080), TERMINAL, SCREEN)
    assert [p.x for p in placements] == [5, 5]

"""Curses drawing for the dashboard: menu, info panel and status bar.

Geometry and wrapping are plain functions so they can be tested without a
terminal; the ``draw_*`` functions only paint what they are given.
"""

from __future__ import annotations

import curses
from dataclasses import dataclass
from typing import Any

# ── Constants ──────────────────────────────────────────────────────────────

MENU_WIDTH = 20
MIN_ROWS = 10
MIN_COLS = 40
WRAP_INDENT = "  "
HELP_TEXT = "Use arrows to navigate, Page Up/Down to scroll, q to quit, r to refresh"

# Curses colour-pair IDs
C_MENU = 1
C_INFO = 2
C_STATUS = 3
C_TITLE = 4


def init_colors() -> None:
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(C_MENU, curses.COLOR_CYAN, -1)
    curses.init_pair(C_INFO, curses.COLOR_GREEN, -1)
    curses.init_pair(C_STATUS, curses.COLOR_YELLOW, -1)
    curses.init_pair(C_TITLE, curses.COLOR_CYAN, -1)


# ── Geometry ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Region:
    origin_row: int
    origin_col: int
    rows: int
    cols: int


@dataclass(frozen=True)
class Layout:
    menu: Region
    info: Region
    status: Region

    @property
    def info_height(self) -> int:
        """Text rows inside the info box border."""
        return max(self.info.rows - 2, 0)

    @property
    def info_width(self) -> int:
        """Text columns inside the info box border and padding."""
        return max(self.info.cols - 4, 1)


def compute_layout(rows: int, cols: int, item_count: int) -> Layout:
    """Split a ``rows`` x ``cols`` terminal into the three dashboard panes."""
    info_col = MENU_WIDTH + 2
    return Layout(
        menu=Region(1, 1, max(0, min(item_count + 2, rows - 2)), MENU_WIDTH),
        info=Region(1, info_col, max(0, rows - 2), max(0, cols - info_col)),
        status=Region(max(0, rows - 1), 0, 1, cols),
    )


def too_small(rows: int, cols: int) -> bool:
    return rows < MIN_ROWS or cols < MIN_COLS


# ── Text layout ────────────────────────────────────────────────────────────


def wrap_line(line: str, width: int) -> list[str]:
    """Wrap one line to *width* columns.

    Breaks after the last space that fits, or mid-word when there is none.
    Continuation lines start with WRAP_INDENT; stripping it and joining the
    pieces gives back *line* unchanged.
    """
    width = max(width, len(WRAP_INDENT) + 1)
    pieces: list[str] = []
    prefix = ""
    rest = line
    while len(prefix) + len(rest) > width:
        room = width - len(prefix)
        cut = rest.rfind(" ", 0, room) + 1
        if cut <= 0:
            cut = room
        pieces.append(prefix + rest[:cut])
        rest = rest[cut:]
        prefix = WRAP_INDENT
    pieces.append(prefix + rest)
    return pieces


def wrap_report(report: str, width: int) -> list[str]:
    lines: list[str] = []
    for line in report.splitlines():
        lines.extend(wrap_line(line.expandtabs(), width))
    return lines


def clamp_offset(total: int, offset: int, height: int) -> int:
    """First line to show so the window never scrolls past the last page."""
    return max(0, min(offset, total - height))


def visible_window(lines: list[str], offset: int, height: int) -> list[str]:
    if height <= 0:
        return []
    start = clamp_offset(len(lines), offset, height)
    return lines[start : start + height]


# ── Curses drawing primitives ──────────────────────────────────────────────


def _safe(win: curses.window, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


def _draw_box(win: curses.window, region: Region, title: str = "") -> curses.window | None:
    """Draw a bordered box for *region* and return its sub-window."""
    max_y, max_x = win.getmaxyx()
    h = min(region.rows, max_y - region.origin_row)
    w = min(region.cols, max_x - region.origin_col)
    if h < 3 or w < 4:
        return None
    try:
        sub = win.subwin(h, w, region.origin_row, region.origin_col)
        sub.box()
        if title and len(title) + 4 < w:
            sub.addstr(0, 2, f" {title} ", curses.color_pair(C_TITLE) | curses.A_BOLD)
        return sub
    except curses.error:
        return None


# ── Panes ──────────────────────────────────────────────────────────────────


def draw_menu(win: curses.window, region: Region, labels: list[str], selected: int) -> None:
    box = _draw_box(win, region)
    if not box:
        return
    for i, label in enumerate(labels[: region.rows - 2]):
        attr = curses.color_pair(C_MENU) | curses.A_REVERSE if i == selected else curses.A_NORMAL
        _safe(box, i + 1, 2, label[: region.cols - 4], attr)


def draw_info(
    win: curses.window,
    layout: Layout,
    title: str,
    report: str,
    offset: int,
    marker: str = "",
) -> None:
    region = layout.info
    box = _draw_box(win, region, title)
    if not box:
        return
    if marker and len(title) + len(marker) + 10 < region.cols:
        _safe(box, 0, region.cols - len(marker) - 4, f" {marker} ", curses.color_pair(C_STATUS))
    lines = wrap_report(report, layout.info_width)
    for row, line in enumerate(visible_window(lines, offset, layout.info_height), start=1):
        _safe(box, row, 2, line, curses.color_pair(C_INFO))


def draw_status(win: curses.window, region: Region) -> None:
    _safe(win, region.origin_row, 0, HELP_TEXT[: max(region.cols - 1, 0)], curses.color_pair(C_STATUS))


def draw_dashboard(
    stdscr: curses.window,
    layout: Layout,
    labels: list[str],
    selected: int,
    report: str,
    offset: int,
    marker: str = "",
) -> None:
    """Repaint the whole screen."""
    stdscr.erase()
    rows, cols = stdscr.getmaxyx()
    if too_small(rows, cols):
        _safe(stdscr, 0, 0, f"Terminal too small (need {MIN_COLS}x{MIN_ROWS}+)")
    else:
        draw_menu(stdscr, layout.menu, labels, selected)
        draw_info(stdscr, layout, f"{labels[selected]} Info", report, offset, marker)
        draw_status(stdscr, layout.status)
    stdscr.refresh()

from __future__ import annotations

import re

from plan_models import Cell, PageLine, PageTableRow, PositionedTextItem

_WHITESPACE_RE = re.compile(r"\s+")
_JOIN_GAP = 4.0


def median_of(values: list[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def default_y_tolerance(items: list[PositionedTextItem]) -> float:
    heights = [it.height for it in items if it.height > 0]
    return max(2.0, median_of(heights) * 0.6)


def default_x_tolerance(items: list[PositionedTextItem]) -> float:
    char_widths = [it.width / len(it.text) for it in items if it.text and it.width > 0]
    return max(10.0, median_of(char_widths) * 2.2)


def build_line_text(items: list[PositionedTextItem]) -> str:
    """Join x-sorted items, inserting a space only across visible gaps."""
    parts: list[str] = []
    prev: PositionedTextItem | None = None
    for it in items:
        if prev is not None and it.x - (prev.x + prev.width) > _JOIN_GAP:
            parts.append(" ")
        parts.append(it.text)
        prev = it
    return _WHITESPACE_RE.sub(" ", "".join(parts)).strip()


def cluster_by_y(
    items: list[PositionedTextItem],
    page: int,
    tolerance: float | None = None,
) -> list[PageLine]:
    """Group one page's items into lines, top of the page first.

    Each line's reference y is the y of its first (topmost) item; an item
    joins the current line while it sits within *tolerance* of that y.
    """
    if not items:
        return []
    tol = tolerance if tolerance is not None else default_y_tolerance(items)
    ordered = sorted(items, key=lambda it: (-it.y, it.x))

    groups: list[tuple[float, list[PositionedTextItem]]] = []
    current: list[PositionedTextItem] = []
    current_y = ordered[0].y
    for it in ordered:
        if current and abs(it.y - current_y) > tol:
            groups.append((current_y, current))
            current = []
            current_y = it.y
        current.append(it)
    if current:
        groups.append((current_y, current))

    lines: list[PageLine] = []
    for y, group in groups:
        row = sorted(group, key=lambda it: it.x)
        lines.append(PageLine(y=y, items=row, text=build_line_text(row), page=page))
    return lines


def cluster_by_x(line_items: list[PositionedTextItem], tolerance: float | None = None) -> list[Cell]:
    """Split one line's items into cells wherever the x-gap exceeds *tolerance*."""
    if not line_items:
        return []
    tol = tolerance if tolerance is not None else default_x_tolerance(line_items)
    row = sorted(line_items, key=lambda it: it.x)

    cells: list[Cell] = []
    bucket: list[PositionedTextItem] = [row[0]]
    for it in row[1:]:
        prev = bucket[-1]
        if it.x - (prev.x + prev.width) > tol:
            cells.append(_make_cell(bucket))
            bucket = []
        bucket.append(it)
    cells.append(_make_cell(bucket))
    return cells


def _make_cell(bucket: list[PositionedTextItem]) -> Cell:
    text = _WHITESPACE_RE.sub(" ", " ".join(it.text for it in bucket)).strip()
    last = bucket[-1]
    return Cell(text=text, x0=bucket[0].x, x1=last.x + last.width)


def lines_to_table_rows(
    lines: list[PageLine],
    x_tolerance: float | None = None,
) -> list[PageTableRow]:
    return [
        PageTableRow(
            cells=cluster_by_x(line.items, x_tolerance),
            row_text=line.text,
            y=line.y,
            page=line.page,
        )
        for line in lines
    ]


def page_lines(items_by_page: dict[int, list[PositionedTextItem]]) -> dict[int, list[PageLine]]:
    return {page: cluster_by_y(items, page) for page, items in sorted(items_by_page.items())}

"""Shared factories for synthetic drawing pages.

Items are 7 pt per character wide and 12 pt tall, so on a page built only
from these factories the line tolerance is 7.2 pt and the cell gap
tolerance is 15.4 pt.
"""

from __future__ import annotations

import pytest

from plan_models import (
    ExtractionMethod,
    PageLine,
    PdfDocument,
    PositionedTextItem,
    UnitRecord,
    UnitRecordSource,
)

CHAR_WIDTH = 7.0
ITEM_HEIGHT = 12.0


def item(text: str, x: float, y: float, page: int = 1) -> PositionedTextItem:
    return PositionedTextItem(
        text=text, x=x, y=y, width=len(text) * CHAR_WIDTH, height=ITEM_HEIGHT, page=page
    )


def row_items(y: float, cells: list[tuple[float, str]], page: int = 1) -> list[PositionedTextItem]:
    """One visual row: ``cells`` is a list of (x, text)."""
    return [item(text, x, y, page) for x, text in cells]


def text_lines(texts: list[str], page: int = 1, top: float = 700.0, step: float = 20.0) -> list[PositionedTextItem]:
    """One item per line, stacked downward from *top*."""
    return [item(text, 50.0, top - i * step, page) for i, text in enumerate(texts)]


def title_block(drawing_no: str | None, title: str | None, page: int = 1) -> list[PositionedTextItem]:
    """Bottom-of-sheet title block: title at y=60, drawing number at y=40."""
    items: list[PositionedTextItem] = []
    if title:
        items.append(item(title, 400.0, 60.0, page))
    if drawing_no:
        items.append(item(drawing_no, 400.0, 40.0, page))
    return items


def page_line(text: str, y: float = 700.0, page: int = 1) -> PageLine:
    it = item(text, 50.0, y, page)
    return PageLine(y=y, items=[it], text=text, page=page)


def record(
    unit_id: str | None = None,
    bedroom_type: str = "UNKNOWN",
    area_sf: float | None = None,
    allocation: str = "UNKNOWN",
    page: int = 1,
    **kwargs,
) -> UnitRecord:
    return UnitRecord(
        unit_id=unit_id,
        bedroom_type=bedroom_type,
        area_sf=area_sf,
        allocation=allocation,
        source=UnitRecordSource(page=page, method=ExtractionMethod.TEXT_TABLE, evidence=unit_id or ""),
        **kwargs,
    )


def document(pages: dict[int, list[PositionedTextItem]], page_count: int | None = None, path: str | None = None) -> PdfDocument:
    """A loaded document whose raw page text is its items joined top-down."""
    count = page_count or max(pages, default=0)
    texts = []
    for p in range(1, count + 1):
        items = sorted(pages.get(p, []), key=lambda it: (-it.y, it.x))
        texts.append("\n".join(it.text for it in items))
    return PdfDocument(
        page_count=count,
        page_texts=texts,
        positioned_items={p: pages.get(p, []) for p in range(1, count + 1)},
        path=path,
    )


@pytest.fixture
def schedule_page() -> list[PositionedTextItem]:
    """A unit schedule: heading, 3-column header, three units, title block."""
    return [
        item("UNIT SCHEDULE", 50.0, 730.0, 2),
        *row_items(700.0, [(50.0, "UNIT"), (150.0, "TYPE"), (250.0, "AREA")], 2),
        *row_items(686.0, [(50.0, "1A"), (150.0, "1BR"), (250.0, "600 SF")], 2),
        *row_items(672.0, [(50.0, "1B"), (150.0, "2BR"), (250.0, "850 SF")], 2),
        *row_items(658.0, [(50.0, "2A"), (150.0, "STUDIO"), (250.0, "420 SF")], 2),
        *title_block("A-201", "UNIT SCHEDULE", 2),
    ]


@pytest.fixture
def cover_page() -> list[PositionedTextItem]:
    return [
        *text_lines(["# OF UNITS: 3", "ZONE: R7A", "BLOCK: 1234"], page=1),
        *title_block("T-001", "COVER SHEET", 1),
    ]

from __future__ import annotations

import logging
import re

from plan_layout import (
    cluster_by_y,
    default_x_tolerance,
    default_y_tolerance,
    lines_to_table_rows,
)
from plan_models import BBox, PageTableRow, PositionedTextItem, TableRegion

logger = logging.getLogger(__name__)

HEADER_TOKENS: list[re.Pattern] = [
    re.compile(rf"\b{token}\b", re.IGNORECASE)
    for token in (
        "UNIT", "APT", "APARTMENT", "BR", "BED", "BEDROOM", "SF", r"SQ\s*FT",
        "AREA", "AFFORDABLE", "MIH", "AMI", "ALLOCATION", "TYPE",
    )
]

MIN_HEADER_CELLS = 2


def header_cell_matches(row: PageTableRow) -> int:
    return sum(1 for cell in row.cells if any(p.search(cell.text) for p in HEADER_TOKENS))


def is_header_row(row: PageTableRow) -> bool:
    return len(row.cells) >= MIN_HEADER_CELLS and header_cell_matches(row) >= MIN_HEADER_CELLS


def _is_data_row(row: PageTableRow) -> bool:
    return len(row.cells) >= 1 and len(row.row_text.strip()) >= 2


def _bbox(rows: list[PageTableRow]) -> BBox:
    cells = [c for r in rows for c in r.cells]
    ys = [r.y for r in rows]
    return BBox(
        x0=min(c.x0 for c in cells),
        y0=min(ys),
        x1=max(c.x1 for c in cells),
        y1=max(ys),
    )


def reconstruct_tables(items: list[PositionedTextItem], page: int) -> list[TableRegion]:
    """Find header-led row runs on one page.

    A run closes on the next header row or on a vertical gap larger than
    ``max(2.5 * first row spacing, 4 * y tolerance)``; a run without data
    rows is dropped.
    """
    if not items:
        return []

    y_tol = default_y_tolerance(items)
    x_tol = default_x_tolerance(items)
    rows = lines_to_table_rows(cluster_by_y(items, page, y_tol), x_tol)

    tables: list[TableRegion] = []
    i = 0
    while i < len(rows):
        header = rows[i]
        if not is_header_row(header):
            i += 1
            continue

        j = i + 1
        first_gap = abs(header.y - rows[j].y) if j < len(rows) else 0.0
        spacing = first_gap if first_gap > 0 else y_tol * 2
        gap_threshold = max(spacing * 2.5, y_tol * 4)

        data_rows: list[PageTableRow] = []
        while j < len(rows):
            row = rows[j]
            if is_header_row(row):
                break
            if data_rows and abs(rows[j - 1].y - row.y) > gap_threshold:
                break
            if _is_data_row(row):
                data_rows.append(row)
            j += 1

        if data_rows:
            tables.append(
                TableRegion(
                    header_row=header,
                    data_rows=data_rows,
                    page=page,
                    bbox=_bbox([header, *data_rows]),
                )
            )
        i = j

    logger.debug("page %d: %d table regions", page, len(tables))
    return tables

from __future__ import annotations

import logging
import re

from plan_layout import cluster_by_y
from plan_models import PositionedTextItem, SheetIndex, SheetInfo

logger = logging.getLogger(__name__)

_DRAWING_NO_RE = re.compile(r"^([A-Z]{1,3}[-.]?\d{1,3}(?:[.-]\d{1,3})?)\b")
_ADDRESS_RE = re.compile(r"\d+\s+\w+\s+(ST|AVE|BLVD|RD|PL|DR|CT|LN|WAY)\b", re.IGNORECASE)
_PROJECT_RE = re.compile(r"PROJECT[:\s]", re.IGNORECASE)
_DIGITS_ONLY_RE = re.compile(r"^\d+$")
_TITLE_KEY_STRIP_RE = re.compile(r"[^A-Z0-9\s]")

TITLE_BLOCK_FRACTION = 0.2
MIN_TITLE_BLOCK_CHARS = 5
MIN_TITLE_WORD = 3


def filter_bottom_region(
    items: list[PositionedTextItem],
    fraction: float = TITLE_BLOCK_FRACTION,
) -> list[PositionedTextItem]:
    """Items whose baseline sits in the lowest *fraction* of the page's text extent."""
    if not items:
        return []
    min_y = min(it.y for it in items)
    max_y = max(it.y + it.height for it in items)
    extent = max_y - min_y
    if extent <= 0:
        return []
    threshold = min_y + extent * fraction
    return [it for it in items if it.y <= threshold]


def _meaningful_chars(items: list[PositionedTextItem]) -> int:
    return sum(len("".join(it.text.split())) for it in items)


def parse_drawing_no(lines: list[str]) -> str | None:
    for line in lines:
        m = _DRAWING_NO_RE.match(line.strip())
        if m:
            return m.group(1)
    return None


def parse_drawing_title(lines: list[str], drawing_no_line: str | None = None) -> str | None:
    longest = ""
    for line in lines:
        stripped = line.strip()
        if stripped == drawing_no_line or _DIGITS_ONLY_RE.match(stripped):
            continue
        if len(stripped) > len(longest):
            longest = stripped
    return longest if len(longest) >= 3 else None


def parse_project_title(lines: list[str]) -> str | None:
    for line in lines:
        if _ADDRESS_RE.search(line) or _PROJECT_RE.search(line):
            return line.strip()
    return None


def normalize_title_key(title: str) -> str:
    return _TITLE_KEY_STRIP_RE.sub("", title.upper()).strip()


def classify_page(items: list[PositionedTextItem], page: int) -> SheetInfo:
    bottom = filter_bottom_region(items)
    if _meaningful_chars(bottom) < MIN_TITLE_BLOCK_CHARS:
        return SheetInfo(page_number=page, confidence=0.3, method="OCR_CROP")

    texts = [line.text for line in cluster_by_y(bottom, page)]
    drawing_no = parse_drawing_no(texts)
    drawing_no_line = None
    if drawing_no:
        drawing_no_line = next((t for t in texts if drawing_no in t), None)
    drawing_title = parse_drawing_title(texts, drawing_no_line)

    confidence = 0.3
    if drawing_no:
        confidence = 0.9
    elif drawing_title:
        confidence = 0.5

    return SheetInfo(
        page_number=page,
        confidence=confidence,
        method="PDF_TEXT",
        drawing_no=drawing_no,
        drawing_title=drawing_title,
        project_title=parse_project_title(texts),
    )


def index_sheets(
    positioned_items: dict[int, list[PositionedTextItem]],
    page_count: int,
) -> SheetIndex:
    """Classify every page 1..page_count from its bottom title block."""
    index = SheetIndex(pages=[])
    for page in range(1, page_count + 1):
        info = classify_page(positioned_items.get(page, []), page)
        index.pages.append(info)

        if info.drawing_no:
            index.by_drawing_no[info.drawing_no] = page
        if info.drawing_title:
            for word in normalize_title_key(info.drawing_title).split():
                if len(word) < MIN_TITLE_WORD:
                    continue
                pages = index.by_title_key.setdefault(word, [])
                if page not in pages:
                    pages.append(page)

    logger.debug(
        "indexed %d sheets, %d with drawing numbers",
        page_count,
        len(index.by_drawing_no),
    )
    return index


def page_for_drawing_no(index: SheetIndex, drawing_no: str) -> int | None:
    return index.by_drawing_no.get(drawing_no.strip().upper())


def pages_for_title_word(index: SheetIndex, word: str) -> list[int]:
    return list(index.by_title_key.get(normalize_title_key(word), []))

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any

import pdfplumber

from plan_errors import PdfLoadError
from plan_models import PdfDocument, PositionedTextItem

logging.getLogger("pdfminer").setLevel(logging.ERROR)
warnings.filterwarnings("ignore", module="pdfminer")

logger = logging.getLogger(__name__)

# Characters closer than this (pt) stay in one text run; spaces are kept so a
# run spans a whole phrase and only column-sized gaps split it.
RUN_X_TOLERANCE = 3


def words_to_items(words: list[dict[str, Any]], page_height: float, page_number: int) -> list[PositionedTextItem]:
    """Convert pdfplumber words (top-down coordinates) to y-up items."""
    items: list[PositionedTextItem] = []
    for w in words:
        text = (w.get("text") or "").strip()
        if not text:
            continue
        top, bottom = float(w["top"]), float(w["bottom"])
        items.append(
            PositionedTextItem(
                text=text,
                x=float(w["x0"]),
                y=page_height - bottom,
                width=float(w["x1"]) - float(w["x0"]),
                height=bottom - top,
                page=page_number,
            )
        )
    return items


def page_to_items(page: Any, page_number: int) -> list[PositionedTextItem]:
    words = page.extract_words(keep_blank_chars=True, x_tolerance=RUN_X_TOLERANCE, use_text_flow=False)
    return words_to_items(words, float(page.height), page_number)


def read_pages(pages: list[Any]) -> tuple[list[str], dict[int, list[PositionedTextItem]], list[str]]:
    """Text and positioned items for each page; unreadable pages come back empty with a warning."""
    page_texts: list[str] = []
    items_by_page: dict[int, list[PositionedTextItem]] = {}
    problems: list[str] = []

    for i, page in enumerate(pages, start=1):
        try:
            page_texts.append(page.extract_text() or "")
            items_by_page[i] = page_to_items(page, i)
        except Exception as e:
            logger.warning("page %d: text extraction failed: %s", i, e)
            problems.append(f"Could not extract text from page {i}: {e}")
            if len(page_texts) < i:
                page_texts.append("")
            items_by_page[i] = []

    if pages and not any(t.strip() for t in page_texts):
        problems.append(
            "No text could be extracted. This PDF may be image-based (scanned). OCR fallback available."
        )
    return page_texts, items_by_page, problems


def load_pdf(pdf_path: str | Path) -> PdfDocument:
    """Open *pdf_path* with pdfplumber and read every page.

    Raises PdfLoadError when the file is missing, encrypted or not a PDF.
    """
    path = Path(pdf_path)
    if not path.exists():
        raise PdfLoadError(f"file not found: {path}")

    try:
        pdf = pdfplumber.open(path)
    except Exception as e:
        msg = str(e) or e.__class__.__name__
        if "password" in msg.lower() or "encrypt" in msg.lower() or "Password" in e.__class__.__name__:
            raise PdfLoadError(
                "This PDF appears to be password-protected. "
                "Please remove password protection and try again."
            ) from e
        raise PdfLoadError(f"PDF processing failed: {msg}") from e

    with pdf:
        page_texts, items_by_page, problems = read_pages(list(pdf.pages))

    logger.info("loaded %s: %d pages", path.name, len(page_texts))
    return PdfDocument(
        page_count=len(page_texts),
        page_texts=page_texts,
        positioned_items=items_by_page,
        warnings=problems,
        path=str(path),
    )

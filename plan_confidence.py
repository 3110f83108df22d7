from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from plan_models import AllocationKind, BedroomType, TableRegion, UnitRecord

MAX_CONFIDENCE = 0.99
OCR_MIN_CHARS = 150
OCR_MIN_TABLE_CONFIDENCE = 0.55


@dataclass
class PageConfidenceInput:
    """Structural signals gathered for one page.

    ``ocr_confidence`` is a percentage (0-100).
    """

    page: int
    header_mapped_columns: int = 0
    total_row_found: bool = False
    total_row_consistent: bool = False
    unit_row_count: int = 0
    ocr_used: bool = False
    ocr_confidence: float = 0.0
    totals_conflict: bool = False


@dataclass
class PageScore:
    page: int
    score: float
    weight: float


def score_page_confidence(signals: PageConfidenceInput) -> float:
    score = 0.0

    if signals.header_mapped_columns >= 3:
        score += 0.30
    elif signals.header_mapped_columns >= 2:
        score += 0.15

    if signals.total_row_found and signals.total_row_consistent:
        score += 0.25
    elif signals.total_row_found:
        score += 0.10

    if signals.unit_row_count >= 10:
        score += 0.20
    elif signals.unit_row_count >= 5:
        score += 0.10
    elif signals.unit_row_count >= 1:
        score += 0.05

    if signals.ocr_used:
        score += 0.15 * (signals.ocr_confidence / 100)

    if signals.totals_conflict:
        score -= 0.30

    return max(0.0, min(MAX_CONFIDENCE, round(score, 4)))


def score_overall_confidence(page_scores: list[PageScore]) -> float:
    total_weight = sum(ps.weight for ps in page_scores)
    if not page_scores or total_weight <= 0:
        return 0.0
    weighted = sum(ps.score * ps.weight for ps in page_scores)
    return min(MAX_CONFIDENCE, round(weighted / total_weight, 2))


def generate_warnings(
    records: list[UnitRecord],
    tables: list[TableRegion],
    totals_conflict: bool,
    ocr_used: bool,
    has_far: bool,
) -> list[str]:
    warnings: list[str] = []
    if totals_conflict:
        warnings.append("Totals inconsistent across pages; using best candidate page")
    if ocr_used:
        warnings.append("OCR used for some pages; verify schedule data")
    if not has_far:
        warnings.append("Area/FAR values missing; check zoning analysis sheets")

    n = len(records)
    if n:
        unknown_bed = sum(1 for r in records if r.bedroom_type is BedroomType.UNKNOWN)
        if unknown_bed > n * 0.3:
            warnings.append(f"{unknown_bed} of {n} units have undetected bedroom types")
        unknown_alloc = sum(1 for r in records if r.allocation is AllocationKind.UNKNOWN)
        if unknown_alloc > n * 0.5:
            warnings.append(f"{unknown_alloc} of {n} units have undetected allocations")
        if not tables:
            warnings.append("No structured table detected; records parsed from text patterns")
    return warnings


def should_ocr_page(text_chars: int, header_detected: bool, table_parse_confidence: float) -> bool:
    return (
        text_chars < OCR_MIN_CHARS
        or not header_detected
        or table_parse_confidence < OCR_MIN_TABLE_CONFIDENCE
    )


def assess_text_yield(page_texts: list[str]) -> tuple[Literal["high", "low", "none"], float]:
    """Classify average characters per page: <50 none, <200 low, else high."""
    if not page_texts:
        return "none", 0.0
    avg = sum(len(t) for t in page_texts) / len(page_texts)
    if avg < 50:
        return "none", avg
    if avg < 200:
        return "low", avg
    return "high", avg

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping

from plan_config import CAP_RATIO, DECLARED_UNITS_RANGE, NOISE_UNIT_IDS, UNIT_AREA_RANGE
from plan_models import (
    AllocationKind,
    BedroomType,
    ConfidenceReport,
    UnitMix,
    UnitMixTotals,
    UnitRecord,
)

logger = logging.getLogger(__name__)

CAPPED_MAX_CONFIDENCE = 0.6

DECLARED_UNIT_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"#?\s*(?:OF\s+)?UNITS[:\s]+(\d{1,4})",
        r"PROPOSED\s+(\d{1,4})\s*[-]?\s*UNIT",
        r"(\d{1,4})\s*[-]?\s*UNIT\s+(?:APARTMENT|RESIDENTIAL|DWELLING)\s+(?:BUILDING|PROJECT)",
        r"TOTAL\s+(?:DWELLING\s+)?UNITS[:\s]*(\d{1,4})",
        r"(\d{1,4})\s+DWELLING\s+UNITS",
    )
]

_LEADING_DIGITS_RE = re.compile(r"^(\d+)")
_PH_FLOOR_KEY = 9999
_UNRESOLVED_FLOOR_KEY = 5000


@dataclass
class SanitizedExtraction:
    records: list[UnitRecord]
    totals: UnitMixTotals
    unit_mix: UnitMix
    confidence: ConfidenceReport
    capped: bool = False
    records_before_cap: int = 0
    dropped: list[str] = field(default_factory=list)


def extract_declared_units(
    page_texts: Mapping[int, str],
    cover_pages: list[int] | None = None,
) -> int | None:
    """Unit count the drawings declare, preferring cover-sheet pages.

    Patterns are tried in priority order, each across every searched page,
    so a strong phrase on a later page beats a weak one on an earlier page.
    """
    pages = sorted(p for p in (cover_pages or []) if p in page_texts) or sorted(page_texts)
    lo, hi = DECLARED_UNITS_RANGE
    for pattern in DECLARED_UNIT_PATTERNS:
        for page in pages:
            m = pattern.search(page_texts[page])
            if m:
                value = int(m.group(1))
                if lo <= value <= hi:
                    return value
    return None


def unit_key(unit_id: str) -> str:
    return unit_id.strip().upper()


def deduplicate_records(records: list[UnitRecord]) -> list[UnitRecord]:
    """Collapse records sharing a unit id, keeping the one with more populated fields.

    Ties keep the first seen. Records without a unit id are never merged.
    """
    result: list[UnitRecord] = []
    index_by_key: dict[str, int] = {}
    for record in records:
        if not record.unit_id:
            result.append(record)
            continue
        key = unit_key(record.unit_id)
        if key not in index_by_key:
            index_by_key[key] = len(result)
            result.append(record)
            continue
        idx = index_by_key[key]
        if record.populated_fields() > result[idx].populated_fields():
            result[idx] = record
    return result


def compute_totals_from_records(records: list[UnitRecord]) -> UnitMixTotals:
    totals = UnitMixTotals(total_units=len(records))
    ami: dict[str, int] = {}
    for r in records:
        bedroom, allocation = r.bedroom_type.value, r.allocation.value
        totals.by_bedroom_type[bedroom] = totals.by_bedroom_type.get(bedroom, 0) + 1
        totals.by_allocation[allocation] = totals.by_allocation.get(allocation, 0) + 1
        cross = totals.by_allocation_and_bedroom.setdefault(allocation, {})
        cross[bedroom] = cross.get(bedroom, 0) + 1
        if r.ami_band is not None:
            key = f"{r.ami_band}%"
            ami[key] = ami.get(key, 0) + 1
    totals.by_ami_band = ami or None
    return totals


def unit_mix_from_totals(totals: UnitMixTotals) -> UnitMix:
    counts = totals.by_bedroom_type
    return UnitMix(
        studio=counts.get(BedroomType.STUDIO.value) or None,
        br1=counts.get(BedroomType.BR1.value) or None,
        br2=counts.get(BedroomType.BR2.value) or None,
        br3=counts.get(BedroomType.BR3.value) or None,
        br4plus=counts.get(BedroomType.BR4_PLUS.value) or None,
    )


def affordable_and_market(totals: UnitMixTotals) -> tuple[int, int]:
    alloc = totals.by_allocation
    affordable = alloc.get(AllocationKind.MIH_RESTRICTED.value, 0) + alloc.get(AllocationKind.AFFORDABLE.value, 0)
    return affordable, alloc.get(AllocationKind.MARKET.value, 0)


def floor_sort_key(unit_id: str | None) -> int:
    """PH floors sort last, unresolved floors after every numbered floor."""
    if not unit_id:
        return _UNRESOLVED_FLOOR_KEY
    uid = unit_key(unit_id)
    if uid.startswith("PH"):
        return _PH_FLOOR_KEY
    m = _LEADING_DIGITS_RE.match(uid)
    return int(m.group(1)) if m else _UNRESOLVED_FLOOR_KEY


def _plausible(record: UnitRecord) -> str | None:
    """Reason to drop *record*, or ``None`` when it looks like a real unit."""
    lo, hi = UNIT_AREA_RANGE
    if record.area_sf is not None and not lo <= record.area_sf <= hi:
        return f"area {record.area_sf:g} SF out of range"
    if record.unit_id and unit_key(record.unit_id) in NOISE_UNIT_IDS:
        return f"metadata token {unit_key(record.unit_id)}"
    return None


def sanitize_extraction(
    records: list[UnitRecord],
    declared_units: int | None,
    confidence: ConfidenceReport | None = None,
    cap_ratio: float = CAP_RATIO,
) -> SanitizedExtraction:
    """Dedupe, filter and, on gross over-extraction, cap records to the declared count.

    When more than ``cap_ratio * declared_units`` records survive, only the
    ``declared_units`` records on the lowest floors are kept.
    """
    report = ConfidenceReport(
        overall=confidence.overall if confidence else 0.5,
        warnings=list(confidence.warnings) if confidence else [],
        by_page=dict(confidence.by_page) if confidence else {},
    )

    kept: list[UnitRecord] = []
    dropped: list[str] = []
    for record in deduplicate_records(records):
        reason = _plausible(record)
        if reason:
            dropped.append(f"{record.unit_id or '?'}: {reason}")
        else:
            kept.append(record)

    before = len(kept)
    capped = False
    if declared_units is not None and before > declared_units * cap_ratio:
        kept = sorted(
            kept,
            key=lambda r: (floor_sort_key(r.unit_id), unit_key(r.unit_id or "")),
        )[:declared_units]
        capped = True
        report.warnings.append(
            f"Unit records ({before}) exceeded cover-sheet units ({declared_units}); "
            f"capped to {declared_units}. Verify schedule."
        )
        report.overall = min(report.overall, CAPPED_MAX_CONFIDENCE)
        logger.warning("capped %d unit records to declared %d", before, declared_units)

    totals = compute_totals_from_records(kept)
    return SanitizedExtraction(
        records=kept,
        totals=totals,
        unit_mix=unit_mix_from_totals(totals),
        confidence=report,
        capped=capped,
        records_before_cap=before,
        dropped=dropped,
    )

from __future__ import annotations

import re
from dataclasses import dataclass, fields

from plan_config import EVIDENCE_MAX_CHARS, FAR_RANGE
from plan_models import (
    AllocationKind,
    BedroomType,
    Cell,
    ExtractionMethod,
    FarExtraction,
    PageLine,
    PageTableRow,
    UnitRecord,
    UnitRecordSource,
)
from plan_rules import Rule, first_match, rule

HEADER_SYNONYMS: dict[str, list[str]] = {
    "unit_id": ["UNIT", "APT", "APARTMENT", "ROOM", "ELEMENT", "NO", "NUMBER"],
    "bed_count": ["BR", "BED", "BEDROOMS", "BEDROOM", "TYPE"],
    "area": ["NSF", "NET", "GROSS", "GSF", "SQFT", "SF", "AREA", "NSA", "SQ FT", "SQUARE FEET"],
    "allocation": ["AFFORDABLE", "MIH", "INCLUSIONARY", "RESTRICTED", "ALLOCATION", "TENURE", "STATUS"],
    "ami_band": ["AMI", "%AMI", "INCOME", "BAND"],
}

BEDROOM_RULES: list[Rule[BedroomType]] = [
    rule(r"\b(STUDIO|EFF|EFFICIENCY|0\s*BR|0\s*BED)\b", 0, BedroomType.STUDIO),
    rule(r"\b1(\.0)?\s*(BR|BED(ROOM)?)\b", 1, BedroomType.BR1),
    rule(r"\b2(\.0)?\s*(BR|BED(ROOM)?)\b", 2, BedroomType.BR2),
    rule(r"\b3(\.0)?\s*(BR|BED(ROOM)?)\b", 3, BedroomType.BR3),
    rule(r"\b[4-6](\.\d+)?\s*(BR|BED(ROOM)?)\b", 4, BedroomType.BR4_PLUS),
]
BEDROOM_COUNTS: dict[BedroomType, int] = {r.tag: int(r.weight) for r in BEDROOM_RULES}

ALLOCATION_RULES: list[Rule[AllocationKind]] = [
    rule(r"\b(MIH|INCLUSIONARY|RESTRICTED|AFFORDABLE|UAP)\b", 1, AllocationKind.MIH_RESTRICTED),
    rule(r"\b(MARKET|FREE\s*MARKET|MR)\b", 1, AllocationKind.MARKET),
]

_UNIT_ID_RE = re.compile(
    r"\b(?:UNIT|APT|APARTMENT)?\s*([A-Z]?\d{1,4}[A-Z]?(?:-\d{1,4})?|PH\d+|PENTHOUSE\s*\d+)\b",
    re.IGNORECASE,
)
_UNIT_ID_TOKEN_RE = re.compile(r"^[A-Z]?\d{1,4}[A-Z]?(?:-\d{1,4})?$", re.IGNORECASE)
_AMI_BAND_RE = re.compile(r"\b(40|50|60|70|80|90|100)\s*%?\s*AMI\b", re.IGNORECASE)
_AREA_WITH_UNIT_RE = re.compile(r"\b(\d{3,5})\s*(SF|SQ\.?\s*FT|SQUARE\s*FEET)\b", re.IGNORECASE)
_AREA_STANDALONE_RE = re.compile(r"\b(\d{3,5})\b")
_TOTAL_RE = re.compile(r"\bTOTAL\b", re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")
_LEADING_INT_RE = re.compile(r"^\d+")
_TOTAL_VALUE_RE = re.compile(r"\b\d{1,4}\b")
_HEADER_NORMALIZE_RE = re.compile(r"[^\w\s%]")

_LOT_AREA_RE = re.compile(
    r"LOT\s*AREA[:\s]*([0-9,]+(?:\.\d+)?)\s*(?:SF|SQ\.?\s*FT)?", re.IGNORECASE
)
_ZFA_RE = re.compile(
    r"(?:ZONING\s*FLOOR\s*AREA|ZFA|TOTAL\s*ZFA|RES(?:IDENTIAL)?\s*ZFA)[:\s]*([0-9,]+(?:\.\d+)?)\s*(?:SF|SQ\.?\s*FT)?",
    re.IGNORECASE,
)
_PROPOSED_AREA_RE = re.compile(
    r"(?:PROPOSED\s*(?:FLOOR\s*AREA|GFA|TOTAL\s*AREA)|PROPOSED\s*ZFA)[:\s]*([0-9,]+(?:\.\d+)?)\s*(?:SF|SQ\.?\s*FT)?",
    re.IGNORECASE,
)
_FAR_RE = re.compile(r"\b(?:FAR|F\.A\.R\.?)[:\s]*([0-9]+(?:\.\d+)?)", re.IGNORECASE)

STANDALONE_AREA_RANGE = (200, 5000)
POSITIONAL_MIN_AREA = 200
TOTALS_ROW_MAX = 2000


@dataclass
class ColumnMapping:
    """Column index per role; ``None`` when the header has no such column."""

    unit_id: int | None = None
    bed_count: int | None = None
    area: int | None = None
    allocation: int | None = None
    ami_band: int | None = None

    def mapped_count(self) -> int:
        return sum(1 for f in fields(self) if getattr(self, f.name) is not None)


@dataclass
class TotalsRow:
    total_units: int
    source: str


def evidence(text: str) -> str:
    return text[:EVIDENCE_MAX_CHARS]


def _synonym_matches(synonym: str, normalized: str, tokens: list[str]) -> bool:
    if synonym in tokens:
        return True
    return re.search(rf"(?<!\w){re.escape(synonym)}(?!\w)", normalized) is not None


def infer_column_mapping(header_cells: list[Cell]) -> ColumnMapping:
    """Assign each header column to at most one role, each role to at most one column.

    Roles are tried in declaration order for every column; the first
    still-unassigned role with a matching synonym takes the column.
    """
    mapping = ColumnMapping()
    for ci, cell in enumerate(header_cells):
        normalized = _HEADER_NORMALIZE_RE.sub("", cell.text.upper()).strip()
        tokens = normalized.split()
        for role, synonyms in HEADER_SYNONYMS.items():
            if getattr(mapping, role) is not None:
                continue
            if any(_synonym_matches(syn, normalized, tokens) for syn in synonyms):
                setattr(mapping, role, ci)
                break
    return mapping


def detect_bedroom(text: str) -> tuple[BedroomType, int | None]:
    found = first_match(BEDROOM_RULES, text)
    if found is None:
        return BedroomType.UNKNOWN, None
    return found, BEDROOM_COUNTS[found]


def detect_allocation(text: str) -> AllocationKind:
    return first_match(ALLOCATION_RULES, text) or AllocationKind.UNKNOWN


def detect_ami_band(text: str) -> int | None:
    m = _AMI_BAND_RE.search(text)
    return int(m.group(1)) if m else None


def detect_unit_id(text: str) -> str | None:
    m = _UNIT_ID_RE.search(text)
    return m.group(1).strip() if m else None


def detect_area(text: str) -> float | None:
    m = _AREA_WITH_UNIT_RE.search(text)
    if m:
        return float(m.group(1))
    m = _AREA_STANDALONE_RE.search(text)
    if m:
        value = int(m.group(1))
        lo, hi = STANDALONE_AREA_RANGE
        if lo <= value <= hi:
            return float(value)
    return None


def _column_text(cells: list[Cell], index: int | None, fallback: str) -> str:
    if index is not None and index < len(cells):
        return cells[index].text
    return fallback


def parse_unit_row(
    cells: list[Cell],
    mapping: ColumnMapping,
    page: int,
    method: ExtractionMethod,
) -> UnitRecord | None:
    """Parse one table data row; ``None`` for total rows and rows with no signal."""
    full_text = " ".join(c.text for c in cells)
    if len(full_text.strip()) < 2 or _TOTAL_RE.search(full_text):
        return None

    bedroom, count = detect_bedroom(_column_text(cells, mapping.bed_count, full_text))
    if bedroom is BedroomType.UNKNOWN and not _DIGIT_RE.search(full_text):
        return None

    return UnitRecord(
        unit_id=detect_unit_id(_column_text(cells, mapping.unit_id, full_text)),
        bedroom_type=bedroom,
        bedroom_count=count,
        allocation=detect_allocation(_column_text(cells, mapping.allocation, full_text)),
        ami_band=detect_ami_band(_column_text(cells, mapping.ami_band, full_text)),
        area_sf=detect_area(_column_text(cells, mapping.area, full_text)),
        source=UnitRecordSource(page=page, method=method, evidence=evidence(full_text)),
    )


def _leading_int(token: str) -> int | None:
    m = _LEADING_INT_RE.match(token)
    return int(m.group()) if m else None


def parse_unit_row_positional(
    text: str,
    page: int,
    method: ExtractionMethod,
) -> UnitRecord | None:
    """Parse a free-text line by token position (no column headers available).

    The first id-shaped token is the unit id, the first bedroom token (or a
    bare 0-4) the bedroom type, the first integer above 200 the area.
    """
    stripped = text.strip()
    if len(stripped) < 3 or _TOTAL_RE.search(text):
        return None

    unit_id: str | None = None
    bedroom, count = BedroomType.UNKNOWN, None
    area: float | None = None

    for token in stripped.split():
        if unit_id is None and _UNIT_ID_TOKEN_RE.match(token):
            unit_id = token
            continue
        if bedroom is BedroomType.UNKNOWN:
            bedroom, count = detect_bedroom(token)
            if bedroom is not BedroomType.UNKNOWN:
                continue
            n = _leading_int(token)
            if n is not None and n in BEDROOM_COUNTS.values():
                bedroom = next(b for b, c in BEDROOM_COUNTS.items() if c == n)
                count = n
                continue
        if area is None:
            n = _leading_int(token.replace(",", ""))
            if n is not None and n > POSITIONAL_MIN_AREA:
                area = float(n)

    if bedroom is BedroomType.UNKNOWN and unit_id is None:
        return None

    return UnitRecord(
        unit_id=unit_id,
        bedroom_type=bedroom,
        bedroom_count=count,
        allocation=detect_allocation(text),
        ami_band=detect_ami_band(text),
        area_sf=area,
        source=UnitRecordSource(page=page, method=method, evidence=evidence(text)),
    )


def extract_totals_row(rows: list[PageTableRow]) -> TotalsRow | None:
    for row in rows:
        if not _TOTAL_RE.search(row.row_text):
            continue
        m = _TOTAL_VALUE_RE.search(row.row_text)
        if m:
            value = int(m.group())
            if 0 < value < TOTALS_ROW_MAX:
                return TotalsRow(total_units=value, source=evidence(row.row_text))
    return None


def _parse_number(raw: str) -> float | None:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def extract_far_from_lines(lines: list[PageLine], page: int) -> FarExtraction | None:
    """Pull lot area, zoning/proposed floor area and FAR from a page's lines.

    The first hit per field wins. FAR values outside the plausible range are
    skipped and scanning continues. Without an explicit FAR, it is derived
    from floor area / lot area when both are known.
    """
    lot_area: float | None = None
    zfa: float | None = None
    proposed: float | None = None
    far: float | None = None
    parts: list[str] = []

    for line in lines:
        text = line.text

        m = _LOT_AREA_RE.search(text)
        if m and lot_area is None:
            lot_area = _parse_number(m.group(1))
            parts.append(m.group(0))

        m = _ZFA_RE.search(text)
        if m and zfa is None:
            zfa = _parse_number(m.group(1))
            parts.append(m.group(0))

        m = _PROPOSED_AREA_RE.search(text)
        if m and proposed is None:
            proposed = _parse_number(m.group(1))
            parts.append(m.group(0))

        if far is None:
            for m in _FAR_RE.finditer(text):
                value = float(m.group(1))
                if FAR_RANGE[0] <= value <= FAR_RANGE[1]:
                    far = value
                    parts.append(m.group(0))
                    break

    if lot_area is None and zfa is None and proposed is None and far is None:
        return None

    floor_area = proposed if proposed is not None else zfa
    if far is None and floor_area and lot_area and lot_area > 0:
        far = round(floor_area / lot_area, 2)

    confidence = 0.5
    if lot_area:
        confidence += 0.15
    if zfa or proposed:
        confidence += 0.15
    if far:
        confidence += 0.1

    return FarExtraction(
        lot_area_sf=lot_area,
        zoning_floor_area_sf=zfa,
        proposed_floor_area_sf=proposed,
        proposed_far=far,
        source=UnitRecordSource(
            page=page,
            method=ExtractionMethod.TEXT_TABLE,
            evidence=evidence(" / ".join(p.strip() for p in parts)),
        ),
        confidence=min(0.95, round(confidence, 2)),
    )

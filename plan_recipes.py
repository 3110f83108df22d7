from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from plan_config import EVIDENCE_MAX_CHARS, FAR_RANGE
from plan_layout import cluster_by_y
from plan_models import (
    SKIP,
    BedroomType,
    Cell,
    CoverSheetExtraction,
    ExtractionMethod,
    PageLine,
    PositionedTextItem,
    RecipeEvidence,
    RecipeResult,
    RecipeType,
    SheetIndex,
    SheetInfo,
    SheetOverride,
    UnitRecord,
    UnitRecordSource,
)
from plan_rows import evidence, extract_far_from_lines, infer_column_mapping, parse_unit_row
from plan_spatial import find_unit_labels_near_areas
from plan_tables import reconstruct_tables

logger = logging.getLogger(__name__)

REGEX = ExtractionMethod.TEXT_REGEX.value
TABLE = ExtractionMethod.TEXT_TABLE.value

LABEL_AREA_RANGE = (100, 5000)
TOTAL_UNITS_MAX = 2000
SHORT_SNIPPET = 120


@dataclass
class RecipeParams:
    """Document data shared by every recipe; ``pages`` is the recipe's own slice."""

    pages: list[int]
    positioned_items: dict[int, list[PositionedTextItem]]
    page_texts: list[str]
    page_lines: dict[int, list[PageLine]] = field(default_factory=dict)

    def items_for(self, page: int) -> list[PositionedTextItem]:
        return self.positioned_items.get(page, [])

    def lines_for(self, page: int) -> list[PageLine]:
        if page not in self.page_lines:
            self.page_lines[page] = cluster_by_y(self.items_for(page), page)
        return self.page_lines[page]

    def text_for(self, page: int) -> str:
        if 1 <= page <= len(self.page_texts) and self.page_texts[page - 1].strip():
            return self.page_texts[page - 1]
        return "\n".join(line.text for line in self.lines_for(page))

    def ordered_pages(self) -> list[int]:
        return sorted(set(self.pages))


class FieldBuilder:
    """Recipe field accumulator: the first non-null value offered for a field wins.

    Pages are offered in ascending order, so "first" means lowest page.
    """

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.evidence: list[RecipeEvidence] = []

    def offer(
        self,
        name: str,
        value: Any,
        page: int,
        snippet: str | None = None,
        method: str = REGEX,
    ) -> bool:
        if value is None or self.values.get(name) is not None:
            return False
        self.values[name] = value
        if snippet is not None:
            self.evidence.append(RecipeEvidence(name, page, method, snippet[:EVIDENCE_MAX_CHARS]))
        return True

    def get(self, name: str) -> Any:
        return self.values.get(name)

    def found(self, *names: str) -> int:
        return sum(1 for n in names if self.values.get(n) is not None)

    def note(self, name: str, page: int, snippet: str, method: str = REGEX) -> None:
        self.evidence.append(RecipeEvidence(name, page, method, snippet[:EVIDENCE_MAX_CHARS]))


def _to_number(raw: str) -> float | None:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def _scan_lines(
    lines: list[PageLine],
    pattern: re.Pattern,
    convert: Callable[[str], Any] = str.strip,
    accept: Callable[[Any], bool] = lambda v: True,
) -> tuple[Any, str] | None:
    """First accepted value captured by *pattern* across *lines*, with its match text."""
    for line in lines:
        for m in pattern.finditer(line.text):
            if not m.group(1):
                continue
            value = convert(m.group(1))
            if value is not None and accept(value):
                return value, m.group(0).strip()
    return None


def _in_range(lo: float, hi: float) -> Callable[[float], bool]:
    return lambda v: lo <= v <= hi


class Recipe:
    """An extraction strategy bound to a sheet classification.

    ``extract`` never raises on missing data; an empty page set or a page
    with nothing recognizable yields a low-confidence result.
    """

    type: RecipeType

    def match(self, sheet: SheetInfo) -> bool:
        raise NotImplementedError

    def extract(self, params: RecipeParams) -> RecipeResult:
        raise NotImplementedError

    def _result(self, params: RecipeParams, fields: dict[str, Any], found: list[RecipeEvidence], confidence: float) -> RecipeResult:
        return RecipeResult(
            recipe=self.type,
            pages=params.ordered_pages(),
            fields=fields,
            evidence=found,
            confidence=round(confidence, 2),
        )


_COVER_TITLE_RE = re.compile(r"COVER\s+SHEET|TITLE\s+SHEET", re.IGNORECASE)
_COVER_DRAWING_RE = re.compile(r"^T[-.]?\d{1,3}", re.IGNORECASE)

_COVER_LOT_AREA_RE = re.compile(r"LOT\s*AREA[:\s]*([0-9,]+(?:\.\d+)?)\s*(?:SF|SQ)", re.IGNORECASE)
_COVER_FAR_RE = re.compile(r"\bFAR[:\s]*([0-9]+(?:\.\d+)?)", re.IGNORECASE)
_COVER_UNITS_RE = re.compile(r"#?\s*(?:OF\s+)?UNITS[:\s]*(\d{1,4})", re.IGNORECASE)
_COVER_FLOORS_RE = re.compile(r"#?\s*(?:OF\s+)?FLOORS[:\s]*(\d{1,3})", re.IGNORECASE)
_COVER_BLDG_AREA_RE = re.compile(
    r"(?:BLDG|BUILDING)\s*AREA[:\s]*([0-9,]+(?:\.\d+)?)\s*(?:SF|SQ)", re.IGNORECASE
)
_COVER_ZONE_RE = re.compile(r"\bZONE[:\s]*([A-Z0-9][-A-Z0-9/]*)", re.IGNORECASE)
_COVER_ZONING_MAP_RE = re.compile(r"ZONING\s*MAP[:\s]*([A-Z0-9]+)", re.IGNORECASE)
_COVER_OCC_GROUP_RE = re.compile(r"OCCUPANCY\s*GROUP[:\s]*([A-Z][-A-Z0-9]*)", re.IGNORECASE)
_COVER_CONST_CLASS_RE = re.compile(r"CONSTRUCTION\s*CLASS[:\s]*([A-Z][-A-Z0-9]*)", re.IGNORECASE)
_COVER_SCOPE_RE = re.compile(r"SCOPE\s+OF\s+WORK[:\s]*(.*)", re.IGNORECASE)
_COVER_BLOCK_RE = re.compile(r"BLOCK[:\s]*#?(\d{1,5})", re.IGNORECASE)
_COVER_LOT_RE = re.compile(r"\bLOT[:\s]*#?(\d{1,5})", re.IGNORECASE)
_COVER_BIN_RE = re.compile(r"\bBIN[:\s]*#?(\d{5,8})", re.IGNORECASE)

COVER_SCORED_FIELDS = (
    "lot_area_sf", "far", "total_units", "floors", "building_area_sf", "zone", "block",
)


def _upper(raw: str) -> str:
    return raw.strip().upper()


def _int(raw: str) -> int | None:
    n = _to_number(raw)
    return int(n) if n is not None else None


class CoverSheetRecipe(Recipe):
    type = RecipeType.COVER_SHEET

    # (field, pattern, convert, accept, contributes evidence)
    FIELDS: list[tuple[str, re.Pattern, Callable[[str], Any], Callable[[Any], bool], bool]] = [
        ("lot_area_sf", _COVER_LOT_AREA_RE, _to_number, lambda v: v > 0, True),
        ("far", _COVER_FAR_RE, _to_number, _in_range(*FAR_RANGE), True),
        ("total_units", _COVER_UNITS_RE, _int, lambda v: 0 < v < TOTAL_UNITS_MAX, True),
        ("floors", _COVER_FLOORS_RE, _int, lambda v: v > 0, True),
        ("building_area_sf", _COVER_BLDG_AREA_RE, _to_number, lambda v: v > 0, True),
        ("zone", _COVER_ZONE_RE, _upper, lambda v: True, True),
        ("zoning_map", _COVER_ZONING_MAP_RE, _upper, lambda v: True, False),
        ("occupancy_group", _COVER_OCC_GROUP_RE, _upper, lambda v: True, False),
        ("construction_class", _COVER_CONST_CLASS_RE, _upper, lambda v: True, False),
        ("block", _COVER_BLOCK_RE, str.strip, lambda v: True, True),
        ("lot", _COVER_LOT_RE, str.strip, lambda v: True, False),
        ("bin", _COVER_BIN_RE, str.strip, lambda v: True, False),
    ]

    def match(self, sheet: SheetInfo) -> bool:
        if sheet.drawing_title and _COVER_TITLE_RE.search(sheet.drawing_title):
            return True
        return bool(sheet.drawing_no and _COVER_DRAWING_RE.search(sheet.drawing_no))

    def extract(self, params: RecipeParams) -> RecipeResult:
        builder = FieldBuilder()
        for page in params.ordered_pages():
            lines = params.lines_for(page)
            for name, pattern, convert, accept, keep_evidence in self.FIELDS:
                if builder.get(name) is not None:
                    continue
                hit = _scan_lines(lines, pattern, convert, accept)
                if hit:
                    value, snippet = hit
                    builder.offer(name, value, page, snippet if keep_evidence else None)

            if builder.get("scope_of_work") is None:
                m = _COVER_SCOPE_RE.search(params.text_for(page))
                if m and m.group(1).strip():
                    builder.offer("scope_of_work", m.group(1).strip()[:EVIDENCE_MAX_CHARS], page)

        cover = CoverSheetExtraction(**builder.values)
        confidence = min(0.95, 0.3 + 0.09 * builder.found(*COVER_SCORED_FIELDS))
        return self._result(params, {"cover_sheet": cover}, builder.evidence, confidence)


_ZONING_TITLE_RE = re.compile(r"ZONING\s*(COMPLIANCE|ANALYSIS|SCHEDULE|DATA|INFORMATION)", re.IGNORECASE)
_ZONING_DRAWING_RE = re.compile(r"^Z-", re.IGNORECASE)
_ZONING_A004_RE = re.compile(r"^A[-.]?004", re.IGNORECASE)
_DWELLING_UNITS_LINE_RES = [
    re.compile(r"(?:PROPOSED|TOTAL)\s+\d{1,4}\s+(?:DWELLING\s+)?UNITS", re.IGNORECASE),
    re.compile(
        r"(?:DWELLING|DU)\s+(?:UNIT\s+)?(?:FACTOR|COUNT).*\b\d{1,4}\s+(?:DWELLING\s+)?UNITS",
        re.IGNORECASE,
    ),
]
_DWELLING_UNITS_VALUE_RE = re.compile(r"\b(\d{1,4})\s+(?:DWELLING\s+)?UNITS", re.IGNORECASE)
_TOTAL_LINE_VALUE_RE = re.compile(r"\bTOTAL\b.*?\b(\d{1,4})\b(?![,.]\d)", re.IGNORECASE)


def _bedroom_mix_from_tables(items: list[PositionedTextItem], page: int) -> tuple[dict[str, int], int, list[str]]:
    mix: dict[str, int] = {}
    rows: list[str] = []
    tables = reconstruct_tables(items, page)
    for table in tables:
        mapping = infer_column_mapping(table.header_row.cells)
        for row in table.data_rows:
            record = parse_unit_row(row.cells, mapping, page, ExtractionMethod.TEXT_TABLE)
            if record and record.bedroom_type is not BedroomType.UNKNOWN:
                key = record.bedroom_type.value
                mix[key] = mix.get(key, 0) + 1
                rows.append(row.row_text)
    return mix, len(tables), rows


class ZoningScheduleRecipe(Recipe):
    type = RecipeType.ZONING_SCHEDULE

    def match(self, sheet: SheetInfo) -> bool:
        if sheet.drawing_title and _ZONING_TITLE_RE.search(sheet.drawing_title):
            return True
        if sheet.drawing_no:
            return bool(_ZONING_DRAWING_RE.search(sheet.drawing_no) or _ZONING_A004_RE.search(sheet.drawing_no))
        return False

    def _total_units(self, lines: list[PageLine]) -> tuple[int, str] | None:
        for line in lines:
            if any(p.search(line.text) for p in _DWELLING_UNITS_LINE_RES):
                m = _DWELLING_UNITS_VALUE_RE.search(line.text)
                if m and 0 < int(m.group(1)) < TOTAL_UNITS_MAX:
                    return int(m.group(1)), line.text
        for line in lines:
            m = _TOTAL_LINE_VALUE_RE.search(line.text)
            if m and 0 < int(m.group(1)) < TOTAL_UNITS_MAX:
                return int(m.group(1)), line.text
        return None

    def extract(self, params: RecipeParams) -> RecipeResult:
        builder = FieldBuilder()
        unit_mix: dict[str, int] = {}
        tables_found = 0

        for page in params.ordered_pages():
            lines = params.lines_for(page)
            far = extract_far_from_lines(lines, page)
            if far:
                builder.offer("lot_area_sf", far.lot_area_sf, page, far.source.evidence, TABLE)
                builder.offer("zoning_floor_area_sf", far.zoning_floor_area_sf, page, far.source.evidence, TABLE)
                builder.offer("far", far.proposed_far, page, far.source.evidence, TABLE)

            mix, count, _ = _bedroom_mix_from_tables(params.items_for(page), page)
            tables_found += count
            for key, n in mix.items():
                unit_mix[key] = unit_mix.get(key, 0) + n

            if builder.get("total_units") is None:
                hit = self._total_units(lines)
                if hit:
                    builder.offer("total_units", hit[0], page, hit[1][:SHORT_SNIPPET], TABLE)

        lot, zfa = builder.get("lot_area_sf"), builder.get("zoning_floor_area_sf")
        far_value = builder.get("far")
        if far_value is None and lot and zfa and lot > 0:
            far_value = round(zfa / lot, 2)

        confidence = 0.4
        if lot:
            confidence += 0.15
        if zfa:
            confidence += 0.15
        if far_value:
            confidence += 0.1
        if tables_found:
            confidence += 0.1

        fields = {
            "lot_area_sf": lot,
            "zoning_floor_area_sf": zfa,
            "far": far_value,
            "total_units": builder.get("total_units"),
            "unit_mix": unit_mix,
            "tables_found": tables_found,
        }
        return self._result(params, fields, builder.evidence, min(0.95, confidence))


_FLOOR_PLAN_TITLE_RE = re.compile(r"(FLOOR\s+PLAN|TYPICAL\s+FLOOR|UNIT\s+PLAN)", re.IGNORECASE)
_FLOOR_PLAN_EXCLUDE_RE = re.compile(r"(SITE\s+PLAN|FOUNDATION\s+PLAN|SUSTAINABLE\s+ROOF)", re.IGNORECASE)
_UNIT_SIZE_LABEL_RE = re.compile(
    r"(STUDIO|ONE[- ]?BEDROOM|TWO[- ]?BEDROOM|THREE[- ]?BEDROOM|1[- ]?BR|2[- ]?BR|3[- ]?BR)"
    r"\s+(?:APT\.?\s+)?(\d{2,4})\s*(?:SF|SQ\.?\s*FT)",
    re.IGNORECASE,
)
_UNIT_LABEL = r"\b(?:UNIT|APT)\b\.?\s*([A-Z0-9][-A-Z0-9]*)"
_AREA_LABEL = r"(\d{2,4})\s*(?:SF|SQ\.?\s*FT)"
# (pattern, group holding the unit id, group holding the area)
_UNIT_LABEL_PATTERNS: list[tuple[re.Pattern, int, int]] = [
    (re.compile(_UNIT_LABEL + r"\s+" + _AREA_LABEL, re.IGNORECASE), 1, 2),
    (re.compile(_AREA_LABEL + r"\s+" + _UNIT_LABEL, re.IGNORECASE), 2, 1),
    (re.compile(_UNIT_LABEL + r"[\s\S]{0,30}?" + _AREA_LABEL, re.IGNORECASE), 1, 2),
]
_FLOOR_TABLE_HEADER_RE = re.compile(r"UNIT|ROOM|AREA|LIGHT|AIR", re.IGNORECASE)
_TABLE_UNIT_ID_RE = re.compile(r"\bUNIT\s+([A-Z0-9][-A-Z0-9]*)", re.IGNORECASE)
_TABLE_AREA_RE = re.compile(r"\b(\d{3,5})\s*SF\b", re.IGNORECASE)
# Heading words that follow UNIT in sheet titles ("TYPICAL UNIT PLAN").
_UNIT_HEADING_WORDS = frozenset({"PLAN", "PLANS", "SCHEDULE", "TYPE", "TYPES", "MIX", "SIZE", "SIZES", "LAYOUT"})

_SIZE_LABEL_TYPES = {
    "STUDIO": BedroomType.STUDIO,
    "ONEBEDROOM": BedroomType.BR1,
    "1BR": BedroomType.BR1,
    "TWOBEDROOM": BedroomType.BR2,
    "2BR": BedroomType.BR2,
    "THREEBEDROOM": BedroomType.BR3,
    "3BR": BedroomType.BR3,
}


def normalize_size_label(raw: str) -> BedroomType:
    return _SIZE_LABEL_TYPES.get(re.sub(r"[- ]", "", raw.upper()), BedroomType.UNKNOWN)


def _area_ok(value: int) -> bool:
    return LABEL_AREA_RANGE[0] <= value <= LABEL_AREA_RANGE[1]


class FloorPlanLabelRecipe(Recipe):
    type = RecipeType.FLOOR_PLAN_LABEL

    def match(self, sheet: SheetInfo) -> bool:
        title = sheet.drawing_title
        if not title or _FLOOR_PLAN_EXCLUDE_RE.search(title):
            return False
        return bool(_FLOOR_PLAN_TITLE_RE.search(title))

    def extract(self, params: RecipeParams) -> RecipeResult:
        builder = FieldBuilder()
        sizes_by_type: dict[str, list[float]] = {}
        counts_by_type: dict[str, int] = {}
        records: list[UnitRecord] = []
        seen: set[str] = set()

        def add(unit_id: str, area: int, page: int, snippet: str, method: ExtractionMethod, field_prefix: str) -> bool:
            if unit_id in seen or unit_id.upper() in _UNIT_HEADING_WORDS or not _area_ok(area):
                return False
            seen.add(unit_id)
            snippet = " ".join(snippet.split())
            records.append(
                UnitRecord(
                    unit_id=unit_id,
                    area_sf=float(area),
                    source=UnitRecordSource(page=page, method=method, evidence=evidence(snippet)),
                )
            )
            builder.note(f"{field_prefix}_{unit_id}", page, snippet, method.value)
            return True

        for page in params.ordered_pages():
            text = params.text_for(page)
            for m in _UNIT_SIZE_LABEL_RE.finditer(text):
                bedroom = normalize_size_label(m.group(1)).value
                sizes_by_type.setdefault(bedroom, []).append(float(m.group(2)))
                counts_by_type[bedroom] = counts_by_type.get(bedroom, 0) + 1
                builder.note(f"unit_size_{bedroom}", page, m.group(0))

            # each area label in the text belongs to at most one unit
            used_areas: set[int] = set()
            for pattern, id_group, area_group in _UNIT_LABEL_PATTERNS:
                for m in pattern.finditer(text):
                    if m.start(area_group) in used_areas:
                        continue
                    if add(m.group(id_group), int(m.group(area_group)), page, m.group(0),
                           ExtractionMethod.TEXT_REGEX, "unit_label"):
                        used_areas.add(m.start(area_group))

            items = params.items_for(page)
            for rec in find_unit_labels_near_areas(items, page):
                if rec.unit_id and rec.area_sf:
                    add(rec.unit_id, int(rec.area_sf), page, rec.source.evidence,
                        ExtractionMethod.TEXT_REGEX, "unit_label")

            for table in reconstruct_tables(items, page):
                header = " ".join(c.text for c in table.header_row.cells)
                if not _FLOOR_TABLE_HEADER_RE.search(header):
                    continue
                for row in table.data_rows:
                    full_text = " ".join(c.text for c in row.cells)
                    uid = _TABLE_UNIT_ID_RE.search(full_text)
                    area = _TABLE_AREA_RE.search(full_text)
                    if uid and area:
                        add(uid.group(1), int(area.group(1)), page, full_text[:SHORT_SNIPPET],
                            ExtractionMethod.TEXT_TABLE, "unit_table")

        total_labels = sum(counts_by_type.values()) + len(records)
        confidence = min(0.95, 0.5 + 0.05 * total_labels) if total_labels else 0.2
        fields = {
            "unit_sizes_by_type": sizes_by_type,
            "unit_counts_by_type": counts_by_type,
            "unit_records": records,
        }
        return self._result(params, fields, builder.evidence, confidence)


_CODE_NOTES_TITLE_RE = re.compile(r"(CODE\s+NOTES|GENERAL\s+CODE|OCCUPANT\s+LOAD)", re.IGNORECASE)
_CODE_NOTES_DRAWING_RE = re.compile(r"^G-", re.IGNORECASE)
_OCCUPANT_HEADER_RE = re.compile(
    r"\bOCCUPANT\s+LOAD\b|(?:NAME|UNIT).*AREA.*(?:OCCUPANT|NO\b)", re.IGNORECASE
)
_AREA_PER_OCCUPANT_RE = re.compile(r"200\s*SF")
_OCCUPANT_TABLE_HEADER_RE = re.compile(r"NAME|UNIT|AREA|OCCUPANT", re.IGNORECASE)
_NAME_COL_RE = re.compile(r"\bNAME\b|\bUNIT\b", re.IGNORECASE)
_AREA_COL_RE = re.compile(r"\bAREA\b|\bSF\b", re.IGNORECASE)
_AREA_PER_RE = re.compile(r"AREA\s*PER", re.IGNORECASE)
_CELL_AREA_RE = re.compile(r"(\d{2,5})")
_ROW_AREA_FALLBACK_RE = re.compile(r"\b(\d{3,5})\s*(?:SF)?\b", re.IGNORECASE)
_UNIT_ROW_RE = re.compile(
    r"\bUNIT\s+([A-Z0-9][-A-Z0-9]*)\s+(\d{2,5})\s*(?:SF)?\s+(?:200\s*(?:SF)?\s+)?(\d{1,3})\b",
    re.IGNORECASE,
)
_SIMPLE_UNIT_ROW_RE = re.compile(r"\bUNIT\s+([A-Z0-9][-A-Z0-9]*)\b.*?\b(\d{3,5})\s*SF\b", re.IGNORECASE)
_TOTAL_OCCUPANCY_RE = re.compile(r"TOTAL\s+OCCUPANCY[:\s]*(\d{1,4})", re.IGNORECASE)


def _occupant_columns(cells: list[Cell]) -> tuple[int, int]:
    name_col = area_col = -1
    for ci, cell in enumerate(cells):
        text = cell.text.upper()
        if name_col < 0 and _NAME_COL_RE.search(text):
            name_col = ci
        if area_col < 0 and _AREA_COL_RE.search(text) and not _AREA_PER_RE.search(text):
            area_col = ci
    return name_col, area_col


class OccupantLoadRecipe(Recipe):
    type = RecipeType.OCCUPANT_LOAD

    def match(self, sheet: SheetInfo) -> bool:
        title = sheet.drawing_title or ""
        if title and (_OCCUPANT_HEADER_RE.search(title) or _CODE_NOTES_TITLE_RE.search(title)):
            return True
        return bool(sheet.drawing_no and _CODE_NOTES_DRAWING_RE.search(sheet.drawing_no))

    def extract(self, params: RecipeParams) -> RecipeResult:
        builder = FieldBuilder()
        records: list[UnitRecord] = []
        seen: set[str] = set()

        def add(unit_id: str, area: int | None, page: int, text: str) -> bool:
            if unit_id in seen or area is None or not _area_ok(area):
                return False
            seen.add(unit_id)
            records.append(
                UnitRecord(
                    unit_id=unit_id,
                    area_sf=float(area),
                    source=UnitRecordSource(page=page, method=ExtractionMethod.TEXT_TABLE, evidence=evidence(text)),
                )
            )
            builder.note(f"occupant_unit_{unit_id}", page, text[:SHORT_SNIPPET], TABLE)
            return True

        for page in params.ordered_pages():
            text = params.text_for(page)
            if not (_OCCUPANT_HEADER_RE.search(text) or _AREA_PER_OCCUPANT_RE.search(text)):
                continue

            found_on_page = 0
            for table in reconstruct_tables(params.items_for(page), page):
                header = " ".join(c.text for c in table.header_row.cells)
                if not _OCCUPANT_TABLE_HEADER_RE.search(header):
                    continue
                _, area_col = _occupant_columns(table.header_row.cells)
                for row in table.data_rows:
                    full_text = " ".join(c.text for c in row.cells)
                    uid = _TABLE_UNIT_ID_RE.search(full_text)
                    if not uid:
                        continue
                    area: int | None = None
                    if 0 <= area_col < len(row.cells):
                        m = _CELL_AREA_RE.search(row.cells[area_col].text)
                        if m:
                            area = int(m.group(1))
                    if not area:
                        m = _ROW_AREA_FALLBACK_RE.search(full_text)
                        if m:
                            area = int(m.group(1))
                    if add(uid.group(1), area, page, full_text):
                        found_on_page += 1

            lines = params.lines_for(page)
            if not found_on_page:
                for line in lines:
                    m = _UNIT_ROW_RE.search(line.text) or _SIMPLE_UNIT_ROW_RE.search(line.text)
                    if m:
                        add(m.group(1), int(m.group(2)), page, line.text)

            for line in lines:
                m = _TOTAL_OCCUPANCY_RE.search(line.text)
                if m:
                    builder.offer("total_occupancy", int(m.group(1)), page, m.group(0), TABLE)
                    break

        confidence = min(0.95, 0.5 + 0.025 * len(records)) if records else 0.1
        fields = {
            "unit_records": records,
            "total_occupancy": builder.get("total_occupancy"),
            "total_units": len(records),
        }
        return self._result(params, fields, builder.evidence, confidence)


class GenericRecipe(Recipe):
    type = RecipeType.GENERIC

    def match(self, sheet: SheetInfo) -> bool:
        return True

    def extract(self, params: RecipeParams) -> RecipeResult:
        builder = FieldBuilder()
        unit_mix: dict[str, int] = {}
        for page in params.ordered_pages():
            mix, _, rows = _bedroom_mix_from_tables(params.items_for(page), page)
            for key, n in mix.items():
                unit_mix[key] = unit_mix.get(key, 0) + n
            for row_text in rows:
                builder.note("unit_record", page, row_text[:SHORT_SNIPPET], TABLE)

        total = sum(unit_mix.values())
        confidence = min(0.85, 0.3 + 0.02 * total) if total else 0.1
        return self._result(params, {"total_units": total, "unit_mix": unit_mix}, builder.evidence, confidence)


COVER_SHEET_RECIPE = CoverSheetRecipe()
ZONING_SCHEDULE_RECIPE = ZoningScheduleRecipe()
FLOOR_PLAN_LABEL_RECIPE = FloorPlanLabelRecipe()
OCCUPANT_LOAD_RECIPE = OccupantLoadRecipe()
GENERIC_RECIPE = GenericRecipe()

ALL_RECIPES: list[Recipe] = [
    COVER_SHEET_RECIPE,
    ZONING_SCHEDULE_RECIPE,
    FLOOR_PLAN_LABEL_RECIPE,
    OCCUPANT_LOAD_RECIPE,
    GENERIC_RECIPE,
]
RECIPES_BY_TYPE: dict[RecipeType, Recipe] = {r.type: r for r in ALL_RECIPES}


def classify_sheet(sheet: SheetInfo) -> RecipeType:
    for recipe in ALL_RECIPES:
        if recipe.type is not RecipeType.GENERIC and recipe.match(sheet):
            return recipe.type
    return RecipeType.GENERIC


def _coerce_override(raw: SheetOverride | str) -> RecipeType | str | None:
    if raw == SKIP:
        return SKIP
    try:
        return RecipeType(raw)
    except ValueError:
        logger.warning("ignoring unknown recipe override %r", raw)
        return None


def select_recipes(
    sheet_index: SheetIndex,
    overrides: dict[int, SheetOverride] | None = None,
) -> list[tuple[Recipe, list[int]]]:
    """Assign every indexed page to exactly one recipe.

    Overrides bypass classification (``"skip"`` drops the page). Results are
    ordered by each recipe's lowest page, pages ascending within a recipe.
    """
    overrides = overrides or {}
    assigned: dict[RecipeType, list[int]] = {}

    for sheet in sheet_index.pages:
        page = sheet.page_number
        override = _coerce_override(overrides[page]) if page in overrides else None
        if override == SKIP:
            continue
        recipe_type = override if isinstance(override, RecipeType) else classify_sheet(sheet)
        assigned.setdefault(recipe_type, []).append(page)

    selected = [
        (RECIPES_BY_TYPE[rtype], sorted(pages))
        for rtype, pages in assigned.items()
        if pages
    ]
    order = {r.type: i for i, r in enumerate(ALL_RECIPES)}
    selected.sort(key=lambda sel: (sel[1][0], order[sel[0].type]))
    return selected

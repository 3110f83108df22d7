from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union


class BedroomType(str, Enum):
    STUDIO = "STUDIO"
    BR1 = "1BR"
    BR2 = "2BR"
    BR3 = "3BR"
    BR4_PLUS = "4BR_PLUS"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def coerce(cls, raw: Any) -> BedroomType:
        """Map an arbitrary value onto a member, UNKNOWN when unrecognized."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return cls.UNKNOWN


class AllocationKind(str, Enum):
    MARKET = "MARKET"
    AFFORDABLE = "AFFORDABLE"
    MIH_RESTRICTED = "MIH_RESTRICTED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def coerce(cls, raw: Any) -> AllocationKind:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return cls.UNKNOWN


class ExtractionMethod(str, Enum):
    TEXT_TABLE = "TEXT_TABLE"
    TEXT_REGEX = "TEXT_REGEX"
    OCR = "OCR"


class RecipeType(str, Enum):
    COVER_SHEET = "COVER_SHEET"
    ZONING_SCHEDULE = "ZONING_SCHEDULE"
    FLOOR_PLAN_LABEL = "FLOOR_PLAN_LABEL"
    OCCUPANT_LOAD = "OCCUPANT_LOAD"
    GENERIC = "GENERIC"


SKIP = "skip"
SheetOverride = Union[RecipeType, Literal["skip"]]
CandidateTag = Literal["schedule", "far"]
NormalizationSource = Literal["llm", "local_fallback", "none"]


@dataclass(frozen=True)
class PositionedTextItem:
    """A text run in PDF point space (origin bottom-left, y grows upward)."""

    text: str
    x: float
    y: float
    width: float
    height: float
    page: int


@dataclass
class PageLine:
    """Items sharing a Y-band, ordered left to right."""

    y: float
    items: list[PositionedTextItem]
    text: str
    page: int


@dataclass
class Cell:
    text: str
    x0: float
    x1: float


@dataclass
class PageTableRow:
    cells: list[Cell]
    row_text: str
    y: float
    page: int


@dataclass
class BBox:
    x0: float
    y0: float
    x1: float
    y1: float


@dataclass
class TableRegion:
    header_row: PageTableRow
    data_rows: list[PageTableRow]
    page: int
    bbox: BBox


@dataclass
class UnitRecordSource:
    page: int
    method: ExtractionMethod
    evidence: str


@dataclass
class UnitRecord:
    """One extracted dwelling unit.

    ``bedroom_type`` and ``allocation`` are always enum members; raw strings
    are coerced on construction so an unrecognized value becomes UNKNOWN.
    """

    source: UnitRecordSource
    bedroom_type: BedroomType = BedroomType.UNKNOWN
    allocation: AllocationKind = AllocationKind.UNKNOWN
    unit_id: str | None = None
    floor: str | None = None
    bedroom_count: int | None = None
    ami_band: int | None = None
    area_sf: float | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        self.bedroom_type = BedroomType.coerce(self.bedroom_type)
        self.allocation = AllocationKind.coerce(self.allocation)

    def populated_fields(self) -> int:
        count = 0
        if self.unit_id:
            count += 1
        if self.bedroom_type is not BedroomType.UNKNOWN:
            count += 1
        if self.bedroom_count is not None:
            count += 1
        if self.allocation is not AllocationKind.UNKNOWN:
            count += 1
        if self.ami_band is not None:
            count += 1
        if self.area_sf is not None:
            count += 1
        if self.floor is not None:
            count += 1
        return count


@dataclass
class UnitMixTotals:
    total_units: int
    by_bedroom_type: dict[str, int] = field(default_factory=dict)
    by_allocation: dict[str, int] = field(default_factory=dict)
    by_allocation_and_bedroom: dict[str, dict[str, int]] = field(default_factory=dict)
    by_ami_band: dict[str, int] | None = None

    def bedroom_mix_sum(self) -> int:
        return sum(
            count
            for bedroom, count in self.by_bedroom_type.items()
            if bedroom != BedroomType.UNKNOWN.value
        )


@dataclass
class ConfidenceReport:
    overall: float
    warnings: list[str] = field(default_factory=list)
    by_page: dict[int, float] = field(default_factory=dict)


@dataclass
class CandidatePage:
    page: int
    score: int
    tags: list[CandidateTag]


@dataclass
class SheetInfo:
    page_number: int
    confidence: float
    method: Literal["PDF_TEXT", "OCR_CROP"]
    drawing_no: str | None = None
    drawing_title: str | None = None
    project_title: str | None = None


@dataclass
class SheetIndex:
    pages: list[SheetInfo]
    by_drawing_no: dict[str, int] = field(default_factory=dict)
    by_title_key: dict[str, list[int]] = field(default_factory=dict)

    def sheet_for_page(self, page: int) -> SheetInfo | None:
        for sheet in self.pages:
            if sheet.page_number == page:
                return sheet
        return None


@dataclass
class RecipeEvidence:
    field: str
    page: int
    method: str
    snippet: str


@dataclass
class RecipeResult:
    recipe: RecipeType
    pages: list[int]
    fields: dict[str, Any]
    evidence: list[RecipeEvidence]
    confidence: float


@dataclass
class FarExtraction:
    lot_area_sf: float | None
    zoning_floor_area_sf: float | None
    proposed_floor_area_sf: float | None
    proposed_far: float | None
    source: UnitRecordSource
    confidence: float


@dataclass
class CoverSheetExtraction:
    lot_area_sf: float | None = None
    far: float | None = None
    total_units: int | None = None
    floors: int | None = None
    building_area_sf: float | None = None
    zone: str | None = None
    zoning_map: str | None = None
    occupancy_group: str | None = None
    construction_class: str | None = None
    scope_of_work: str | None = None
    block: str | None = None
    lot: str | None = None
    bin: str | None = None


@dataclass
class PlanTotals:
    total_units: int | None = None
    affordable_units: int | None = None
    market_units: int | None = None


@dataclass
class UnitMix:
    studio: int | None = None
    br1: int | None = None
    br2: int | None = None
    br3: int | None = None
    br4plus: int | None = None

    def total(self) -> int:
        return sum(v or 0 for v in (self.studio, self.br1, self.br2, self.br3, self.br4plus))


@dataclass
class UnitSizes:
    by_type: dict[str, list[float]] = field(default_factory=dict)
    avg_by_type: dict[str, float | None] = field(default_factory=dict)


@dataclass
class ZoningFigures:
    lot_area_sf: float | None = None
    zoning_floor_area_sf: float | None = None
    far: float | None = None


@dataclass
class NormalizedPlanExtract:
    totals: PlanTotals
    unit_mix: UnitMix
    unit_sizes: UnitSizes
    zoning: ZoningFigures
    evidence: list[RecipeEvidence]
    confidence: ConfidenceReport


@dataclass
class ValidationResult:
    warnings: list[str]
    adjusted_confidence: float


@dataclass
class OcrPageResult:
    page: int
    text: str
    confidence: float
    lines: list[str]


@dataclass
class CropRegion:
    """Crop box in percent of page width/height, measured from the top-left."""

    x_pct: float
    y_pct: float
    w_pct: float
    h_pct: float


@dataclass
class PlutoRecord:
    lotarea: float
    residfar: float
    bldgarea: float


@dataclass
class PlutoCheckResult:
    warnings: list[str]
    lot_area: float | None = None
    resid_far: float | None = None
    bldg_area: float | None = None
    implied_max_units: int | None = None


@dataclass
class PdfDocument:
    """Everything the core needs from a loaded PDF."""

    page_count: int
    page_texts: list[str]
    positioned_items: dict[int, list[PositionedTextItem]]
    warnings: list[str] = field(default_factory=list)
    path: str | None = None

    def page_text(self, page: int) -> str:
        if 1 <= page <= len(self.page_texts):
            return self.page_texts[page - 1]
        return ""


@dataclass
class ExtractedPlanData:
    status: Literal["complete", "partial"]
    totals: PlanTotals
    unit_mix: UnitMix
    unit_records: list[UnitRecord]
    unit_totals: UnitMixTotals
    far: FarExtraction | None
    confidence: ConfidenceReport
    pages_used: list[int]
    tables_found: int
    errors: list[str]
    text_yield: Literal["high", "low", "none"] = "none"
    needs_ocr: bool = False
    sheet_index: SheetIndex | None = None
    recipe_results: list[RecipeResult] = field(default_factory=list)
    cover_sheet: CoverSheetExtraction | None = None
    declared_units: int | None = None
    normalized_extract: NormalizedPlanExtract | None = None
    normalization_source: NormalizationSource = "none"
    normalization_reason: str | None = None
    validation: ValidationResult | None = None
    pluto_check: PlutoCheckResult | None = None
    ocr_provider_used: str = "none"
    bbl: str | None = None

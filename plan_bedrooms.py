from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass

from plan_models import BedroomType, UnitRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AreaThresholds:
    """Upper area bound (inclusive, SF) for each bedroom tier."""

    studio_max: float
    one_br_max: float
    two_br_max: float
    three_br_max: float


DEFAULT_THRESHOLDS = AreaThresholds(450, 650, 950, 1300)

# Districts not listed here fall back to DEFAULT_THRESHOLDS (R8-equivalent).
ZONE_THRESHOLDS: dict[str, AreaThresholds] = {
    "R6": AreaThresholds(400, 600, 850, 1150),
    "R7": AreaThresholds(425, 625, 900, 1200),
    "R8": AreaThresholds(450, 650, 950, 1300),
    "R9": AreaThresholds(475, 700, 1000, 1400),
    "R10": AreaThresholds(500, 750, 1100, 1500),
    "C4": AreaThresholds(450, 650, 950, 1300),
    "C6": AreaThresholds(475, 700, 1000, 1400),
}

_ZONE_PREFIX_RE = re.compile(r"^([A-Z]+\d+)")
_FLOOR_DIGITS_RE = re.compile(r"^(\d{1,2})")


@dataclass
class BedroomInference:
    bedroom_type: BedroomType
    count: int
    confidence: float


def get_thresholds(zone_district: str | None = None) -> AreaThresholds:
    if not zone_district:
        return DEFAULT_THRESHOLDS
    m = _ZONE_PREFIX_RE.match(zone_district.strip().upper())
    if not m:
        return DEFAULT_THRESHOLDS
    return ZONE_THRESHOLDS.get(m.group(1), DEFAULT_THRESHOLDS)


def infer_bedroom_from_area(area_sf: float, thresholds: AreaThresholds = DEFAULT_THRESHOLDS) -> BedroomInference:
    if area_sf <= thresholds.studio_max:
        return BedroomInference(BedroomType.STUDIO, 0, 0.65)
    if area_sf <= thresholds.one_br_max:
        return BedroomInference(BedroomType.BR1, 1, 0.60)
    if area_sf <= thresholds.two_br_max:
        return BedroomInference(BedroomType.BR2, 2, 0.55)
    if area_sf <= thresholds.three_br_max:
        return BedroomInference(BedroomType.BR3, 3, 0.50)
    return BedroomInference(BedroomType.BR4_PLUS, 4, 0.45)


def infer_floor_from_unit_id(unit_id: str) -> str | None:
    """``PH3`` -> ``"PH"``, ``12B`` -> ``"12"``, anything else -> ``None``."""
    uid = unit_id.strip()
    if uid.upper().startswith("PH"):
        return "PH"
    m = _FLOOR_DIGITS_RE.match(uid)
    return m.group(1) if m else None


def _format_area(area_sf: float) -> str:
    return f"{area_sf:g}"


def apply_bedroom_inference(
    records: list[UnitRecord],
    zone_district: str | None = None,
) -> tuple[list[UnitRecord], int]:
    """Fill missing floors and UNKNOWN bedroom types; returns new records and the inferred count.

    Inferred bedroom types are flagged in ``notes`` so they never pass as
    directly parsed values.
    """
    thresholds = get_thresholds(zone_district)
    updated: list[UnitRecord] = []
    inferred = 0

    for record in records:
        changes: dict = {}
        if not record.floor and record.unit_id:
            floor = infer_floor_from_unit_id(record.unit_id)
            if floor:
                changes["floor"] = floor

        if record.bedroom_type is BedroomType.UNKNOWN and record.area_sf and record.area_sf > 0:
            guess = infer_bedroom_from_area(record.area_sf, thresholds)
            note = f"Bedroom type inferred from {_format_area(record.area_sf)} SF"
            changes["bedroom_type"] = guess.bedroom_type
            changes["bedroom_count"] = guess.count
            changes["notes"] = f"{record.notes}; {note}" if record.notes else note
            inferred += 1

        updated.append(dataclasses.replace(record, **changes) if changes else record)

    if inferred:
        logger.debug("inferred bedroom type for %d of %d records", inferred, len(records))
    return updated, inferred

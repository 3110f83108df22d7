from __future__ import annotations

import math
import re
from dataclasses import dataclass

from plan_models import ExtractionMethod, PositionedTextItem, UnitRecord, UnitRecordSource
from plan_rows import evidence

_AREA_LABEL_RE = re.compile(r"(\d{2,5})\s*(?:SF|SQ\.?\s*FT)", re.IGNORECASE)
_UNIT_LABEL_RE = re.compile(r"\b(?:UNIT|APT)\b\.?\s*([A-Z0-9][-A-Z0-9]*)", re.IGNORECASE)

LABEL_AREA_RANGE = (100, 5000)
MAX_LABEL_DISTANCE = 80.0


@dataclass
class AreaLabel:
    area_sf: float
    x: float
    y: float
    label: str
    item: PositionedTextItem


def _center(item: PositionedTextItem) -> tuple[float, float]:
    return item.x + item.width / 2, item.y + item.height / 2


def _distance(a: PositionedTextItem, b: PositionedTextItem) -> float:
    (ax, ay), (bx, by) = _center(a), _center(b)
    return math.hypot(ax - bx, ay - by)


def find_area_labels_on_page(items: list[PositionedTextItem]) -> list[AreaLabel]:
    labels: list[AreaLabel] = []
    lo, hi = LABEL_AREA_RANGE
    for item in items:
        m = _AREA_LABEL_RE.search(item.text)
        if not m:
            continue
        value = int(m.group(1))
        if lo <= value <= hi:
            cx, cy = _center(item)
            labels.append(AreaLabel(float(value), cx, cy, m.group(0), item))
    return labels


def find_unit_labels_near_areas(
    items: list[PositionedTextItem],
    page: int,
    max_distance: float = MAX_LABEL_DISTANCE,
) -> list[UnitRecord]:
    """Pair each unit label with the closest unused area label within *max_distance*.

    Units are visited in item order; each unit id and each area label is
    used at most once.
    """
    areas = find_area_labels_on_page(items)
    used_units: set[str] = set()
    used_areas: set[int] = set()
    records: list[UnitRecord] = []

    for item in items:
        m = _UNIT_LABEL_RE.search(item.text)
        if not m:
            continue
        unit_id = m.group(1)
        if unit_id in used_units:
            continue

        best_idx = -1
        best_dist = math.inf
        for idx, area in enumerate(areas):
            if idx in used_areas:
                continue
            d = _distance(item, area.item)
            if d < best_dist and d <= max_distance:
                best_idx, best_dist = idx, d

        if best_idx < 0:
            continue
        area = areas[best_idx]
        used_units.add(unit_id)
        used_areas.add(best_idx)
        records.append(
            UnitRecord(
                unit_id=unit_id,
                area_sf=area.area_sf,
                source=UnitRecordSource(
                    page=page,
                    method=ExtractionMethod.TEXT_REGEX,
                    evidence=evidence(f"{item.text} ~ {area.label}"),
                ),
            )
        )
    return records

from __future__ import annotations

import logging

from plan_models import (
    BedroomType,
    FarExtraction,
    NormalizedPlanExtract,
    PlutoCheckResult,
    PlutoRecord,
    ValidationResult,
)

logger = logging.getLogger(__name__)

# Typical NYC unit sizes (SF); averages outside [min * 0.8, max * 1.3] are flagged.
UNIT_SIZE_RANGES: dict[str, tuple[float, float]] = {
    BedroomType.STUDIO.value: (300, 600),
    BedroomType.BR1.value: (500, 850),
    BedroomType.BR2.value: (700, 1200),
    BedroomType.BR3.value: (900, 1500),
}

FAR_TOLERANCE = 0.02
UNIT_COUNT_TOLERANCE = 0.05
LOT_AREA_TOLERANCE = 0.10
PLUTO_FAR_HEADROOM = 1.05

FAR_PENALTY = 0.10
UNIT_COUNT_PENALTY = 0.08
PLUTO_LOT_PENALTY = 0.05
PLUTO_FAR_PENALTY = 0.05

# Screening estimate: 80% of max residential floor area, 800 SF per unit.
NET_TO_GROSS = 0.80
SF_PER_UNIT = 800
PLUTO_UNITS_TOLERANCE = 0.4
PLUTO_UNITS_MAX_CONFIDENCE = 0.8


def _fmt_sf(value: float) -> str:
    return f"{int(value):,}" if float(value).is_integer() else f"{value:,.2f}"


def validate_extraction(
    normalized: NormalizedPlanExtract,
    pluto: PlutoRecord | None = None,
) -> ValidationResult:
    """Advisory consistency checks; each failed check adds a warning and maybe a penalty.

    ``adjusted_confidence = clamp(base - sum(penalties), 0.1, 0.99)``.
    """
    warnings: list[str] = []
    penalty = 0.0
    zoning = normalized.zoning
    lot, zfa, far = zoning.lot_area_sf, zoning.zoning_floor_area_sf, zoning.far

    if lot and zfa and lot > 0 and far is not None:
        computed = zfa / lot
        diff = abs(far - computed) / computed
        if diff > FAR_TOLERANCE:
            warnings.append(
                f"FAR inconsistency: extracted {far:.2f} vs computed {computed:.2f} "
                f"(ZFA/Lot Area). Difference: {diff * 100:.1f}%"
            )
            penalty += FAR_PENALTY

    total = normalized.totals.total_units
    mix_total = normalized.unit_mix.total()
    if total and total > 0 and mix_total > 0:
        diff = abs(total - mix_total) / total
        if diff > UNIT_COUNT_TOLERANCE:
            warnings.append(
                f"Unit count mismatch: total {total} vs bedroom mix sum {mix_total} ({diff * 100:.1f}% diff)"
            )
            penalty += UNIT_COUNT_PENALTY

    for bedroom, sizes in normalized.unit_sizes.by_type.items():
        bounds = UNIT_SIZE_RANGES.get(bedroom)
        if not bounds or not sizes:
            continue
        lo, hi = bounds
        avg = sum(sizes) / len(sizes)
        if avg < lo * 0.8 or avg > hi * 1.3:
            warnings.append(
                f"{bedroom} avg size {round(avg)} SF is outside typical NYC range ({lo:g}-{hi:g} SF)"
            )

    if pluto:
        if lot and pluto.lotarea > 0:
            diff = abs(lot - pluto.lotarea) / pluto.lotarea
            if diff > LOT_AREA_TOLERANCE:
                warnings.append(
                    f"Lot area mismatch: extracted {_fmt_sf(lot)} SF vs PLUTO {_fmt_sf(pluto.lotarea)} SF "
                    f"({diff * 100:.1f}% diff)"
                )
                penalty += PLUTO_LOT_PENALTY
        if far is not None and pluto.residfar > 0 and far > pluto.residfar * PLUTO_FAR_HEADROOM:
            warnings.append(
                f"Extracted FAR {far:.2f} exceeds PLUTO residential FAR {pluto.residfar:.2f} "
                f"by {(far / pluto.residfar - 1) * 100:.1f}%"
            )
            penalty += PLUTO_FAR_PENALTY

    adjusted = max(0.1, min(0.99, round(normalized.confidence.overall - penalty, 4)))
    if warnings:
        logger.debug("validation raised %d warnings, penalty %.2f", len(warnings), penalty)
    return ValidationResult(warnings=warnings, adjusted_confidence=adjusted)


def cross_check_with_pluto(
    total_units: int | None,
    far: FarExtraction | None,
    overall_confidence: float,
    pluto: PlutoRecord | None,
) -> PlutoCheckResult:
    """Screen extracted totals against the registry's lot record."""
    if pluto is None:
        return PlutoCheckResult(warnings=[])

    lot_area = pluto.lotarea or 0
    resid_far = pluto.residfar or 0
    result = PlutoCheckResult(
        warnings=[],
        lot_area=lot_area,
        resid_far=resid_far,
        bldg_area=pluto.bldgarea or 0,
    )

    if lot_area > 0 and resid_far > 0:
        implied = round(lot_area * resid_far * NET_TO_GROSS / SF_PER_UNIT)
        result.implied_max_units = implied
        if total_units and total_units > 0 and implied > 0:
            diff = abs(total_units - implied) / implied
            if diff > PLUTO_UNITS_TOLERANCE and overall_confidence < PLUTO_UNITS_MAX_CONFIDENCE:
                result.warnings.append(
                    f"Plan total ({total_units} units) differs from PLUTO screening estimate "
                    f"({implied} units) by {round(diff * 100)}%; verify plan data."
                )

    if far and far.lot_area_sf and lot_area > 0:
        diff = abs(far.lot_area_sf - lot_area) / lot_area
        if diff > LOT_AREA_TOLERANCE:
            result.warnings.append(
                f"PDF lot area ({_fmt_sf(far.lot_area_sf)} SF) differs from PLUTO "
                f"({_fmt_sf(lot_area)} SF) by {round(diff * 100)}%."
            )

    if far and far.proposed_far and resid_far > 0 and far.proposed_far > resid_far * PLUTO_FAR_HEADROOM:
        result.warnings.append(
            f"PDF proposed FAR ({far.proposed_far:g}) exceeds PLUTO residential FAR ({resid_far:g}); "
            "may require zoning override or bonus."
        )
    return result

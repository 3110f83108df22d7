"""Merge recipe results into one NormalizedPlanExtract.

A remote normalizer (an HTTP service fronting an LLM) is tried when
configured; the deterministic local merge is always available and is used
whenever the remote path is disabled, unconfigured or fails.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from plan_config import LOCAL_FALLBACK_MAX_CONFIDENCE, Settings
from plan_errors import NormalizerUnavailable
from plan_models import (
    BedroomType,
    ConfidenceReport,
    CoverSheetExtraction,
    NormalizationSource,
    NormalizedPlanExtract,
    PlanTotals,
    RecipeEvidence,
    RecipeResult,
    RecipeType,
    UnitMix,
    UnitSizes,
    ZoningFigures,
)

logger = logging.getLogger(__name__)

LOCAL_FALLBACK_WARNING = "LLM normalization unavailable; using pattern-match results only"
CONTEXT_EVIDENCE_PER_RECIPE = 20


@dataclass
class NormalizeResult:
    extract: NormalizedPlanExtract
    source: NormalizationSource
    fallback_reason: str | None = None


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "value"):
        return value.value
    return str(value)


def build_context_string(recipe_results: list[RecipeResult]) -> str:
    sections: list[str] = []
    for result in recipe_results:
        pages = ", ".join(str(p) for p in result.pages)
        sections.append(
            f"--- Recipe: {result.recipe.value} (pages: {pages}, confidence: {result.confidence}) ---"
        )
        for key, value in result.fields.items():
            if value is None:
                continue
            if isinstance(value, (dict, list)) or dataclasses.is_dataclass(value):
                sections.append(f"{key}: {json.dumps(value, default=_jsonable)}")
            else:
                sections.append(f"{key}: {value}")
        if result.evidence:
            sections.append("Evidence:")
            for ev in result.evidence[:CONTEXT_EVIDENCE_PER_RECIPE]:
                sections.append(f'  [p.{ev.page}/{ev.method}] {ev.field}: "{ev.snippet}"')
    return "\n".join(sections)


class _Merge:
    """First-non-null-wins accumulator for the scalar figures."""

    def __init__(self) -> None:
        self.lot_area_sf: float | None = None
        self.zoning_floor_area_sf: float | None = None
        self.far: float | None = None
        self.total_units: int | None = None

    def offer(self, name: str, value: Any) -> None:
        if value and getattr(self, name) is None:
            setattr(self, name, value)


def build_local_fallback(recipe_results: list[RecipeResult]) -> NormalizedPlanExtract:
    """Deterministic merge of recipe outputs.

    Results are visited in the given order (lowest page first when they come
    from ``select_recipes``). Zoning-schedule unit mixes add up; generic mixes
    only fill bedroom types nobody else reported.
    """
    merged = _Merge()
    unit_mix: dict[str, int] = {}
    sizes_by_type: dict[str, list[float]] = {}
    evidence: list[RecipeEvidence] = []
    max_confidence = 0.0

    for result in recipe_results:
        evidence.extend(result.evidence)
        max_confidence = max(max_confidence, result.confidence)
        f = result.fields

        if result.recipe is RecipeType.COVER_SHEET:
            cover: CoverSheetExtraction | None = f.get("cover_sheet")
            if cover:
                merged.offer("lot_area_sf", cover.lot_area_sf)
                merged.offer("far", cover.far)
                merged.offer("total_units", cover.total_units)

        elif result.recipe is RecipeType.ZONING_SCHEDULE:
            for name in ("lot_area_sf", "zoning_floor_area_sf", "far", "total_units"):
                merged.offer(name, f.get(name))
            for key, n in (f.get("unit_mix") or {}).items():
                unit_mix[key] = unit_mix.get(key, 0) + n

        elif result.recipe is RecipeType.FLOOR_PLAN_LABEL:
            for key, sizes in (f.get("unit_sizes_by_type") or {}).items():
                sizes_by_type.setdefault(key, []).extend(sizes)

        elif result.recipe is RecipeType.GENERIC:
            merged.offer("total_units", f.get("total_units"))
            for key, n in (f.get("unit_mix") or {}).items():
                if not unit_mix.get(key):
                    unit_mix[key] = n

    avg_by_type: dict[str, float | None] = {
        key: (round(sum(sizes) / len(sizes)) if sizes else None)
        for key, sizes in sizes_by_type.items()
    }
    mix_total = sum(unit_mix.values())

    return NormalizedPlanExtract(
        totals=PlanTotals(total_units=merged.total_units or (mix_total or None)),
        unit_mix=UnitMix(
            studio=unit_mix.get(BedroomType.STUDIO.value),
            br1=unit_mix.get(BedroomType.BR1.value),
            br2=unit_mix.get(BedroomType.BR2.value),
            br3=unit_mix.get(BedroomType.BR3.value),
            br4plus=unit_mix.get(BedroomType.BR4_PLUS.value),
        ),
        unit_sizes=UnitSizes(by_type=sizes_by_type, avg_by_type=avg_by_type),
        zoning=ZoningFigures(
            lot_area_sf=merged.lot_area_sf,
            zoning_floor_area_sf=merged.zoning_floor_area_sf,
            far=merged.far,
        ),
        evidence=evidence,
        confidence=ConfidenceReport(
            overall=min(LOCAL_FALLBACK_MAX_CONFIDENCE, max_confidence),
            warnings=[LOCAL_FALLBACK_WARNING],
        ),
    )


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    return int(float(value))


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    return float(value)


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"{name} must be an object")
    return value


def normalized_from_dict(data: dict[str, Any]) -> NormalizedPlanExtract:
    """Build a NormalizedPlanExtract from the remote service's JSON payload.

    Counts and figures are coerced to numbers; anything that cannot be
    coerced raises TypeError or ValueError.
    """
    data = _as_dict(data, "normalized")
    totals = _as_dict(data.get("totals"), "totals")
    mix = _as_dict(data.get("unit_mix", data.get("unitMix")), "unit_mix")
    sizes = _as_dict(data.get("unit_sizes", data.get("unitSizes")), "unit_sizes")
    zoning = _as_dict(data.get("zoning"), "zoning")
    confidence = _as_dict(data.get("confidence"), "confidence")

    def pick(d: dict[str, Any], snake: str, camel: str) -> Any:
        return d.get(snake, d.get(camel))

    by_type = _as_dict(pick(sizes, "by_type", "byType"), "by_type")
    avg_by_type = _as_dict(pick(sizes, "avg_by_type", "avgByType"), "avg_by_type")
    overall = _as_float(confidence.get("overall", 0.0))
    if overall is None:
        raise ValueError("confidence.overall is missing")

    evidence = []
    for ev in data.get("evidence") or []:
        ev = _as_dict(ev, "evidence")
        page = _as_int(ev.get("page", 0))
        if page is None:
            raise ValueError("evidence page is missing")
        evidence.append(
            RecipeEvidence(
                field=str(ev.get("field", "")),
                page=page,
                method=str(ev.get("method", "")),
                snippet=str(ev.get("snippet", "")),
            )
        )

    return NormalizedPlanExtract(
        totals=PlanTotals(
            total_units=_as_int(pick(totals, "total_units", "totalUnits")),
            affordable_units=_as_int(pick(totals, "affordable_units", "affordableUnits")),
            market_units=_as_int(pick(totals, "market_units", "marketUnits")),
        ),
        unit_mix=UnitMix(
            studio=_as_int(mix.get("studio")),
            br1=_as_int(mix.get("br1")),
            br2=_as_int(mix.get("br2")),
            br3=_as_int(mix.get("br3")),
            br4plus=_as_int(mix.get("br4plus")),
        ),
        unit_sizes=UnitSizes(
            by_type={k: [float(v) for v in values] for k, values in by_type.items()},
            avg_by_type={k: _as_float(v) for k, v in avg_by_type.items()},
        ),
        zoning=ZoningFigures(
            lot_area_sf=_as_float(pick(zoning, "lot_area_sf", "lotAreaSf")),
            zoning_floor_area_sf=_as_float(pick(zoning, "zoning_floor_area_sf", "zoningFloorAreaSf")),
            far=_as_float(zoning.get("far")),
        ),
        evidence=evidence,
        confidence=ConfidenceReport(
            overall=overall,
            warnings=[str(w) for w in confidence.get("warnings") or []],
        ),
    )


class RemoteNormalizer:
    """Client for the remote normalization service."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None):
        if not settings.normalizer_url:
            raise NormalizerUnavailable("Normalizer URL not configured")
        self.settings = settings
        self.url = settings.normalizer_url
        self.headers = {"Content-Type": "application/json"}
        if settings.normalizer_api_key:
            self.headers["Authorization"] = f"Bearer {settings.normalizer_api_key}"
        self._client = client

    def _post(self, client: httpx.Client, payload: dict[str, Any]) -> httpx.Response:
        response = client.post(self.url, headers=self.headers, json=payload)
        if response.status_code == 429:
            logger.warning("normalizer rate limited; retrying once in %.1fs", self.settings.normalizer_retry_delay)
            time.sleep(self.settings.normalizer_retry_delay)
            response = client.post(self.url, headers=self.headers, json=payload)
        return response

    def normalize(self, recipe_results: list[RecipeResult]) -> NormalizedPlanExtract:
        payload = {
            "context": build_context_string(recipe_results),
            "evidence": [dataclasses.asdict(ev) for r in recipe_results for ev in r.evidence],
        }
        try:
            if self._client is not None:
                response = self._post(self._client, payload)
            else:
                with httpx.Client(timeout=self.settings.normalizer_timeout) as client:
                    response = self._post(client, payload)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NormalizerUnavailable(str(e)) from e

        if not isinstance(data, dict):
            raise NormalizerUnavailable("Unexpected response format")
        if response.is_error or data.get("error") or data.get("fallback"):
            raise NormalizerUnavailable(
                str(data.get("reason") or data.get("error") or f"HTTP {response.status_code}")
            )
        if not data.get("normalized"):
            raise NormalizerUnavailable("Unexpected response format")
        try:
            return normalized_from_dict(data["normalized"])
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            raise NormalizerUnavailable(f"Malformed normalizer response: {e}") from e


def normalize_plan_extract(
    recipe_results: list[RecipeResult],
    settings: Settings | None = None,
    normalizer: RemoteNormalizer | None = None,
    local_only: bool = False,
) -> NormalizeResult:
    """Normalize recipe results, falling back to the local merge on any remote failure."""
    if not recipe_results:
        return NormalizeResult(build_local_fallback([]), "local_fallback", "No recipe results to normalize")
    if local_only:
        return NormalizeResult(build_local_fallback(recipe_results), "local_fallback", "Local-only extraction mode")

    try:
        if normalizer is None:
            if settings is None or not settings.enable_llm_normalization:
                raise NormalizerUnavailable("LLM normalization disabled")
            normalizer = RemoteNormalizer(settings)
        extract = normalizer.normalize(recipe_results)
    except NormalizerUnavailable as e:
        logger.warning("falling back to local normalization: %s", e)
        return NormalizeResult(build_local_fallback(recipe_results), "local_fallback", str(e))

    return NormalizeResult(extract, "llm")

"""Tests for local merging and the remote normalizer client."""

import httpx
import pytest

from plan_config import Settings
from plan_errors import NormalizerUnavailable
from plan_models import CoverSheetExtraction, RecipeEvidence, RecipeResult, RecipeType
from plan_normalize import (
    LOCAL_FALLBACK_WARNING,
    RemoteNormalizer,
    build_context_string,
    build_local_fallback,
    normalize_plan_extract,
    normalized_from_dict,
)

NORMALIZER_URL = "http://normalizer.test/api"

REMOTE_PAYLOAD = {
    "normalized": {
        "totals": {"totalUnits": 48, "affordableUnits": 12},
        "unitMix": {"br1": 20, "br2": 28},
        "zoning": {"lotAreaSf": 10000, "far": 6.0},
        "confidence": {"overall": 0.9, "warnings": ["checked"]},
        "evidence": [{"field": "far", "page": 2, "method": "TEXT_REGEX", "snippet": "FAR 6.0"}],
    }
}


def _result(recipe, fields, confidence=0.5, pages=(1,), evidence=()):
    return RecipeResult(
        recipe=recipe,
        pages=list(pages),
        fields=fields,
        evidence=list(evidence),
        confidence=confidence,
    )


@pytest.fixture
def recipe_results():
    return [
        _result(
            RecipeType.COVER_SHEET,
            {"cover_sheet": CoverSheetExtraction(lot_area_sf=10000, far=6.0, total_units=48)},
            confidence=0.93,
            evidence=[RecipeEvidence("far", 1, "TEXT_REGEX", "FAR: 6.0")],
        ),
        _result(
            RecipeType.ZONING_SCHEDULE,
            {
                "lot_area_sf": 12000,
                "zoning_floor_area_sf": 60000,
                "far": 5.0,
                "total_units": 50,
                "unit_mix": {"1BR": 10},
            },
            pages=(2,),
        ),
        _result(
            RecipeType.FLOOR_PLAN_LABEL,
            {"unit_sizes_by_type": {"STUDIO": [400.0, 420.0]}},
            pages=(3,),
        ),
        _result(
            RecipeType.GENERIC,
            {"total_units": 8, "unit_mix": {"1BR": 3, "2BR": 5}},
            pages=(4,),
        ),
    ]


def _settings(**kwargs) -> Settings:
    defaults = dict(
        normalizer_url=NORMALIZER_URL + "/",
        enable_llm_normalization=True,
        normalizer_retry_delay=0.0,
    )
    defaults.update(kwargs)
    return Settings(**defaults)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestLocalFallback:
    """Tests for the deterministic merge."""

    def test_first_value_wins_across_recipes(self, recipe_results):
        """Earlier recipes take precedence for scalar figures."""
        extract = build_local_fallback(recipe_results)

        assert extract.zoning.lot_area_sf == 10000
        assert extract.zoning.far == 6.0
        assert extract.zoning.zoning_floor_area_sf == 60000
        assert extract.totals.total_units == 48

    def test_generic_mix_only_fills_gaps(self, recipe_results):
        """Generic counts never override a zoning schedule's count."""
        extract = build_local_fallback(recipe_results)

        assert extract.unit_mix.br1 == 10
        assert extract.unit_mix.br2 == 5
        assert extract.unit_mix.studio is None

    def test_sizes_and_confidence(self, recipe_results):
        """Sizes are averaged and confidence is capped at 0.6."""
        extract = build_local_fallback(recipe_results)

        assert extract.unit_sizes.avg_by_type == {"STUDIO": 410}
        assert extract.confidence.overall == 0.6
        assert extract.confidence.warnings == [LOCAL_FALLBACK_WARNING]
        assert len(extract.evidence) == 1

    def test_total_from_mix(self):
        """Without a declared total, the bedroom mix sum is used."""
        extract = build_local_fallback(
            [_result(RecipeType.ZONING_SCHEDULE, {"unit_mix": {"1BR": 2, "STUDIO": 1}}, confidence=0.4)]
        )
        assert extract.totals.total_units == 3
        assert extract.confidence.overall == 0.4

    def test_empty(self):
        """No results produce an empty extract."""
        extract = build_local_fallback([])
        assert extract.totals.total_units is None
        assert extract.confidence.overall == 0.0


class TestContextString:
    """Tests for the text handed to the remote normalizer."""

    def test_sections(self, recipe_results):
        """Each recipe gets a header, its fields and its evidence."""
        context = build_context_string(recipe_results)

        assert "--- Recipe: COVER_SHEET (pages: 1, confidence: 0.93) ---" in context
        assert '"total_units": 48' in context
        assert '  [p.1/TEXT_REGEX] far: "FAR: 6.0"' in context
        assert "unit_mix: " in context


class TestNormalizedFromDict:
    """Tests for decoding the service payload."""

    def test_camel_case_keys(self):
        """camelCase keys from the service map onto the model."""
        extract = normalized_from_dict(REMOTE_PAYLOAD["normalized"])

        assert extract.totals.total_units == 48
        assert extract.totals.affordable_units == 12
        assert extract.unit_mix.total() == 48
        assert extract.zoning.lot_area_sf == 10000
        assert extract.confidence.overall == 0.9
        assert extract.evidence[0].page == 2

    def test_numeric_strings_coerced(self):
        """Counts and figures sent as strings become numbers."""
        extract = normalized_from_dict(
            {
                "totals": {"total_units": "12", "affordableUnits": 3.0},
                "unitMix": {"br1": "12"},
                "zoning": {"far": "6.5"},
                "confidence": {"overall": "0.8"},
            }
        )

        assert extract.totals.total_units == 12
        assert extract.totals.affordable_units == 3
        assert extract.unit_mix.br1 == 12
        assert extract.zoning.far == 6.5
        assert extract.confidence.overall == 0.8

    @pytest.mark.parametrize(
        "payload",
        [
            {"confidence": {"overall": None}},
            {"evidence": [{"page": None}]},
            {"totals": {"total_units": "many"}},
            {"totals": ["12"]},
            "see attached",
        ],
    )
    def test_malformed_rejected(self, payload):
        """Values that are not numbers or objects where expected raise."""
        with pytest.raises((TypeError, ValueError)):
            normalized_from_dict(payload)


class TestRemoteNormalizer:
    """Tests for the HTTP client against a mock transport."""

    def test_success(self, recipe_results):
        """A normalized payload is decoded; the API key is sent as a bearer token."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=REMOTE_PAYLOAD)

        normalizer = RemoteNormalizer(_settings(normalizer_api_key="secret"), client=_client(handler))
        extract = normalizer.normalize(recipe_results)

        assert extract.totals.total_units == 48
        assert str(seen[0].url) == NORMALIZER_URL
        assert seen[0].headers["Authorization"] == "Bearer secret"

    def test_retries_once_on_rate_limit(self, recipe_results):
        """A 429 is retried a single time."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, json={"error": "slow down"})
            return httpx.Response(200, json=REMOTE_PAYLOAD)

        normalizer = RemoteNormalizer(_settings(), client=_client(handler))
        extract = normalizer.normalize(recipe_results)

        assert len(calls) == 2
        assert extract.totals.total_units == 48

    @pytest.mark.parametrize(
        "response, reason",
        [
            (httpx.Response(500, json={"error": "boom"}), "boom"),
            (httpx.Response(200, json={"fallback": True, "reason": "quota"}), "quota"),
            (httpx.Response(200, json={"ok": True}), "Unexpected response format"),
            (httpx.Response(200, json=[1, 2]), "Unexpected response format"),
        ],
    )
    def test_failures_raise(self, recipe_results, response, reason):
        """Service-side errors surface as NormalizerUnavailable."""
        normalizer = RemoteNormalizer(_settings(), client=_client(lambda request: response))

        with pytest.raises(NormalizerUnavailable, match=reason):
            normalizer.normalize(recipe_results)

    def test_invalid_json(self, recipe_results):
        """A non-JSON body is a failure, not a crash."""
        normalizer = RemoteNormalizer(
            _settings(), client=_client(lambda request: httpx.Response(200, text="oops"))
        )
        with pytest.raises(NormalizerUnavailable):
            normalizer.normalize(recipe_results)

    def test_unconfigured(self):
        """A missing URL is rejected up front."""
        with pytest.raises(NormalizerUnavailable, match="not configured"):
            RemoteNormalizer(_settings(normalizer_url=""))


class TestNormalizePlanExtract:
    """Tests for the remote-or-local decision."""

    def test_remote_success(self, recipe_results):
        """A working normalizer yields an llm-sourced extract."""
        normalizer = RemoteNormalizer(
            _settings(), client=_client(lambda request: httpx.Response(200, json=REMOTE_PAYLOAD))
        )
        outcome = normalize_plan_extract(recipe_results, normalizer=normalizer)

        assert outcome.source == "llm"
        assert outcome.fallback_reason is None

    def test_remote_failure_falls_back(self, recipe_results):
        """Any remote failure returns the local merge with the reason."""
        normalizer = RemoteNormalizer(
            _settings(), client=_client(lambda request: httpx.Response(500, json={"error": "boom"}))
        )
        outcome = normalize_plan_extract(recipe_results, normalizer=normalizer)

        assert outcome.source == "local_fallback"
        assert outcome.fallback_reason == "boom"
        assert outcome.extract.totals.total_units == 48

    @pytest.mark.parametrize(
        "normalized",
        [
            {"confidence": {"overall": None}},
            {"evidence": [{"page": None}]},
            {"totals": {"total_units": "many"}},
            "see attached",
        ],
    )
    def test_malformed_payload_falls_back(self, recipe_results, normalized):
        """A payload that cannot be decoded yields the local merge."""
        normalizer = RemoteNormalizer(
            _settings(),
            client=_client(lambda request: httpx.Response(200, json={"normalized": normalized})),
        )
        outcome = normalize_plan_extract(recipe_results, normalizer=normalizer)

        assert outcome.source == "local_fallback"
        assert outcome.fallback_reason.startswith("Malformed normalizer response")
        assert outcome.extract.totals.total_units == 48

    def test_non_json_body_falls_back(self, recipe_results):
        """A body that is not JSON yields the local merge."""
        normalizer = RemoteNormalizer(
            _settings(), client=_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        )
        outcome = normalize_plan_extract(recipe_results, normalizer=normalizer)

        assert outcome.source == "local_fallback"
        assert outcome.extract.totals.total_units == 48

    @pytest.mark.parametrize(
        "kwargs, reason",
        [
            ({}, "LLM normalization disabled"),
            ({"settings": Settings(enable_llm_normalization=False)}, "LLM normalization disabled"),
            ({"local_only": True}, "Local-only extraction mode"),
        ],
    )
    def test_local_reasons(self, recipe_results, kwargs, reason):
        """Disabled and local-only runs say why they stayed local."""
        outcome = normalize_plan_extract(recipe_results, **kwargs)

        assert outcome.source == "local_fallback"
        assert outcome.fallback_reason == reason

    def test_no_results(self):
        """Nothing to normalize still returns an extract."""
        outcome = normalize_plan_extract([])
        assert outcome.fallback_reason == "No recipe results to normalize"

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

from plan_models import PlutoRecord, SheetOverride

# Hand-tuned against NYC architectural drawing sets; recalibrate before
# reusing on other jurisdictions.
CAP_RATIO = 1.5
NOISE_UNIT_IDS = frozenset(
    {
        "BLOCK", "LOT", "BIN", "DATE", "TOTAL", "BUILDING", "FLOOR", "PROJECT",
        "ZONE", "ZONING", "FAR", "OCCUPANCY", "EGRESS", "CORRIDOR", "STAIRS",
        "STAIR", "HALLWAY", "LOBBY", "MECHANICAL", "STORAGE", "LAUNDRY",
        "CELLAR", "ROOF", "SUSTAINABLE", "COMMON", "COMMUNITY",
    }
)
DECLARED_UNITS_RANGE = (1, 500)
UNIT_AREA_RANGE = (150.0, 5000.0)
FAR_RANGE = (0.1, 15.0)

MAX_CANDIDATES = 6
MAX_OCR_PAGES = 8
EVIDENCE_MAX_CHARS = 200
LOCAL_FALLBACK_MAX_CONFIDENCE = 0.6


class Settings(BaseSettings):
    # OCR
    ocr_provider: Literal["none", "tesseract"] = "none"
    ocr_resolution: int = 200
    ocr_language: str = "eng"

    # Remote normalization
    enable_llm_normalization: bool = False
    normalizer_url: str = ""
    normalizer_api_key: str = ""
    normalizer_timeout: float = 30.0
    normalizer_retry_delay: float = 2.0  # single retry after HTTP 429

    @field_validator("normalizer_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v

    class Config:
        env_prefix = "PLAN_"
        env_file = ".env"
        extra = "ignore"


@dataclass
class PipelineOptions:
    """Per-document knobs supplied by the caller."""

    enable_ocr: bool = False
    max_ocr_pages: int = MAX_OCR_PAGES
    pluto: PlutoRecord | None = None
    sheet_overrides: dict[int, SheetOverride] = field(default_factory=dict)
    zone_district: str | None = None
    extraction_mode: Literal["auto", "local_only"] = "auto"
    bbl: str | None = None


def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import pdfplumber
import pytesseract

from plan_config import Settings
from plan_errors import OcrUnavailable
from plan_models import CropRegion, OcrPageResult

logger = logging.getLogger(__name__)


class OcrEngine(Protocol):
    name: str
    supports_tables: bool

    def ocr_pages(self, pdf_path: str | Path, pages: list[int]) -> list[OcrPageResult]: ...

    def ocr_crop(self, pdf_path: str | Path, page: int, region: CropRegion) -> OcrPageResult | None: ...


class NoOpOcrEngine:
    """Engine used when no OCR provider is configured; recognizes nothing."""

    name = "none"
    supports_tables = False

    def ocr_pages(self, pdf_path: str | Path, pages: list[int]) -> list[OcrPageResult]:
        return []

    def ocr_crop(self, pdf_path: str | Path, page: int, region: CropRegion) -> OcrPageResult | None:
        return None


def _lines_from_data(data: dict) -> tuple[list[str], float]:
    """Rebuild text lines and mean word confidence (0-1) from image_to_data output."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confs: list[float] = []
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][i])
        if conf >= 0:
            confs.append(conf)
    texts = [" ".join(words) for _, words in sorted(lines.items())]
    confidence = (sum(confs) / len(confs) / 100) if confs else 0.0
    return texts, round(confidence, 3)


class TesseractOcrEngine:
    """Renders pages with pdfplumber and recognizes them with Tesseract."""

    name = "tesseract"
    supports_tables = False

    def __init__(self, resolution: int = 200, language: str = "eng"):
        self.resolution = resolution
        self.language = language
        try:
            pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise OcrUnavailable(f"Tesseract not available: {e}") from e

    def _recognize(self, image, page: int) -> OcrPageResult:
        data = pytesseract.image_to_data(
            image, lang=self.language, output_type=pytesseract.Output.DICT
        )
        lines, confidence = _lines_from_data(data)
        return OcrPageResult(page=page, text="\n".join(lines), confidence=confidence, lines=lines)

    def ocr_pages(self, pdf_path: str | Path, pages: list[int]) -> list[OcrPageResult]:
        results: list[OcrPageResult] = []
        with pdfplumber.open(pdf_path) as pdf:
            for page_num in pages:
                if not 1 <= page_num <= len(pdf.pages):
                    continue
                img = pdf.pages[page_num - 1].to_image(resolution=self.resolution).original
                result = self._recognize(img, page_num)
                logger.debug(
                    "OCR page %d: %d lines, confidence %.2f",
                    page_num, len(result.lines), result.confidence,
                )
                results.append(result)
        return results

    def ocr_crop(self, pdf_path: str | Path, page: int, region: CropRegion) -> OcrPageResult | None:
        with pdfplumber.open(pdf_path) as pdf:
            if not 1 <= page <= len(pdf.pages):
                return None
            p = pdf.pages[page - 1]
            x0 = p.width * region.x_pct / 100
            top = p.height * region.y_pct / 100
            x1 = min(p.width, x0 + p.width * region.w_pct / 100)
            bottom = min(p.height, top + p.height * region.h_pct / 100)
            img = p.crop((x0, top, x1, bottom)).to_image(resolution=self.resolution).original
            return self._recognize(img, page)


def create_ocr_engine(provider: str | None = None, settings: Settings | None = None) -> OcrEngine:
    """Engine for *provider* (defaults to the configured one).

    Raises OcrUnavailable when the provider is unknown or cannot run.
    """
    settings = settings or Settings()
    provider = (provider or settings.ocr_provider).lower()
    if provider == "none":
        return NoOpOcrEngine()
    if provider == "tesseract":
        return TesseractOcrEngine(resolution=settings.ocr_resolution, language=settings.ocr_language)
    raise OcrUnavailable(f"Unknown OCR provider: {provider}")

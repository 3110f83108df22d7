"""Run every extraction stage over one loaded PDF.

Stages, in order:
  1. layout: cluster positioned items into page lines
  2. candidates: score pages for schedule / FAR content
  3. sheet index: title-block classification of every page
  4. recipes: per-sheet extraction when drawing info was found
  5. candidate pages: table reconstruction and row parsing
  6. OCR fallback: pages whose text path looked weak
  7. reconciliation: declared-unit cap, bedroom inference, totals
  8. normalization: remote or local merge of recipe results, validation
  9. PLUTO check: screening against the lot registry record
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field

from plan_bedrooms import apply_bedroom_inference
from plan_candidates import detect_candidate_pages
from plan_config import PipelineOptions, Settings
from plan_confidence import (
    PageConfidenceInput,
    PageScore,
    assess_text_yield,
    generate_warnings,
    score_overall_confidence,
    score_page_confidence,
    should_ocr_page,
)
from plan_errors import OcrUnavailable
from plan_layout import page_lines as build_page_lines
from plan_models import (
    ConfidenceReport,
    CoverSheetExtraction,
    ExtractedPlanData,
    ExtractionMethod,
    FarExtraction,
    PageLine,
    PdfDocument,
    PlanTotals,
    RecipeResult,
    RecipeType,
    SheetIndex,
    TableRegion,
    UnitRecord,
    UnitRecordSource,
)
from plan_normalize import RemoteNormalizer, normalize_plan_extract
from plan_ocr import OcrEngine, create_ocr_engine
from plan_recipes import RecipeParams, select_recipes
from plan_reconcile import (
    affordable_and_market,
    compute_totals_from_records,
    extract_declared_units,
    sanitize_extraction,
    unit_mix_from_totals,
)
from plan_rows import (
    extract_far_from_lines,
    extract_totals_row,
    infer_column_mapping,
    parse_unit_row,
    parse_unit_row_positional,
)
from plan_sheets import index_sheets
from plan_tables import reconstruct_tables
from plan_validate import cross_check_with_pluto, validate_extraction

logger = logging.getLogger(__name__)

DRAWING_INFO_MIN_CONFIDENCE = 0.5
TOTALS_ROW_SLACK = 2
OCR_MIN_LINE_CHARS = 3


@dataclass
class _Run:
    """Mutable accumulators shared by the stages of one pipeline run."""

    records: list[UnitRecord] = field(default_factory=list)
    tables: list[TableRegion] = field(default_factory=list)
    page_scores: list[PageScore] = field(default_factory=list)
    pages_used: set[int] = field(default_factory=set)
    errors: list[str] = field(default_factory=list)
    recipe_results: list[RecipeResult] = field(default_factory=list)
    cover_sheet: CoverSheetExtraction | None = None
    far: FarExtraction | None = None
    ocr_used: bool = False
    ocr_provider_used: str = "none"


def _run_recipes(
    doc: PdfDocument,
    lines: dict[int, list[PageLine]],
    options: PipelineOptions,
    run: _Run,
    sheet_index: SheetIndex,
) -> None:
    for recipe, pages in select_recipes(sheet_index, options.sheet_overrides):
        params = RecipeParams(
            pages=pages,
            positioned_items=doc.positioned_items,
            page_texts=doc.page_texts,
            page_lines=lines,
        )
        try:
            result = recipe.extract(params)
        except Exception as e:
            logger.exception("recipe %s failed on pages %s", recipe.type.value, pages)
            run.errors.append(f"Recipe {recipe.type.value} failed: {e}")
            continue
        logger.debug(
            "recipe %s on pages %s: confidence %.2f", recipe.type.value, pages, result.confidence
        )
        run.recipe_results.append(result)
        run.pages_used.update(pages)

    for result in run.recipe_results:
        run.records.extend(result.fields.get("unit_records") or [])
        if result.recipe is RecipeType.COVER_SHEET and result.fields.get("cover_sheet"):
            run.cover_sheet = result.fields["cover_sheet"]


def _parse_candidates(
    doc: PdfDocument,
    lines: dict[int, list[PageLine]],
    options: PipelineOptions,
    run: _Run,
) -> list[int]:
    """Table/positional parse of each candidate page; returns pages that want OCR."""
    ocr_wanted: list[int] = []

    for candidate in detect_candidate_pages(lines):
        page = candidate.page
        page_lines = lines.get(page, [])
        tables = reconstruct_tables(doc.positioned_items.get(page, []), page)
        run.tables.extend(tables)

        page_records: list[UnitRecord] = []
        header_mapped = 0
        for table in tables:
            mapping = infer_column_mapping(table.header_row.cells)
            header_mapped = max(header_mapped, mapping.mapped_count())
            for row in table.data_rows:
                record = parse_unit_row(row.cells, mapping, page, ExtractionMethod.TEXT_TABLE)
                if record:
                    page_records.append(record)

        if not page_records:
            for line in page_lines:
                record = parse_unit_row_positional(line.text, page, ExtractionMethod.TEXT_REGEX)
                if record:
                    page_records.append(record)

        if "far" in candidate.tags and run.far is None:
            run.far = extract_far_from_lines(page_lines, page)

        totals_row = extract_totals_row(
            [row for t in tables for row in [t.header_row, *t.data_rows]]
        )
        consistent = (
            totals_row is not None
            and abs(totals_row.total_units - len(page_records)) <= TOTALS_ROW_SLACK
        )
        score = score_page_confidence(
            PageConfidenceInput(
                page=page,
                header_mapped_columns=header_mapped,
                total_row_found=totals_row is not None,
                total_row_consistent=consistent,
                unit_row_count=len(page_records),
            )
        )
        run.page_scores.append(PageScore(page=page, score=score, weight=len(page_records) or 1))
        logger.debug(
            "candidate page %d: %d tables, %d records, confidence %.2f",
            page, len(tables), len(page_records), score,
        )

        if options.enable_ocr and should_ocr_page(len(doc.page_text(page)), bool(tables), score):
            ocr_wanted.append(page)

        run.records.extend(page_records)
        if page_records:
            run.pages_used.add(page)

    return ocr_wanted


def _run_ocr(
    doc: PdfDocument,
    pages: list[int],
    engine: OcrEngine,
    run: _Run,
) -> None:
    if doc.path is None:
        run.errors.append("OCR skipped: document has no source file")
        return

    run.ocr_used = True
    run.ocr_provider_used = engine.name
    try:
        results = engine.ocr_pages(doc.path, pages)
    except OcrUnavailable as e:
        logger.warning("OCR unavailable: %s", e)
        run.errors.append(str(e))
        return

    for result in results:
        if not result.text.strip():
            continue
        page_records: list[UnitRecord] = []
        for line in result.lines:
            if len(line.strip()) <= OCR_MIN_LINE_CHARS:
                continue
            record = parse_unit_row_positional(line, result.page, ExtractionMethod.OCR)
            if record:
                page_records.append(record)
        score = score_page_confidence(
            PageConfidenceInput(
                page=result.page,
                unit_row_count=len(page_records),
                ocr_used=True,
                ocr_confidence=result.confidence * 100,
            )
        )
        run.page_scores.append(PageScore(page=result.page, score=score, weight=len(page_records) or 1))
        run.records.extend(page_records)
        run.pages_used.add(result.page)


def _far_from_recipes(results: list[RecipeResult]) -> FarExtraction | None:
    for result in results:
        if result.recipe is not RecipeType.ZONING_SCHEDULE:
            continue
        f = result.fields
        if not (f.get("lot_area_sf") or f.get("zoning_floor_area_sf") or f.get("far")):
            continue
        snippet = next((ev.snippet for ev in result.evidence), "")
        return FarExtraction(
            lot_area_sf=f.get("lot_area_sf"),
            zoning_floor_area_sf=f.get("zoning_floor_area_sf"),
            proposed_floor_area_sf=None,
            proposed_far=f.get("far"),
            source=UnitRecordSource(page=result.pages[0], method=ExtractionMethod.TEXT_TABLE, evidence=snippet),
            confidence=result.confidence,
        )
    return None


def run_pipeline(
    doc: PdfDocument,
    options: PipelineOptions | None = None,
    settings: Settings | None = None,
    ocr_engine: OcrEngine | None = None,
    normalizer: RemoteNormalizer | None = None,
) -> ExtractedPlanData:
    """Extract unit mix, zoning figures and confidence from a loaded document.

    Never raises on missing data: weak documents come back ``partial`` with
    low confidence, warnings and error strings.
    """
    options = options or PipelineOptions()
    run = _Run(errors=list(doc.warnings))

    lines = {page: ls for page, ls in build_page_lines(doc.positioned_items).items() if ls}
    sheet_index = index_sheets(doc.positioned_items, doc.page_count)

    if any(s.confidence >= DRAWING_INFO_MIN_CONFIDENCE for s in sheet_index.pages):
        _run_recipes(doc, lines, options, run, sheet_index)

    ocr_wanted = _parse_candidates(doc, lines, options, run)

    text_yield, avg_chars = assess_text_yield(doc.page_texts)
    needs_ocr = text_yield == "none"
    if options.enable_ocr:
        if not ocr_wanted and needs_ocr:
            ocr_wanted = list(range(1, doc.page_count + 1))
        if ocr_wanted:
            try:
                engine = ocr_engine or create_ocr_engine(settings=settings)
            except OcrUnavailable as e:
                logger.warning("OCR unavailable: %s", e)
                run.errors.append(str(e))
            else:
                _run_ocr(doc, ocr_wanted[: options.max_ocr_pages], engine, run)
    logger.debug("text yield %s (%.0f chars/page)", text_yield, avg_chars)

    if run.far is None:
        run.far = _far_from_recipes(run.recipe_results)

    if run.page_scores:
        overall = score_overall_confidence(run.page_scores)
    elif run.recipe_results:
        overall = min(0.99, max(r.confidence for r in run.recipe_results))
    else:
        overall = 0.0

    cover_pages = sorted(
        {p for r in run.recipe_results if r.recipe is RecipeType.COVER_SHEET for p in r.pages}
    )
    declared = extract_declared_units(
        {i: text for i, text in enumerate(doc.page_texts, start=1)}, cover_pages
    )
    if declared is None and run.cover_sheet and run.cover_sheet.total_units:
        declared = run.cover_sheet.total_units

    sanitized = sanitize_extraction(
        run.records,
        declared,
        ConfidenceReport(overall=overall, by_page={ps.page: ps.score for ps in run.page_scores}),
    )
    confidence = sanitized.confidence

    zone = options.zone_district or (run.cover_sheet.zone if run.cover_sheet else None)
    records, inferred = apply_bedroom_inference(sanitized.records, zone)
    if inferred:
        run.errors.append(f"{inferred} unit bedroom types inferred from area; verify manually")

    unit_totals = compute_totals_from_records(records)
    affordable, market = affordable_and_market(unit_totals)
    confidence.warnings = generate_warnings(
        records, run.tables, False, run.ocr_used, run.far is not None
    ) + confidence.warnings

    normalized = None
    normalization_source = "none"
    normalization_reason = None
    validation = None
    if run.recipe_results:
        outcome = normalize_plan_extract(
            run.recipe_results,
            settings=settings,
            normalizer=normalizer,
            local_only=options.extraction_mode == "local_only",
        )
        normalized = outcome.extract
        normalization_source = outcome.source
        normalization_reason = outcome.fallback_reason

        validation = validate_extraction(normalized, options.pluto)
        if validation.warnings:
            normalized = dataclasses.replace(
                normalized,
                confidence=dataclasses.replace(
                    normalized.confidence,
                    overall=validation.adjusted_confidence,
                    warnings=normalized.confidence.warnings + validation.warnings,
                ),
            )

    pluto_check = None
    if options.pluto is not None:
        pluto_check = cross_check_with_pluto(
            unit_totals.total_units, run.far, confidence.overall, options.pluto
        )
        confidence.warnings.extend(pluto_check.warnings)

    result = ExtractedPlanData(
        status="partial" if run.errors else "complete",
        totals=PlanTotals(
            total_units=unit_totals.total_units,
            affordable_units=affordable,
            market_units=market,
        ),
        unit_mix=unit_mix_from_totals(unit_totals),
        unit_records=records,
        unit_totals=unit_totals,
        far=run.far,
        confidence=confidence,
        pages_used=sorted(run.pages_used),
        tables_found=len(run.tables),
        errors=run.errors,
        text_yield=text_yield,
        needs_ocr=needs_ocr,
        sheet_index=sheet_index,
        recipe_results=run.recipe_results,
        cover_sheet=run.cover_sheet,
        declared_units=declared,
        normalized_extract=normalized,
        normalization_source=normalization_source,
        normalization_reason=normalization_reason,
        validation=validation,
        pluto_check=pluto_check,
        ocr_provider_used=run.ocr_provider_used,
        bbl=options.bbl,
    )
    logger.info(
        "extracted %d units from %d pages (confidence %.2f, %s)",
        len(records), doc.page_count, confidence.overall, result.status,
    )
    return result

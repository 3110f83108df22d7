"""Extract unit mix and zoning figures from an architectural drawing set."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys

from plan_config import MAX_OCR_PAGES, PipelineOptions, get_settings
from plan_errors import PdfLoadError
from plan_extract import load_pdf
from plan_models import SKIP, ExtractedPlanData, PlutoRecord, RecipeType, SheetOverride
from plan_pipeline import run_pipeline

_MIX_LABELS = (
    ("studio", "Studio"),
    ("br1", "1 BR"),
    ("br2", "2 BR"),
    ("br3", "3 BR"),
    ("br4plus", "4+ BR"),
)


def parse_override(raw: str) -> tuple[int, SheetOverride]:
    """``PAGE=TYPE`` where TYPE is a recipe name or ``skip``."""
    page, sep, kind = raw.partition("=")
    if not sep or not page.strip().isdigit():
        raise argparse.ArgumentTypeError(f"expected PAGE=TYPE, got {raw!r}")
    kind = kind.strip()
    if kind.lower() == SKIP:
        return int(page), SKIP
    try:
        return int(page), RecipeType(kind.upper())
    except ValueError:
        choices = ", ".join(t.value for t in RecipeType)
        raise argparse.ArgumentTypeError(f"unknown recipe {kind!r} (choose from {choices}, skip)") from None


def parse_pluto(raw: str) -> PlutoRecord:
    """``LOTAREA,RESIDFAR,BLDGAREA``"""
    parts = [p.strip().replace("_", "") for p in raw.split(",")]
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected LOTAREA,RESIDFAR,BLDGAREA, got {raw!r}")
    try:
        lot, far, bldg = (float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"non-numeric PLUTO value in {raw!r}") from None
    return PlutoRecord(lotarea=lot, residfar=far, bldgarea=bldg)


def _fmt(value: float | None, suffix: str = "") -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return f"{int(value):,}{suffix}"
    return f"{value:,.2f}{suffix}"


def print_report(data: ExtractedPlanData, verbose: bool = False) -> None:
    print("=" * 64)
    print("PLAN EXTRACTION")
    print("=" * 64)
    print(f"  Status:       {data.status}")
    print(f"  Confidence:   {data.confidence.overall:.2f}")
    print(f"  Pages used:   {', '.join(map(str, data.pages_used)) or '-'}")
    print(f"  Tables found: {data.tables_found}")
    if data.declared_units is not None:
        print(f"  Declared:     {data.declared_units} units")

    print("\nUnits:\n")
    print(f"  Total:        {data.totals.total_units or 0}")
    print(f"  Affordable:   {data.totals.affordable_units or 0}")
    print(f"  Market:       {data.totals.market_units or 0}")
    for attr, label in _MIX_LABELS:
        count = getattr(data.unit_mix, attr)
        if count:
            print(f"  {label + ':':<14}{count}")

    if data.far:
        print("\nZoning:\n")
        print(f"  Lot area:     {_fmt(data.far.lot_area_sf, ' SF')}")
        print(f"  ZFA:          {_fmt(data.far.zoning_floor_area_sf, ' SF')}")
        print(f"  FAR:          {_fmt(data.far.proposed_far)}")
        if verbose:
            print(f"  Evidence:     {data.far.source.evidence!r}  (page {data.far.source.page})")

    if data.normalized_extract:
        n = data.normalized_extract
        print(f"\nNormalized ({data.normalization_source}):\n")
        print(f"  Total units:  {_fmt(n.totals.total_units)}")
        print(f"  Lot area:     {_fmt(n.zoning.lot_area_sf, ' SF')}")
        print(f"  FAR:          {_fmt(n.zoning.far)}")
        for bedroom, avg in n.unit_sizes.avg_by_type.items():
            print(f"  Avg {bedroom + ':':<9}{_fmt(avg, ' SF')}")

    if verbose and data.unit_records:
        print("\nUnit records:\n")
        for r in data.unit_records:
            print(
                f"  {r.unit_id or '?':<8} {r.bedroom_type.value:<9} {r.allocation.value:<15} "
                f"{_fmt(r.area_sf, ' SF'):>10}  (page {r.source.page}, {r.source.method.value})"
            )
            if r.notes:
                print(f"      Note:     {r.notes}")

    warnings = data.confidence.warnings + (data.validation.warnings if data.validation else [])
    if warnings:
        print("\nWarnings:\n")
        for w in warnings:
            print(f"  - {w}")
    if data.errors:
        print("\nErrors:\n")
        for e in data.errors:
            print(f"  - {e}")
    print()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract unit mix and zoning figures from an architectural PDF.",
    )
    parser.add_argument("pdf", help="Path to the PDF file")
    parser.add_argument(
        "--ocr",
        action="store_true",
        help="OCR pages whose text layer looks weak (needs PLAN_OCR_PROVIDER=tesseract)",
    )
    parser.add_argument(
        "--max-ocr-pages",
        type=int, default=MAX_OCR_PAGES, metavar="N",
        help="OCR at most N pages (default: %(default)s)",
    )
    parser.add_argument("--zone", metavar="DISTRICT", help="Zoning district, e.g. R7A")
    parser.add_argument(
        "--override",
        type=parse_override, action="append", default=[], metavar="PAGE=TYPE",
        help="Force a recipe (or 'skip') for a page; repeatable",
    )
    parser.add_argument(
        "--pluto",
        type=parse_pluto, metavar="LOT,FAR,BLDG",
        help="PLUTO lot area, residential FAR and building area for cross-checks",
    )
    parser.add_argument("--bbl", help="Borough-block-lot identifier to carry into the output")
    parser.add_argument(
        "--local-only",
        action="store_true",
        help="Skip the remote normalizer and merge recipe results locally",
    )
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show unit records, evidence and progress logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    options = PipelineOptions(
        enable_ocr=args.ocr,
        max_ocr_pages=args.max_ocr_pages,
        pluto=args.pluto,
        sheet_overrides=dict(args.override),
        zone_district=args.zone,
        extraction_mode="local_only" if args.local_only else "auto",
        bbl=args.bbl,
    )

    try:
        doc = load_pdf(args.pdf)
    except PdfLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    data = run_pipeline(doc, options, settings=get_settings())
    if args.json:
        print(json.dumps(dataclasses.asdict(data), indent=2, default=str))
    else:
        print_report(data, verbose=args.verbose)
    return 0


if __name__ == "__main__":
    sys.exit(main())

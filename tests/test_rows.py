"""Tests for unit row, totals row and FAR line parsing."""

from conftest import page_line

from plan_models import (
    AllocationKind,
    BedroomType,
    Cell,
    ExtractionMethod,
    PageTableRow,
)
from plan_rows import (
    ColumnMapping,
    detect_area,
    detect_bedroom,
    extract_far_from_lines,
    extract_totals_row,
    infer_column_mapping,
    parse_unit_row,
    parse_unit_row_positional,
)


def _cells(*texts: str) -> list[Cell]:
    return [Cell(text=t, x0=i * 100.0, x1=i * 100.0 + 40) for i, t in enumerate(texts)]


def _table_row(text: str) -> PageTableRow:
    return PageTableRow(cells=_cells(text), row_text=text, y=0.0, page=1)


class TestColumnMapping:
    """Tests for header synonym matching."""

    def test_one_role_per_column(self):
        """Each header column lands on its own role."""
        mapping = infer_column_mapping(_cells("UNIT", "BEDROOM", "SF", "ALLOCATION"))

        assert mapping == ColumnMapping(unit_id=0, bed_count=1, area=2, allocation=3)
        assert mapping.mapped_count() == 4

    def test_multiword_headers(self):
        """Synonyms match whole words inside longer header text."""
        mapping = infer_column_mapping(_cells("APT NO.", "TYPE", "NET AREA", "AMI"))

        assert mapping.unit_id == 0
        assert mapping.bed_count == 1
        assert mapping.area == 2
        assert mapping.ami_band == 3
        assert mapping.allocation is None

    def test_unmatched_header(self):
        """Headers with no synonyms map nothing."""
        assert infer_column_mapping(_cells("REMARKS", "FINISH")).mapped_count() == 0


class TestDetectors:
    """Tests for the single-field detectors."""

    def test_bedroom_variants(self):
        """Bedroom tokens resolve to a type and a count."""
        assert detect_bedroom("STUDIO") == (BedroomType.STUDIO, 0)
        assert detect_bedroom("2 BEDROOM") == (BedroomType.BR2, 2)
        assert detect_bedroom("5BR") == (BedroomType.BR4_PLUS, 4)
        assert detect_bedroom("LOBBY") == (BedroomType.UNKNOWN, None)

    def test_area(self):
        """Areas with a unit suffix win; bare numbers must be plausible."""
        assert detect_area("APPROX 850 SF") == 850.0
        assert detect_area("720") == 720.0
        assert detect_area("12000") is None


class TestParseUnitRow:
    """Tests for mapped table-row parsing."""

    def test_full_row(self):
        """Every mapped column fills its field."""
        mapping = ColumnMapping(unit_id=0, bed_count=1, area=2, allocation=3, ami_band=4)
        rec = parse_unit_row(
            _cells("4A", "2BR", "850 SF", "MIH", "60% AMI"), mapping, 3, ExtractionMethod.TEXT_TABLE
        )

        assert rec is not None
        assert rec.unit_id == "4A"
        assert rec.bedroom_type is BedroomType.BR2
        assert rec.bedroom_count == 2
        assert rec.area_sf == 850.0
        assert rec.allocation is AllocationKind.MIH_RESTRICTED
        assert rec.ami_band == 60
        assert rec.source.page == 3
        assert rec.source.method is ExtractionMethod.TEXT_TABLE
        assert rec.source.evidence == "4A 2BR 850 SF MIH 60% AMI"

    def test_total_row_rejected(self):
        """Rows mentioning TOTAL are never units."""
        mapping = ColumnMapping(unit_id=0, bed_count=1)
        assert parse_unit_row(_cells("TOTAL", "12"), mapping, 1, ExtractionMethod.TEXT_TABLE) is None

    def test_digit_row_kept_without_bedroom(self):
        """A row with digits survives even when the bedroom type is unknown."""
        mapping = ColumnMapping(unit_id=0, area=1)
        rec = parse_unit_row(_cells("5C", "650"), mapping, 1, ExtractionMethod.TEXT_TABLE)

        assert rec is not None
        assert rec.unit_id == "5C"
        assert rec.bedroom_type is BedroomType.UNKNOWN
        assert rec.area_sf == 650.0

    def test_no_signal_row_rejected(self):
        """Rows without digits or bedroom tokens are dropped."""
        mapping = ColumnMapping(unit_id=0, bed_count=1)
        assert parse_unit_row(_cells("NOTES", "TYP"), mapping, 1, ExtractionMethod.TEXT_TABLE) is None


class TestParsePositional:
    """Tests for header-less line parsing."""

    def test_id_bedroom_area_allocation(self):
        """Tokens are read left to right by shape."""
        rec = parse_unit_row_positional("3B 2BR 875 MARKET", 2, ExtractionMethod.OCR)

        assert rec is not None
        assert rec.unit_id == "3B"
        assert rec.bedroom_type is BedroomType.BR2
        assert rec.area_sf == 875.0
        assert rec.allocation is AllocationKind.MARKET
        assert rec.source.method is ExtractionMethod.OCR

    def test_bare_bedroom_count(self):
        """A bare 0-4 after the id is a bedroom count."""
        rec = parse_unit_row_positional("12C 1 640", 1, ExtractionMethod.TEXT_REGEX)

        assert rec is not None
        assert rec.unit_id == "12C"
        assert rec.bedroom_type is BedroomType.BR1
        assert rec.bedroom_count == 1
        assert rec.area_sf == 640.0

    def test_rejections(self):
        """Total lines, short lines and lines with no id or bedroom are dropped."""
        assert parse_unit_row_positional("TOTAL 12 UNITS", 1, ExtractionMethod.TEXT_REGEX) is None
        assert parse_unit_row_positional("1A", 1, ExtractionMethod.TEXT_REGEX) is None
        assert parse_unit_row_positional("NOTES AND DETAILS", 1, ExtractionMethod.TEXT_REGEX) is None


class TestTotalsRow:
    """Tests for the schedule totals row."""

    def test_finds_total(self):
        """The first plausible number on a TOTAL row is the declared count."""
        rows = [_table_row("1A 1BR"), _table_row("TOTAL UNITS 48")]
        totals = extract_totals_row(rows)

        assert totals is not None
        assert totals.total_units == 48
        assert totals.source == "TOTAL UNITS 48"

    def test_implausible_total(self):
        """Totals of 2000 or more are ignored."""
        assert extract_totals_row([_table_row("TOTAL 2500")]) is None
        assert extract_totals_row([_table_row("1A 1BR")]) is None


class TestFarFromLines:
    """Tests for lot area / floor area / FAR extraction."""

    def test_explicit_values(self):
        """All three figures found gives high confidence."""
        lines = [
            page_line("LOT AREA: 12,000 SF", 700),
            page_line("ZONING FLOOR AREA: 95,000 SF", 680),
            page_line("FAR: 7.92", 660),
        ]
        far = extract_far_from_lines(lines, 4)

        assert far is not None
        assert far.lot_area_sf == 12000
        assert far.zoning_floor_area_sf == 95000
        assert far.proposed_far == 7.92
        assert far.confidence == 0.9
        assert far.source.page == 4

    def test_far_derived_from_areas(self):
        """Without an explicit FAR, floor area over lot area is used."""
        lines = [page_line("LOT AREA: 10,000 SF", 700), page_line("ZFA: 60,000 SF", 680)]
        far = extract_far_from_lines(lines, 1)

        assert far is not None
        assert far.proposed_far == 6.0

    def test_out_of_range_far_skipped(self):
        """Implausible FAR values are passed over for later ones."""
        lines = [page_line("FAR: 45", 700), page_line("PROPOSED FAR 6.5", 680)]
        far = extract_far_from_lines(lines, 1)

        assert far is not None
        assert far.proposed_far == 6.5
        assert far.lot_area_sf is None
        assert far.confidence == 0.6

    def test_nothing_found(self):
        """Pages without any figure yield None."""
        assert extract_far_from_lines([page_line("GENERAL NOTES")], 1) is None

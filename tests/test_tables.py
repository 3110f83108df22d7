"""Tests for table region reconstruction."""

from conftest import item, row_items

from plan_models import Cell, PageTableRow
from plan_tables import header_cell_matches, is_header_row, reconstruct_tables


def _row(*texts: str) -> PageTableRow:
    cells = [Cell(text=t, x0=i * 100.0, x1=i * 100.0 + 50) for i, t in enumerate(texts)]
    return PageTableRow(cells=cells, row_text=" ".join(texts), y=0.0, page=1)


class TestHeaderDetection:
    """Tests for header-row recognition."""

    def test_two_keyword_cells(self):
        """Two cells matching domain tokens make a header."""
        assert is_header_row(_row("UNIT", "TYPE"))
        assert is_header_row(_row("APT", "NET SF", "NOTES"))

    def test_single_cell_is_not_header(self):
        """A header needs at least two cells."""
        assert not is_header_row(_row("UNIT TYPE AREA"))

    def test_tokens_are_whole_words(self):
        """Tokens embedded in longer words do not count."""
        assert header_cell_matches(_row("BRICK", "UNITED", "SFX")) == 0
        assert header_cell_matches(_row("SQ FT", "MIH", "1A")) == 2


class TestReconstructTables:
    """Tests for grouping rows under a header."""

    def test_closes_on_large_gap(self):
        """A far-below notes line is not part of the table."""
        items = [
            *row_items(700, [(50, "UNIT"), (200, "TYPE")]),
            *row_items(686, [(50, "1A"), (200, "1BR")]),
            *row_items(672, [(50, "1B"), (200, "2BR")]),
            item("Notes: see A-001", 50, 560),
        ]
        tables = reconstruct_tables(items, page=1)

        assert len(tables) == 1
        table = tables[0]
        assert [c.text for c in table.header_row.cells] == ["UNIT", "TYPE"]
        assert [r.row_text for r in table.data_rows] == ["1A 1BR", "1B 2BR"]
        assert table.page == 1
        assert table.bbox.y0 == 672
        assert table.bbox.y1 == 700
        assert table.bbox.x0 == 50

    def test_new_header_starts_new_table(self):
        """A second header row closes the first table and opens another."""
        items = [
            *row_items(700, [(50, "UNIT"), (200, "TYPE")]),
            *row_items(686, [(50, "1A"), (200, "1BR")]),
            *row_items(672, [(50, "APT"), (200, "AREA")]),
            *row_items(658, [(50, "2A"), (200, "700")]),
        ]
        tables = reconstruct_tables(items, page=1)

        assert len(tables) == 2
        assert [r.row_text for r in tables[0].data_rows] == ["1A 1BR"]
        assert [r.row_text for r in tables[1].data_rows] == ["2A 700"]

    def test_header_without_rows_is_dropped(self):
        """A header with nothing under it is not a table."""
        items = row_items(700, [(50, "UNIT"), (200, "TYPE")])
        assert reconstruct_tables(items, page=1) == []

    def test_short_rows_skipped(self):
        """Rows with fewer than two characters are not data rows."""
        items = [
            *row_items(700, [(50, "UNIT"), (200, "TYPE")]),
            item("-", 50, 686),
            *row_items(672, [(50, "1A"), (200, "1BR")]),
        ]
        tables = reconstruct_tables(items, page=1)

        assert len(tables) == 1
        assert [r.row_text for r in tables[0].data_rows] == ["1A 1BR"]

    def test_no_items(self):
        """An empty page has no tables."""
        assert reconstruct_tables([], page=1) == []

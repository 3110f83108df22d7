"""Tests for title-block sheet indexing."""

from conftest import item, text_lines, title_block

from plan_sheets import (
    classify_page,
    filter_bottom_region,
    index_sheets,
    normalize_title_key,
    page_for_drawing_no,
    pages_for_title_word,
    parse_drawing_no,
    parse_drawing_title,
    parse_project_title,
)


def _sheet(drawing_no, title, page=1):
    return text_lines(["PLAN NOTES", "KEY PLAN"], page=page) + title_block(drawing_no, title, page)


class TestBottomRegion:
    """Tests for isolating the title block."""

    def test_keeps_lowest_fifth(self):
        """Only items in the bottom 20% of the text extent are kept."""
        items = [item("TOP", 10, 688), item("MID", 10, 400), item("A-101", 10, 40)]
        assert [it.text for it in filter_bottom_region(items)] == ["A-101"]

    def test_empty(self):
        """No items, no region."""
        assert filter_bottom_region([]) == []


class TestParsers:
    """Tests for title-block line parsers."""

    def test_drawing_number_forms(self):
        """Drawing numbers are 1-3 letters, optional separator, 1-3 digits."""
        assert parse_drawing_no(["A-101"]) == "A-101"
        assert parse_drawing_no(["Z.002 ZONING"]) == "Z.002"
        assert parse_drawing_no(["A-101.2"]) == "A-101.2"
        assert parse_drawing_no(["FLOOR PLAN", "G001"]) == "G001"
        assert parse_drawing_no(["FLOOR PLAN"]) is None

    def test_title_is_longest_non_numeric_line(self):
        """The drawing-number line and bare numbers never become the title."""
        lines = ["A-101", "12", "SECOND FLOOR PLAN", "NTS"]
        assert parse_drawing_title(lines, "A-101") == "SECOND FLOOR PLAN"
        assert parse_drawing_title(["A-101", "AB"], "A-101") is None

    def test_project_title(self):
        """Address or PROJECT: lines name the project."""
        assert parse_project_title(["NOTES", "123 MAIN ST"]) == "123 MAIN ST"
        assert parse_project_title(["PROJECT: RIVER HOUSE"]) == "PROJECT: RIVER HOUSE"
        assert parse_project_title(["NOTES"]) is None

    def test_title_key(self):
        """Title keys are upper-cased with punctuation stripped."""
        assert normalize_title_key("Floor-Plan, 2nd") == "FLOORPLAN 2ND"


class TestClassifyPage:
    """Tests for per-page classification confidence."""

    def test_drawing_number_is_high_confidence(self):
        """A parsed drawing number gives 0.9."""
        info = classify_page(_sheet("A-101", "TYPICAL FLOOR PLAN"), 1)

        assert info.confidence == 0.9
        assert info.method == "PDF_TEXT"
        assert info.drawing_no == "A-101"
        assert info.drawing_title == "TYPICAL FLOOR PLAN"

    def test_title_only(self):
        """A title without a drawing number gives 0.5."""
        info = classify_page(_sheet(None, "ZONING ANALYSIS"), 1)
        assert info.confidence == 0.5
        assert info.drawing_no is None

    def test_sparse_title_block_needs_ocr(self):
        """Fewer than 5 characters in the title block means OCR_CROP at 0.3."""
        info = classify_page(_sheet(None, "A1"), 1)
        assert info.method == "OCR_CROP"
        assert info.confidence == 0.3
        assert info.drawing_title is None

    def test_blank_page(self):
        """A page without text is low confidence."""
        info = classify_page([], 4)
        assert info.page_number == 4
        assert info.confidence == 0.3


class TestIndexSheets:
    """Tests for the document-wide sheet index."""

    def test_lookups(self):
        """Drawing numbers and title words map back to pages."""
        pages = {
            1: _sheet("T-001", "COVER SHEET", 1),
            2: _sheet("A-101", "FIRST FLOOR PLAN", 2),
            3: _sheet("A-102", "SECOND FLOOR PLAN", 3),
        }
        index = index_sheets(pages, 4)

        assert [s.page_number for s in index.pages] == [1, 2, 3, 4]
        assert index.by_drawing_no == {"T-001": 1, "A-101": 2, "A-102": 3}
        assert index.by_title_key["FLOOR"] == [2, 3]
        assert "OF" not in index.by_title_key
        assert page_for_drawing_no(index, "a-101 ") == 2
        assert pages_for_title_word(index, "plan") == [2, 3]
        assert pages_for_title_word(index, "roof") == []
        assert index.sheet_for_page(4).method == "OCR_CROP"

"""Tests for reading PDF pages into text and positioned items."""

import pytest

from plan_errors import PdfLoadError
from plan_extract import load_pdf, read_pages, words_to_items


class _StubPage:
    """Minimal stand-in for a pdfplumber page."""

    height = 792

    def __init__(self, text="", words=None, fail=False):
        self.text = text
        self.words = words or []
        self.fail = fail

    def extract_text(self):
        if self.fail:
            raise RuntimeError("bad content stream")
        return self.text

    def extract_words(self, **kwargs):
        return self.words


def _word(text, x0, top, size=12):
    return {"text": text, "x0": x0, "x1": x0 + len(text) * 6, "top": top, "bottom": top + size}


class TestWordsToItems:
    """Tests for the top-down to y-up conversion."""

    def test_flips_y(self):
        """y is measured up from the page bottom to the word's bottom edge."""
        items = words_to_items([_word("UNIT", 10, 100)], page_height=792, page_number=3)

        assert len(items) == 1
        it = items[0]
        assert it.text == "UNIT"
        assert it.y == 792 - 112
        assert it.height == 12
        assert it.width == 24
        assert it.page == 3

    def test_blank_words_skipped(self):
        """Whitespace-only words are dropped."""
        assert words_to_items([_word("  ", 10, 100)], 792, 1) == []


class TestReadPages:
    """Tests for page-by-page reading."""

    def test_reads_each_page(self):
        """Text and items are keyed by 1-based page number."""
        pages = [
            _StubPage("UNIT SCHEDULE", [_word("UNIT", 10, 100), _word("SCHEDULE", 50, 100)]),
            _StubPage("NOTES", [_word("NOTES", 10, 100)]),
        ]
        texts, items, problems = read_pages(pages)

        assert texts == ["UNIT SCHEDULE", "NOTES"]
        assert [it.text for it in items[1]] == ["UNIT", "SCHEDULE"]
        assert items[2][0].page == 2
        assert problems == []

    def test_failed_page_is_empty(self):
        """A page that cannot be read comes back empty with a warning."""
        pages = [_StubPage("UNIT SCHEDULE", [_word("UNIT", 10, 100)]), _StubPage(fail=True)]
        texts, items, problems = read_pages(pages)

        assert texts == ["UNIT SCHEDULE", ""]
        assert items[2] == []
        assert problems == ["Could not extract text from page 2: bad content stream"]

    def test_scanned_document_flagged(self):
        """No text at all suggests a scanned PDF."""
        _, _, problems = read_pages([_StubPage(""), _StubPage("  ")])
        assert len(problems) == 1
        assert "image-based" in problems[0]


class TestLoadPdf:
    """Tests for opening files."""

    def test_missing_file(self, tmp_path):
        """A path that does not exist is a load error."""
        with pytest.raises(PdfLoadError, match="file not found"):
            load_pdf(tmp_path / "missing.pdf")

    def test_not_a_pdf(self, tmp_path):
        """Garbage bytes are a load error."""
        path = tmp_path / "notes.pdf"
        path.write_text("this is not a pdf")

        with pytest.raises(PdfLoadError):
            load_pdf(path)

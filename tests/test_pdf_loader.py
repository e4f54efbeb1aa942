"""Tests for PDF loading and layout reconstruction."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import fitz

from sermonfinder.ingestion.pdf_loader import (
    TextFragment,
    extract_pdf,
    group_lines,
    iter_page_fragments,
    reconstruct_page_text,
)


def _span(text: str, top: float, bottom: float) -> dict:
    return {"text": text, "bbox": (72.0, top, 300.0, bottom), "origin": (72.0, bottom - 2)}


def _page(*spans: dict) -> MagicMock:
    page = MagicMock()
    page.get_text.return_value = {
        "blocks": [{"type": 0, "lines": [{"spans": list(spans)}]}],
    }
    return page


def _mock_doc(pages: list, metadata: dict | None = None) -> MagicMock:
    doc = MagicMock()
    doc.__len__ = MagicMock(return_value=len(pages))
    doc.__getitem__ = MagicMock(side_effect=lambda i: pages[i])
    doc.metadata = metadata or {}
    return doc


class TestGroupLines:
    """Test baseline clustering."""

    def test_fragments_within_tolerance_share_a_line(self) -> None:
        lines = group_lines(
            [TextFragment("Hello", 100), TextFragment("world", 103), TextFragment("Next", 120)]
        )

        assert [line.text for line in lines] == ["Hello world", "Next"]

    def test_lines_sorted_top_to_bottom(self) -> None:
        lines = group_lines([TextFragment("Second", 200), TextFragment("First", 100)])

        assert [line.text for line in lines] == ["First", "Second"]

    def test_empty_fragments_skipped(self) -> None:
        lines = group_lines([TextFragment("", 10), TextFragment("Only", 50)])

        assert [line.text for line in lines] == ["Only"]

    def test_keeps_tallest_height(self) -> None:
        lines = group_lines([TextFragment("Big", 100, 20.0), TextFragment("small", 101, 10.0)])

        assert lines[0].height == 20.0


class TestReconstructPageText:
    """Test paragraph break insertion."""

    def test_paragraph_gap_inserts_blank_line(self) -> None:
        fragments = [
            TextFragment("Hello", 100),
            TextFragment("world", 102),
            TextFragment("Next", 114),
            TextFragment("Para", 150),
        ]

        assert reconstruct_page_text(fragments) == "Hello world\nNext\n\nPara"

    def test_gap_at_threshold_is_same_paragraph(self) -> None:
        # 1.5 x 12 = 18: a gap of exactly 18 is not a break
        fragments = [TextFragment("a", 100), TextFragment("b", 118)]

        assert reconstruct_page_text(fragments) == "a\nb"

    def test_gap_uses_line_height(self) -> None:
        fragments = [TextFragment("a", 100, 30.0), TextFragment("b", 140, 30.0)]

        assert reconstruct_page_text(fragments) == "a\nb"

    def test_out_of_order_fragments(self) -> None:
        fragments = [TextFragment("Second", 200), TextFragment("First", 100)]

        assert reconstruct_page_text(fragments) == "First\n\nSecond"

    def test_no_fragments(self) -> None:
        assert reconstruct_page_text([]) == ""


class TestIterPageFragments:
    def test_reads_spans(self) -> None:
        page = _page(_span("Bonjour", 88, 100), _span("  ", 88, 100))

        fragments = list(iter_page_fragments(page))

        assert len(fragments) == 1
        assert fragments[0].text == "Bonjour"
        assert fragments[0].y == 98
        assert fragments[0].height == 12

    def test_skips_image_blocks(self) -> None:
        page = MagicMock()
        page.get_text.return_value = {"blocks": [{"type": 1}]}

        assert list(iter_page_fragments(page)) == []


class TestExtractPdf:
    """Test extract_pdf with a mocked PyMuPDF."""

    @patch("sermonfinder.ingestion.pdf_loader.fitz")
    def test_extracts_pages_and_metadata(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        page1 = _page(
            _span("Le bon berger", 88, 100),
            _span("Date: 12/05/2024", 102, 114),
            _span("Texte : Jean 10:11", 150, 162),
        )
        page2 = _page(_span("Amen", 88, 100))
        mock_fitz.open.return_value = _mock_doc([page1, page2])

        pdf_path = tmp_path / "berger.pdf"
        pdf_path.write_bytes(b"dummy")

        extracted = extract_pdf(pdf_path)

        assert extracted.content == (
            "Le bon berger\nDate: 12/05/2024\n\nTexte : Jean 10:11\n\nAmen"
        )
        assert extracted.title == "Le bon berger"
        assert extracted.date == "2024-05-12"
        assert extracted.bible_ref == "Jean 10:11"
        mock_fitz.open.return_value.close.assert_called_once()

    @patch("sermonfinder.ingestion.pdf_loader.fitz")
    def test_falls_back_to_pdf_metadata_title(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        long_line = "mot " * 40
        mock_fitz.open.return_value = _mock_doc(
            [_page(_span(long_line, 88, 100))], metadata={"title": "Titre PDF"}
        )
        pdf_path = tmp_path / "meta.pdf"
        pdf_path.write_bytes(b"dummy")

        assert extract_pdf(pdf_path).title == "Titre PDF"

    @patch("sermonfinder.ingestion.pdf_loader.fitz")
    def test_empty_pdf_uses_stem(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        mock_fitz.open.return_value = _mock_doc([])
        pdf_path = tmp_path / "vide.pdf"
        pdf_path.write_bytes(b"dummy")

        extracted = extract_pdf(pdf_path)

        assert extracted.content == ""
        assert extracted.title == "vide"
        assert extracted.error is None

    @patch("sermonfinder.ingestion.pdf_loader.fitz")
    def test_open_failure_degrades(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        mock_fitz.open.side_effect = RuntimeError("cannot open broken document")
        pdf_path = tmp_path / "broken.pdf"
        pdf_path.write_bytes(b"garbage")

        extracted = extract_pdf(pdf_path)

        assert extracted.content == ""
        assert extracted.title == "broken"
        assert "cannot open" in extracted.error


class TestRealPdf:
    """Round trip through a PDF written by PyMuPDF itself."""

    def test_paragraphs_survive(self, tmp_path: Path) -> None:
        pdf_path = tmp_path / "real.pdf"
        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Titre du sermon")
        page.insert_text((72, 86), "Premiere ligne")
        page.insert_text((72, 160), "Second paragraphe")
        doc.save(str(pdf_path))
        doc.close()

        extracted = extract_pdf(pdf_path)

        assert extracted.content == "Titre du sermon\nPremiere ligne\n\nSecond paragraphe"
        assert extracted.title == "Titre du sermon"

    def test_empty_bytes_is_an_error(self, tmp_path: Path) -> None:
        pdf_path = tmp_path / "corrupt.pdf"
        pdf_path.write_bytes(b"")

        extracted = extract_pdf(pdf_path)

        assert extracted.error
        assert extracted.content == ""
        assert extracted.title == "corrupt"

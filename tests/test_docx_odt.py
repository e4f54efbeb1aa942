"""Tests for the Word and OpenDocument loaders."""

from __future__ import annotations

import zipfile
from pathlib import Path

import docx

from sermonfinder.ingestion.docx_loader import extract_docx
from sermonfinder.ingestion.odt_loader import extract_odt

ODT_CONTENT = """<?xml version="1.0" encoding="UTF-8"?>
<office:document-content
    xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0"
    xmlns:text="urn:oasis:names:tc:opendocument:xmlns:text:1.0"
    office:version="1.2">
  <office:body>
    <office:text>
      <text:h text:outline-level="1">Le semeur</text:h>
      <text:p>Date : 4 juin 2023</text:p>
      <text:p>Lecture : Matthieu 13:1-9</text:p>
      <text:p>Un<text:s text:c="2"/>semeur<text:tab/>sortit<text:line-break/>pour semer.</text:p>
      <text:list>
        <text:list-item><text:p>Le chemin</text:p></text:list-item>
      </text:list>
      <text:p/>
    </office:text>
  </office:body>
</office:document-content>
"""


def _write_odt(path: Path, content: str = ODT_CONTENT) -> None:
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("mimetype", "application/vnd.oasis.opendocument.text")
        archive.writestr("content.xml", content)


class TestExtractDocx:
    """Test extract_docx against documents built with python-docx."""

    def test_heading_becomes_title(self, tmp_path: Path) -> None:
        path = tmp_path / "pardon.docx"
        document = docx.Document()
        document.add_heading("Le pardon", level=1)
        document.add_paragraph("Date : 12/03/2023")
        document.add_paragraph("Texte : Luc 15:11-32")
        document.add_paragraph("Un homme avait deux fils.")
        document.save(str(path))

        extracted = extract_docx(path)

        assert extracted.title == "Le pardon"
        assert extracted.date == "2023-03-12"
        assert extracted.bible_ref == "Luc 15:11-32"
        assert "Un homme avait deux fils." in extracted.content
        assert extracted.error is None

    def test_bold_paragraph_rendered_as_bold_line(self, tmp_path: Path) -> None:
        path = tmp_path / "bold.docx"
        document = docx.Document()
        document.add_paragraph("Introduction longue " * 10)
        paragraph = document.add_paragraph()
        paragraph.add_run("La lumière du monde").bold = True
        document.save(str(path))

        extracted = extract_docx(path)

        assert "**La lumière du monde**" in extracted.content
        assert extracted.title == "La lumière du monde"

    def test_list_items_and_tables(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.docx"
        document = docx.Document()
        document.add_paragraph("Plan", style="List Bullet")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Point"
        table.rows[0].cells[1].text = "Verset"
        document.save(str(path))

        extracted = extract_docx(path)

        assert "- Plan" in extracted.content
        assert "Point | Verset" in extracted.content

    def test_empty_document_uses_stem(self, tmp_path: Path) -> None:
        path = tmp_path / "vide.docx"
        docx.Document().save(str(path))

        extracted = extract_docx(path)

        assert extracted.content == ""
        assert extracted.title == "vide"

    def test_corrupt_file_degrades(self, tmp_path: Path) -> None:
        path = tmp_path / "cassé.docx"
        path.write_bytes(b"not a zip")

        extracted = extract_docx(path)

        assert extracted.content == ""
        assert extracted.title == "cassé"
        assert extracted.error


class TestExtractOdt:
    """Test extract_odt against a hand-built archive."""

    def test_reads_blocks_and_metadata(self, tmp_path: Path) -> None:
        path = tmp_path / "semeur.odt"
        _write_odt(path)

        extracted = extract_odt(path)

        assert extracted.title == "Le semeur"
        assert extracted.date == "2023-06-04"
        assert extracted.bible_ref == "Matthieu 13:1-9"
        assert extracted.content.startswith("# Le semeur\n\n")
        assert "Un  semeur\tsortit\npour semer." in extracted.content
        assert "Le chemin" in extracted.content

    def test_missing_content_xml_degrades(self, tmp_path: Path) -> None:
        path = tmp_path / "incomplet.odt"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("mimetype", "application/vnd.oasis.opendocument.text")

        extracted = extract_odt(path)

        assert extracted.content == ""
        assert extracted.title == "incomplet"
        assert extracted.error

    def test_not_a_zip_degrades(self, tmp_path: Path) -> None:
        path = tmp_path / "faux.odt"
        path.write_bytes(b"plain text")

        extracted = extract_odt(path)

        assert extracted.error
        assert extracted.title == "faux"

    def test_malformed_xml_degrades(self, tmp_path: Path) -> None:
        path = tmp_path / "mal.odt"
        _write_odt(path, "<office:document-content")

        assert extract_odt(path).error

    def test_footnote_text_appears_once(self, tmp_path: Path) -> None:
        path = tmp_path / "note.odt"
        _write_odt(
            path,
            ODT_CONTENT.replace(
                "<text:p>Le chemin</text:p>",
                "<text:p>Le chemin<text:note text:note-class=\"footnote\">"
                "<text:note-citation>1</text:note-citation>"
                "<text:note-body><text:p>Voir Marc 4</text:p></text:note-body>"
                "</text:note> pierreux</text:p>",
            ),
        )

        extracted = extract_odt(path)

        assert extracted.content.count("Voir Marc 4") == 1
        assert "Le chemin pierreux" in extracted.content

    def test_malformed_counts_fall_back_to_one(self, tmp_path: Path) -> None:
        path = tmp_path / "attributs.odt"
        _write_odt(
            path,
            ODT_CONTENT.replace('text:outline-level="1"', 'text:outline-level="un"').replace(
                'text:c="2"', 'text:c="deux"'
            ),
        )

        extracted = extract_odt(path)

        assert extracted.error is None
        assert extracted.content.startswith("# Le semeur\n\n")
        assert "Un semeur\tsortit" in extracted.content

"""Word (.docx) loading via python-docx.

Paragraph styles are rendered back to light Markdown (``#`` headings, ``**``
bold lines, ``-`` list items) so the metadata heuristics see the same
structure as in a Markdown manuscript.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import docx

from sermonfinder.ingestion.base import failed, from_text
from sermonfinder.models import ExtractedContent
from sermonfinder.utils.text import collapse_blank_lines

LOGGER = logging.getLogger(__name__)

_HEADING_LEVEL = re.compile(r"^Heading\s+(\d)$", re.IGNORECASE)


def _render_paragraph(paragraph) -> str:
    text = paragraph.text.strip()
    if not text:
        return ""

    style = paragraph.style.name if paragraph.style is not None else ""
    if style == "Title":
        return f"# {text}"
    match = _HEADING_LEVEL.match(style)
    if match:
        return "#" * int(match.group(1)) + " " + text
    if style.startswith("List"):
        return f"- {text}"

    runs = [run for run in paragraph.runs if run.text.strip()]
    if runs and all(run.bold for run in runs):
        return f"**{text}**"
    return text


def _table_lines(table) -> list[str]:
    lines = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]
        if any(cells):
            lines.append(" | ".join(cells))
    return lines


def extract_docx(path: Path) -> ExtractedContent:
    try:
        document = docx.Document(str(path))
    except Exception as exc:
        return failed(path, exc)

    blocks = [_render_paragraph(paragraph) for paragraph in document.paragraphs]
    for table in document.tables:
        blocks.extend(_table_lines(table))

    content = collapse_blank_lines("\n\n".join(block for block in blocks if block))
    LOGGER.debug("Extracted %d characters from %s", len(content), path)
    return from_text(content, fallback_title=path.stem)

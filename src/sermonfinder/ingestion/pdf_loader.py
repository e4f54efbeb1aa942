"""PDF loading with line and paragraph reconstruction.

Uses PyMuPDF (fitz) for fast text extraction. Text comes out of a PDF as
positioned fragments; lines are rebuilt by clustering fragments on their
baseline, and a blank line is inserted wherever the vertical gap between two
lines exceeds 1.5x the line height so paragraph boundaries survive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import fitz  # PyMuPDF

from sermonfinder.ingestion.base import failed, from_text
from sermonfinder.models import ExtractedContent
from sermonfinder.utils.text import collapse_blank_lines

LOGGER = logging.getLogger(__name__)

LINE_Y_TOLERANCE = 5
DEFAULT_LINE_HEIGHT = 12.0
PARAGRAPH_GAP_FACTOR = 1.5


@dataclass(slots=True)
class TextFragment:
    """A run of text at a page position; ``y`` grows downwards."""

    text: str
    y: float
    height: float = DEFAULT_LINE_HEIGHT


@dataclass(slots=True)
class TextLine:
    y: float
    text: str
    height: float


def group_lines(fragments: Iterable[TextFragment]) -> List[TextLine]:
    """Cluster fragments (in content-stream order) into lines by baseline."""
    lines: List[TextLine] = []
    current = TextLine(y=0.0, text="", height=DEFAULT_LINE_HEIGHT)

    for fragment in fragments:
        if not fragment.text:
            continue
        y = round(fragment.y)
        height = fragment.height or DEFAULT_LINE_HEIGHT

        if abs(y - current.y) > LINE_Y_TOLERANCE and current.text:
            lines.append(current)
            current = TextLine(y=y, text=fragment.text, height=height)
        else:
            current.text = f"{current.text} {fragment.text}" if current.text else fragment.text
            current.y = y
            current.height = max(current.height, height)

    if current.text:
        lines.append(current)

    # top to bottom; sort is stable so same-baseline lines keep stream order
    lines.sort(key=lambda line: line.y)
    return lines


def reconstruct_page_text(fragments: Iterable[TextFragment]) -> str:
    """Rebuild a page's text with a blank line between paragraphs."""
    lines = group_lines(fragments)
    output: List[str] = []
    previous_y = lines[0].y if lines else 0.0

    for line in lines:
        text = line.text.strip()
        if not text:
            continue
        if line.y - previous_y > line.height * PARAGRAPH_GAP_FACTOR and output:
            output.append("")
        output.append(text)
        previous_y = line.y

    return "\n".join(output)


def iter_page_fragments(page: "fitz.Page") -> Iterator[TextFragment]:
    """Yield the text spans of a page with their baseline and height."""
    layout = page.get_text("dict")
    for block in layout.get("blocks", []):
        if block.get("type", 0) != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                text = span.get("text", "")
                if not text.strip():
                    continue
                x0, y0, x1, y1 = span.get("bbox", (0, 0, 0, 0))
                origin = span.get("origin", (x0, y1))
                yield TextFragment(
                    text=text.strip(),
                    y=origin[1],
                    height=(y1 - y0) or span.get("size") or DEFAULT_LINE_HEIGHT,
                )


def _metadata_title(doc: "fitz.Document") -> Optional[str]:
    metadata = doc.metadata or {}
    title = (metadata.get("title") or "").strip()
    return title or None


def extract_pdf(path: Path) -> ExtractedContent:
    try:
        doc = fitz.open(path)
    except Exception as exc:
        return failed(path, exc)

    try:
        pages = []
        for index in range(len(doc)):
            try:
                pages.append(reconstruct_page_text(iter_page_fragments(doc[index])))
            except Exception as exc:  # pragma: no cover
                LOGGER.warning("Failed to read page %s in %s: %s", index, path, exc)
        pdf_title = _metadata_title(doc)
    except Exception as exc:
        return failed(path, exc)
    finally:
        doc.close()

    content = collapse_blank_lines("\n\n".join(pages))
    extracted = from_text(content)
    extracted.title = extracted.title or pdf_title or path.stem
    return extracted

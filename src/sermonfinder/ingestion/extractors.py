"""Format dispatch for document text extraction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict

from sermonfinder.config import MAX_FILE_SIZE
from sermonfinder.ingestion.docx_loader import extract_docx
from sermonfinder.ingestion.odt_loader import extract_odt
from sermonfinder.ingestion.pdf_loader import extract_pdf
from sermonfinder.ingestion.text_loader import extract_markdown
from sermonfinder.models import ExtractedContent

LOGGER = logging.getLogger(__name__)

Extractor = Callable[[Path], ExtractedContent]

EXTRACTORS: Dict[str, Extractor] = {
    ".md": extract_markdown,
    ".txt": extract_markdown,
    ".docx": extract_docx,
    ".odt": extract_odt,
    ".pdf": extract_pdf,
}


class UnsupportedFormatError(ValueError):
    """No extractor is registered for the file's extension."""


class FileTooLargeError(ValueError):
    """The file exceeds the size ceiling and was not read."""


def check_file_size(path: Path, max_size: int = MAX_FILE_SIZE) -> None:
    size = path.stat().st_size
    if size > max_size:
        raise FileTooLargeError(
            f"File too large: {size / (1024 * 1024):.0f}MB "
            f"(max: {max_size / (1024 * 1024):.0f}MB)"
        )


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in EXTRACTORS


def extract_text(path: Path, *, max_size: int = MAX_FILE_SIZE) -> ExtractedContent:
    """Extract text and metadata from a supported document.

    Raises:
        FileTooLargeError: the file is bigger than ``max_size``; nothing is read.
        UnsupportedFormatError: the extension has no registered extractor.

    Format-level read failures do not raise: the result carries ``error``.
    """
    path = Path(path)
    check_file_size(path, max_size)

    ext = path.suffix.lower()
    extractor = EXTRACTORS.get(ext)
    if extractor is None:
        raise UnsupportedFormatError(f"Unsupported extension: {ext or '<none>'}")

    LOGGER.debug("Extracting %s as %s", path, ext)
    return extractor(path)

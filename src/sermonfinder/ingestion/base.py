"""Helpers shared by the format-specific loaders."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from sermonfinder.ingestion.metadata import parse_metadata
from sermonfinder.models import ExtractedContent

LOGGER = logging.getLogger(__name__)


def from_text(content: str, *, fallback_title: Optional[str] = None) -> ExtractedContent:
    """Wrap extracted text together with the metadata parsed out of it."""
    metadata = parse_metadata(content)
    return ExtractedContent(
        content=content,
        title=metadata.title or fallback_title,
        date=metadata.date,
        bible_ref=metadata.bible_ref,
    )


def failed(path: Path, exc: BaseException) -> ExtractedContent:
    """Best-effort result for a file the format library could not read."""
    LOGGER.warning("Failed to extract %s: %s", path, exc)
    return ExtractedContent(content="", title=path.stem, error=str(exc) or type(exc).__name__)

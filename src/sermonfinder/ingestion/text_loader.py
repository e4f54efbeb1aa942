"""Plain text and Markdown loading."""

from __future__ import annotations

from pathlib import Path

from sermonfinder.ingestion.base import failed, from_text
from sermonfinder.models import ExtractedContent


def extract_markdown(path: Path) -> ExtractedContent:
    """Read a ``.md`` or ``.txt`` file as UTF-8 text."""
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return failed(path, exc)
    return from_text(content.strip(), fallback_title=path.stem)

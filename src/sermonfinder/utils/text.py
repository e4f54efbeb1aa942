"""Text helpers shared by the extractors and the metadata parser."""

from __future__ import annotations

import re
import unicodedata

_BLANK_RUNS = re.compile(r"\n{3,}")


def collapse_blank_lines(text: str) -> str:
    """Normalise newlines and keep at most one blank line between paragraphs."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _BLANK_RUNS.sub("\n\n", text).strip()


def count_words(text: str) -> int:
    return len(text.split())


def strip_accents(value: str) -> str:
    """Remove combining diacritics, e.g. ``"février"`` -> ``"fevrier"``."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))

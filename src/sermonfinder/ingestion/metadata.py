"""Heuristic title, date and scripture-reference detection.

The rules are tuned for French sermon manuscripts: a heading or bold line for
the title, a ``Date :`` line (or any recognisable date) and a ``Texte :`` /
``Lecture :`` / ``Référence :`` line naming the passage preached on. Each rule
list is ordered and the first match wins.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Optional

from sermonfinder.utils.text import strip_accents

MAX_TITLE_LINE = 100

_H1 = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)
_BOLD_LINE = re.compile(r"^\*\*(.+)\*\*[ \t]*$", re.MULTILINE)

_MONTH_NAMES = (
    r"janvier|fevrier|février|mars|avril|mai|juin|juillet"
    r"|aout|août|septembre|octobre|novembre|decembre|décembre"
)

DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\*\*Date\*\*\s*:\s*(\d{1,2}\s+\w+\s+\d{4})", re.IGNORECASE),
    re.compile(r"Date\s*:\s*(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE),
    re.compile(r"Date\s*:\s*(\d{1,2}\s+\w+\s+\d{4})", re.IGNORECASE),
    re.compile(r"(\d{4}-\d{2}-\d{2})"),
    re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"),
    re.compile(rf"(\d{{1,2}}\s+(?:{_MONTH_NAMES})\s+\d{{4}})", re.IGNORECASE),
)

# Keys are accent-free; lookups strip accents first.
FRENCH_MONTHS: dict[str, str] = {
    "janvier": "01",
    "fevrier": "02",
    "mars": "03",
    "avril": "04",
    "mai": "05",
    "juin": "06",
    "juillet": "07",
    "aout": "08",
    "septembre": "09",
    "octobre": "10",
    "novembre": "11",
    "decembre": "12",
}

_PASSAGE = r"([A-Za-zÀ-ÿ]+\s+\d+[:\d\-,\s]*)"

REFERENCE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(label + r"\s*:\s*" + _PASSAGE, re.IGNORECASE)
    for label in (
        r"\*\*Texte\*\*",
        r"Texte",
        r"Lecture",
        r"Reference",
        r"Référence",
        r"\*\*Reference\*\*",
        r"\*\*Référence\*\*",
    )
)

_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_NUMERIC = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_WORDY = re.compile(r"^(\d{1,2})\s+(\w+)\s+(\d{4})$")


@dataclass(slots=True)
class ParsedMetadata:
    title: Optional[str] = None
    date: Optional[str] = None
    bible_ref: Optional[str] = None


def _valid_iso(year: str, month: str, day: str) -> Optional[str]:
    try:
        return dt.date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def normalize_date(value: str) -> Optional[str]:
    """Normalise ``value`` to ``YYYY-MM-DD`` or return None if it is not a date.

    Accepted inputs are ISO dates, ``DD/MM/YYYY`` and ``"15 janvier 2024"``
    style dates with French month names (accents optional).
    """
    value = value.strip()

    match = _ISO.match(value)
    if match:
        return _valid_iso(*match.groups())

    match = _NUMERIC.match(value)
    if match:
        day, month, year = match.groups()
        return _valid_iso(year, month, day)

    match = _WORDY.match(value.lower())
    if match:
        day, month_name, year = match.groups()
        month = FRENCH_MONTHS.get(strip_accents(month_name))
        if month:
            return _valid_iso(year, month, day)

    return None


def extract_title(text: str) -> Optional[str]:
    match = _H1.search(text)
    if match:
        return match.group(1).strip() or None

    match = _BOLD_LINE.search(text)
    if match:
        return match.group(1).strip() or None

    first_line = text.split("\n", 1)[0].strip()
    if 0 < len(first_line) < MAX_TITLE_LINE:
        return first_line
    return None


def extract_date(text: str) -> Optional[str]:
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            normalized = normalize_date(match.group(1))
            if normalized:
                return normalized
    return None


def extract_reference(text: str) -> Optional[str]:
    for pattern in REFERENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def parse_metadata(text: str) -> ParsedMetadata:
    """Recover title, ISO date and scripture reference from document text."""
    return ParsedMetadata(
        title=extract_title(text),
        date=extract_date(text),
        bible_ref=extract_reference(text),
    )

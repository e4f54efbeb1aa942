"""Core SermonFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

MatchType = Literal["exact", "semantic", "both"]


@dataclass(slots=True)
class ExtractedContent:
    """Plain text and heuristic metadata pulled out of one file.

    ``error`` is set when the format library could not read the file; the
    content is then empty and the title falls back to the file name.
    """

    content: str
    title: Optional[str] = None
    date: Optional[str] = None
    bible_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class Document:
    """One indexed file as stored in the corpus database."""

    id: int
    path: str
    title: str
    content: str
    hash: str
    date: Optional[str] = None
    bible_ref: Optional[str] = None
    word_count: int = 0
    indexed_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(slots=True)
class FullTextHit:
    """Full-text match; lower (more negative) ``rank`` is better."""

    document: Document
    rank: float
    snippet: str


@dataclass(slots=True)
class VectorHit:
    """Nearest-neighbour match; ``distance`` is cosine distance in [0, 2]."""

    document: Document
    distance: float


@dataclass(slots=True)
class HybridResult:
    document: Document
    score: float
    match_type: MatchType
    snippet: Optional[str] = None


@dataclass(slots=True)
class IndexingProgress:
    total: int
    current: int
    current_file: str


@dataclass(slots=True)
class IndexingResult:
    """Summary of one indexing run."""

    added: int = 0
    updated: int = 0
    removed: int = 0
    errors: list[str] = field(default_factory=list)
    empty: list[str] = field(default_factory=list)
    cancelled: bool = False

    def record(self, status: str) -> None:
        if status == "added":
            self.added += 1
        elif status == "updated":
            self.updated += 1

    def as_dict(self) -> dict[str, object]:
        return {
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "errors": list(self.errors),
            "empty": list(self.empty),
            "cancelled": self.cancelled,
        }


@dataclass(slots=True)
class CorpusStats:
    total_documents: int
    total_words: int
    oldest_date: Optional[str]
    newest_date: Optional[str]

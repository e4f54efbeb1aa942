"""Shared fixtures: a temporary corpus store and a deterministic embedder."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

import numpy as np
import pytest

from sermonfinder.index.indexer import Indexer
from sermonfinder.index.storage import CorpusStore

DIMENSION = 384


class FakeEmbedder:
    """Bag-of-words hashing embedder; texts sharing words end up close."""

    dimension = DIMENSION
    is_loaded = True

    def initialize(self) -> None:
        pass

    def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(DIMENSION, dtype="float32")
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % DIMENSION
            vector[bucket] += 1.0
        norm = np.linalg.norm(vector)
        if norm:
            vector /= norm
        return vector

    embed_query = embed

    def embed_many(self, texts):
        texts = list(texts)
        if not texts:
            return np.zeros((0, DIMENSION), dtype="float32")
        return np.vstack([self.embed(text) for text in texts])


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(tmp_path: Path):
    """Create a temporary corpus database."""
    corpus_store = CorpusStore(tmp_path / "corpus.db", dimension=DIMENSION)
    yield corpus_store
    corpus_store.close()


@pytest.fixture
def indexer(store: CorpusStore, embedder: FakeEmbedder) -> Indexer:
    return Indexer(store, embedder)


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    folder = tmp_path / "sermons"
    folder.mkdir()
    return folder


def make_document(**overrides) -> dict:
    fields = {
        "path": "/sermons/grace.md",
        "title": "Grace",
        "content": "La grace de Dieu suffit",
        "hash": "abc",
        "date": "2024-01-15",
        "bible_ref": "Jean 3:16",
        "word_count": 5,
    }
    fields.update(overrides)
    return fields

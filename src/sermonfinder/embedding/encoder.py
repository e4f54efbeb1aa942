"""Embedding model management.

The model is loaded lazily on first use and shared for the life of the
process. Loading is guarded by a lock so concurrent first callers wait on a
single load instead of each pulling the weights.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
EMBEDDING_DIMENSIONS = 384
MAX_EMBEDDING_CHARS = 2000

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    max_chars: int = MAX_EMBEDDING_CHARS
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


class EmbeddingModel:
    """Thin lazy wrapper around `SentenceTransformer` producing normalised vectors."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        self._model: Optional[SentenceTransformer] = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def dimension(self) -> int:
        if self._model is None:
            return EMBEDDING_DIMENSIONS
        return int(self._model.get_sentence_embedding_dimension())

    def initialize(self) -> None:
        """Load the model once; safe to call repeatedly and from several threads."""
        if self._model is not None:
            return
        with self._lock:
            if self._model is not None:
                return
            logger.info("Loading embedding model %s...", self.config.model_name)
            started = time.perf_counter()
            self._model = self._load_model()
            logger.info(
                "Embedding model loaded in %.0fms (backend: %s)",
                (time.perf_counter() - started) * 1000,
                self.config.backend,
            )

    def _load_model(self) -> SentenceTransformer:
        try:
            return SentenceTransformer(
                self.config.model_name,
                backend=self.config.backend,
                device=self.config.device,
            )
        except Exception as e:
            if self.config.backend == "torch":
                raise
            logger.warning(
                "Failed to load model with backend '%s': %s. Falling back to PyTorch.",
                self.config.backend,
                e,
            )
            self.config.backend = "torch"
            return SentenceTransformer(self.config.model_name, device=self.config.device)

    def _truncate(self, text: str) -> str:
        return text[: self.config.max_chars]

    def embed_many(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return a ``(len(texts), dimension)`` float32 matrix."""
        self.initialize()
        sentences = [self._truncate(text) for text in texts]
        if not sentences:
            return np.zeros((0, self.dimension), dtype="float32")
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text (truncated to ``max_chars``)."""
        return self.embed_many([text])[0]

    # Queries and documents share one embedding space with this model family.
    embed_query = embed

"""Document indexing pipeline."""

from __future__ import annotations

import itertools
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Literal, Optional, Sequence

from sermonfinder.config import MAX_FILE_SIZE, SUPPORTED_EXTENSIONS
from sermonfinder.embedding.encoder import EmbeddingModel
from sermonfinder.index.storage import CorpusStore
from sermonfinder.ingestion.extractors import extract_text
from sermonfinder.models import IndexingProgress, IndexingResult
from sermonfinder.utils.files import compute_md5, is_within, iter_document_paths
from sermonfinder.utils.text import count_words

LOGGER = logging.getLogger(__name__)

FileStatus = Literal["added", "updated", "unchanged"]
ProgressCallback = Callable[[IndexingProgress], None]


class IndexingInProgressError(RuntimeError):
    """A batch run was requested while another one is still active."""


class ExtractionError(RuntimeError):
    """The format library could not read a file."""


class CancellationToken:
    """Cooperative cancellation flag tied to one batch run."""

    def __init__(self, operation_id: int) -> None:
        self.id = operation_id
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(id={self.id}, cancelled={self.is_cancelled()})"


def _normalize(path: Path | str) -> Path:
    return Path(os.path.abspath(os.fspath(path)))


def _emit(progress: Optional[ProgressCallback], event: IndexingProgress) -> None:
    if progress is None:
        return
    try:
        progress(event)
    except Exception as exc:
        LOGGER.warning("Progress callback failed: %s", exc)


class Indexer:
    """Coordinates extraction, change detection and persistence.

    Only one batch run may be active at a time. Each run gets its own
    :class:`CancellationToken`; :meth:`cancel` only ever reaches the token of
    the run that is active when it is called.
    """

    def __init__(
        self,
        store: CorpusStore,
        embedder: Optional[EmbeddingModel] = None,
        *,
        extensions: Sequence[str] = SUPPORTED_EXTENSIONS,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.max_file_size = max_file_size
        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._operation_ids = itertools.count(1)
        self._current: Optional[CancellationToken] = None

    # ------------------------------------------------------------ cancellation

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def current_token(self) -> Optional[CancellationToken]:
        return self._current

    def cancel(self) -> bool:
        """Cancel the active batch run. Returns False if there is nothing to cancel."""
        with self._state_lock:
            token = self._current
            if token is None or token.is_cancelled():
                return False
            token.cancel()
        LOGGER.info("Cancellation requested for indexing run %s", token.id)
        return True

    def _start_operation(self) -> CancellationToken:
        with self._state_lock:
            self._current = CancellationToken(next(self._operation_ids))
            return self._current

    def _finish_operation(self, token: CancellationToken) -> None:
        with self._state_lock:
            if self._current is token:
                self._current = None

    # ------------------------------------------------------------------ batch

    def find_documents(self, folder: Path) -> list[Path]:
        """All supported, non-hidden files under ``folder`` in processing order."""
        return list(iter_document_paths(folder, self.extensions))

    def index_folder(
        self,
        folder: Path | str,
        progress: Optional[ProgressCallback] = None,
        *,
        force: bool = False,
    ) -> IndexingResult:
        """Index every supported file under ``folder`` one at a time.

        Per-file failures are collected in ``result.errors``; a missing folder
        or a concurrent run raises. Documents whose files disappeared are
        removed afterwards unless the run was cancelled.
        """
        folder = _normalize(folder)
        if not folder.is_dir():
            raise FileNotFoundError(f"Folder not found: {folder}")

        with self.reserve():
            return self.run_reserved(folder, progress, force=force)

    @contextmanager
    def reserve(self) -> Iterator[None]:
        """Claim the single batch slot, raising if another run holds it."""
        if not self._run_lock.acquire(blocking=False):
            raise IndexingInProgressError("An indexing run is already in progress")
        try:
            yield
        finally:
            self._run_lock.release()

    def run_reserved(
        self,
        folder: Path | str,
        progress: Optional[ProgressCallback] = None,
        *,
        force: bool = False,
    ) -> IndexingResult:
        """Batch body of :meth:`index_folder`; the caller must hold :meth:`reserve`."""
        folder = _normalize(folder)
        token = self._start_operation()
        result = IndexingResult()
        try:
            files = self.find_documents(folder)
            LOGGER.info("Indexing %d files under %s (run %s)", len(files), folder, token.id)

            for position, path in enumerate(files, start=1):
                if token.is_cancelled():
                    result.cancelled = True
                    break

                _emit(progress, IndexingProgress(len(files), position, path.name))

                try:
                    status, empty = self._index_file(path, force=force)
                except Exception as exc:
                    message = f"{path.name}: {exc}"
                    result.errors.append(message)
                    LOGGER.error("Indexing error: %s", message)
                    continue

                result.record(status)
                if empty:
                    result.empty.append(path.name)

            if token.is_cancelled():
                result.cancelled = True
                LOGGER.info("Indexing run %s cancelled", token.id)
            else:
                result.removed = self.remove_deleted_documents(folder)

            LOGGER.info(
                "Indexing run %s done: added=%d updated=%d removed=%d errors=%d",
                token.id,
                result.added,
                result.updated,
                result.removed,
                len(result.errors),
            )
            return result
        finally:
            self._finish_operation(token)

    def force_reindex_folder(
        self, folder: Path | str, progress: Optional[ProgressCallback] = None
    ) -> IndexingResult:
        return self.index_folder(folder, progress, force=True)

    def remove_deleted_documents(self, folder: Path | str) -> int:
        """Delete documents under ``folder`` whose file no longer exists."""
        folder = _normalize(folder)
        removed = 0
        for doc_id, doc_path in self.store.list_paths():
            path = Path(doc_path)
            if not is_within(path, folder) or path.exists():
                continue
            if self.store.delete_document(doc_id):
                LOGGER.info("Removed missing document %s", doc_path)
                removed += 1
        return removed

    # ------------------------------------------------------------ single file

    def _index_file(self, path: Path, *, force: bool = False) -> tuple[FileStatus, bool]:
        path = _normalize(path)
        file_hash = compute_md5(path)
        existing = self.store.get_document_by_path(str(path))

        if existing is not None and not force and existing.hash == file_hash:
            return "unchanged", False

        extracted = extract_text(path, max_size=self.max_file_size)
        if extracted.error is not None:
            raise ExtractionError(f"Could not read file ({extracted.error})")

        empty = not extracted.content
        if empty:
            LOGGER.warning("No text extracted from %s", path)

        fields = {
            "path": str(path),
            "title": extracted.title or path.stem,
            "content": extracted.content,
            "date": extracted.date,
            "bible_ref": extracted.bible_ref,
            "word_count": count_words(extracted.content),
            "hash": file_hash,
        }

        if existing is None:
            self.store.insert_document(fields)
            return "added", empty

        with self.store.transaction():
            self.store.update_document(existing.id, fields)
            if existing.hash != file_hash or force:
                # the stored vector describes the old text
                self.store.delete_embedding(existing.id)
        return "updated", empty

    def index_file(self, path: Path | str, *, force: bool = False) -> FileStatus:
        """Index one file; errors propagate to the caller."""
        status, _ = self._index_file(Path(path), force=force)
        return status

    def index_single_file(self, path: Path | str) -> Optional[FileStatus]:
        """Index one file for the watcher; failures are logged, never raised."""
        try:
            status = self.index_file(path)
        except Exception as exc:
            LOGGER.error("Failed to reindex file %s: %s", path, exc)
            return None
        LOGGER.info("Reindexed %s (%s)", path, status)
        return status

    def remove_file(self, path: Path | str) -> bool:
        """Drop the document indexed for ``path``, if any."""
        removed = self.store.delete_document_by_path(str(_normalize(path)))
        if removed:
            LOGGER.info("Removed %s from index", path)
        return removed

    # ------------------------------------------------------------- embeddings

    def index_missing_embeddings(
        self, progress: Optional[ProgressCallback] = None
    ) -> dict[str, object]:
        """Embed every document that has no embedding yet."""
        if self.embedder is None:
            raise RuntimeError("No embedding model configured")

        documents = self.store.documents_without_embedding()
        indexed = 0
        errors: list[str] = []
        for position, document in enumerate(documents, start=1):
            _emit(progress, IndexingProgress(len(documents), position, Path(document.path).name))
            try:
                vector = self.embedder.embed(f"{document.title}\n\n{document.content}")
                self.store.upsert_embedding(document.id, vector)
            except Exception as exc:
                message = f"{Path(document.path).name}: {exc}"
                errors.append(message)
                LOGGER.error("Embedding error: %s", message)
                continue
            indexed += 1

        LOGGER.info("Embedded %d of %d documents", indexed, len(documents))
        return {"indexed": indexed, "errors": errors}

"""Filesystem watcher keeping the index in sync with the corpus folder.

Built on watchdog. Create/modify events are debounced per file: the index
update fires only once the file size has stayed unchanged for the debounce
window, so half-written files are not indexed.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from sermonfinder.config import SUPPORTED_EXTENSIONS
from sermonfinder.index.indexer import Indexer, ProgressCallback
from sermonfinder.models import IndexingResult
from sermonfinder.utils.files import is_hidden, is_within

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.5
STOP_TIMEOUT = 5.0


def _file_size(path: Path) -> Optional[int]:
    try:
        return path.stat().st_size
    except OSError:
        return None


class CorpusEventHandler(FileSystemEventHandler):
    """Routes watchdog events for one folder into the indexer."""

    def __init__(
        self,
        indexer: Indexer,
        folder: Path,
        *,
        extensions: Sequence[str] = SUPPORTED_EXTENSIONS,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        super().__init__()
        self.indexer = indexer
        self.folder = folder
        self.extensions = {ext.lower() for ext in extensions}
        self.debounce = debounce
        self._lock = threading.Lock()
        self._pending: Dict[Path, tuple[threading.Timer, Optional[int]]] = {}
        self._closed = False

    def _accepts(self, path: Path) -> bool:
        if not is_within(path, self.folder) or path == self.folder:
            return False
        if is_hidden(path, self.folder):
            return False
        return path.suffix.lower() in self.extensions

    # ----------------------------------------------------------------- events

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._changed(Path(os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._changed(Path(os.fsdecode(event.src_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = Path(os.fsdecode(event.src_path))
        if event.is_directory:
            self._discard_below(path)
            LOGGER.info("Directory deleted: %s", path)
            self.indexer.remove_deleted_documents(path)
            return
        self._deleted(path)

    def on_moved(self, event: FileSystemEvent) -> None:
        source = Path(os.fsdecode(event.src_path))
        destination = Path(os.fsdecode(event.dest_path))
        if event.is_directory:
            self._discard_below(source)
            self.indexer.remove_deleted_documents(source)
            return
        self._deleted(source)
        self._changed(destination)

    # ---------------------------------------------------------------- helpers

    def _changed(self, path: Path) -> None:
        if not self._accepts(path):
            return
        LOGGER.info("File changed: %s", path)
        self._schedule(path, _file_size(path))

    def _deleted(self, path: Path) -> None:
        if not self._accepts(path):
            return
        self._discard(path)
        LOGGER.info("File deleted: %s", path)
        self.indexer.remove_file(path)

    def _schedule(self, path: Path, size: Optional[int]) -> None:
        with self._lock:
            if self._closed:
                return
            previous = self._pending.pop(path, None)
            if previous is not None:
                previous[0].cancel()
            timer = threading.Timer(self.debounce, self._settle, args=(path,))
            timer.daemon = True
            self._pending[path] = (timer, size)
            timer.start()

    def _settle(self, path: Path) -> None:
        with self._lock:
            entry = self._pending.get(path)
            if entry is None or self._closed:
                return
            size = _file_size(path)
            if size is None:
                self._pending.pop(path, None)
                return
            if size != entry[1]:
                # still being written; wait for another quiet window
                timer = threading.Timer(self.debounce, self._settle, args=(path,))
                timer.daemon = True
                self._pending[path] = (timer, size)
                timer.start()
                return
            self._pending.pop(path, None)
        self.indexer.index_single_file(path)

    def _discard(self, path: Path) -> None:
        with self._lock:
            entry = self._pending.pop(path, None)
        if entry is not None:
            entry[0].cancel()

    def _discard_below(self, folder: Path) -> None:
        with self._lock:
            doomed = [path for path in self._pending if is_within(path, folder)]
        for path in doomed:
            self._discard(path)

    @property
    def pending(self) -> list[Path]:
        with self._lock:
            return list(self._pending)

    def flush(self) -> None:
        """Index every pending file now instead of waiting for its timer."""
        with self._lock:
            entries = list(self._pending.items())
            self._pending.clear()
        for path, (timer, _) in entries:
            timer.cancel()
            if path.exists():
                self.indexer.index_single_file(path)

    def close(self) -> None:
        """Drop pending events and refuse new ones."""
        with self._lock:
            self._closed = True
            entries = list(self._pending.values())
            self._pending.clear()
        for timer, _ in entries:
            timer.cancel()


class FolderWatcher:
    """Owns the single active watch of the corpus folder.

    Starting a watch on a new folder fully stops the previous observer first,
    then runs one batch index of the new folder, and only then subscribes to
    live changes so the batch pass and the event stream never overlap.
    """

    def __init__(
        self,
        indexer: Indexer,
        *,
        debounce: float = DEFAULT_DEBOUNCE,
        observer_factory: Callable[[], Observer] = Observer,
    ) -> None:
        self.indexer = indexer
        self.debounce = debounce
        self._observer_factory = observer_factory
        self._lifecycle = threading.RLock()
        self._observer = None
        self._handler: Optional[CorpusEventHandler] = None
        self._folder: Optional[Path] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def folder(self) -> Optional[Path]:
        return self._folder

    @property
    def handler(self) -> Optional[CorpusEventHandler]:
        return self._handler

    def start(
        self,
        folder: Path | str,
        progress: Optional[ProgressCallback] = None,
        on_complete: Optional[Callable[[IndexingResult], None]] = None,
    ) -> IndexingResult:
        folder = Path(os.path.abspath(os.fspath(folder)))
        if not folder.is_dir():
            raise FileNotFoundError(f"Folder not found: {folder}")

        # claim the batch slot before the current watch is torn down
        with self._lifecycle, self.indexer.reserve():
            self.stop()

            LOGGER.info("Starting watcher for %s", folder)
            result = self.indexer.run_reserved(folder, progress)
            LOGGER.info("Initial indexation complete: %s", result.as_dict())
            if on_complete is not None:
                on_complete(result)

            handler = CorpusEventHandler(
                self.indexer,
                folder,
                extensions=self.indexer.extensions,
                debounce=self.debounce,
            )
            observer = self._observer_factory()
            observer.schedule(handler, str(folder), recursive=True)
            observer.start()

            self._observer = observer
            self._handler = handler
            self._folder = folder
            LOGGER.info("Watching %s for changes", folder)
            return result

    def stop(self) -> None:
        with self._lifecycle:
            if self._observer is None:
                return
            LOGGER.info("Stopping watcher for %s", self._folder)
            try:
                if self._handler is not None:
                    self._handler.close()
                self._observer.stop()
                self._observer.join(STOP_TIMEOUT)
            except Exception as exc:
                LOGGER.error("Error closing watcher: %s", exc)
            finally:
                self._observer = None
                self._handler = None
                self._folder = None

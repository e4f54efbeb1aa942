"""Process-wide wiring of the store, embedding model, indexer and watcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from sermonfinder.config import FOLDER_SETTING_KEY, AppConfig
from sermonfinder.embedding.encoder import EmbeddingConfig, EmbeddingModel
from sermonfinder.index.indexer import Indexer, ProgressCallback
from sermonfinder.index.search import Searcher
from sermonfinder.index.storage import CorpusStore
from sermonfinder.index.watcher import FolderWatcher
from sermonfinder.models import IndexingResult

LOGGER = logging.getLogger(__name__)


@dataclass
class AppContext:
    """The single set of shared handles, built once at start-up."""

    config: AppConfig
    store: CorpusStore
    embedder: EmbeddingModel
    indexer: Indexer
    searcher: Searcher
    watcher: FolderWatcher

    @classmethod
    def create(
        cls,
        config: Optional[AppConfig] = None,
        *,
        base_dir: Optional[Path] = None,
        embedder: Optional[EmbeddingModel] = None,
    ) -> "AppContext":
        config = config or AppConfig()
        db_path = config.resolve_db_path(base_dir)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        embedder = embedder or EmbeddingModel(
            EmbeddingConfig(model_name=config.model_name, max_chars=config.embedding_max_chars)
        )
        store = CorpusStore(db_path)
        indexer = Indexer(store, embedder, max_file_size=config.max_file_size)
        LOGGER.info("Database initialized at %s", db_path)
        return cls(
            config=config,
            store=store,
            embedder=embedder,
            indexer=indexer,
            searcher=Searcher(embedder, store),
            watcher=FolderWatcher(indexer, debounce=config.watch_debounce),
        )

    @property
    def folder(self) -> Optional[Path]:
        value = self.store.get_setting(FOLDER_SETTING_KEY)
        return Path(value) if value else None

    def watch_folder(
        self,
        folder: Path | str,
        progress: Optional[ProgressCallback] = None,
        on_complete: Optional[Callable[[IndexingResult], None]] = None,
    ) -> IndexingResult:
        """Index ``folder`` and watch it, then remember it as the corpus folder."""
        folder = Path(folder).expanduser()
        if not folder.is_dir():
            raise FileNotFoundError(f"Folder not found: {folder}")
        result = self.watcher.start(folder, progress, on_complete)
        self.store.set_setting(FOLDER_SETTING_KEY, str(folder.absolute()))
        return result

    def startup(self, progress: Optional[ProgressCallback] = None) -> Optional[IndexingResult]:
        """Resume watching the configured folder, if there is one."""
        folder = self.folder
        if folder is None:
            LOGGER.info("No corpus folder configured, watcher not started")
            return None
        if not folder.is_dir():
            LOGGER.warning("Configured corpus folder %s is missing, watcher not started", folder)
            return None
        LOGGER.info("Auto-starting watcher for %s", folder)
        return self.watcher.start(folder, progress)

    def close(self) -> None:
        self.watcher.stop()
        self.store.close()

"""Tests for AppContext wiring."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from sermonfinder.config import FOLDER_SETTING_KEY, AppConfig
from sermonfinder.context import AppContext
from sermonfinder.index.indexer import IndexingInProgressError


class FakeObserver:
    def schedule(self, handler, path, recursive=False) -> None:
        self.path = path

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def join(self, timeout=None) -> None:
        pass


@pytest.fixture
def ctx(tmp_path: Path, embedder):
    context = AppContext.create(
        AppConfig(db_path=Path("nested/corpus.db")), base_dir=tmp_path, embedder=embedder
    )
    context.watcher._observer_factory = FakeObserver
    yield context
    context.close()


class TestAppContext:
    def test_create_resolves_db_path(self, ctx: AppContext, tmp_path: Path) -> None:
        assert ctx.store.db_path == tmp_path / "nested" / "corpus.db"
        assert ctx.store.db_path.exists()
        assert ctx.indexer.store is ctx.store
        assert ctx.searcher.store is ctx.store

    def test_no_folder_configured(self, ctx: AppContext) -> None:
        assert ctx.folder is None
        assert ctx.startup() is None
        assert not ctx.watcher.is_running

    def test_watch_folder_persists_setting(self, ctx: AppContext, corpus: Path) -> None:
        (corpus / "a.md").write_text("# A\n\nbody", encoding="utf-8")

        result = ctx.watch_folder(corpus)

        assert result.added == 1
        assert ctx.store.get_setting(FOLDER_SETTING_KEY) == str(corpus)
        assert ctx.folder == corpus
        assert ctx.watcher.is_running

    def test_watch_missing_folder(self, ctx: AppContext, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ctx.watch_folder(tmp_path / "missing")

        assert ctx.folder is None

    def test_startup_resumes_configured_folder(self, ctx: AppContext, corpus: Path) -> None:
        (corpus / "a.md").write_text("# A\n\nbody", encoding="utf-8")
        ctx.store.set_setting(FOLDER_SETTING_KEY, str(corpus))

        result = ctx.startup()

        assert result is not None
        assert result.added == 1
        assert ctx.watcher.folder == corpus

    def test_refused_run_keeps_folder_and_watch(
        self, ctx: AppContext, corpus: Path, tmp_path: Path
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        ctx.watch_folder(corpus)

        with ctx.indexer.reserve():
            with pytest.raises(IndexingInProgressError):
                ctx.watch_folder(other)

        assert ctx.folder == corpus
        assert ctx.watcher.is_running
        assert ctx.watcher.folder == corpus

    def test_startup_with_vanished_folder(self, ctx: AppContext, tmp_path: Path) -> None:
        ctx.store.set_setting(FOLDER_SETTING_KEY, str(tmp_path / "gone"))

        assert ctx.startup() is None
        assert not ctx.watcher.is_running


class TestModelDimension:
    @patch("sermonfinder.embedding.encoder.SentenceTransformer")
    def test_wider_model_embeds_and_searches(
        self, mock_st: MagicMock, tmp_path: Path, corpus: Path
    ) -> None:
        transformer = MagicMock()
        transformer.get_sentence_embedding_dimension.return_value = 768
        transformer.encode.side_effect = lambda sentences, **kwargs: np.ones(
            (len(sentences), 768), dtype="float32"
        )
        mock_st.return_value = transformer
        config = AppConfig(db_path=tmp_path / "mpnet.db", model_name="all-mpnet-base-v2")
        context = AppContext.create(config)
        (corpus / "a.md").write_text("# A\n\nbody", encoding="utf-8")

        try:
            context.indexer.index_folder(corpus)
            outcome = context.indexer.index_missing_embeddings()
            hits = context.searcher.semantic("body")
        finally:
            context.close()

        assert outcome == {"indexed": 1, "errors": []}
        assert context.store.dimension == 768
        assert len(hits) == 1

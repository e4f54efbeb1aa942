"""Tests for file utility functions."""

from __future__ import annotations

import hashlib
from pathlib import Path

from sermonfinder.config import SUPPORTED_EXTENSIONS
from sermonfinder.utils.files import compute_md5, is_hidden, is_within, iter_document_paths


class TestIterDocumentPaths:
    """Test iter_document_paths function."""

    def test_filters_by_extension(self, tmp_path: Path) -> None:
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "b.PDF").write_text("b")
        (tmp_path / "c.jpg").write_text("c")
        (tmp_path / "d.doc").write_text("d")

        paths = list(iter_document_paths(tmp_path, SUPPORTED_EXTENSIONS))

        assert [p.name for p in paths] == ["a.md", "b.PDF"]

    def test_nested_directories(self, tmp_path: Path) -> None:
        subdir = tmp_path / "2024" / "janvier"
        subdir.mkdir(parents=True)
        (subdir / "nested.txt").write_text("x")
        (tmp_path / "top.odt").write_text("x")

        paths = list(iter_document_paths(tmp_path, SUPPORTED_EXTENSIONS))

        assert subdir / "nested.txt" in paths
        assert tmp_path / "top.odt" in paths

    def test_skips_hidden_files_and_directories(self, tmp_path: Path) -> None:
        hidden_dir = tmp_path / ".trash"
        hidden_dir.mkdir()
        (hidden_dir / "old.md").write_text("x")
        (tmp_path / ".draft.md").write_text("x")
        (tmp_path / "visible.md").write_text("x")

        paths = list(iter_document_paths(tmp_path, SUPPORTED_EXTENSIONS))

        assert paths == [tmp_path / "visible.md"]

    def test_order_is_stable(self, tmp_path: Path) -> None:
        for name in ("c.md", "a.md", "b.md"):
            (tmp_path / name).write_text(name)

        first = list(iter_document_paths(tmp_path, SUPPORTED_EXTENSIONS))
        second = list(iter_document_paths(tmp_path, SUPPORTED_EXTENSIONS))

        assert first == second
        assert [p.name for p in first] == ["a.md", "b.md", "c.md"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert list(iter_document_paths(tmp_path, SUPPORTED_EXTENSIONS)) == []


class TestComputeMd5:
    """Test compute_md5 function."""

    def test_matches_hashlib(self, tmp_path: Path) -> None:
        path = tmp_path / "file.md"
        path.write_bytes(b"hello world")

        assert compute_md5(path) == hashlib.md5(b"hello world").hexdigest()

    def test_one_byte_changes_hash(self, tmp_path: Path) -> None:
        path = tmp_path / "file.md"
        path.write_bytes(b"hello world")
        before = compute_md5(path)

        path.write_bytes(b"hello worle")

        assert compute_md5(path) != before

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.pdf"
        path.write_bytes(b"")

        assert compute_md5(path) == "d41d8cd98f00b204e9800998ecf8427e"


class TestPathHelpers:
    def test_is_hidden(self) -> None:
        root = Path("/corpus/.hidden")
        assert is_hidden(Path("/corpus/.git/config"), Path("/corpus"))
        assert not is_hidden(Path("/corpus/a/b.md"), Path("/corpus"))
        # components above the root are not considered
        assert not is_hidden(root / "b.md", root)

    def test_is_within(self) -> None:
        folder = Path("/corpus")
        assert is_within(Path("/corpus/a/b.md"), folder)
        assert is_within(folder, folder)
        assert not is_within(Path("/corpus2/b.md"), folder)
        assert not is_within(Path("/other/b.md"), folder)

"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator


def is_hidden(path: Path, root: Path | None = None) -> bool:
    """Return True if any component of ``path`` (below ``root``) is a dotfile."""
    parts = path.relative_to(root).parts if root is not None else path.parts
    return any(part.startswith(".") for part in parts)


def iter_document_paths(root: Path, extensions: Iterable[str]) -> Iterator[Path]:
    """Yield supported files under ``root`` in a stable order.

    Hidden files and directories are skipped entirely, so nothing below a
    dot-directory is ever visited.
    """
    allowed = {ext.lower() for ext in extensions}
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if child.name.startswith("."):
            continue
        if child.is_dir():
            yield from iter_document_paths(child, allowed)
        elif child.is_file() and child.suffix.lower() in allowed:
            yield child


def compute_md5(path: Path) -> str:
    """Compute the MD5 hex digest of a file's raw bytes."""
    md5 = hashlib.md5()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            md5.update(chunk)
    return md5.hexdigest()


def is_within(path: Path, folder: Path) -> bool:
    """True when ``path`` is ``folder`` itself or lies somewhere below it."""
    try:
        path.relative_to(folder)
    except ValueError:
        return False
    return True

"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sermonfinder.embedding.encoder import DEFAULT_MODEL, MAX_EMBEDDING_CHARS

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".md", ".txt", ".docx", ".odt", ".pdf")

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB

# Settings key holding the configured corpus folder
FOLDER_SETTING_KEY = "sermons_folder"

MAX_CONTEXT_DOCUMENTS = 5


def _get_default_db_path() -> Path:
    """Default database location: local data/ when present, else ~/Documents."""
    user_db = Path.home() / "Documents" / "SermonFinder" / "sermonfinder.db"

    # A source checkout with a local data/ directory keeps its database there
    local_db = Path("data/sermonfinder.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    max_file_size: int = MAX_FILE_SIZE
    embedding_max_chars: int = MAX_EMBEDDING_CHARS
    watch_debounce: float = 0.5

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

"""SermonFinder - keyword and semantic search over a personal document corpus."""

__version__ = "0.1.0"

"""Command line interface for SermonFinder."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from sermonfinder.config import AppConfig
from sermonfinder.context import AppContext
from sermonfinder.models import IndexingProgress, IndexingResult
from sermonfinder.web.app import app as web_app
from sermonfinder.web.app import configure as configure_web

console = Console()
app = typer.Typer(help="SermonFinder - keyword and semantic search over your sermons")

SEARCH_MODES = ("hybrid", "fts", "semantic")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _config(db: Optional[Path], model: Optional[str] = None) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        db_path=db if db is not None else defaults.db_path,
        model_name=model or defaults.model_name,
    )


def _open_context(
    db: Optional[Path], model: Optional[str] = None, *, must_exist: bool = False
) -> AppContext:
    config = _config(db, model)
    resolved_db = config.resolve_db_path(Path.cwd())
    if must_exist and not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")
    _ensure_db_parent(resolved_db)
    return AppContext.create(config, base_dir=Path.cwd())


def _print_result(result: IndexingResult) -> None:
    console.print(
        f"Added: {result.added}, updated: {result.updated}, removed: {result.removed}, "
        f"errors: {len(result.errors)}"
    )
    if result.cancelled:
        console.print("[yellow]Indexing was cancelled.[/yellow]")
    for name in result.empty:
        console.print(f"[yellow]No text extracted:[/yellow] {escape(name)}")
    for error in result.errors:
        console.print(f"[red]Error:[/red] {escape(error)}")


def _run_index(folder: Path, db: Optional[Path], *, force: bool) -> None:
    if not folder.is_dir():
        raise typer.BadParameter(f"Folder not found: {folder}")

    ctx = _open_context(db)
    console.print(f"Indexing [bold]{folder}[/bold] into [bold]{ctx.store.db_path}[/bold]...")
    try:
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as bar:
            task = bar.add_task("Indexing", total=None)

            def on_progress(event: IndexingProgress) -> None:
                bar.update(
                    task,
                    total=event.total,
                    completed=event.current - 1,
                    description=escape(event.current_file),
                )

            try:
                result = ctx.indexer.index_folder(folder, on_progress, force=force)
            except KeyboardInterrupt:
                ctx.indexer.cancel()
                raise
        _print_result(result)
    finally:
        ctx.close()


@app.command()
def index(
    folder: Path = typer.Argument(..., help="Folder containing the documents.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index new and changed documents under a folder."""
    _setup_logging(verbose)
    _run_index(folder, db, force=False)


@app.command()
def reindex(
    folder: Path = typer.Argument(..., help="Folder containing the documents.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Re-extract every document under a folder, even unchanged ones."""
    _setup_logging(verbose)
    _run_index(folder, db, force=True)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(None, help="Sentence-transformer model name"),
    mode: str = typer.Option("hybrid", help="Search mode: hybrid, fts or semantic"),
    reference: bool = typer.Option(False, "--reference", help="Match the scripture reference only"),
    limit: int = typer.Option(10, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search the indexed documents."""
    _setup_logging(verbose)
    if mode not in SEARCH_MODES:
        raise typer.BadParameter(f"Unknown mode {mode!r}, expected one of {', '.join(SEARCH_MODES)}")

    ctx = _open_context(db, model, must_exist=True)
    try:
        table = Table(show_header=True, header_style="bold magenta")
        if reference:
            rows = [("-", "ref", doc, doc.bible_ref or "") for doc in ctx.searcher.by_reference(query)]
        elif mode == "fts":
            rows = [
                (f"{hit.rank:.4f}", "exact", hit.document, hit.snippet)
                for hit in ctx.searcher.full_text(query, limit=limit)
            ]
        elif mode == "semantic":
            rows = [
                (f"{1 - hit.distance:.4f}", "semantic", hit.document, hit.document.content[:180])
                for hit in ctx.searcher.semantic(query, limit=limit)
            ]
        else:
            rows = [
                (f"{r.score:.4f}", r.match_type, r.document, r.snippet or r.document.content[:180])
                for r in ctx.searcher.hybrid(query, limit=limit)
            ]

        if not rows:
            console.print("[yellow]No matches found.[/yellow]")
            return

        table.add_column("Score")
        table.add_column("Match")
        table.add_column("Document")
        table.add_column("Date")
        table.add_column("Snippet")
        for score, match, document, snippet in rows:
            table.add_row(
                score,
                match,
                escape(document.title),
                document.date or "",
                escape(snippet.replace("\n", " ")[:180]),
            )
        console.print(table)
    finally:
        ctx.close()


@app.command()
def embed(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(None, help="Sentence-transformer model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Compute embeddings for documents that do not have one yet."""
    _setup_logging(verbose)
    ctx = _open_context(db, model, must_exist=True)
    try:
        outcome = ctx.indexer.index_missing_embeddings()
        console.print(f"Embedded {outcome['indexed']} documents.")
        for error in outcome["errors"]:
            console.print(f"[red]Error:[/red] {escape(error)}")
    finally:
        ctx.close()


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show corpus statistics."""
    ctx = _open_context(db, must_exist=True)
    try:
        corpus = ctx.store.corpus_stats()
        embeddings = ctx.store.embedding_stats()
    finally:
        ctx.close()

    console.print(f"Documents: {corpus.total_documents}")
    console.print(f"Words: {corpus.total_words}")
    console.print(f"Dates: {corpus.oldest_date or '-'} to {corpus.newest_date or '-'}")
    console.print(f"Embeddings: {embeddings['indexed']}/{embeddings['total']}")


@app.command()
def documents(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    limit: int = typer.Option(None, help="Show only the most recent documents"),
) -> None:
    """List indexed documents, newest first."""
    ctx = _open_context(db, must_exist=True)
    try:
        docs = ctx.store.list_documents(limit=limit)
    finally:
        ctx.close()

    if not docs:
        console.print("[yellow]No documents indexed.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("Reference")
    table.add_column("Words")
    for doc in docs:
        table.add_row(
            str(doc.id), doc.date or "", escape(doc.title), doc.bible_ref or "", str(doc.word_count)
        )
    console.print(table)


@app.command()
def remove(
    doc_id: int = typer.Argument(..., help="Document ID"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove a document (and its embedding) from the index."""
    ctx = _open_context(db, must_exist=True)
    try:
        deleted = ctx.store.delete_document(doc_id)
    finally:
        ctx.close()

    if not deleted:
        console.print(f"[yellow]Document {doc_id} not found.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"Removed document {doc_id}.")


@app.command()
def watch(
    folder: Optional[Path] = typer.Argument(None, help="Folder to watch (defaults to the saved one)"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index a folder, then keep the index in sync until interrupted."""
    _setup_logging(verbose)
    ctx = _open_context(db)
    try:
        if folder is not None:
            result = ctx.watch_folder(folder)
        else:
            result = ctx.startup()
            if result is None:
                raise typer.BadParameter("No folder given and none configured")
        _print_result(result)
        console.print(f"Watching [bold]{ctx.watcher.folder}[/bold]. Press Ctrl+C to stop.")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping.")
    finally:
        ctx.close()


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter("uvicorn is not installed") from exc

    config = _config(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)
    configure_web(config)

    console.print(f"Starting API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover
    app()

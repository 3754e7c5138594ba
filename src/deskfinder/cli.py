"""Command line interface for DeskFinder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from deskfinder.app import DeskFinder
from deskfinder.config import AppConfig
from deskfinder.embedding.encoder import EmbeddingConfig, EmbeddingModel, EmbeddingProvider
from deskfinder.embedding.onnx import OnnxEmbeddingModel
from deskfinder.index.storage import SQLiteFileStore

console = Console()
app = typer.Typer(help="DeskFinder - local hybrid search for your files")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(db: Optional[Path], **overrides) -> AppConfig:
    return AppConfig(db_path=db if db is not None else AppConfig().db_path, **overrides)


def _build_embedder(
    semantic: bool, model: str, onnx_model: Optional[Path], vocab: Optional[Path]
) -> Optional[EmbeddingProvider]:
    if not semantic:
        return None
    if onnx_model is not None:
        if vocab is None:
            raise typer.BadParameter("--vocab is required with --onnx-model")
        return OnnxEmbeddingModel.from_files(onnx_model, vocab)
    return EmbeddingModel(EmbeddingConfig(model_name=model))


@app.command()
def index(
    roots: List[Path] = typer.Argument(
        ..., help="Directories to index.", resolve_path=True, exists=True, file_okay=False
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    onnx_model: Optional[Path] = typer.Option(None, help="ONNX model file (MiniLM export)"),
    vocab: Optional[Path] = typer.Option(None, help="vocab.txt for the ONNX model"),
    strategy: str = typer.Option("simple", help="Embedding strategy: simple or windowed"),
    max_chunks: int = typer.Option(AppConfig().max_chunks_per_file, help="Vectors per file (windowed)"),
    semantic: bool = typer.Option(True, "--semantic/--no-semantic", help="Build the vector index"),
    prune: bool = typer.Option(False, "--prune", help="Delete records of files no longer on disk"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Scan directories, extract content and embed it."""
    _setup_logging(verbose)
    try:
        config = _build_config(db, embedding_strategy=strategy, max_chunks_per_file=max_chunks)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    embedder = _build_embedder(semantic, model, onnx_model, vocab)
    with DeskFinder(config, embedder) as finder:
        console.print(f"Indexing into [bold]{finder.store.db_path}[/bold]...")
        report = finder.index(roots, prune=prune)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Stage")
    table.add_column("Status")
    for name in report.completed:
        table.add_row(name, "[green]done[/green]")
    for name, error in report.errors.items():
        table.add_row(name, f"[red]failed: {error}[/red]")
    console.print(table)
    console.print(f"Finished in {report.elapsed:.1f}s")
    if report.errors:
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text, may include dates like 'last week'"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    onnx_model: Optional[Path] = typer.Option(None, help="ONNX model file (MiniLM export)"),
    vocab: Optional[Path] = typer.Option(None, help="vocab.txt for the ONNX model"),
    semantic: bool = typer.Option(True, "--semantic/--no-semantic", help="Include semantic matches"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a hybrid keyword + semantic search."""
    _setup_logging(verbose)
    config = _build_config(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    embedder = _build_embedder(semantic, model, onnx_model, vocab)
    with DeskFinder(config, embedder) as finder:
        results = finder.search(query)

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("File")
    table.add_column("Snippet")
    for result in results:
        snippet = result.snippet.replace("\n", " ")
        table.add_row(f"{result.score:.3f}", result.path, snippet[:180])
    console.print(table)


@app.command()
def prune(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove records of files that no longer exist on disk."""
    config = _build_config(db)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    store = SQLiteFileStore(resolved_db)
    try:
        removed = store.remove_missing_files()
    finally:
        store.close()
    console.print(f"Removed {removed} missing files.")

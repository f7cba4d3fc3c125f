"""
NC Statute Navigator - CLI Entry Point
---------------------------------------
Exposes Typer commands for ingestion and question answering.

Usage:
    python -m statute_navigator.main ingest                    # Chunk, embed, index statutes/
    python -m statute_navigator.main ask -q "..."              # Single-shot question
    python -m statute_navigator.main ask -q "..." -f lease.pdf # Ground in an uploaded document
    python -m statute_navigator.main ask --train notes.txt     # Interactive loop with a trained session
    python -m statute_navigator.main status                    # Show index tables
"""
from __future__ import annotations

import sys

# Windows cp1252 terminal fix
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import json
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from statute_navigator.config import AppConfig, load_config
from statute_navigator.embedding.pipeline import run_ingestion
from statute_navigator.errors import EngineUnavailableError, NavigatorError
from statute_navigator.generation.prompts import ANSWER_FIELDS, ENGINE_UNAVAILABLE_RESPONSE
from statute_navigator.serving.context import ServiceContext
from statute_navigator.serving.pipeline import NavigatorPipeline, NavigatorResult
from statute_navigator.utils.logger import setup_logger

app = typer.Typer(
    name="statute-navigator",
    help="NC General Statutes retrieval-augmented navigator",
    add_completion=False,
)
console = Console()

TRAIN_COMMAND = ":train"
CLEAR_COMMAND = ":clear"


# --- Helpers ------------------------------------------------------------------

def _bootstrap(config_path: str) -> AppConfig:
    load_dotenv()
    cfg = load_config(config_path)
    setup_logger(log_level=cfg.logging.level, log_file=cfg.logging.file)
    return cfg


def _read_upload(path: Path) -> tuple[bytes, Optional[str]]:
    if not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)
    mime_type, _ = mimetypes.guess_type(path.name)
    return path.read_bytes(), mime_type


def _train_file(navigator: NavigatorPipeline, path: Path, session: Optional[str]) -> None:
    data, mime_type = _read_upload(path)
    record = navigator.train_document(data, mime_type, path.name, session_id=session)
    if record is None:
        console.print(f"[yellow]Nothing extracted from {path.name}; session unchanged[/yellow]")
    else:
        console.print(f"[green][OK] {path.name} added to session context[/green]")


# --- Commands -----------------------------------------------------------------

@app.command()
def ingest(
    config: str = typer.Option(
        "config/config.yaml", "--config", "-c", help="Path to navigator config YAML"
    ),
    statutes_dir: Optional[str] = typer.Option(
        None, "--statutes-dir", help="Directory of HTML chapter files"
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", help="Chunks embedded concurrently per batch"
    ),
) -> None:
    """
    Chunk, embed, and index the statute corpus (overwrites nc_statutes).

    \b
    Steps:
      1. Load HTML chapters and strip them to text
      2. Chunk (1200 chars, 200 overlap)
      3. Embed in batches with whole-batch retry
      4. Write the nc_statutes table
    """
    cfg = _bootstrap(config)
    if statutes_dir:
        cfg.storage.statutes_dir = statutes_dir
    if batch_size:
        cfg.ingestion.batch_size = batch_size

    with ServiceContext(cfg) as ctx:
        try:
            report = run_ingestion(cfg, ctx.store, ctx.embedder)
        except NavigatorError as exc:
            logger.error(f"[Ingestion] {exc}")
            console.print(f"[red]Ingestion failed:[/red] {exc}")
            raise typer.Exit(1)

    if not report.complete:
        raise typer.Exit(2)


@app.command()
def ask(
    query: Optional[str] = typer.Option(
        None, "--query", "-q", help="Single question (omit for interactive loop)"
    ),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Document to ground the question in (txt, pdf, html, image)"
    ),
    train: list[Path] = typer.Option(
        [], "--train", "-t", help="Add a document to the session context first (repeatable)"
    ),
    session: Optional[str] = typer.Option(
        None, "--session", "-s", help="Session id for the personal document context"
    ),
    config: str = typer.Option(
        "config/config.yaml", "--config", "-c", help="Path to navigator config YAML"
    ),
    json_out: bool = typer.Option(
        False, "--json", help="Print result as JSON (single-query mode only)"
    ),
) -> None:
    """
    Answer questions from the statute index.

    \b
    Interactive commands:
      :train <path>   add a document to the session context
      :clear          drop the session context
    """
    cfg = _bootstrap(config)

    with ServiceContext(cfg) as ctx:
        if not ctx.store.has_table(cfg.storage.statute_table):
            console.print(
                f"[red]Statute table '{cfg.storage.statute_table}' not found in "
                f"{cfg.storage.index_dir}[/red]\n"
                "Run ingestion first: [bold]python -m statute_navigator.main ingest[/bold]"
            )
            raise typer.Exit(1)

        navigator = NavigatorPipeline.from_context(ctx)
        for path in train:
            _train_file(navigator, path, session)

        # --- Single-shot mode -------------------------------------------------
        if query:
            document, mime_type = _read_upload(file) if file else (None, None)
            try:
                result = navigator.ask(query, document, mime_type, session_id=session)
            except EngineUnavailableError as exc:
                logger.error(f"[Navigator] {exc}")
                console.print(f"[red]{ENGINE_UNAVAILABLE_RESPONSE}[/red]")
                raise typer.Exit(1)
            if json_out:
                console.print_json(json.dumps(result.to_dict(), indent=2))
            else:
                _print_result(result)
            return

        # --- Interactive loop -------------------------------------------------
        _interactive(navigator, session)


def _interactive(navigator: NavigatorPipeline, session: Optional[str]) -> None:
    console.print()
    console.print(
        Panel(
            "[bold cyan]NC Statute Navigator[/bold cyan]\n"
            "[white]Ask about tenant rights, court notices, wages, and more.[/white]",
            box=box.DOUBLE_EDGE,
            expand=False,
        )
    )
    console.print(
        f"[dim]{TRAIN_COMMAND} <path> adds a document, {CLEAR_COMMAND} forgets them. "
        "Type 'exit' or press Ctrl+C to quit.[/dim]\n"
    )

    while True:
        try:
            raw = console.input("[bold cyan]You[/bold cyan] > ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye.[/dim]")
            break

        if not raw:
            continue
        if raw.lower() in {"exit", "quit", "q"}:
            console.print("[dim]Goodbye.[/dim]")
            break
        if raw.startswith(TRAIN_COMMAND):
            path = raw[len(TRAIN_COMMAND):].strip()
            if path:
                _train_file(navigator, Path(path), session)
            continue
        if raw == CLEAR_COMMAND:
            navigator.clear(session)
            console.print("[green][OK] Session context cleared[/green]")
            continue

        with console.status("[cyan]Searching the statutes...[/cyan]"):
            try:
                result = navigator.ask(raw, session_id=session)
            except EngineUnavailableError as exc:
                logger.error(f"[Navigator] {exc}")
                console.print(f"[red]{ENGINE_UNAVAILABLE_RESPONSE}[/red]")
                continue

        _print_result(result)


def _print_result(result: NavigatorResult) -> None:
    """Render a NavigatorResult to the terminal using Rich."""
    reply = result.reply
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key in ANSWER_FIELDS:
        if reply.get(key):
            table.add_row(key.capitalize(), str(reply[key]))

    console.print()
    console.print(
        Panel(
            table,
            title=f"[bold green]NCGS Chapter {result.context.chapter or 'General'}[/bold green]",
            border_style="green",
            expand=True,
        )
    )

    sources = sorted(set(result.citations))
    if sources:
        console.print(f"[dim]Sources: {', '.join(sources)}[/dim]")
    if result.context.session_error:
        console.print(f"[yellow]Personal documents unavailable: {result.context.session_error}[/yellow]")

    console.print(
        f"[dim]"
        f"extract={result.extraction_ms:.0f}ms  "
        f"retrieve={result.retrieval_ms:.0f}ms  "
        f"generate={result.generation_ms:.0f}ms  "
        f"total={result.total_ms / 1000:.1f}s"
        f"[/dim]\n"
    )


@app.command()
def status(
    config: str = typer.Option(
        "config/config.yaml", "--config", "-c", help="Path to navigator config YAML"
    ),
) -> None:
    """Show the tables in the vector store."""
    cfg = _bootstrap(config)
    with ServiceContext(cfg) as ctx:
        names = ctx.store.table_names()
        if cfg.storage.statute_table not in names:
            console.print(
                f"[yellow]No statute table in {cfg.storage.index_dir}. "
                "Run: python -m statute_navigator.main ingest[/yellow]"
            )
            raise typer.Exit(1)

        table = Table("Table", "Vectors", "Dimensions", box=box.SIMPLE, header_style="bold dim")
        for name in names:
            vt = ctx.statute_table() if name == cfg.storage.statute_table else ctx.store.open_table(name)
            table.add_row(name, f"{vt.count:,}", str(vt.dimensions))
        console.print(table)


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()

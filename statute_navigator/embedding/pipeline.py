"""
Statute Ingestion Pipeline - Chunk, Embed, Index
--------------------------------------------------
Reads HTML chapter files from the statutes directory, strips them to text,
chunks them with TextChunker, embeds every chunk, and overwrites the
nc_statutes table.

Batching discipline:
  - chunks are embedded in fixed-size batches (default 100)
  - inside a batch every chunk is embedded concurrently (asyncio.gather);
    results are joined back in input order
  - batches run strictly one after another
  - a batch is atomic: if any call fails the whole batch is retried after a
    fixed backoff, up to max_retries attempts; a batch that never succeeds
    is written to the dead-letter file instead of the buffer
  - the buffer is written once, replacing any previous table content
"""
from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from loguru import logger
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from statute_navigator.chunking.chunker import TextChunker
from statute_navigator.config import AppConfig
from statute_navigator.embedding.embedder import Embedder
from statute_navigator.embedding.faiss_index import VectorStore
from statute_navigator.errors import (
    ConfigurationError,
    EmptyCorpusError,
    PartialBatchFailure,
    TransientRetrievalError,
)
from statute_navigator.schemas import Chunk, Document, EmbeddedRecord, IngestionReport
from statute_navigator.utils.helpers import html_to_text, save_json

# Windows UTF-8 fix
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

BATCH_SIZE = 100
MAX_RETRIES = 5
RETRY_BACKOFF_S = 2.0
STATUTE_TABLE = "nc_statutes"

ProgressCallback = Callable[[int, int], None]

console = Console()


# --- Corpus loading -----------------------------------------------------------

def load_statute_documents(statutes_dir: str | Path = "statutes") -> list[Document]:
    """Load every *.html chapter in statutes_dir, sorted by file name."""
    p = Path(statutes_dir)
    if not p.is_dir():
        raise ConfigurationError(f"Statutes directory not found: {p}")

    docs = [
        Document(id=html_file.name, text=html_to_text(html_file.read_bytes()))
        for html_file in sorted(p.glob("*.html"))
    ]
    logger.info(f"[Ingestion] Found {len(docs)} HTML chapter(s) in {p}")
    return docs


# --- Pipeline -----------------------------------------------------------------

class IngestionPipeline:
    """
    Drives TextChunker + Embedder over a corpus and owns all writes to the
    statute table.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        chunker: Optional[TextChunker] = None,
        batch_size: int = BATCH_SIZE,
        max_retries: int = MAX_RETRIES,
        retry_backoff_s: float = RETRY_BACKOFF_S,
        table_name: str = STATUTE_TABLE,
        dead_letter_path: Optional[str | Path] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s
        self.table_name = table_name
        self.dead_letter_path = Path(dead_letter_path) if dead_letter_path else None
        self.on_progress = on_progress

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: VectorStore,
        embedder: Embedder,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "IngestionPipeline":
        return cls(
            store=store,
            embedder=embedder,
            chunker=TextChunker(config.chunking.chunk_size, config.chunking.chunk_overlap),
            batch_size=config.ingestion.batch_size,
            max_retries=config.ingestion.max_retries,
            retry_backoff_s=config.ingestion.retry_backoff_s,
            table_name=config.storage.statute_table,
            dead_letter_path=config.storage.dead_letter_path,
            on_progress=on_progress,
        )

    # --- Public API -----------------------------------------------------------

    async def ingest(self, documents: Iterable[Document]) -> IngestionReport:
        """
        Chunk, embed and write documents to the statute table (overwrite).

        Raises:
            EmptyCorpusError: the corpus yields zero chunks.
            TransientRetrievalError: every batch was dead-lettered.
        """
        documents = list(documents)
        chunks = self.chunker.chunk_documents(documents)
        if not chunks:
            raise EmptyCorpusError("No text was extracted from the corpus; refusing to build an empty index")

        report = IngestionReport(table_name=self.table_name, documents=len(documents), chunks=len(chunks))
        batches = [chunks[i: i + self.batch_size] for i in range(0, len(chunks), self.batch_size)]
        report.batches = len(batches)
        logger.info(
            f"[Ingestion] Embedding {len(chunks)} chunks from {len(documents)} document(s) "
            f"in {len(batches)} batch(es) of {self.batch_size}"
        )

        buffer: list[EmbeddedRecord] = []
        dead_letter: list[dict] = []
        processed = 0

        for batch_number, batch in enumerate(batches, start=1):
            try:
                records, retries = await self._process_batch(batch, batch_number)
            except PartialBatchFailure as exc:
                report.batches_failed += 1
                report.retries += self.max_retries - 1
                dead_letter.extend(_dead_letter_rows(batch, batch_number, exc))
                logger.error(
                    f"[Ingestion] Batch {batch_number} gave up after {self.max_retries} attempt(s); "
                    f"{len(batch)} chunk(s) dead-lettered"
                )
            else:
                report.retries += retries
                buffer.extend(records)

            processed += len(batch)
            self._report_progress(processed, len(chunks))

        if dead_letter:
            report.dead_lettered_chunks = len(dead_letter)
            if self.dead_letter_path is not None:
                save_json(dead_letter, self.dead_letter_path)
                report.dead_letter_path = str(self.dead_letter_path)
                logger.warning(f"[Ingestion] Dead-letter file written -> {self.dead_letter_path}")
        elif self.dead_letter_path is not None and self.dead_letter_path.exists():
            # Left over from an earlier run
            self.dead_letter_path.unlink()
            logger.info(f"[Ingestion] Removed stale dead-letter file {self.dead_letter_path}")

        if not buffer:
            raise TransientRetrievalError(
                f"All {len(batches)} batch(es) failed; statute table '{self.table_name}' left untouched"
            )

        self.store.create_table(self.table_name, buffer, mode="overwrite")
        report.records_written = len(buffer)
        report.completed_at = datetime.now(timezone.utc)
        logger.info(
            f"[Ingestion] Wrote {len(buffer)} record(s) to '{self.table_name}' | "
            f"retries={report.retries} dead-lettered={report.dead_lettered_chunks}"
        )
        return report

    async def ingest_directory(self, statutes_dir: str | Path) -> IngestionReport:
        return await self.ingest(load_statute_documents(statutes_dir))

    # --- Batches --------------------------------------------------------------

    async def _process_batch(self, batch: list[Chunk], batch_number: int) -> tuple[list[EmbeddedRecord], int]:
        """
        Embed one batch with bounded whole-batch retry.

        Returns (records, retries_used). Raises PartialBatchFailure once
        max_retries attempts have failed.
        """
        records: list[EmbeddedRecord] = []
        attempts = 0
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(PartialBatchFailure),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_fixed(self.retry_backoff_s),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                attempts = attempt.retry_state.attempt_number
                records = await self._embed_batch(batch, batch_number)
        return records, attempts - 1

    async def _embed_batch(self, batch: list[Chunk], batch_number: int) -> list[EmbeddedRecord]:
        """
        Embed every chunk of a batch concurrently.

        Results keep the input order. Any transient failure fails the whole
        batch; other exceptions propagate unchanged.
        """
        results = await asyncio.gather(
            *(self.embedder.aembed_query(chunk.text) for chunk in batch),
            return_exceptions=True,
        )

        failures: list[TransientRetrievalError] = []
        for result in results:
            if isinstance(result, TransientRetrievalError):
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result
        if failures:
            raise PartialBatchFailure(batch_number, len(failures), len(batch), failures[0])

        return [EmbeddedRecord.from_chunk(chunk, vector) for chunk, vector in zip(batch, results)]

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"[Ingestion] {exc} | retrying in {self.retry_backoff_s:.0f}s "
            f"(attempt {retry_state.attempt_number}/{self.max_retries})"
        )

    def _report_progress(self, processed: int, total: int) -> None:
        logger.info(f"[Ingestion] Progress: {processed * 100 // total}% ({processed} / {total})")
        if self.on_progress is not None:
            self.on_progress(processed, total)


def _dead_letter_rows(batch: list[Chunk], batch_number: int, exc: PartialBatchFailure) -> list[dict]:
    return [
        {
            "batch": batch_number,
            "source": chunk.source,
            "chunk_index": chunk.chunk_index,
            "text": chunk.text,
            "error": str(exc),
        }
        for chunk in batch
    ]


# --- CLI driver ---------------------------------------------------------------

def run_ingestion(config: AppConfig, store: VectorStore, embedder: Embedder) -> IngestionReport:
    """
    Execute a full ingestion with a rich progress display:
      1. Load HTML chapters from storage.statutes_dir
      2. Chunk, embed in batches, write the statute table
    """
    console.print()
    console.print(
        Panel(
            "[bold cyan]NC Statute Navigator[/bold cyan]\n"
            "[white]Ingestion - Chunking, Embedding, Indexing[/white]",
            box=box.DOUBLE_EDGE,
            expand=False,
        )
    )

    console.print("\n[bold cyan]Step 1 / 2 - Loading statute chapters[/bold cyan]")
    docs = load_statute_documents(config.storage.statutes_dir)
    console.print(f"[green][OK] {len(docs)} chapters loaded[/green]")

    console.print("\n[bold cyan]Step 2 / 2 - Embedding and indexing[/bold cyan]")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[cyan]Embedding chunks...[/cyan]", total=None)

        def _advance(processed: int, total: int) -> None:
            progress.update(task, completed=processed, total=total)

        pipeline = IngestionPipeline.from_config(config, store, embedder, on_progress=_advance)
        report = asyncio.run(pipeline.ingest(docs))

    style = "green" if report.complete else "yellow"
    console.print()
    console.print(
        Panel(
            f"[bold {style}]Ingestion Complete[/bold {style}]\n\n"
            f"  Chapters      : {report.documents:,}\n"
            f"  Chunks        : {report.chunks:,}\n"
            f"  Records       : {report.records_written:,}\n"
            f"  Retries       : {report.retries:,}\n"
            f"  Dead-lettered : {report.dead_lettered_chunks:,}\n"
            f"  Table         : {report.table_name}",
            box=box.DOUBLE_EDGE,
            border_style=style,
            expand=False,
        )
    )
    return report

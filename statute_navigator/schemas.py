"""
Core Pydantic schemas for the statute navigator.

Documents flow through the chunker into Chunks, the ingestion pipeline
turns Chunks into EmbeddedRecords, and the retriever assembles search hits
from both tables into a request-scoped RetrievalContext.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

PRIMARY_FOCUS_TEMPLATE = "PRIMARY FOCUS: NCGS Chapter {chapter}"
PERSONAL_DOCUMENTS_HEADER = "--- PERSONAL DOCUMENTS (user-provided context) ---"
SOURCE_TEMPLATE = "[Source: {source}]\n{text}"


# --- Corpus -------------------------------------------------------------------

class Document(BaseModel):
    """A statute chapter (or any uploaded text) identified by its file name."""

    model_config = ConfigDict(frozen=True)

    id: str                              # Source file name, e.g. "Chapter_42.html"
    text: str


class Chunk(BaseModel):
    """A bounded passage of a Document; the atomic retrieval unit."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: str                          # Parent Document.id
    chunk_index: int = 0                 # Position within the document


class EmbeddedRecord(BaseModel):
    """A Chunk plus its embedding vector; the unit written to a vector table."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: str
    chunk_index: int = 0
    vector: list[float]

    @property
    def dimension(self) -> int:
        return len(self.vector)

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> "EmbeddedRecord":
        return cls(
            text=chunk.text,
            source=chunk.source,
            chunk_index=chunk.chunk_index,
            vector=list(vector),
        )


class SearchHit(BaseModel):
    """A row returned by a vector table with its squared L2 distance (lower is closer)."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    distance: float


# --- Retrieval ----------------------------------------------------------------

class RetrievedPassage(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    text: str
    distance: float = 0.0

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "RetrievedPassage":
        return cls(source=hit.chunk.source, text=hit.chunk.text, distance=hit.distance)

    def render(self) -> str:
        return SOURCE_TEMPLATE.format(source=self.source, text=self.text)


class RetrievalContext(BaseModel):
    """
    Ordered, labeled bundle of passages handed to the generator.

    Statute passages always precede session passages, whatever their
    distances; each tier keeps the index's own closest-first order.
    """

    statute: list[RetrievedPassage] = Field(default_factory=list)
    session: list[RetrievedPassage] = Field(default_factory=list)
    chapter: Optional[str] = None
    # Set when the session tier was present but could not be searched.
    session_error: Optional[str] = None

    @property
    def passages(self) -> list[tuple[str, str]]:
        return [(p.source, p.text) for p in [*self.statute, *self.session]]

    @property
    def is_empty(self) -> bool:
        return not self.statute and not self.session

    def render(self) -> str:
        """Deterministic context block embedded in the system prompt."""
        parts: list[str] = []
        if self.chapter:
            parts.append(PRIMARY_FOCUS_TEMPLATE.format(chapter=self.chapter))
        parts.extend(p.render() for p in self.statute)
        if self.session:
            parts.append(PERSONAL_DOCUMENTS_HEADER)
            parts.extend(p.render() for p in self.session)
        return "\n\n".join(parts)


# --- Ingestion ----------------------------------------------------------------

class IngestionReport(BaseModel):
    """Summary of one ingestion run."""

    table_name: str
    documents: int
    chunks: int
    records_written: int = 0
    batches: int = 0
    batches_failed: int = 0
    retries: int = 0
    dead_lettered_chunks: int = 0
    dead_letter_path: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def complete(self) -> bool:
        return self.dead_lettered_chunks == 0 and self.records_written == self.chunks

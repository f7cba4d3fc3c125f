"""
Shared test fixtures.

Provides: a deterministic in-process embedder, vector stores (disk-backed
and in-memory), and small statute corpora.
"""
from __future__ import annotations

import asyncio
import hashlib
from typing import Optional

import pytest

from statute_navigator.embedding.faiss_index import VectorStore
from statute_navigator.errors import TransientRetrievalError
from statute_navigator.schemas import Document, EmbeddedRecord

DIMENSIONS = 8


class FakeEmbedder:
    """
    Deterministic stand-in for the OpenAI embedder.

    - vectors: exact text -> vector overrides
    - default: vector returned for any other text (hash-derived when None)
    - fail_calls: 1-based call numbers that raise TransientRetrievalError
    - fail_marker: any text containing it always fails
    """

    def __init__(
        self,
        dimensions: int = DIMENSIONS,
        vectors: Optional[dict[str, list[float]]] = None,
        default: Optional[list[float]] = None,
        fail_calls: Optional[set[int]] = None,
        fail_marker: Optional[str] = None,
    ) -> None:
        self.dimensions = dimensions
        self.vectors = vectors or {}
        self.default = default
        self.fail_calls = fail_calls or set()
        self.fail_marker = fail_marker
        self.calls: list[str] = []

    def vector_for(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        if self.default is not None:
            return list(self.default)
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 for b in digest[: self.dimensions]]

    def embed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        if len(self.calls) in self.fail_calls:
            raise TransientRetrievalError(f"simulated failure on call {len(self.calls)}")
        if self.fail_marker and self.fail_marker in text:
            raise TransientRetrievalError("simulated rate limit")
        return self.vector_for(text)

    async def aembed_query(self, text: str) -> list[float]:
        await asyncio.sleep(0)
        return self.embed_query(text)


def make_record(text: str, vector: list[float], source: str = "Chapter_42.html", chunk_index: int = 0) -> EmbeddedRecord:
    return EmbeddedRecord(text=text, source=source, chunk_index=chunk_index, vector=vector)


def axis_vector(value: float, dimensions: int = DIMENSIONS) -> list[float]:
    """Vector whose squared L2 distance from the origin is value**2."""
    return [value] + [0.0] * (dimensions - 1)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(tmp_path) -> VectorStore:
    return VectorStore.connect(tmp_path / "index")


@pytest.fixture
def memory_store() -> VectorStore:
    return VectorStore.connect(None)


@pytest.fixture
def hundred_documents() -> list[Document]:
    """100 one-chunk chapters, so one batch of 100 covers the corpus."""
    return [
        Document(id=f"Chapter_{i:03d}.html", text=f"§ {i}-1. Section {i} of the General Statutes.")
        for i in range(100)
    ]


@pytest.fixture
def statute_store(memory_store) -> VectorStore:
    """In-memory store with a small nc_statutes table around the origin."""
    memory_store.create_table(
        "nc_statutes",
        [
            make_record("s1: landlord shall keep premises fit", axis_vector(0.1), "Chapter_42.html", 0),
            make_record("s2: tenant remedies for repairs", axis_vector(0.2), "Chapter_42.html", 1),
            make_record("s3: summary ejectment procedure", axis_vector(0.9), "Chapter_42.html", 2),
        ],
        mode="overwrite",
    )
    return memory_store

"""
Statute Chunker
----------------
Splits whitespace-normalised chapter text into overlapping character
windows.

Each chunk is a slice text[start:end] of the normalised text:
  - end is snapped back to the nearest natural boundary inside the window,
    preferring a paragraph break, then a sentence end, then a space;
    with no boundary the cut is hard at start + chunk_size.
  - the next chunk starts chunk_overlap characters before end.

Because chunks are exact slices, consecutive chunks share exactly
chunk_overlap characters and dropping each chunk's leading overlap
reconstructs the normalised text. Re-ingesting the same corpus with the
same parameters always yields the same chunks.
"""
from __future__ import annotations

import re

from loguru import logger

from statute_navigator.schemas import Chunk, Document
from statute_navigator.utils.helpers import normalize_whitespace

# ── Constants ─────────────────────────────────────────────────────────────────

CHUNK_SIZE = 1200         # Characters per chunk
CHUNK_OVERLAP = 200       # Characters shared by consecutive chunks

PARAGRAPH_BREAK = "\n\n"
_SENTENCE_END = re.compile(r"[.!?](?=\s)")


def chunk(text: str, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Split text into overlapping passages of at most chunk_size characters."""
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).split_text(text)


# ── Main Chunker ──────────────────────────────────────────────────────────────

class TextChunker:
    """
    Boundary-aware fixed-window chunker.

    Usage:
        chunker = TextChunker(chunk_size=1200, chunk_overlap=200)
        chunks = chunker.chunk_document(document)
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP) -> None:
        if not 0 < chunk_overlap < chunk_size:
            raise ValueError(
                f"Require 0 < chunk_overlap < chunk_size, got "
                f"chunk_overlap={chunk_overlap}, chunk_size={chunk_size}"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split_text(self, text: str) -> list[str]:
        text = normalize_whitespace(text)
        if not text:
            return []
        if len(text) <= self.chunk_size:
            return [text]

        chunks: list[str] = []
        start = 0
        while True:
            limit = start + self.chunk_size
            if limit >= len(text):
                chunks.append(text[start:])
                break
            end = self._find_break(text, start, limit)
            chunks.append(text[start:end])
            start = end - self.chunk_overlap
        return chunks

    def chunk_document(self, doc: Document) -> list[Chunk]:
        """Chunk a Document, tagging every passage with the document id."""
        chunks = [
            Chunk(text=text, source=doc.id, chunk_index=i)
            for i, text in enumerate(self.split_text(doc.text))
        ]
        logger.debug(f"[Chunker] {doc.id} | {len(doc.text)} chars -> {len(chunks)} chunk(s)")
        return chunks

    def chunk_documents(self, docs: list[Document]) -> list[Chunk]:
        """Chunk a list of Documents. Returns the flat, order-preserving list."""
        all_chunks: list[Chunk] = []
        for doc in docs:
            all_chunks.extend(self.chunk_document(doc))
        return all_chunks

    # --- Boundary search -----------------------------------------------------

    def _find_break(self, text: str, start: int, limit: int) -> int:
        """
        Return the cut position for the window text[start:limit].

        The cut must land after start + chunk_overlap so the next window
        always advances.
        """
        floor = start + self.chunk_overlap + 1

        pos = text.rfind(PARAGRAPH_BREAK, floor, limit + len(PARAGRAPH_BREAK))
        if pos != -1:
            return pos

        sentence_end = -1
        for match in _SENTENCE_END.finditer(text, floor - 1, limit + 1):
            if match.end() <= limit:
                sentence_end = match.end()
        if sentence_end != -1:
            return sentence_end

        pos = text.rfind(" ", floor, limit + 1)
        if pos != -1:
            return pos

        return limit

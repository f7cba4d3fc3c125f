"""Tests for the boundary-aware statute chunker."""

import pytest

from statute_navigator.chunking.chunker import TextChunker, chunk
from statute_navigator.schemas import Document
from statute_navigator.utils.helpers import normalize_whitespace

SECTIONS = " ".join(
    f"§ 42-{i}. The landlord shall keep the premises in a fit and habitable condition under subsection ({i})."
    for i in range(60)
)
PARAGRAPHS = "\n\n".join(
    f"§ 42-{i}.  Tenant obligations.\n   The tenant shall pay rent when due and keep the unit safe ({i})."
    for i in range(40)
)
NO_BOUNDARIES = "x" * 2500

CORPORA = [SECTIONS, PARAGRAPHS, NO_BOUNDARIES]
PARAMS = [(1200, 200), (300, 50), (100, 99), (50, 1)]


def reconstruct(chunks: list[str], overlap: int) -> str:
    return chunks[0] + "".join(c[overlap:] for c in chunks[1:])


class TestChunkProperties:
    @pytest.mark.parametrize("text", CORPORA)
    @pytest.mark.parametrize("size,overlap", PARAMS)
    def test_every_chunk_within_bound(self, text, size, overlap):
        chunks = chunk(text, size, overlap)
        assert chunks
        assert all(len(c) <= size for c in chunks)

    @pytest.mark.parametrize("text", CORPORA)
    @pytest.mark.parametrize("size,overlap", PARAMS)
    def test_chunks_reconstruct_normalized_text(self, text, size, overlap):
        chunks = chunk(text, size, overlap)
        assert reconstruct(chunks, overlap) == normalize_whitespace(text)

    @pytest.mark.parametrize("text", CORPORA)
    @pytest.mark.parametrize("size,overlap", PARAMS)
    def test_consecutive_chunks_share_overlap(self, text, size, overlap):
        chunks = chunk(text, size, overlap)
        for left, right in zip(chunks, chunks[1:]):
            assert left[-overlap:] == right[:overlap]

    def test_deterministic(self):
        assert chunk(SECTIONS, 300, 50) == chunk(SECTIONS, 300, 50)


class TestBoundaries:
    def test_short_input_is_single_normalized_chunk(self):
        assert chunk("  Rent is   due\n on the first.  ", 1200, 200) == ["Rent is due on the first."]

    def test_input_exactly_chunk_size_is_single_chunk(self):
        text = "a" * 100
        assert chunk(text, 100, 10) == [text]

    def test_empty_input_yields_nothing(self):
        assert chunk("   \n\n  ", 1200, 200) == []

    def test_prefers_paragraph_break(self):
        para = " ".join(["word"] * 100)
        chunks = chunk(f"{para}\n\n{para}", 600, 50)
        assert chunks[0] == para

    def test_prefers_sentence_end_over_space(self):
        text = " ".join(["The tenant shall pay rent when due."] * 100)
        chunks = chunk(text, 200, 40)
        assert len(chunks) > 1
        assert all(c.endswith(".") for c in chunks)

    def test_hard_cut_without_boundaries(self):
        chunks = chunk(NO_BOUNDARIES, 1000, 100)
        assert [len(c) for c in chunks] == [1000, 1000, 700]

    @pytest.mark.parametrize("size,overlap", [(100, 0), (100, 100), (100, 150), (0, 0), (10, -1)])
    def test_rejects_invalid_overlap(self, size, overlap):
        with pytest.raises(ValueError):
            TextChunker(chunk_size=size, chunk_overlap=overlap)


class TestChunkDocument:
    def test_tags_source_and_sequence(self):
        chunker = TextChunker(chunk_size=300, chunk_overlap=50)
        chunks = chunker.chunk_document(Document(id="Chapter_42.html", text=SECTIONS))
        assert len(chunks) > 1
        assert {c.source for c in chunks} == {"Chapter_42.html"}
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_chunk_documents_preserves_document_order(self):
        chunker = TextChunker(chunk_size=300, chunk_overlap=50)
        docs = [Document(id="a.html", text="Alpha section."), Document(id="b.html", text="Beta section.")]
        assert [c.source for c in chunker.chunk_documents(docs)] == ["a.html", "b.html"]


class TestNormalizeWhitespace:
    def test_keeps_paragraph_breaks(self):
        assert normalize_whitespace("One\n \n\n  two\nthree\t four") == "One\n\ntwo three four"

    def test_strips_control_characters(self):
        assert normalize_whitespace("Rent\x00 due") == "Rent due"

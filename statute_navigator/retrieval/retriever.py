"""
Hybrid Retriever
-----------------
Builds one query vector and searches two tiers:

    extracted document text + user question
        |
        v
    ChapterClassifier  -> optional "NCGS Chapter {label}" prefix
        |
        v
    Embedder           -> query vector
        |
        +--> statute table  (top_k, required)
        +--> session table  (session_top_k, optional)
        |
        v
    RetrievalContext   (statute passages, then personal documents)

Chapter boosting only changes the text that gets embedded; the statute
table is never filtered by chapter metadata. The retriever only reads from
both tables.
"""
from __future__ import annotations

from typing import Optional

from langsmith import traceable
from loguru import logger

from statute_navigator.embedding.embedder import Embedder
from statute_navigator.embedding.faiss_index import VectorStore
from statute_navigator.errors import (
    ConfigurationError,
    DimensionMismatchError,
    EngineUnavailableError,
    TransientRetrievalError,
)
from statute_navigator.retrieval.chapters import ChapterClassifier, KeywordChapterDetector
from statute_navigator.schemas import RetrievalContext, RetrievedPassage

STATUTE_TABLE = "nc_statutes"
TOP_K = 15
SESSION_TOP_K = 3
DEFAULT_QUESTION = "Analyze this."
CHAPTER_BOOST_TEMPLATE = "NCGS Chapter {chapter}"


def compose_query(query: str, extracted_text: str = "") -> str:
    """
    Combine uploaded document text and the user's question.

    Extracted content goes first since it anchors the case specifics.
    """
    question = f"USER QUESTION: {query.strip() or DEFAULT_QUESTION}"
    extracted_text = extracted_text.strip()
    if not extracted_text:
        return question
    return f"DOCUMENT CONTENT: {extracted_text}\n\n{question}"


def boost_query(combined_query: str, chapter: Optional[str]) -> str:
    """Prefix the embedding input with the detected chapter marker."""
    if not chapter:
        return combined_query
    return f"{CHAPTER_BOOST_TEMPLATE.format(chapter=chapter)}\n\n{combined_query}"


class HybridRetriever:
    """
    Two-tier retrieval with chapter-affinity boosting.

    Statute tier : required; any failure raises EngineUnavailableError
    Session tier : optional; absent table means zero results, a failed
                   lookup is logged and recorded on the context
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        classifier: Optional[ChapterClassifier] = None,
        statute_table: str = STATUTE_TABLE,
        top_k: int = TOP_K,
        session_top_k: int = SESSION_TOP_K,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.classifier = classifier or KeywordChapterDetector()
        self.statute_table = statute_table
        self.top_k = top_k
        self.session_top_k = session_top_k

    @traceable(name="retrieve", run_type="retriever")
    def retrieve(
        self,
        query: str,
        extracted_text: str = "",
        session_table: Optional[str] = None,
    ) -> RetrievalContext:
        """
        Embed the (boosted) query and assemble the two-tier context.

        Args:
            query: The user's literal question.
            extracted_text: Text pulled from an uploaded document ("" if none).
            session_table: Name of the caller's session table, if any.

        Returns:
            RetrievalContext with statute passages first.

        Raises:
            EngineUnavailableError: the query could not be embedded or the
                statute table could not be searched.
        """
        combined = compose_query(query, extracted_text)
        chapter = self.classifier.detect(f"{extracted_text} {query}")
        search_text = boost_query(combined, chapter)
        logger.debug(f"[Retriever] chapter={chapter or '-'} | query={combined[:80]!r}")

        try:
            query_vec = self.embedder.embed_query(search_text)
        except (TransientRetrievalError, DimensionMismatchError) as exc:
            raise EngineUnavailableError(f"Query embedding failed: {exc}") from exc

        statute = self._search_statutes(query_vec)
        session, session_error = self._search_session(session_table, query_vec)

        context = RetrievalContext(
            statute=statute,
            session=session,
            chapter=chapter,
            session_error=session_error,
        )
        logger.info(
            f"[Retriever] chapter={chapter or '-'} | statute={len(statute)} | "
            f"session={len(session)}"
            + (f" | session lookup failed: {session_error}" if session_error else "")
        )
        return context

    # --- Tiers ----------------------------------------------------------------

    def _search_statutes(self, query_vec: list[float]) -> list[RetrievedPassage]:
        try:
            try:
                table = self.store.open_table(self.statute_table)
            except ConfigurationError:
                # Stale handle: reload from disk once before giving up
                self.store.refresh()
                table = self.store.open_table(self.statute_table)
            hits = table.search(query_vec, limit=self.top_k)
        except (ConfigurationError, DimensionMismatchError, TransientRetrievalError) as exc:
            raise EngineUnavailableError(
                f"Statute table '{self.statute_table}' is unavailable: {exc}"
            ) from exc
        return [RetrievedPassage.from_hit(hit) for hit in hits]

    def _search_session(
        self, session_table: Optional[str], query_vec: list[float]
    ) -> tuple[list[RetrievedPassage], Optional[str]]:
        if not session_table or self.session_top_k <= 0:
            return [], None
        try:
            if not self.store.has_table(session_table):
                return [], None
            hits = self.store.open_table(session_table).search(query_vec, limit=self.session_top_k)
        except ConfigurationError:
            # Dropped between the existence check and the search
            return [], None
        except (DimensionMismatchError, TransientRetrievalError) as exc:
            logger.warning(f"[Retriever] Session table '{session_table}' skipped: {exc}")
            return [], str(exc)
        return [RetrievedPassage.from_hit(hit) for hit in hits], None

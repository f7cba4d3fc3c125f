"""
Navigator Serving Pipeline
---------------------------
Orchestrates one question end to end:

    uploaded document (optional)
        |
        v
    TextExtractor      (failure -> "" ; question proceeds alone)
        |
        v
    HybridRetriever    (chapter boost, statute top 15 + session top 3)
        |
        v
    build_prompt       (system prompt embeds the rendered context)
        |
        v
    LegalAnswerGenerator (structured JSON answer)

Unrecoverable failures raise EngineUnavailableError; callers render the
"engine unavailable" signal instead of a partial answer.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from langsmith import traceable
from loguru import logger

from statute_navigator.extraction.extractor import TextExtractor
from statute_navigator.generation.generator import LegalAnswerGenerator, build_prompt
from statute_navigator.retrieval.chapters import KeywordChapterDetector
from statute_navigator.retrieval.retriever import HybridRetriever, compose_query
from statute_navigator.retrieval.session import SessionManager
from statute_navigator.schemas import EmbeddedRecord, RetrievalContext
from statute_navigator.serving.context import ServiceContext


# ---------------------------------------------------------------------------
# Result schema
# ---------------------------------------------------------------------------

@dataclass
class NavigatorResult:
    """
    Full output from a single question.

    Timing fields are in milliseconds.
    """

    message: str
    reply: dict
    context: RetrievalContext
    extracted_chars: int = 0

    extraction_ms: float = 0.0
    retrieval_ms: float = 0.0
    generation_ms: float = 0.0

    citations: list[str] = field(default_factory=list)

    @property
    def total_ms(self) -> float:
        return self.extraction_ms + self.retrieval_ms + self.generation_ms

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "reply": self.reply,
            "chapter": self.context.chapter,
            "citations": self.citations,
            "session_passages": len(self.context.session),
            "session_error": self.context.session_error,
            "extracted_chars": self.extracted_chars,
            "latency_ms": {
                "extraction": round(self.extraction_ms, 1),
                "retrieval": round(self.retrieval_ms, 1),
                "generation": round(self.generation_ms, 1),
                "total": round(self.total_ms, 1),
            },
        }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class NavigatorPipeline:
    """
    End-to-end serving pipeline over an open ServiceContext.

    Usage:
        with ServiceContext(load_config()) as ctx:
            navigator = NavigatorPipeline.from_context(ctx)
            result = navigator.ask("My landlord won't return my deposit")
            print(result.reply["summary"])
    """

    def __init__(
        self,
        context: ServiceContext,
        retriever: HybridRetriever,
        sessions: SessionManager,
        extractor: Optional[TextExtractor] = None,
        generator: Optional[LegalAnswerGenerator] = None,
    ) -> None:
        self.context = context
        self.retriever = retriever
        self.sessions = sessions
        self.extractor = extractor or TextExtractor()
        self.generator = generator or LegalAnswerGenerator()

    @classmethod
    def from_context(cls, context: ServiceContext) -> "NavigatorPipeline":
        cfg = context.config
        retriever = HybridRetriever(
            store=context.store,
            embedder=context.embedder,
            classifier=KeywordChapterDetector(cfg.chapter_map()),
            statute_table=cfg.storage.statute_table,
            top_k=cfg.retrieval.top_k,
            session_top_k=cfg.retrieval.session_top_k,
        )
        sessions = SessionManager(
            context.store, context.embedder, table_prefix=cfg.storage.session_table_prefix
        )
        return cls(
            context=context,
            retriever=retriever,
            sessions=sessions,
            extractor=TextExtractor(vision_model=cfg.generation.vision_model),
            generator=LegalAnswerGenerator(
                model=cfg.generation.model, temperature=cfg.generation.temperature
            ),
        )

    @traceable(name="navigator_ask", run_type="chain")
    def ask(
        self,
        message: str,
        document: Optional[bytes] = None,
        mime_type: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> NavigatorResult:
        """
        Answer one question, optionally grounded in an uploaded document.

        Raises:
            EngineUnavailableError: retrieval or generation cannot complete.
        """
        logger.info(f"[Navigator] Question: {message[:100]!r}")

        t0 = time.perf_counter()
        extracted = self.extractor.safe_extract(document, mime_type)
        extraction_ms = (time.perf_counter() - t0) * 1000

        t1 = time.perf_counter()
        context = self.retrieve(message, extracted, session_id=session_id)
        retrieval_ms = (time.perf_counter() - t1) * 1000

        t2 = time.perf_counter()
        system_prompt, user_message = build_prompt(context, compose_query(message, extracted))
        reply = self.generator.generate(system_prompt, user_message)
        generation_ms = (time.perf_counter() - t2) * 1000

        logger.info(
            f"[Navigator] Complete | extract={extraction_ms:.0f}ms "
            f"retrieve={retrieval_ms:.0f}ms generate={generation_ms:.0f}ms"
        )
        return NavigatorResult(
            message=message,
            reply=reply,
            context=context,
            extracted_chars=len(extracted),
            extraction_ms=extraction_ms,
            retrieval_ms=retrieval_ms,
            generation_ms=generation_ms,
            citations=[source for source, _ in context.passages],
        )

    def retrieve(self, message: str, extracted_text: str = "", session_id: Optional[str] = None) -> RetrievalContext:
        return self.retriever.retrieve(
            message,
            extracted_text,
            session_table=self.sessions.table_for(session_id),
        )

    # --- Session lifecycle ----------------------------------------------------

    def train(self, text: str, source_name: str, session_id: Optional[str] = None) -> EmbeddedRecord:
        return self.sessions.train(text, source_name, session_id=session_id)

    def train_document(
        self,
        document: bytes,
        mime_type: Optional[str],
        source_name: str,
        session_id: Optional[str] = None,
    ) -> Optional[EmbeddedRecord]:
        """Extract an upload and train the session on it. Returns None if nothing was extracted."""
        text = self.extractor.safe_extract(document, mime_type)
        if not text.strip():
            logger.warning(f"[Navigator] Nothing extracted from '{source_name}', session unchanged")
            return None
        return self.train(text, source_name, session_id=session_id)

    def clear(self, session_id: Optional[str] = None) -> bool:
        return self.sessions.clear(session_id)

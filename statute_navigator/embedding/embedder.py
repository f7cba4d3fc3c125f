"""
OpenAI Embedding Client
------------------------
Wraps the OpenAI embeddings API (text-embedding-3-small by default) with:
  - a synchronous embed_query() for the serving path, retried via tenacity
  - an async aembed_query() for ingestion fan-out, single attempt with a
    bounded timeout (the ingestion pipeline owns batch-level retries)
  - LangSmith run tracing and token usage counters

Every failure surfaces as TransientRetrievalError so callers handle the
remote service the same way regardless of the SDK exception raised.
"""
from __future__ import annotations

import asyncio
import os
import time

import openai
from langsmith import traceable
from loguru import logger
from openai import AsyncOpenAI, OpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from statute_navigator.errors import DimensionMismatchError, TransientRetrievalError

MODEL = "text-embedding-3-small"
DIMENSIONS = 1536          # text-embedding-3-small native dimensions
REQUEST_TIMEOUT = 30.0     # seconds per embedding call


class Embedder:
    """
    Maps text to a fixed-length float vector.

    Both clients are created lazily so constructing an Embedder never
    requires network access or an API key.
    """

    def __init__(
        self,
        model: str = MODEL,
        dimensions: int = DIMENSIONS,
        request_timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.request_timeout = request_timeout
        self._client: OpenAI | None = None
        self._async_client: AsyncOpenAI | None = None
        self.total_tokens_used: int = 0
        self.total_api_calls: int = 0

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=os.getenv("OPENAI_API_KEY"), timeout=self.request_timeout)
        return self._client

    @property
    def async_client(self) -> AsyncOpenAI:
        if self._async_client is None:
            self._async_client = AsyncOpenAI(
                api_key=os.getenv("OPENAI_API_KEY"), timeout=self.request_timeout
            )
        return self._async_client

    # --- Sync (serving path) --------------------------------------------------

    @traceable(name="embed_query", run_type="embedding")
    @retry(
        retry=retry_if_exception_type(TransientRetrievalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def embed_query(self, text: str) -> list[float]:
        """Embed a single string. Returns a list of `dimensions` floats."""
        start = time.perf_counter()
        try:
            response = self.client.embeddings.create(
                model=self.model, input=_safe_input(text), dimensions=self.dimensions
            )
        except openai.OpenAIError as exc:
            raise TransientRetrievalError(f"Embedding request failed: {exc}") from exc

        self._record_usage(response)
        logger.debug(
            f"[Embedder] query embedded | {len(text)} chars | "
            f"{time.perf_counter() - start:.2f}s"
        )
        return self._vector(response)

    # --- Async (ingestion fan-out) --------------------------------------------

    async def aembed_query(self, text: str) -> list[float]:
        """
        Embed a single string on the async client.

        A call that exceeds request_timeout is treated exactly like a failed
        call.
        """
        try:
            response = await asyncio.wait_for(
                self.async_client.embeddings.create(
                    model=self.model, input=_safe_input(text), dimensions=self.dimensions
                ),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransientRetrievalError(
                f"Embedding request timed out after {self.request_timeout:.0f}s"
            ) from exc
        except openai.OpenAIError as exc:
            raise TransientRetrievalError(f"Embedding request failed: {exc}") from exc

        self._record_usage(response)
        return self._vector(response)

    def _vector(self, response) -> list[float]:
        vector = list(response.data[0].embedding)
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(self.model, self.dimensions, len(vector))
        return vector

    # --- Usage ----------------------------------------------------------------

    def _record_usage(self, response) -> None:
        self.total_api_calls += 1
        usage = getattr(response, "usage", None)
        if usage is not None:
            self.total_tokens_used += usage.total_tokens

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "total_api_calls": self.total_api_calls,
            "total_tokens_used": self.total_tokens_used,
            # text-embedding-3-small: $0.020 per million tokens
            "estimated_cost_usd": round(self.total_tokens_used / 1_000_000 * 0.020, 6),
        }


def _safe_input(text: str) -> str:
    # The API rejects empty input
    return text if text.strip() else " "

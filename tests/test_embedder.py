"""Tests for the OpenAI embedding client wrapper (no network)."""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import openai
import pytest

from statute_navigator.embedding.embedder import Embedder
from statute_navigator.errors import DimensionMismatchError, TransientRetrievalError


def embedding_response(vector: list[float], tokens: int = 5) -> SimpleNamespace:
    return SimpleNamespace(
        data=[SimpleNamespace(embedding=vector)],
        usage=SimpleNamespace(total_tokens=tokens),
    )


def test_embed_query_returns_vector_and_tracks_usage():
    embedder = Embedder(dimensions=3)
    embedder._client = MagicMock()
    embedder._client.embeddings.create.return_value = embedding_response([0.1, 0.2, 0.3], tokens=7)

    assert embedder.embed_query("rent is due") == [0.1, 0.2, 0.3]
    assert embedder.usage_summary()["total_tokens_used"] == 7
    assert embedder.usage_summary()["total_api_calls"] == 1


def test_blank_input_is_padded():
    embedder = Embedder(dimensions=3)
    embedder._client = MagicMock()
    embedder._client.embeddings.create.return_value = embedding_response([0.0, 0.0, 0.0])

    embedder.embed_query("")

    assert embedder._client.embeddings.create.call_args.kwargs["input"] == " "


def test_clients_are_created_lazily():
    embedder = Embedder()
    assert embedder._client is None
    assert embedder._async_client is None


@pytest.mark.asyncio
async def test_async_embed():
    embedder = Embedder(dimensions=2)

    async def create(**kwargs):
        return embedding_response([1.0, 2.0])

    embedder._async_client = SimpleNamespace(embeddings=SimpleNamespace(create=create))
    assert await embedder.aembed_query("lease") == [1.0, 2.0]


@pytest.mark.asyncio
async def test_async_timeout_is_transient():
    embedder = Embedder(dimensions=2, request_timeout=0.01)

    async def create(**kwargs):
        await asyncio.sleep(1)
        return embedding_response([1.0, 2.0])

    embedder._async_client = SimpleNamespace(embeddings=SimpleNamespace(create=create))
    with pytest.raises(TransientRetrievalError):
        await embedder.aembed_query("lease")


@pytest.mark.asyncio
async def test_async_api_error_is_transient():
    embedder = Embedder(dimensions=2)

    async def create(**kwargs):
        raise openai.OpenAIError("rate limited")

    embedder._async_client = SimpleNamespace(embeddings=SimpleNamespace(create=create))
    with pytest.raises(TransientRetrievalError):
        await embedder.aembed_query("lease")


def test_configured_dimensions_are_requested():
    embedder = Embedder(dimensions=256)
    embedder._client = MagicMock()
    embedder._client.embeddings.create.return_value = embedding_response([0.0] * 256)

    assert len(embedder.embed_query("rent")) == 256
    assert embedder._client.embeddings.create.call_args.kwargs["dimensions"] == 256


def test_wrong_sized_vector_is_rejected():
    embedder = Embedder(dimensions=256)
    embedder._client = MagicMock()
    embedder._client.embeddings.create.return_value = embedding_response([0.0] * 1536)

    with pytest.raises(DimensionMismatchError):
        embedder.embed_query("rent")
    # not a transient failure, so no retry
    assert embedder._client.embeddings.create.call_count == 1


@pytest.mark.asyncio
async def test_async_embed_requests_configured_dimensions():
    embedder = Embedder(dimensions=2)
    seen = {}

    async def create(**kwargs):
        seen.update(kwargs)
        return embedding_response([1.0, 2.0])

    embedder._async_client = SimpleNamespace(embeddings=SimpleNamespace(create=create))
    await embedder.aembed_query("lease")
    assert seen["dimensions"] == 2

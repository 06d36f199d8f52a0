# tests/embedding/test_embeddings_client.py
"""
Tests for the embeddings client fallback chain.
"""

import random
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FailingEmbedding, StaticEmbedding
from llmsentinel.embedding import EmbeddingCache, EmbeddingsClient, HashingEmbedding
from llmsentinel.embedding.google import GoogleAIEmbedding
from llmsentinel.exceptions import EmbeddingError


class TestEmbeddingsClient:

    @pytest.mark.asyncio
    async def test_first_model_wins(self):
        primary = StaticEmbedding(default=[1.0, 0.0], name="primary")
        secondary = StaticEmbedding(default=[0.0, 1.0], name="secondary")
        client = EmbeddingsClient([primary, secondary])

        result = await client.embed("hello")

        assert result.vector == [1.0, 0.0]
        assert result.model == "primary"
        assert result.degraded is False
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_falls_through_failing_models(self):
        failing = FailingEmbedding()
        backup = StaticEmbedding(default=[0.5, 0.5], name="backup")
        client = EmbeddingsClient([failing, backup])

        result = await client.embed("hello")

        assert failing.calls == 1
        assert result.model == "backup"
        assert result.vector == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_skipped(self):
        broken = StaticEmbedding(name="broken")
        broken.generate_embedding = AsyncMock(side_effect=RuntimeError("boom"))
        client = EmbeddingsClient([broken, StaticEmbedding(default=[1.0], name="ok")])

        result = await client.embed("hello")
        assert result.model == "ok"

    @pytest.mark.asyncio
    async def test_empty_vector_is_skipped(self):
        empty = StaticEmbedding(default=[], name="empty")
        client = EmbeddingsClient([empty, StaticEmbedding(default=[2.0], name="ok")])

        result = await client.embed("hello")
        assert result.vector == [2.0]

    @pytest.mark.asyncio
    async def test_all_failing_returns_degraded_fallback(self):
        client = EmbeddingsClient([FailingEmbedding("a"), FailingEmbedding("b")], dimension=16, rng=random.Random(7))

        result = await client.embed("hello")

        assert result.degraded is True
        assert result.model == "fallback"
        assert len(result.vector) == 16
        assert all(0.0 <= x < 0.01 for x in result.vector)

    @pytest.mark.asyncio
    async def test_no_models_returns_fallback(self):
        client = EmbeddingsClient([], dimension=8)
        vector = await client.get_embedding("hello")
        assert len(vector) == 8

    @pytest.mark.asyncio
    async def test_cache_hit_skips_models(self):
        model = StaticEmbedding(default=[1.0, 2.0])
        client = EmbeddingsClient([model], cache=EmbeddingCache(max_size=10))

        first = await client.embed("hello")
        second = await client.embed("hello")

        assert first.cached is False
        assert second.cached is True
        assert second.model == "cache"
        assert second.vector == [1.0, 2.0]
        assert model.calls == ["hello"]

    @pytest.mark.asyncio
    async def test_degraded_vector_is_not_cached(self):
        cache = EmbeddingCache(max_size=10)
        client = EmbeddingsClient([FailingEmbedding()], cache=cache, dimension=4)

        await client.embed("hello")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_cache_hit_rate(self):
        client = EmbeddingsClient([StaticEmbedding()], cache=EmbeddingCache(max_size=10))
        assert client.get_cache_hit_rate() is None

        await client.embed("a")
        await client.embed("a")
        assert client.get_cache_hit_rate() == pytest.approx(0.5)

    def test_no_cache_stats(self):
        client = EmbeddingsClient([StaticEmbedding()])
        assert client.get_cache_stats() is None
        assert client.get_cache_hit_rate() is None

    @pytest.mark.asyncio
    async def test_initialize_drops_failing_models(self):
        bad = StaticEmbedding(name="bad")
        bad.initialize = AsyncMock(side_effect=RuntimeError("no credentials"))
        good = StaticEmbedding(name="good")
        client = EmbeddingsClient([bad, good])

        await client.initialize()
        assert client.model_names == ["good"]


class TestHashingEmbedding:

    @pytest.mark.asyncio
    async def test_deterministic_and_normalized(self):
        model = HashingEmbedding(dimension=64)
        a = await model.generate_embedding("The quick brown fox")
        b = await model.generate_embedding("the QUICK brown fox")

        assert a == b
        assert len(a) == 64
        assert sum(x * x for x in a) == pytest.approx(1.0)
        assert model.model_name == "hashing-64"

    @pytest.mark.asyncio
    async def test_empty_text_gives_zero_vector(self):
        model = HashingEmbedding(dimension=8)
        assert await model.generate_embedding("") == [0.0] * 8


class TestGoogleAIEmbedding:

    @staticmethod
    def _client(result=None, side_effect=None):
        client = MagicMock()
        client.aio.models.embed_content = AsyncMock(return_value=result, side_effect=side_effect)
        return client

    @pytest.mark.asyncio
    async def test_returns_values(self):
        result = SimpleNamespace(embeddings=[SimpleNamespace(values=[0.1, 0.2, 0.3])])
        client = self._client(result=result)
        model = GoogleAIEmbedding(client=client, model_name="models/text-embedding-004")

        vector = await model.generate_embedding("hello")

        assert vector == [0.1, 0.2, 0.3]
        assert model.model_name == "text-embedding-004"
        kwargs = client.aio.models.embed_content.call_args.kwargs
        assert kwargs["model"] == "text-embedding-004"
        assert kwargs["contents"] == "hello"

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self):
        model = GoogleAIEmbedding(client=self._client())
        with pytest.raises(EmbeddingError, match="empty"):
            await model.generate_embedding("")

    @pytest.mark.asyncio
    async def test_no_embeddings_in_response(self):
        model = GoogleAIEmbedding(client=self._client(result=SimpleNamespace(embeddings=[])))
        with pytest.raises(EmbeddingError, match="no embedding data"):
            await model.generate_embedding("hello")

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        model = GoogleAIEmbedding(client=self._client(side_effect=ConnectionError("reset")))
        with pytest.raises(EmbeddingError) as exc_info:
            await model.generate_embedding("hello")
        assert exc_info.value.model_name == "text-embedding-004"

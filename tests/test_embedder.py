"""Unit tests for rulex.indexing.embedder."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from rulex.errors import ProviderError
from rulex.indexing.embedder import OpenAIEmbedder
from fakes import make_settings


def _client(*, vector=None, error=None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.embeddings.create = AsyncMock(side_effect=error)
    else:
        client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(embedding=vector)])
        )
    return client


def _status_error(cls, status: int, code: str | None = None):
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    response = httpx.Response(status, request=request)
    body = {"code": code} if code else None
    return cls("error", response=response, body=body)


class TestOpenAIEmbedder:
    @pytest.mark.asyncio
    async def test_returns_vector_and_flattens_newlines(self):
        client = _client(vector=[0.1, 0.2, 0.3])
        embedder = OpenAIEmbedder(make_settings(embedding_dimensions=3), client=client)

        assert await embedder.embed("Section 16\nInput tax credit") == [0.1, 0.2, 0.3]
        assert client.embeddings.create.call_args.kwargs["input"] == "Section 16 Input tax credit"

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self):
        embedder = OpenAIEmbedder(make_settings(embedding_dimensions=1536), client=_client(vector=[0.1]))

        with pytest.raises(ProviderError) as excinfo:
            await embedder.embed("GST")
        assert excinfo.value.code == "PROCESSING_ERROR"

    @pytest.mark.asyncio
    async def test_missing_credentials_is_provider_error(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        embedder = OpenAIEmbedder(make_settings())

        with pytest.raises(ProviderError) as excinfo:
            await embedder.embed("What is GST?")
        assert excinfo.value.code == "PROCESSING_ERROR"

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        error = _status_error(openai.RateLimitError, 429)
        embedder = OpenAIEmbedder(make_settings(), client=_client(error=error))

        with pytest.raises(ProviderError) as excinfo:
            await embedder.embed("GST")
        assert (excinfo.value.code, excinfo.value.retryable) == ("RATE_LIMIT", True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            _status_error(openai.APIStatusError, 402),
            _status_error(openai.RateLimitError, 429, "insufficient_quota"),
        ],
    )
    async def test_quota_exhaustion(self, error):
        embedder = OpenAIEmbedder(make_settings(), client=_client(error=error))

        with pytest.raises(ProviderError) as excinfo:
            await embedder.embed("GST")
        assert (excinfo.value.code, excinfo.value.retryable) == ("QUOTA_EXCEEDED", True)

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        embedder = OpenAIEmbedder(make_settings(), client=_client(error=openai.APITimeoutError(request=request)))

        with pytest.raises(ProviderError) as excinfo:
            await embedder.embed("GST")
        assert (excinfo.value.code, excinfo.value.retryable) == ("PROCESSING_ERROR", True)

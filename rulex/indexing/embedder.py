from __future__ import annotations

import logging
from typing import Protocol

import openai
from openai import AsyncOpenAI

from config import Settings
from rulex.errors import ProviderError
from rulex.generation.llm_client import map_provider_error

# ────────────────────────────────────────────────────────────────
# embedder.py: query and chunk embeddings for the indexing layer
#
# One text per call.  Ingestion embeds chunks sequentially so a single
# failure (timeout, 429, 402, missing key) only costs that chunk; the
# pipeline decides whether to keep it unembedded or skip it.
#
# Every call is bounded by EMBEDDING_TIMEOUT via the client's own
# timeout; a timeout surfaces as ProviderError like any other
# provider failure.
# ────────────────────────────────────────────────────────────────

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbedder:
    """Embeddings through any OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client

    # build the client once; optional API key since local servers don't need one
    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            client_kwargs = {
                "base_url": self._settings.embedding_base_url,
                "timeout": self._settings.embedding_timeout,
                "max_retries": 0,
            }
            if self._settings.embedding_api_key:
                client_kwargs["api_key"] = self._settings.embedding_api_key
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def embed(self, text: str) -> list[float]:
        try:
            # missing credentials raise from the client constructor
            client = self._get_client()
            response = await client.embeddings.create(
                model=self._settings.embedding_model,
                input=text.replace("\n", " "),
            )
        except openai.OpenAIError as exc:
            raise map_provider_error(exc) from exc

        if not response.data:
            raise ProviderError("Embedding response contained no vectors", "PROCESSING_ERROR")
        vector = list(response.data[0].embedding)
        if len(vector) != self._settings.embedding_dimensions:
            raise ProviderError(
                "Embedding dimension mismatch: "
                f"expected {self._settings.embedding_dimensions}, got {len(vector)}",
                "PROCESSING_ERROR",
            )
        return vector

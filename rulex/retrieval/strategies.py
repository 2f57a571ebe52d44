"""Retrieval strategies, tried in order by ``Retriever``.

1. ``VectorSearchStrategy``: owner-scoped cosine similarity over chunk
   embeddings, thresholded and capped.
2. ``TextSearchStrategy``: owner-scoped Postgres full-text search over
   classification keywords (or query tokens longer than 2 characters),
   OR-combined; every hit gets the same moderate score.
3. ``WebSearchStrategy``: search restricted to the official-domain
   allow-list, snippets truncated to bound prompt size.

Each strategy returns a ``RetrievalResult`` (possibly empty) and never
looks at what the other strategies did; ordering lives in the retriever.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from config import Settings
from rulex.indexing.embedder import Embedder
from rulex.indexing.store import ChunkStore
from rulex.ingestion.domains import hostname_of, is_allowed_host
from rulex.ingestion.firecrawl_client import WebSearchHit
from rulex.retrieval.models import RetrievalMode, RetrievalResult, RetrievedChunk, WebSnippet

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+", re.UNICODE)
MIN_QUERY_TOKEN_LENGTH = 3


@dataclass
class RetrievalRequest:
    query: str
    owner_id: str
    match_threshold: float
    match_count: int
    keywords: list[str] = field(default_factory=list)


class WebSearcher(Protocol):
    async def search(self, query: str, limit: int) -> list[WebSearchHit]: ...


class RetrievalStrategy(Protocol):
    name: RetrievalMode

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResult: ...


def _row_to_chunk(row: dict[str, Any], similarity: float) -> RetrievedChunk:
    metadata = row.get("metadata")
    return RetrievedChunk(
        id=row["id"],
        document_id=row["document_id"],
        document_filename=row.get("document_filename"),
        content=str(row["content"]),
        metadata=metadata if isinstance(metadata, dict) else {},
        similarity=float(similarity),
    )


# ── Vector ────────────────────────────────────────────────────


class VectorSearchStrategy:
    name: RetrievalMode = "vector"

    def __init__(self, embedder: Embedder, store: ChunkStore) -> None:
        self._embedder = embedder
        self._store = store

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResult:
        query_embedding = await self._embedder.embed(request.query)
        rows = await self._store.match_chunks(
            request.owner_id,
            query_embedding,
            request.match_threshold,
            request.match_count,
        )
        chunks = [_row_to_chunk(row, row["similarity"]) for row in rows]
        # Store already orders this way; re-sort so fakes and stores agree.
        chunks.sort(key=lambda chunk: (-chunk.similarity, str(chunk.id)))
        return RetrievalResult(query=request.query, mode=self.name, chunks=chunks)


# ── Full text ─────────────────────────────────────────────────


def search_terms(query: str, keywords: list[str] | None) -> list[str]:
    """Keywords from classification, else query tokens longer than 2 chars."""
    cleaned = [keyword.strip() for keyword in keywords or [] if keyword and keyword.strip()]
    if cleaned:
        return cleaned
    return [token for token in _WORD.findall(query) if len(token) >= MIN_QUERY_TOKEN_LENGTH]


def build_tsquery(terms: list[str]) -> str | None:
    """OR-combine terms into a ``to_tsquery`` expression.

    Multi-word keywords become an AND group (``input & tax & credit``);
    only ``\\w+`` tokens survive, so tsquery operators in user text can't
    leak into the expression.
    """
    groups: list[str] = []
    seen: set[str] = set()
    for term in terms:
        tokens = [token.lower() for token in _WORD.findall(term)]
        if not tokens:
            continue
        group = " & ".join(tokens)
        if len(tokens) > 1:
            group = f"({group})"
        if group in seen:
            continue
        seen.add(group)
        groups.append(group)
    if not groups:
        return None
    return " | ".join(groups)


class TextSearchStrategy:
    name: RetrievalMode = "text"

    def __init__(self, store: ChunkStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResult:
        tsquery = build_tsquery(search_terms(request.query, request.keywords))
        if tsquery is None:
            return RetrievalResult(query=request.query, mode=self.name)

        rows = await self._store.text_search_chunks(
            request.owner_id,
            tsquery,
            self._settings.retrieval_text_match_limit,
        )
        score = self._settings.retrieval_text_match_score
        chunks = [_row_to_chunk(row, score) for row in rows]
        return RetrievalResult(query=request.query, mode=self.name, chunks=chunks)


# ── Web ───────────────────────────────────────────────────────


def scoped_web_query(query: str, allowed_domains: list[str]) -> str:
    sites = " OR ".join(f"site:{domain}" for domain in allowed_domains)
    return f"{query} ({sites})" if sites else query


class WebSearchStrategy:
    name: RetrievalMode = "web"

    def __init__(self, searcher: WebSearcher, settings: Settings) -> None:
        self._searcher = searcher
        self._settings = settings

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResult:
        allowed = self._settings.allowed_domains
        hits = await self._searcher.search(
            scoped_web_query(request.query, allowed),
            self._settings.web_search_limit,
        )

        max_chars = self._settings.web_snippet_max_chars
        snippets: list[WebSnippet] = []
        for hit in hits:
            hostname = hostname_of(hit.url)
            # Search operators are advisory; filter again on our side.
            if not is_allowed_host(hostname, allowed):
                logger.info("Dropping web result outside the allow-list: %s", hostname)
                continue
            content = (hit.content or "").strip()
            if not content:
                continue
            snippets.append(
                WebSnippet(
                    url=hit.url,
                    title=hit.title,
                    content=content[:max_chars],
                    hostname=hostname,
                )
            )
        return RetrievalResult(query=request.query, mode=self.name, web_snippets=snippets)

"""Ordered-fallback retrieval.

``Retriever`` walks an explicit list of strategies and returns the first
non-empty result.  A provider failure or timeout inside one strategy is
logged and treated as "nothing found", so the next strategy still runs.
Storage errors are not swallowed: they propagate to the service boundary.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from config import Settings
from rulex.errors import ProviderError
from rulex.indexing.embedder import Embedder
from rulex.indexing.store import ChunkStore
from rulex.retrieval.models import RetrievalResult
from rulex.retrieval.strategies import (
    RetrievalRequest,
    RetrievalStrategy,
    TextSearchStrategy,
    VectorSearchStrategy,
    WebSearcher,
    WebSearchStrategy,
)

logger = logging.getLogger(__name__)


class Retriever:
    def __init__(self, settings: Settings, strategies: Sequence[RetrievalStrategy]) -> None:
        self._settings = settings
        self._strategies = list(strategies)

    @classmethod
    def default(
        cls,
        settings: Settings,
        embedder: Embedder,
        store: ChunkStore,
        web_searcher: WebSearcher | None = None,
    ) -> Retriever:
        """vector -> text -> web (web only when enabled and a searcher exists)."""
        strategies: list[RetrievalStrategy] = [
            VectorSearchStrategy(embedder, store),
            TextSearchStrategy(store, settings),
        ]
        if web_searcher is not None and settings.web_search_enabled:
            strategies.append(WebSearchStrategy(web_searcher, settings))
        return cls(settings, strategies)

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    async def retrieve(
        self,
        query: str,
        owner_id: str,
        *,
        keywords: list[str] | None = None,
        match_threshold: float | None = None,
        match_count: int | None = None,
        include_web: bool = True,
    ) -> RetrievalResult:
        request = RetrievalRequest(
            query=query,
            owner_id=owner_id,
            keywords=list(keywords or []),
            match_threshold=(
                self._settings.retrieval_match_threshold
                if match_threshold is None
                else match_threshold
            ),
            match_count=(
                self._settings.retrieval_match_count if match_count is None else match_count
            ),
        )

        for strategy in self._strategies:
            if strategy.name == "web" and not include_web:
                continue
            try:
                result = await strategy.retrieve(request)
            except (ProviderError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "%s search failed, falling back: %s",
                    strategy.name,
                    getattr(exc, "code", type(exc).__name__),
                )
                continue
            if not result.is_empty:
                logger.info(
                    "Retrieved %d results via %s search", result.total_found, strategy.name
                )
                return result

        return RetrievalResult(query=query, mode="none")

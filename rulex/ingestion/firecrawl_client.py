# client handles only Firecrawl API access and exposes scrape and search
# callers own allow-list checks; nothing here decides what may be fetched

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from firecrawl import FirecrawlApp

from config import Settings
from rulex.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class ScrapedPage:
    url: str
    markdown: str
    title: str | None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebSearchHit:
    url: str
    title: str | None
    content: str

# sometimes, Firecrawl returns different response shapes

# converts anything into a plain dict
def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if hasattr(value, "model_dump"):
        dumped = value.model_dump()
        if isinstance(dumped, dict):
            return dumped
    return {}

# safely reads single fields from metadata regardless of metadata type
def _metadata_value(metadata: Any, key: str) -> Any:
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        return metadata.get(key)
    return getattr(metadata, key, None)


def _field(result: Any, key: str) -> Any:
    value = getattr(result, key, None)
    if value is None:
        value = _as_dict(result).get(key)
    return value


def _search_items(response: Any) -> list[Any]:
    if isinstance(response, list):
        return response

    # v2 SDK groups results by source; "web" is the one we ask for
    for key in ("web", "data"):
        value = getattr(response, key, None)
        if value is None and isinstance(response, dict):
            value = response.get(key)
        if isinstance(value, list):
            return value
        # v1 shape nests {"data": {"web": [...]}} in some releases
        if isinstance(value, dict) and isinstance(value.get("web"), list):
            return value["web"]

    if response is None:
        return []
    raise ValueError("Unexpected response shape from Firecrawl search endpoint.")


def title_from_url(url: str) -> str | None:
    segments = [segment for segment in urlparse(url).path.split("/") if segment]
    return segments[-1] if segments else None


class FirecrawlClient:
    """Async facade over the synchronous ``FirecrawlApp`` SDK client."""

    def __init__(self, settings: Settings, app: Any | None = None) -> None:
        self._settings = settings
        self._app = app

    def _get_app(self) -> Any:
        if self._app is None:
            if not self._settings.firecrawl_api_key:
                raise ProviderError(
                    "Web scraping is not configured", "PROCESSING_ERROR"
                )
            self._app = FirecrawlApp(api_key=self._settings.firecrawl_api_key)
        return self._app

    @property
    def _deadline_seconds(self) -> float:
        # SDK timeout is server-side; add headroom for the round trip.
        return self._settings.firecrawl_timeout_ms / 1000 + 10

    async def _call(self, operation: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self._deadline_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Firecrawl {operation} timed out", "PROCESSING_ERROR", retryable=True
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            logger.warning("Firecrawl %s failed: %r", operation, exc)
            raise ProviderError(f"Firecrawl {operation} failed", "PROCESSING_ERROR") from exc

    async def scrape(self, url: str) -> ScrapedPage:
        app = self._get_app()
        result = await self._call(
            "scrape",
            app.scrape,
            url,
            formats=["markdown"],
            only_main_content=True,
            wait_for=self._settings.firecrawl_wait_for_ms,
            timeout=self._settings.firecrawl_timeout_ms,
        )

        metadata = _field(result, "metadata")
        markdown = _field(result, "markdown")
        return ScrapedPage(
            url=url,
            markdown=markdown if isinstance(markdown, str) else "",
            title=_metadata_value(metadata, "title"),
            metadata=_as_dict(metadata),
        )

    async def search(self, query: str, limit: int) -> list[WebSearchHit]:
        app = self._get_app()
        response = await self._call(
            "search",
            app.search,
            query,
            limit=limit,
            scrape_options={"formats": ["markdown"]},
        )

        try:
            items = _search_items(response)
        except ValueError as exc:
            logger.warning("Firecrawl search returned %s", type(response).__name__)
            raise ProviderError("Firecrawl search failed", "PROCESSING_ERROR") from exc

        hits: list[WebSearchHit] = []
        for item in items:
            metadata = _field(item, "metadata")
            url = (
                _field(item, "url")
                or _metadata_value(metadata, "source_url")
                or _metadata_value(metadata, "url")
            )
            if not isinstance(url, str) or not url:
                continue
            title = _field(item, "title") or _metadata_value(metadata, "title")
            content = _field(item, "markdown") or _field(item, "description") or ""
            hits.append(
                WebSearchHit(
                    url=url,
                    title=title if isinstance(title, str) else None,
                    content=content if isinstance(content, str) else "",
                )
            )
        return hits

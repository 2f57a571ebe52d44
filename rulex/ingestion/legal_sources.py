"""HTTP clients for external legal data sources.

* ``IndianKanoonClient``: judgment / statute search and full-document
  fetch from the Indian Kanoon API (``Authorization: Token <key>``).
* ``DataGovClient``: open-data resources from data.gov.in, rendered as
  plain-text record blocks the chunker can split.

Both wrap a short-lived ``httpx.AsyncClient`` per call, bounded by
``LEGAL_API_TIMEOUT``.  Transport failures surface as ``ProviderError``;
the pipeline decides what a failure means for the document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, NoReturn

import httpx
from bs4 import BeautifulSoup

from config import Settings
from rulex.errors import ProviderError

logger = logging.getLogger(__name__)

INDIAN_KANOON_DOC_URL = "https://indiankanoon.org/doc/{tid}/"
DATA_GOV_RESOURCE_URL = "https://data.gov.in/resource/{resource_id}"
RECORD_SEPARATOR = "\n\n---\n\n"


@dataclass
class KanoonResult:
    id: str
    title: str
    headline: str
    source: str | None
    date: str | None
    citation: str | None
    url: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "headline": self.headline,
            "source": self.source,
            "date": self.date,
            "citation": self.citation,
            "url": self.url,
        }


@dataclass
class KanoonSearchPage:
    results: list[KanoonResult] = field(default_factory=list)
    total_results: int = 0


@dataclass
class KanoonDocument:
    tid: str
    title: str
    text: str
    url: str
    citation: str | None = None
    docsource: str | None = None
    publishdate: str | None = None


@dataclass
class DataGovResource:
    resource_id: str
    title: str
    text: str
    url: str
    total_records: int
    records: list[dict[str, Any]] = field(default_factory=list)
    description: str | None = None

    @property
    def record_count(self) -> int:
        return len(self.records)


def html_to_text(html: str | None) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    return "\n".join(line for line in lines if line)


def _inline_text(html: str | None) -> str:
    if not html:
        return ""
    return " ".join(BeautifulSoup(html, "lxml").get_text(" ").split())


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _raise_provider_error(source: str, exc: Exception) -> NoReturn:
    if isinstance(exc, httpx.TimeoutException):
        raise ProviderError(f"{source} request timed out", "PROCESSING_ERROR", retryable=True) from exc
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        logger.warning("%s returned HTTP %d", source, status)
        if status == 429:
            raise ProviderError(f"{source} rate limit exceeded", "RATE_LIMIT", retryable=True) from exc
        raise ProviderError(f"{source} request failed", "PROCESSING_ERROR") from exc
    logger.warning("%s request failed: %r", source, exc)
    raise ProviderError(f"{source} request failed", "PROCESSING_ERROR") from exc


class IndianKanoonClient:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.indian_kanoon_api_key)

    async def _post(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.configured:
            raise ProviderError("Indian Kanoon API not configured", "PROCESSING_ERROR")
        headers = {
            "Authorization": f"Token {self._settings.indian_kanoon_api_key}",
            "Accept": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.indian_kanoon_api_url.rstrip("/"),
                timeout=self._settings.legal_api_timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(path, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            _raise_provider_error("Indian Kanoon", exc)
        if not isinstance(payload, dict):
            raise ProviderError("Indian Kanoon returned an unexpected payload", "PROCESSING_ERROR")
        if payload.get("errmsg"):
            logger.warning("Indian Kanoon error: %s", payload["errmsg"])
            raise ProviderError("Indian Kanoon request failed", "PROCESSING_ERROR")
        return payload

    async def search(self, query: str, page: int = 0) -> KanoonSearchPage:
        payload = await self._post("/search/", params={"formInput": query, "pagenum": page})

        results: list[KanoonResult] = []
        for doc in payload.get("docs") or []:
            if not isinstance(doc, dict) or doc.get("tid") is None:
                continue
            tid = str(doc["tid"])
            results.append(
                KanoonResult(
                    id=tid,
                    title=_inline_text(doc.get("title")) or f"Document {tid}",
                    headline=_inline_text(doc.get("headline")),
                    source=_optional_str(doc.get("docsource")),
                    date=_optional_str(doc.get("publishdate")),
                    citation=_optional_str(doc.get("citation")),
                    url=INDIAN_KANOON_DOC_URL.format(tid=tid),
                )
            )

        total = payload.get("numfound", payload.get("found"))
        try:
            total_results = int(total) if total is not None else len(results)
        except (TypeError, ValueError):
            total_results = len(results)
        return KanoonSearchPage(results=results, total_results=total_results)

    async def fetch_document(self, tid: str) -> KanoonDocument:
        payload = await self._post(f"/doc/{tid}/")
        return KanoonDocument(
            tid=str(tid),
            title=_inline_text(payload.get("title")) or f"Document {tid}",
            text=html_to_text(payload.get("doc")),
            url=INDIAN_KANOON_DOC_URL.format(tid=tid),
            citation=_optional_str(payload.get("citation")),
            docsource=_optional_str(payload.get("docsource")),
            publishdate=_optional_str(payload.get("publishdate")),
        )


def render_records(records: list[dict[str, Any]]) -> str:
    """Render open-data records as ``Record N:`` blocks of ``key: value`` lines."""
    blocks: list[str] = []
    for number, record in enumerate(records, start=1):
        lines = [f"Record {number}:"]
        for key, value in record.items():
            lines.append(f"{key}: {value}")
        blocks.append("\n".join(lines))
    return RECORD_SEPARATOR.join(blocks)


class DataGovClient:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.data_gov_api_key)

    async def fetch_resource(
        self,
        resource_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> DataGovResource:
        if not self.configured:
            raise ProviderError("data.gov.in API not configured", "PROCESSING_ERROR")
        params = {
            "api-key": self._settings.data_gov_api_key,
            "format": "json",
            "limit": limit,
            "offset": offset,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.legal_api_timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    f"{self._settings.data_gov_api_url.rstrip('/')}/{resource_id}",
                    params=params,
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            _raise_provider_error("data.gov.in", exc)

        if not isinstance(payload, dict):
            raise ProviderError("data.gov.in returned an unexpected payload", "PROCESSING_ERROR")
        records = [record for record in payload.get("records") or [] if isinstance(record, dict)]
        title = payload.get("index_name") or payload.get("title") or f"Resource {resource_id}"
        try:
            total_records = int(payload.get("total", len(records)))
        except (TypeError, ValueError):
            total_records = len(records)

        return DataGovResource(
            resource_id=resource_id,
            title=str(title),
            text=render_records(records),
            url=DATA_GOV_RESOURCE_URL.format(resource_id=resource_id),
            total_records=total_records,
            records=records,
            description=_optional_str(payload.get("desc")),
        )

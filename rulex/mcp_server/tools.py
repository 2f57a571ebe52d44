"""MCP tool definitions.

  ``classify``      classify a legal query (domain / type / confidence).
  ``answer``        classify + grounded answer with source attribution.
  ``search``        similarity search over the owner's indexed documents.
  ``ingest_file``   upload a local PDF / text file and index it.
  ``scrape``        scrape an allow-listed government page and index it.
  ``kanoon_search`` search Indian Kanoon, optionally ingesting results.
  ``data_gov``      fetch a data.gov.in resource, optionally ingesting it.

Every handler acts for the configured ``MCP_OWNER_ID`` and reaches the
shared ``RuleXService`` through the lifespan state.  Error payloads are
raised as ``ToolError`` via :mod:`errors`; successful payloads are
rendered as plain text by :mod:`formatter`.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Awaitable
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import Context

from config import settings
from rulex.mcp_server import errors
from rulex.mcp_server.formatter import (
    format_answer,
    format_classification,
    format_data_gov,
    format_ingestion,
    format_kanoon,
    format_search,
)
from rulex.service import RuleXService

logger = logging.getLogger(__name__)

DEFAULT_OWNER_ID = "local"


# ── Helpers ───────────────────────────────────────────────────


def _get_service(ctx: Context) -> RuleXService:
    return ctx.request_context.lifespan_context["service"]


def _owner_id() -> str:
    return settings.mcp_owner_id or DEFAULT_OWNER_ID


async def _call(tool: str, call: Awaitable[dict[str, Any]]) -> dict[str, Any]:
    """Await a service call under the tool timeout; raise error payloads."""
    try:
        payload = await asyncio.wait_for(call, timeout=settings.mcp_tool_timeout)
    except asyncio.TimeoutError:
        logger.error("%s tool timed out after %ds", tool, settings.mcp_tool_timeout)
        errors.timeout(settings.mcp_tool_timeout)
    except Exception as exc:
        logger.error("%s tool failed: %r", tool, exc, exc_info=True)
        errors.full_failure(exc)
    if "error" in payload:
        errors.service_failure(payload)
    return payload


# ── Query tools ───────────────────────────────────────────────


async def classify(query: str, ctx: Context) -> str:
    """Classify a legal query by domain, query type and confidence."""
    service = _get_service(ctx)
    payload = await _call("classify", service.classify_query(query))
    return format_classification(payload)


async def answer(
    query: str,
    ctx: Context,
    conversation_history: list[dict[str, str]] | None = None,
) -> str:
    """Answer a question on Indian law or finance from official sources only.

    The query is classified first, then answered strictly from indexed
    documents or allow-listed government websites.  When nothing
    relevant is found the answer is the fixed refusal message.
    """
    service = _get_service(ctx)
    await ctx.info("Classifying query…")
    classified = await _call("answer", service.classify_query(query))

    await ctx.info("Retrieving official sources…")
    payload = await _call(
        "answer",
        service.generate_response(
            _owner_id(),
            query,
            classified["classification"],
            conversation_history,
        ),
    )
    return format_answer(payload)


async def search(
    query: str,
    ctx: Context,
    match_threshold: float | None = None,
    match_count: int | None = None,
) -> str:
    """Search indexed documents without calling the chat model."""
    service = _get_service(ctx)
    payload = await _call(
        "search",
        service.search_documents(
            _owner_id(), query, match_threshold=match_threshold, match_count=match_count
        ),
    )
    return format_search(payload)


# ── Ingestion tools ───────────────────────────────────────────


async def ingest_file(path: str, ctx: Context) -> str:
    """Upload a local PDF or text file and index it for retrieval."""
    service = _get_service(ctx)
    file_path = Path(path).expanduser()
    try:
        data = await asyncio.to_thread(file_path.read_bytes)
    except OSError as exc:
        errors.service_failure({"error": f"Cannot read file: {exc.strerror}", "code": "VALIDATION_ERROR"})

    mime_type, _ = mimetypes.guess_type(file_path.name)
    registered = await _call(
        "ingest_file",
        service.register_upload(_owner_id(), file_path.name, data, mime_type),
    )
    await ctx.info(f"Processing {file_path.name}…")
    payload = await _call(
        "ingest_file",
        service.process_document(_owner_id(), registered["document"]["id"]),
    )
    return format_ingestion(payload)


async def scrape(url: str, ctx: Context) -> str:
    """Scrape an official government page (allow-listed domains only) and index it."""
    service = _get_service(ctx)
    await ctx.info(f"Scraping {url}…")
    payload = await _call("scrape", service.scrape_legal_site(_owner_id(), url))
    return format_ingestion(payload)


async def kanoon_search(
    query: str,
    ctx: Context,
    page: int = 0,
    ingest: bool = False,
) -> str:
    """Search Indian Kanoon for judgments and statutes."""
    service = _get_service(ctx)
    payload = await _call(
        "kanoon_search",
        service.search_indian_kanoon(_owner_id(), query, page=page, ingest=ingest),
    )
    return format_kanoon(payload)


async def data_gov(
    ctx: Context,
    resource_id: str | None = None,
    ingest: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> str:
    """Fetch records from a data.gov.in resource."""
    service = _get_service(ctx)
    payload = await _call(
        "data_gov",
        service.fetch_data_gov_resource(
            _owner_id(), resource_id, ingest=ingest, limit=limit, offset=offset
        ),
    )
    return format_data_gov(payload)

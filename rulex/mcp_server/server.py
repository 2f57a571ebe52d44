"""ruleX MCP server: entry point.

Creates the ``FastMCP`` instance, registers the lifespan context
manager (service start/stop), registers tools, and runs the server
with the configured transport.

Transport modes:
  - ``stdio`` (default): the MCP client launches this process and
    talks over stdin/stdout.
  - ``streamable-http``: listens on ``MCP_HOST:MCP_PORT``.  When
    ``MCP_AUTH_TOKEN`` is set every request needs
    ``Authorization: Bearer <token>``.

All logging goes to stderr; stdout carries the stdio protocol stream.

Usage::

    python -m rulex.mcp_server                             # stdio
    python -m rulex.mcp_server --transport streamable-http
"""

from __future__ import annotations

import argparse
import logging
import secrets
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from config import settings
from rulex.mcp_server.tools import (
    answer,
    classify,
    data_gov,
    ingest_file,
    kanoon_search,
    scrape,
    search,
)
from rulex.service import RuleXService

logger = logging.getLogger(__name__)


# ── Lifespan ──────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Start the ``RuleXService`` once; tools read it from the lifespan context."""
    service = RuleXService.from_settings(settings)
    await service.start()
    logger.info("RuleXService started")
    try:
        yield {"service": service}
    finally:
        await service.stop()
        logger.info("RuleXService stopped")


# ── Server factory ────────────────────────────────────────────


def create_server() -> FastMCP:
    mcp = FastMCP(
        "ruleX",
        instructions=(
            "ruleX answers questions on Indian law, GST, taxation and finance "
            "strictly from official government sources and uploaded documents. "
            "Use 'answer' for questions, 'search' to inspect indexed passages, "
            "'scrape', 'ingest_file', 'kanoon_search' and 'data_gov' to add sources."
            "\n\n"
            "If ruleX returns its refusal message, relay it unchanged. "
            "Never supplement an answer with general knowledge, and always "
            "keep the [SOURCES] citations in your reply."
        ),
        lifespan=lifespan,
        host=settings.mcp_host,
        port=settings.mcp_port,
        log_level=settings.log_level.upper(),
    )

    mcp.add_tool(
        answer,
        name="answer",
        description=(
            "Answer a question on Indian laws, GST, taxation or finance using only "
            "verified context from indexed documents or allow-listed government "
            "websites. Returns [ANSWER], [SOURCES], [CLASSIFICATION] and [STATS] "
            "sections. Pass conversation_history as a list of "
            "{role: user|assistant, content} turns for follow-up questions."
        ),
    )
    mcp.add_tool(
        classify,
        name="classify",
        description=(
            "Classify a legal query into a domain (finance, gst, civil, criminal, "
            "other), a query type (informational, decision, document), a "
            "confidence level and keywords."
        ),
    )
    mcp.add_tool(
        search,
        name="search",
        description=(
            "Similarity search over already-indexed documents. Returns matching "
            "passages with their source document and similarity score. Does not "
            "call the chat model or the web."
        ),
    )
    mcp.add_tool(
        ingest_file,
        name="ingest_file",
        description="Upload a local PDF or plain-text file and index it for answering.",
    )
    mcp.add_tool(
        scrape,
        name="scrape",
        description=(
            "Scrape an official Indian government page and index it. Only "
            "allow-listed domains are accepted: "
            + ", ".join(settings.allowed_domains)
        ),
    )
    mcp.add_tool(
        kanoon_search,
        name="kanoon_search",
        description=(
            "Search Indian Kanoon for judgments and statutes. Set ingest=true to "
            "fetch and index the top results."
        ),
    )
    mcp.add_tool(
        data_gov,
        name="data_gov",
        description=(
            "Fetch records from an Open Government Data (data.gov.in) resource by "
            "resource_id. Without a resource_id, returns instructions for finding "
            "one. Set ingest=true to index the records."
        ),
    )

    return mcp


# ── Entry point ───────────────────────────────────────────────


def _configure_logging() -> None:
    """Route all logging to stderr; stdout belongs to the MCP protocol stream."""
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(handler)


def _make_auth_middleware(token: str):
    """Starlette middleware rejecting requests without ``Bearer <token>`` (401)."""
    from starlette.middleware import Middleware
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.requests import Request
    from starlette.responses import Response

    class BearerAuthMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            auth_header = request.headers.get("authorization", "")
            if not auth_header.startswith("Bearer "):
                return Response("Unauthorized", status_code=401)
            if not secrets.compare_digest(auth_header[7:], token):
                return Response("Unauthorized", status_code=401)
            return await call_next(request)

    return Middleware(BearerAuthMiddleware)


def main() -> None:
    parser = argparse.ArgumentParser(description="ruleX MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        default=settings.mcp_transport,
        help="MCP transport (default: %(default)s)",
    )
    args = parser.parse_args()

    _configure_logging()

    transport: str = args.transport
    mcp = create_server()

    logger.info("Starting ruleX MCP server (transport=%s)", transport)

    if transport == "streamable-http" and settings.mcp_auth_token:
        import uvicorn
        from starlette.applications import Starlette
        from starlette.routing import Mount

        app = Starlette(
            routes=[Mount("/", app=mcp.streamable_http_app())],
            middleware=[_make_auth_middleware(settings.mcp_auth_token)],
        )
        logger.info("Auth enabled, listening on %s:%d", settings.mcp_host, settings.mcp_port)
        uvicorn.run(
            app,
            host=settings.mcp_host,
            port=settings.mcp_port,
            log_level=settings.log_level.lower(),
        )
    else:
        if transport == "streamable-http":
            logger.info(
                "Listening on %s:%d (no auth, MCP_AUTH_TOKEN not set)",
                settings.mcp_host, settings.mcp_port,
            )
        mcp.run(transport=transport)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()

"""Error responses for MCP tool calls.

Failures are raised as ``ToolError`` so the MCP response carries
``is_error=True`` and the calling model does not mistake the text for
evidence.  Each message tells the model to report the problem rather
than answer from memory.
"""

from __future__ import annotations

from typing import Any, NoReturn

from mcp.server.fastmcp.exceptions import ToolError


def service_failure(payload: dict[str, Any]) -> NoReturn:
    """Raise the ``{"error", "code"}`` payload returned by ``RuleXService``."""
    lines = [
        "[ERROR]",
        "ruleX could not complete this request.",
        "",
        f"Code: {payload.get('code') or 'INTERNAL_ERROR'}",
        f"Details: {payload.get('error') or 'Unknown error'}",
    ]
    if payload.get("retryable"):
        lines.append("This failure is temporary; the request can be retried shortly.")
    lines += [
        "",
        "Please inform the user of this error. "
        "Do not answer from memory: ruleX only answers from official government sources.",
    ]
    raise ToolError("\n".join(lines))


def full_failure(exc: BaseException) -> NoReturn:
    raise ToolError(
        "[ERROR]\n"
        "ruleX encountered an unexpected error.\n"
        "\n"
        f"Error type: {type(exc).__name__}\n"
        f"Details: {exc}\n"
        "\n"
        "Please inform the user of this error. "
        "Do not answer from memory: ruleX only answers from official government sources."
    )


def timeout(seconds: int | float) -> NoReturn:
    raise ToolError(
        "[ERROR]\n"
        f"ruleX timed out after {int(seconds)}s.\n"
        "\n"
        "An external service (scraper, legal database, embedding or chat model) "
        "did not respond in time.\n"
        "\n"
        "Suggestion: retry the request, or ingest fewer documents at once."
    )

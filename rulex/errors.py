"""Error taxonomy shared by every ruleX layer.

Every failure that can reach a caller carries a stable machine-readable
``code`` plus a human-readable ``message`` that never includes internal
exception detail.  ``retryable`` tells the caller whether repeating the
same request later may succeed; the core itself never retries.

Service methods (``rulex.service``) are the outermost boundary: they turn
``RuleXError`` into ``{"error": message, "code": code}`` payloads and log
anything else before returning a generic message.
"""

from __future__ import annotations

from typing import Any


class RuleXError(Exception):
    """Base class for failures surfaced to callers."""

    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        *,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retryable = retryable

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.retryable:
            payload["retryable"] = True
        return payload


# caller contract violations: bad query, missing classification, disallowed URL
class ValidationError(RuleXError):
    default_code = "VALIDATION_ERROR"


# rate limit, quota, timeout, network failures from embedding/LLM/search providers
class ProviderError(RuleXError):
    default_code = "PROCESSING_ERROR"


# unreadable or too-short source text; terminal for the document
class ExtractionError(RuleXError):
    default_code = "EXTRACTION_FAILED"


# model answered but the payload is structurally unusable
class ResponseError(RuleXError):
    default_code = "RESPONSE_ERROR"


class NotFoundError(RuleXError):
    default_code = "DOC_NOT_FOUND"

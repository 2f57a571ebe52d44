"""Chat-completion access for classification and answer generation.

``OpenAIChatModel`` talks to any OpenAI-compatible endpoint and maps
provider failures onto the ruleX error codes:

  429                        -> RATE_LIMIT      (retryable)
  402 / insufficient_quota   -> QUOTA_EXCEEDED  (retryable)
  timeout                    -> PROCESSING_ERROR (retryable)
  any other provider error   -> PROCESSING_ERROR
  no message content         -> RESPONSE_ERROR  (not retryable)

No retries happen here (``max_retries=0``); callers decide.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from config import Settings
from rulex.errors import ProviderError, ResponseError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
QUOTA_MESSAGE = "Service quota exceeded. Please try again later."
PROCESSING_MESSAGE = "Unable to process your query. Please try again."
RESPONSE_MESSAGE = "Unable to generate response. Please try again."


class ChatModel(Protocol):
    async def complete(self, messages: list[dict[str, str]]) -> str: ...

    async def call_tool(
        self,
        messages: list[dict[str, str]],
        tool: dict[str, Any],
    ) -> dict[str, Any]: ...


def map_provider_error(exc: openai.OpenAIError) -> ProviderError:
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError(PROCESSING_MESSAGE, "PROCESSING_ERROR", retryable=True)
    if isinstance(exc, openai.APIStatusError):
        code = getattr(exc, "code", None)
        if exc.status_code == 402 or code == "insufficient_quota":
            return ProviderError(QUOTA_MESSAGE, "QUOTA_EXCEEDED", retryable=True)
        if exc.status_code == 429:
            return ProviderError(RATE_LIMIT_MESSAGE, "RATE_LIMIT", retryable=True)
        logger.error("LLM provider returned HTTP %d", exc.status_code)
    else:
        logger.error("LLM provider call failed: %r", exc)
    return ProviderError(PROCESSING_MESSAGE, "PROCESSING_ERROR")


class OpenAIChatModel:
    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self._settings.llm_api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._settings.llm_api_key:
                raise ProviderError("Service temporarily unavailable", "SERVICE_ERROR")
            self._client = AsyncOpenAI(
                base_url=self._settings.llm_base_url,
                api_key=self._settings.llm_api_key,
                timeout=self._settings.llm_timeout,
                max_retries=0,
            )
        return self._client

    async def _create(self, **kwargs: Any) -> Any:
        client = self._get_client()
        try:
            return await client.chat.completions.create(
                model=self._settings.llm_model,
                **kwargs,
            )
        except openai.OpenAIError as exc:
            raise map_provider_error(exc) from exc

    async def complete(self, messages: list[dict[str, str]]) -> str:
        response = await self._create(
            messages=messages,
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            logger.error("LLM response had no message content")
            raise ResponseError(RESPONSE_MESSAGE, "RESPONSE_ERROR")
        return content

    async def call_tool(
        self,
        messages: list[dict[str, str]],
        tool: dict[str, Any],
    ) -> dict[str, Any]:
        """Force a single function call and return its parsed arguments."""
        name = tool["function"]["name"]
        response = await self._create(
            messages=messages,
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": name}},
            temperature=0.0,
        )
        choices = getattr(response, "choices", None) or []
        tool_calls = (choices[0].message.tool_calls if choices else None) or []
        if not tool_calls or tool_calls[0].function.name != name:
            raise ResponseError("Invalid response from AI", "RESPONSE_ERROR")
        try:
            arguments = json.loads(tool_calls[0].function.arguments or "")
        except json.JSONDecodeError as exc:
            raise ResponseError("Invalid response from AI", "RESPONSE_ERROR") from exc
        if not isinstance(arguments, dict):
            raise ResponseError("Invalid response from AI", "RESPONSE_ERROR")
        return arguments

"""GroundedResponseGenerator: refusal-gated answer generation.

Flow for one query:

  1. Validate the query (present, 3..2000 chars after trimming) and the
     classification (domain + queryType).  Violations raise
     ``ValidationError`` with QUERY_* / CLASSIFICATION_MISSING codes.
  2. Retrieve with the classification keywords at the generation
     similarity threshold (vector -> text -> web).
  3. Build the labelled context block, bounded by a token budget.
  4. No context at all -> return ``REFUSAL_MESSAGE`` verbatim without
     calling the model.  Otherwise send system persona + last N history
     turns + the classification/context/query message.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import psycopg
import tiktoken
from pydantic import ValidationError as PydanticValidationError

from config import Settings
from rulex.errors import ValidationError
from rulex.generation.llm_client import ChatModel
from rulex.generation.models import (
    ConversationTurn,
    GeneratedAnswer,
    QueryClassification,
    SourceAttribution,
)
from rulex.generation.prompts import (
    CONTEXT_SEPARATOR,
    REFUSAL_MESSAGE,
    RULEX_SYSTEM_PROMPT,
    build_context_message,
    context_heading,
    format_chunk_block,
    format_snippet_block,
)
from rulex.retrieval.models import RetrievalResult
from rulex.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)

_ENCODINGS: dict[str, Any] = {}


def _get_encoding(name: str) -> Any:
    encoding = _ENCODINGS.get(name)
    if encoding is None:
        encoding = tiktoken.get_encoding(name)
        _ENCODINGS[name] = encoding
    return encoding


def build_context(
    result: RetrievalResult,
    token_budget: int,
    count_tokens: Callable[[str], int],
) -> tuple[str, list[SourceAttribution]]:
    """Labelled context text plus attributions for the blocks that fit.

    The first block is always kept so a single oversized chunk still
    grounds the answer; later blocks stop at the budget.
    """
    blocks: list[str] = []
    sources: list[SourceAttribution] = []
    used_tokens = 0

    entries: list[tuple[str, SourceAttribution]] = []
    for chunk in result.chunks:
        entries.append(
            (
                format_chunk_block(len(entries) + 1, chunk),
                SourceAttribution(
                    type="document",
                    filename=chunk.document_filename or "Unknown",
                    similarity=chunk.similarity,
                ),
            )
        )
    for snippet in result.web_snippets:
        entries.append(
            (
                format_snippet_block(len(entries) + 1, snippet),
                SourceAttribution(
                    type="web",
                    url=snippet.url,
                    hostname=snippet.hostname,
                    title=snippet.title,
                ),
            )
        )

    for block, source in entries:
        block_tokens = count_tokens(block)
        if blocks and used_tokens + block_tokens > token_budget:
            break
        blocks.append(block)
        sources.append(source)
        used_tokens += block_tokens

    return CONTEXT_SEPARATOR.join(blocks), sources


class GroundedResponseGenerator:
    def __init__(
        self,
        settings: Settings,
        retriever: Retriever,
        chat_model: ChatModel,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self._settings = settings
        self._retriever = retriever
        self._chat_model = chat_model
        self._token_counter = token_counter

    def _count_tokens(self, text: str) -> int:
        if self._token_counter is None:
            encoding = _get_encoding(self._settings.tokenizer_name)
            self._token_counter = lambda value: len(encoding.encode(value))
        return self._token_counter(text)

    # ── Validation ────────────────────────────────────────────

    def validate_query(self, query: Any) -> str:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query is required", "QUERY_MISSING")
        trimmed = query.strip()
        if len(trimmed) < self._settings.query_min_length:
            raise ValidationError(
                f"Query must be at least {self._settings.query_min_length} characters",
                "QUERY_TOO_SHORT",
            )
        if len(trimmed) > self._settings.query_max_length:
            raise ValidationError(
                f"Query exceeds maximum length of {self._settings.query_max_length} characters",
                "QUERY_TOO_LONG",
            )
        return trimmed

    @staticmethod
    def validate_classification(classification: Any) -> QueryClassification:
        if isinstance(classification, QueryClassification):
            return classification
        if not isinstance(classification, dict) or not classification:
            raise ValidationError("Valid classification is required", "CLASSIFICATION_MISSING")
        try:
            return QueryClassification.model_validate(classification)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Valid classification is required", "CLASSIFICATION_MISSING"
            ) from exc

    def _history_messages(self, history: list[Any] | None) -> list[dict[str, str]]:
        turns: list[ConversationTurn] = []
        for item in history or []:
            try:
                turns.append(
                    item if isinstance(item, ConversationTurn) else ConversationTurn.model_validate(item)
                )
            except PydanticValidationError as exc:
                raise ValidationError(
                    "Conversation history entries need a user/assistant role and content",
                    "VALIDATION_ERROR",
                ) from exc
        max_turns = self._settings.history_max_turns
        recent = turns[-max_turns:] if max_turns > 0 else []
        return [{"role": turn.role, "content": turn.content} for turn in recent]

    # ── Generation ────────────────────────────────────────────

    async def _retrieve(
        self, owner_id: str, query: str, classification: QueryClassification
    ) -> RetrievalResult:
        try:
            return await self._retriever.retrieve(
                query,
                owner_id,
                keywords=classification.keywords,
                match_threshold=self._settings.generation_match_threshold,
                match_count=self._settings.retrieval_match_count,
            )
        except psycopg.Error:
            # Without context the answer is the refusal, never a guess.
            logger.warning("Retrieval failed; answering without context", exc_info=True)
            return RetrievalResult(query=query, mode="none")

    async def generate(
        self,
        owner_id: str,
        query: Any,
        classification: Any,
        conversation_history: list[Any] | None = None,
    ) -> GeneratedAnswer:
        trimmed = self.validate_query(query)
        parsed = self.validate_classification(classification)
        history = self._history_messages(conversation_history)

        result = await self._retrieve(owner_id, trimmed, parsed)
        context_text, sources = build_context(
            result,
            self._settings.generation_context_token_budget,
            self._count_tokens,
        )

        if not context_text:
            logger.info("No grounding context for query; returning refusal")
            return GeneratedAnswer(
                response=REFUSAL_MESSAGE,
                classification=parsed,
                query=trimmed,
                source_type="general",
                sources=[],
                refused=True,
            )

        source_type = "web" if result.mode == "web" else "document"
        messages = [
            {"role": "system", "content": RULEX_SYSTEM_PROMPT},
            *history,
            {
                "role": "user",
                "content": build_context_message(
                    trimmed, parsed, context_text, heading=context_heading(result)
                ),
            },
        ]
        response_text = await self._chat_model.complete(messages)

        return GeneratedAnswer(
            response=response_text,
            classification=parsed,
            query=trimmed,
            source_type=source_type,
            sources=sources,
            refused=response_text.strip() == REFUSAL_MESSAGE,
        )

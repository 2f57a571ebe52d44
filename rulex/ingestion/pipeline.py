from __future__ import annotations

# ────────────────────────────────────────────────────────────────
# pipeline.py: one document from raw source to persisted chunks
#
# Public interface:
#   IngestionPipeline.run(document, fetch_text, base_metadata)
#
# State machine per document:
#   pending -> processing -> processed | failed
#   The pending -> processing move is a compare-and-set in the store, so
#   a document can only be processed once and never skips processing.
#
# Phases (inside processing):
#   Phase 1, Fetch + extract:
#       fetch_text() returns the document's plain text.  Text shorter
#       than INGEST_MIN_TEXT_LENGTH (100) is an extraction failure.
#
#   Phase 2, Chunk:
#       chunk_text() with CHUNK_TARGET_SIZE / CHUNK_OVERLAP.
#
#   Phase 3, Embed (sequential):
#       One embedding call per chunk.  A ProviderError costs only that
#       chunk: it is kept without a vector (INGEST_KEEP_UNEMBEDDED_CHUNKS)
#       or dropped.  Failures are counted, never retried.
#
#   Phase 4, Persist (batched):
#       Rows are flushed every INGEST_BATCH_SIZE chunks, one transaction
#       per batch.  A failed batch is logged and dropped; earlier batches
#       stay.  chunk_index comes from the running persisted count, so
#       ordinals are 0..N-1 with no gaps even after a dropped batch.
#
# Terminal status:
#   processed iff at least one chunk row was written.  Zero rows ->
#   failed / PROCESSING_FAILED.  ExtractionError -> failed /
#   EXTRACTION_FAILED.  Anything else -> failed / PROCESSING_ERROR, with
#   the exception logged and a generic message returned.
# ────────────────────────────────────────────────────────────────

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import psycopg

from config import Settings
from rulex.errors import ExtractionError, ProviderError, RuleXError, ValidationError
from rulex.indexing.embedder import Embedder
from rulex.indexing.models import Chunk, Document, DocumentStatus
from rulex.indexing.store import ChunkStore, DocumentStore
from rulex.ingestion.chunker import chunk_text

logger = logging.getLogger(__name__)

TOO_SHORT_MESSAGE = (
    "Could not extract text from PDF. The document may be image-based or encrypted."
)
NO_CHUNKS_MESSAGE = "Failed to process document chunks"
PROCESSING_ERROR_MESSAGE = "Document processing failed. Please try again."

FetchText = Callable[[], Awaitable[str]]


@dataclass
class IngestionOutcome:
    document_id: UUID
    status: DocumentStatus
    chunks_created: int = 0
    chunks_attempted: int = 0
    embedding_failures: int = 0
    failed_batches: int = 0
    error_code: str | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.status is DocumentStatus.PROCESSED


class IngestionPipeline:
    def __init__(
        self,
        settings: Settings,
        documents: DocumentStore,
        chunks: ChunkStore,
        embedder: Embedder,
    ) -> None:
        self._settings = settings
        self._documents = documents
        self._chunks = chunks
        self._embedder = embedder

    async def run(
        self,
        document: Document,
        fetch_text: FetchText,
        base_metadata: dict[str, Any] | None = None,
    ) -> IngestionOutcome:
        """Drive *document* from ``pending`` to a terminal status.

        Raises ``ValidationError`` only when the document is not in
        ``pending``; every other failure is reported in the outcome.
        """
        started = await self._documents.transition_status(
            document.owner_id, document.id, DocumentStatus.PENDING, DocumentStatus.PROCESSING
        )
        if not started:
            raise ValidationError(
                "Document is not pending; it has already been processed",
                "VALIDATION_ERROR",
            )
        document.status = DocumentStatus.PROCESSING

        try:
            outcome = await self._process(document, fetch_text, base_metadata or {})
        except ExtractionError as exc:
            logger.info("Extraction failed for document %s: %s", document.id, exc.message)
            outcome = IngestionOutcome(
                document_id=document.id,
                status=DocumentStatus.FAILED,
                error_code="EXTRACTION_FAILED",
                error_message=exc.message,
            )
        except Exception:
            logger.exception("Unhandled error while processing document %s", document.id)
            outcome = IngestionOutcome(
                document_id=document.id,
                status=DocumentStatus.FAILED,
                error_code="PROCESSING_ERROR",
                error_message=PROCESSING_ERROR_MESSAGE,
            )

        await self._finish(document, outcome.status)
        return outcome

    async def _finish(self, document: Document, status: DocumentStatus) -> None:
        moved = await self._documents.transition_status(
            document.owner_id, document.id, DocumentStatus.PROCESSING, status
        )
        if not moved:
            logger.warning(
                "Document %s left processing before reaching %s", document.id, status.value
            )
        document.status = status

    async def _process(
        self,
        document: Document,
        fetch_text: FetchText,
        base_metadata: dict[str, Any],
    ) -> IngestionOutcome:
        # ── Phase 1: fetch + extract ──────────────────────────
        text = await fetch_text()
        if len((text or "").strip()) < self._settings.ingest_min_text_length:
            raise ExtractionError(TOO_SHORT_MESSAGE, "EXTRACTION_FAILED")

        # ── Phase 2: chunk ────────────────────────────────────
        pieces = list(
            chunk_text(
                text,
                target_size=self._settings.chunk_target_size,
                overlap=self._settings.chunk_overlap,
            )
        )
        outcome = IngestionOutcome(
            document_id=document.id,
            status=DocumentStatus.PROCESSING,
            chunks_attempted=len(pieces),
        )
        logger.info("Document %s split into %d chunks", document.id, len(pieces))

        # ── Phases 3 + 4: embed sequentially, flush in batches ─
        batch_size = max(1, self._settings.ingest_batch_size)
        pending: list[Chunk] = []

        for piece in pieces:
            embedding: list[float] | None
            try:
                embedding = await self._embedder.embed(piece)
            except ProviderError as exc:
                outcome.embedding_failures += 1
                logger.warning(
                    "Embedding failed for a chunk of document %s (%s)", document.id, exc.code
                )
                if not self._settings.ingest_keep_unembedded_chunks:
                    continue
                embedding = None

            pending.append(
                Chunk(
                    document_id=document.id,
                    owner_id=document.owner_id,
                    content=piece,
                    embedding=embedding,
                    metadata={**base_metadata, "chunk_of": len(pieces)},
                )
            )
            if len(pending) >= batch_size:
                await self._flush(document, pending, outcome)
                pending = []

        if pending:
            await self._flush(document, pending, outcome)

        if outcome.chunks_created == 0:
            outcome.status = DocumentStatus.FAILED
            outcome.error_code = "PROCESSING_FAILED"
            outcome.error_message = NO_CHUNKS_MESSAGE
            return outcome

        outcome.status = DocumentStatus.PROCESSED
        logger.info(
            "Document %s processed: %d/%d chunks stored (%d unembedded or skipped, %d batches dropped)",
            document.id,
            outcome.chunks_created,
            outcome.chunks_attempted,
            outcome.embedding_failures,
            outcome.failed_batches,
        )
        return outcome

    async def _flush(
        self,
        document: Document,
        batch: list[Chunk],
        outcome: IngestionOutcome,
    ) -> None:
        for offset, chunk in enumerate(batch):
            chunk.chunk_index = outcome.chunks_created + offset
        try:
            written = await self._chunks.insert_chunks(batch)
        except (psycopg.Error, RuleXError) as exc:
            outcome.failed_batches += 1
            logger.warning(
                "Dropped a batch of %d chunks for document %s: %r",
                len(batch),
                document.id,
                exc,
            )
            return
        outcome.chunks_created += written

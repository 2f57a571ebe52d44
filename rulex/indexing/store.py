"""Postgres + pgvector persistence for documents and chunks.

``PgStore`` owns the async connection pool and every SQL statement the
core issues.  All reads and writes take the caller's ``owner_id`` and
filter on it; a row belonging to another owner is indistinguishable from
a missing row.

The ``DocumentStore`` / ``ChunkStore`` protocols are the narrow seams the
pipeline and retriever depend on, so both can run against in-memory
fakes in unit tests.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol
from uuid import UUID

from pgvector.psycopg import register_vector_async
from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from config import Settings
from rulex.indexing.models import Chunk, Document, DocumentStatus, ensure_transition
from rulex.indexing.schema import init_schema

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    async def create_document(self, document: Document) -> Document: ...

    async def get_document(self, owner_id: str, document_id: UUID) -> Document | None: ...

    async def transition_status(
        self,
        owner_id: str,
        document_id: UUID,
        expected: DocumentStatus,
        new_status: DocumentStatus,
    ) -> bool: ...

    async def delete_document(self, owner_id: str, document_id: UUID) -> bool: ...

    async def delete_owner_data(self, owner_id: str) -> int: ...


class ChunkStore(Protocol):
    async def insert_chunks(self, chunks: list[Chunk]) -> int: ...

    async def match_chunks(
        self,
        owner_id: str,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
    ) -> list[dict[str, Any]]: ...

    async def text_search_chunks(
        self,
        owner_id: str,
        tsquery: str,
        limit: int,
    ) -> list[dict[str, Any]]: ...


_CHUNK_COLUMNS = """
    c.id, c.document_id, c.content, c.metadata, c.chunk_index,
    d.filename AS document_filename
"""


def _row_to_document(row: dict[str, Any]) -> Document:
    return Document(
        id=row["id"],
        owner_id=row["user_id"],
        filename=row["filename"],
        file_path=row["file_path"],
        file_size=row["file_size"],
        mime_type=row["mime_type"],
        status=DocumentStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PgStore:
    """Async pool-backed implementation of ``DocumentStore`` and ``ChunkStore``."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._pool: AsyncConnectionPool | None = None
        self._schema_initialized = False

    # ── Pool lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        """Open the connection pool and make sure the schema exists."""
        if self._pool is not None:
            return
        if not self._settings.database_url:
            raise RuntimeError("DATABASE_URL is required for document storage.")
        self._pool = AsyncConnectionPool(
            conninfo=self._settings.database_url,
            min_size=self._settings.database_pool_min_size,
            max_size=self._settings.database_pool_max_size,
            open=False,
            kwargs={"autocommit": True},
        )
        await self._pool.open()
        async with self._connection() as conn:
            await self._ensure_schema_initialized(conn)

    async def stop(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        """Borrow a pooled connection with pgvector types registered."""
        if self._pool is None:
            await self.start()
        assert self._pool is not None
        conn = await self._pool.getconn()
        try:
            await register_vector_async(conn)
            yield conn
        finally:
            await self._pool.putconn(conn)

    async def _ensure_schema_initialized(self, conn: AsyncConnection) -> None:
        if self._schema_initialized:
            return
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT
                    to_regclass('public.documents') IS NOT NULL,
                    to_regclass('public.document_chunks') IS NOT NULL
                """
            )
            row = await cur.fetchone()
        if not (row and row[0] and row[1]):
            logger.info("Initialising ruleX schema")
            await init_schema(conn, self._settings.embedding_dimensions)
        self._schema_initialized = True

    # ── Documents ─────────────────────────────────────────────

    async def create_document(self, document: Document) -> Document:
        async with self._connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    INSERT INTO documents
                        (id, user_id, filename, file_path, file_size, mime_type, status)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        document.id,
                        document.owner_id,
                        document.filename,
                        document.file_path,
                        document.file_size,
                        document.mime_type,
                        document.status.value,
                    ),
                )
                row = await cur.fetchone()
        return _row_to_document(row)

    async def get_document(self, owner_id: str, document_id: UUID) -> Document | None:
        async with self._connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    "SELECT * FROM documents WHERE id = %s AND user_id = %s",
                    (document_id, owner_id),
                )
                row = await cur.fetchone()
        return _row_to_document(row) if row else None

    async def transition_status(
        self,
        owner_id: str,
        document_id: UUID,
        expected: DocumentStatus,
        new_status: DocumentStatus,
    ) -> bool:
        """Compare-and-set the status; False when the row was not in *expected*."""
        ensure_transition(expected, new_status)
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE documents
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s AND user_id = %s AND status = %s
                    """,
                    (new_status.value, document_id, owner_id, expected.value),
                )
                return cur.rowcount == 1

    async def delete_document(self, owner_id: str, document_id: UUID) -> bool:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "DELETE FROM documents WHERE id = %s AND user_id = %s",
                    (document_id, owner_id),
                )
                return cur.rowcount == 1

    async def delete_owner_data(self, owner_id: str) -> int:
        """Delete every document of *owner_id*; chunks go with the cascade."""
        async with self._connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    # Chunks cascade from documents; this also catches any
                    # orphan rows written under the owner id.
                    await cur.execute(
                        "DELETE FROM document_chunks WHERE user_id = %s", (owner_id,)
                    )
                    await cur.execute("DELETE FROM documents WHERE user_id = %s", (owner_id,))
                    return cur.rowcount

    # ── Chunks ────────────────────────────────────────────────

    async def insert_chunks(self, chunks: list[Chunk]) -> int:
        """Insert one batch of chunk rows in a single transaction."""
        if not chunks:
            return 0
        rows = [
            (
                chunk.id,
                chunk.document_id,
                chunk.owner_id,
                chunk.content,
                chunk.chunk_index,
                Jsonb(chunk.metadata),
                chunk.embedding,
            )
            for chunk in chunks
        ]
        async with self._connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.executemany(
                        """
                        INSERT INTO document_chunks
                            (id, document_id, user_id, content, chunk_index, metadata, embedding)
                        VALUES (%s, %s, %s, %s, %s, %s, %s::vector)
                        """,
                        rows,
                    )
        return len(rows)

    async def match_chunks(
        self,
        owner_id: str,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
    ) -> list[dict[str, Any]]:
        async with self._connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"""
                    SELECT {_CHUNK_COLUMNS},
                        1 - (c.embedding <=> %s::vector) AS similarity
                    FROM document_chunks c
                    JOIN documents d ON d.id = c.document_id
                    WHERE c.user_id = %s
                      AND c.embedding IS NOT NULL
                      AND 1 - (c.embedding <=> %s::vector) > %s
                    ORDER BY similarity DESC, c.id ASC
                    LIMIT %s
                    """,
                    (query_embedding, owner_id, query_embedding, match_threshold, match_count),
                )
                return list(await cur.fetchall())

    async def text_search_chunks(
        self,
        owner_id: str,
        tsquery: str,
        limit: int,
    ) -> list[dict[str, Any]]:
        async with self._connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"""
                    SELECT {_CHUNK_COLUMNS},
                        ts_rank(c.content_tsv, to_tsquery('english', %s)) AS rank
                    FROM document_chunks c
                    JOIN documents d ON d.id = c.document_id
                    WHERE c.user_id = %s
                      AND c.content_tsv @@ to_tsquery('english', %s)
                    ORDER BY rank DESC, c.id ASC
                    LIMIT %s
                    """,
                    (tsquery, owner_id, tsquery, limit),
                )
                return list(await cur.fetchall())

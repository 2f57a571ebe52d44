# schema.py is just SQL wrapped in Python

from __future__ import annotations

from psycopg import AsyncConnection

# embedding_dimensions is formatted into the DDL as VECTOR(%d); it is an
# integer from config, never user input

# documents - one row per ingested source, owned by exactly one user
# document_chunks - one row per chunk, denormalised owner_id so every search
# filters on the owner without a join; content_tsv backs full-text search

# HNSW index is for the cosine similarity search; GIN index is for the
# tsquery fallback
async def init_schema(conn: AsyncConnection, embedding_dimensions: int) -> None:
    async with conn.cursor() as cur:
        await cur.execute("CREATE EXTENSION IF NOT EXISTS vector;")

        await cur.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id UUID PRIMARY KEY,
                user_id TEXT NOT NULL,
                filename TEXT NOT NULL,
                file_path TEXT NOT NULL,
                file_size BIGINT NULL,
                mime_type TEXT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'processing', 'processed', 'failed')),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )

        await cur.execute(
            """
            CREATE INDEX IF NOT EXISTS documents_user_id_idx
            ON documents (user_id);
            """
        )

        await cur.execute(
            """
            CREATE TABLE IF NOT EXISTS document_chunks (
                id UUID PRIMARY KEY,
                document_id UUID NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
                user_id TEXT NOT NULL,
                content TEXT NOT NULL,
                chunk_index INTEGER NOT NULL,
                metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
                embedding VECTOR(%d) NULL,
                content_tsv TSVECTOR
                    GENERATED ALWAYS AS (to_tsvector('english', content)) STORED,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE (document_id, chunk_index)
            );
            """
            % embedding_dimensions
        )

        await cur.execute(
            """
            CREATE INDEX IF NOT EXISTS document_chunks_document_id_idx
            ON document_chunks (document_id);
            """
        )

        await cur.execute(
            """
            CREATE INDEX IF NOT EXISTS document_chunks_user_id_idx
            ON document_chunks (user_id);
            """
        )

        await cur.execute(
            """
            CREATE INDEX IF NOT EXISTS document_chunks_embedding_hnsw_idx
            ON document_chunks USING hnsw (embedding vector_cosine_ops)
            WHERE embedding IS NOT NULL;
            """
        )

        await cur.execute(
            """
            CREATE INDEX IF NOT EXISTS document_chunks_content_tsv_idx
            ON document_chunks USING gin (content_tsv);
            """
        )

    await conn.commit()

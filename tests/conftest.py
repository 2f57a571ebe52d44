from __future__ import annotations

import asyncio
import os
import sys
from typing import Any

import pytest
import pytest_asyncio

from config import settings

# ---------------------------------------------------------------------------
# Windows event loop fix: psycopg3 async connections require SelectorEventLoop.
# ---------------------------------------------------------------------------
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest_asyncio.fixture
async def pg_store() -> Any:
    """A started ``PgStore`` against DATABASE_URL with empty ruleX tables.

    Integration tests using this fixture are skipped when no database
    is configured.
    """
    database_url = os.getenv("DATABASE_URL") or settings.database_url
    if not database_url:
        pytest.skip("Skipping DB integration tests: DATABASE_URL is not set.")

    from rulex.indexing.store import PgStore

    store = PgStore(settings.model_copy(update={"database_url": database_url}))
    await store.start()
    async with store._connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("SET lock_timeout = '5s';")
            await cur.execute("TRUNCATE TABLE document_chunks, documents CASCADE;")
    try:
        yield store
    finally:
        await store.stop()

"""PgStore integration tests; skipped unless DATABASE_URL points at Postgres with pgvector."""

from __future__ import annotations

import pytest

from rulex.errors import ValidationError
from rulex.indexing.models import Chunk, Document, DocumentStatus


def _vector(first: float, second: float, dimensions: int) -> list[float]:
    return [first, second] + [0.0] * (dimensions - 2)


async def _document(pg_store, owner: str = "owner-1") -> Document:
    return await pg_store.create_document(
        Document(owner_id=owner, filename="cgst-act.pdf", file_path=f"{owner}/1-cgst-act.pdf", mime_type="application/pdf")
    )


@pytest.mark.asyncio
async def test_status_is_compare_and_set(pg_store):
    document = await _document(pg_store)

    assert await pg_store.transition_status("owner-1", document.id, DocumentStatus.PENDING, DocumentStatus.PROCESSING)
    assert not await pg_store.transition_status("owner-1", document.id, DocumentStatus.PENDING, DocumentStatus.PROCESSING)
    assert not await pg_store.transition_status("owner-2", document.id, DocumentStatus.PROCESSING, DocumentStatus.PROCESSED)

    stored = await pg_store.get_document("owner-1", document.id)
    assert stored.status is DocumentStatus.PROCESSING
    assert await pg_store.get_document("owner-2", document.id) is None


@pytest.mark.asyncio
async def test_vector_and_text_search_are_owner_scoped(pg_store):
    dims = pg_store._settings.embedding_dimensions
    mine = await _document(pg_store, "owner-1")
    theirs = await _document(pg_store, "owner-2")
    await pg_store.insert_chunks(
        [
            Chunk(document_id=mine.id, owner_id="owner-1", chunk_index=0,
                  content="Input tax credit under section 16.", embedding=_vector(1.0, 0.0, dims)),
            Chunk(document_id=mine.id, owner_id="owner-1", chunk_index=1,
                  content="Registration threshold.", embedding=_vector(0.0, 1.0, dims)),
            Chunk(document_id=mine.id, owner_id="owner-1", chunk_index=2,
                  content="Credit note rules.", embedding=None),
            Chunk(document_id=theirs.id, owner_id="owner-2", chunk_index=0,
                  content="Input tax credit elsewhere.", embedding=_vector(1.0, 0.0, dims)),
        ]
    )

    rows = await pg_store.match_chunks("owner-1", _vector(1.0, 0.0, dims), 0.7, 5)
    assert [row["content"] for row in rows] == ["Input tax credit under section 16."]
    assert rows[0]["document_filename"] == "cgst-act.pdf"
    assert rows[0]["similarity"] == pytest.approx(1.0)

    text_rows = await pg_store.text_search_chunks("owner-1", "credit", 10)
    assert sorted(row["content"] for row in text_rows) == [
        "Credit note rules.",
        "Input tax credit under section 16.",
    ]


@pytest.mark.asyncio
async def test_deleting_document_cascades_to_chunks(pg_store):
    document = await _document(pg_store)
    await pg_store.insert_chunks([Chunk(document_id=document.id, owner_id="owner-1", content="Section 9.")])

    assert await pg_store.delete_document("owner-1", document.id)
    assert await pg_store.text_search_chunks("owner-1", "section", 10) == []
    assert await pg_store.delete_owner_data("owner-1") == 0


@pytest.mark.asyncio
async def test_status_cannot_skip_processing(pg_store):
    document = await _document(pg_store)

    with pytest.raises(ValidationError):
        await pg_store.transition_status("owner-1", document.id, DocumentStatus.PENDING, DocumentStatus.PROCESSED)

    stored = await pg_store.get_document("owner-1", document.id)
    assert stored.status is DocumentStatus.PENDING

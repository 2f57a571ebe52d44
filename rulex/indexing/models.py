# models.py defines the row shapes the indexing layer reads and writes
# no database access - shape definitions plus the status transition table

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from rulex.errors import ValidationError


# lifecycle: pending -> processing -> processed | failed; nothing skips processing
class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


# allowed status moves; terminal states have no outgoing edges
ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.PROCESSED, DocumentStatus.FAILED}),
    DocumentStatus.PROCESSED: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


def ensure_transition(current: DocumentStatus, new_status: DocumentStatus) -> None:
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            f"Invalid document status transition: {current.value} -> {new_status.value}"
        )


# provenance tags stored under chunk metadata["source_type"]
class SourceType(str, Enum):
    UPLOAD = "upload"
    WEB_SCRAPE = "web_scrape"
    INDIAN_KANOON = "indian_kanoon"
    DATA_GOV_IN = "data_gov_in"


# one ingested source; file_path is the storage key, page URL or external resource URL
@dataclass
class Document:
    id: UUID = field(default_factory=uuid4)
    owner_id: str = ""
    filename: str = ""
    file_path: str = ""
    file_size: int | None = None
    mime_type: str | None = None
    status: DocumentStatus = DocumentStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

# immutable once inserted; embedding None means text-search only
@dataclass
class Chunk:
    id: UUID = field(default_factory=uuid4)
    document_id: UUID | None = None  # set by the pipeline before insert
    owner_id: str = ""
    chunk_index: int = 0
    content: str = ""
    embedding: list[float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

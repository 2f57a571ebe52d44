from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

RetrievalMode = Literal["vector", "text", "web", "none"]


class RetrievedChunk(BaseModel):
    """A stored chunk returned by vector or text search."""

    # Identity
    id: UUID
    document_id: UUID
    document_filename: str | None = None

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Cosine similarity for vector hits, a fixed moderate score for text hits.
    similarity: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "document_id": str(self.document_id),
            "content": self.content,
            "metadata": self.metadata,
            "similarity": self.similarity,
            "document_filename": self.document_filename,
        }


class WebSnippet(BaseModel):
    """Markdown snippet from an allow-listed official site."""

    url: str
    title: str | None = None
    content: str
    hostname: str


class RetrievalResult(BaseModel):
    """Output of the first retrieval strategy that found anything."""

    query: str
    mode: RetrievalMode = "none"
    chunks: list[RetrievedChunk] = Field(default_factory=list)
    web_snippets: list[WebSnippet] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when neither local chunks nor web snippets were found."""
        return not self.chunks and not self.web_snippets

    @property
    def total_found(self) -> int:
        return len(self.chunks) + len(self.web_snippets)

    @property
    def top_score(self) -> float:
        """Maximum chunk similarity (0.0 when there are no chunks)."""
        if not self.chunks:
            return 0.0
        return max(chunk.similarity for chunk in self.chunks)

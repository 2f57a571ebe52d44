from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Domain = Literal["finance", "gst", "civil", "criminal", "other"]
QueryType = Literal["informational", "decision", "document"]
Confidence = Literal["high", "medium", "low"]
SourceType = Literal["document", "web", "general"]


class QueryClassification(BaseModel):
    """Per-query classification; drives keyword retrieval and the prompt header."""

    model_config = ConfigDict(populate_by_name=True)

    domain: Domain
    query_type: QueryType = Field(alias="queryType")
    confidence: Confidence = "medium"
    keywords: list[str] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class SourceAttribution(BaseModel):
    type: Literal["document", "web"]
    filename: str | None = None
    similarity: float | None = None
    url: str | None = None
    hostname: str | None = None
    title: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class GeneratedAnswer(BaseModel):
    """Grounded answer plus the sources that were placed in the prompt."""

    response: str
    classification: QueryClassification
    query: str
    source_type: SourceType
    sources: list[SourceAttribution] = Field(default_factory=list)
    refused: bool = False

    @property
    def sources_used(self) -> int:
        return len(self.sources)

    def to_payload(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "classification": self.classification.to_payload(),
            "query": self.query,
            "sourceType": self.source_type,
            "sourcesUsed": self.sources_used,
            "sources": [source.to_payload() for source in self.sources],
        }

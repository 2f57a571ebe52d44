"""RuleXService: the outer boundary every caller goes through.

Owns:
  - Component wiring (store, storage, embedder, chat model, providers).
  - Store lifecycle (``start`` / ``stop``).
  - Translation of results and failures into plain response dicts.

Every public method takes an already-authenticated ``owner_id`` and
returns a dict.  ``RuleXError`` becomes ``{"error", "code"}`` (plus
``"retryable"`` when set); any other exception is logged with its
traceback and reported with a generic message.  Nothing here raises.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from config import Settings
from rulex.errors import NotFoundError, ProviderError, RuleXError, ValidationError
from rulex.generation.classifier import QueryClassifier
from rulex.generation.generator import GroundedResponseGenerator
from rulex.generation.llm_client import ChatModel, OpenAIChatModel
from rulex.indexing.embedder import Embedder, OpenAIEmbedder
from rulex.indexing.models import Document, SourceType
from rulex.indexing.store import ChunkStore, DocumentStore, PgStore
from rulex.ingestion.domains import ensure_allowed_url, hostname_of
from rulex.ingestion.firecrawl_client import FirecrawlClient, title_from_url
from rulex.ingestion.legal_sources import DataGovClient, IndianKanoonClient
from rulex.ingestion.pdf_extractor import extract_text, is_pdf, is_plain_text
from rulex.ingestion.pipeline import IngestionOutcome, IngestionPipeline
from rulex.ingestion.storage import DocumentStorage, LocalDocumentStorage
from rulex.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)

KANOON_NOT_CONFIGURED_MESSAGE = (
    "Indian Kanoon API not configured. Please add INDIAN_KANOON_API_KEY secret "
    "or use web scraping for indiacode.nic.in instead."
)
KANOON_ALTERNATIVE = (
    "You can scrape official sites like indiacode.nic.in directly using the scrape tool."
)
DATA_GOV_NOT_CONFIGURED_MESSAGE = (
    "Data.gov.in API key not configured. Please add DATA_GOV_IN_API_KEY secret."
)
DATA_GOV_INSTRUCTIONS = [
    "1. Visit https://data.gov.in/catalogs",
    "2. Search for the dataset you need",
    "3. Click on a dataset and find the API endpoint",
    "4. Copy the resource ID from the URL",
    "5. Use that resource ID to fetch data",
]
DATA_GOV_EXAMPLE_RESOURCES = [
    {"id": "9ef84268-d588-465a-a308-a864a43d0070", "name": "Pin Code Directory"},
    {"id": "6176ee09-3d56-4a3b-8115-21841576b2f6", "name": "RBI - Bank Branch Directory"},
]
NO_PAGE_CONTENT_MESSAGE = "No meaningful content extracted from the page"


def _error(message: str, code: str, **extra: Any) -> dict[str, Any]:
    return {"error": message, "code": code, **extra}


def _parse_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _truncated_title(title: str) -> str:
    return " ".join(title.split())[:100]


class RuleXService:
    def __init__(
        self,
        settings: Settings,
        *,
        documents: DocumentStore,
        chunks: ChunkStore,
        storage: DocumentStorage,
        embedder: Embedder,
        chat_model: ChatModel,
        web: FirecrawlClient,
        kanoon: IndianKanoonClient,
        data_gov: DataGovClient,
        retriever: Retriever | None = None,
    ) -> None:
        self._settings = settings
        self._documents = documents
        self._chunks = chunks
        self._storage = storage
        self._web = web
        self._kanoon = kanoon
        self._data_gov = data_gov
        self._pipeline = IngestionPipeline(settings, documents, chunks, embedder)
        self._retriever = retriever or Retriever.default(
            settings, embedder, chunks, web_searcher=web
        )
        self._classifier = QueryClassifier(chat_model)
        self._generator = GroundedResponseGenerator(settings, self._retriever, chat_model)
        self._lifecycle: PgStore | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> RuleXService:
        """Production wiring: Postgres store, local file storage, OpenAI-compatible models."""
        store = PgStore(settings)
        service = cls(
            settings,
            documents=store,
            chunks=store,
            storage=LocalDocumentStorage(settings.document_storage_dir),
            embedder=OpenAIEmbedder(settings),
            chat_model=OpenAIChatModel(settings),
            web=FirecrawlClient(settings),
            kanoon=IndianKanoonClient(settings),
            data_gov=DataGovClient(settings),
        )
        service._lifecycle = store
        return service

    async def start(self) -> None:
        if self._lifecycle is not None:
            await self._lifecycle.start()

    async def stop(self) -> None:
        if self._lifecycle is not None:
            await self._lifecycle.stop()

    # ── Uploads ───────────────────────────────────────────────

    async def register_upload(
        self,
        owner_id: str,
        filename: str,
        data: bytes,
        mime_type: str | None = None,
    ) -> dict[str, Any]:
        """Store uploaded bytes and create the ``pending`` document row."""
        try:
            if not filename:
                raise ValidationError("Filename is required", "VALIDATION_ERROR")
            if not data:
                raise ValidationError("File is empty", "VALIDATION_ERROR")
            if len(data) > self._settings.document_max_bytes:
                raise ValidationError(
                    f"File exceeds maximum size of {self._settings.document_max_bytes} bytes",
                    "VALIDATION_ERROR",
                )
            if not (is_pdf(mime_type, filename) or is_plain_text(mime_type)):
                raise ValidationError(
                    "Only PDF and plain-text documents are supported", "VALIDATION_ERROR"
                )

            key = await self._storage.save(owner_id, filename, data)
            document = await self._documents.create_document(
                Document(
                    owner_id=owner_id,
                    filename=filename,
                    file_path=key,
                    file_size=len(data),
                    mime_type=mime_type or ("application/pdf" if is_pdf(None, filename) else None),
                )
            )
        except RuleXError as exc:
            return exc.to_payload()
        except Exception:
            logger.exception("register_upload failed")
            return _error("Internal error", "INTERNAL_ERROR")

        return {
            "success": True,
            "document": {
                "id": str(document.id),
                "filename": document.filename,
                "file_size": document.file_size,
                "mime_type": document.mime_type,
                "status": document.status.value,
            },
        }

    async def process_document(self, owner_id: str, document_id: Any) -> dict[str, Any]:
        if not document_id:
            return _error("Document ID required", "DOC_ID_MISSING")
        parsed_id = _parse_uuid(document_id)
        if parsed_id is None:
            return _error("Document not found", "DOC_NOT_FOUND")

        try:
            document = await self._documents.get_document(owner_id, parsed_id)
            if document is None:
                raise NotFoundError("Document not found", "DOC_NOT_FOUND")

            async def fetch_text() -> str:
                data = await self._storage.fetch(document.file_path)
                return extract_text(data, document.mime_type, document.filename)

            outcome = await self._pipeline.run(
                document,
                fetch_text,
                {"filename": document.filename, "source_type": SourceType.UPLOAD.value},
            )
        except RuleXError as exc:
            return exc.to_payload()
        except Exception:
            logger.exception("process_document failed for %s", parsed_id)
            return _error("Internal error", "INTERNAL_ERROR")

        if not outcome.success:
            return _error(outcome.error_message or "Document processing failed", outcome.error_code or "PROCESSING_ERROR")
        return {
            "success": True,
            "chunksProcessed": outcome.chunks_created,
            "documentId": str(outcome.document_id),
        }

    # ── Retrieval + generation ────────────────────────────────

    async def search_documents(
        self,
        owner_id: str,
        query: Any,
        match_threshold: float | None = None,
        match_count: int | None = None,
    ) -> dict[str, Any]:
        if not isinstance(query, str) or not query.strip():
            return _error("Valid query required", "QUERY_INVALID")
        if match_threshold is not None and not 0.0 <= match_threshold <= 1.0:
            return _error("matchThreshold must be between 0 and 1", "QUERY_INVALID")
        if match_count is not None and not 1 <= match_count <= 50:
            return _error("matchCount must be between 1 and 50", "QUERY_INVALID")

        trimmed = query.strip()
        try:
            result = await self._retriever.retrieve(
                trimmed,
                owner_id,
                match_threshold=match_threshold,
                match_count=match_count,
                include_web=False,
            )
        except Exception:
            logger.exception("search_documents failed")
            return _error("Search failed", "SEARCH_ERROR")

        chunks = [chunk.to_payload() for chunk in result.chunks]
        return {"chunks": chunks, "query": trimmed, "totalFound": len(chunks)}

    async def classify_query(self, query: Any) -> dict[str, Any]:
        try:
            classification = await self._classifier.classify(query)
        except RuleXError as exc:
            return exc.to_payload()
        except Exception:
            logger.exception("classify_query failed")
            return _error("Classification failed", "INTERNAL_ERROR")
        return {"classification": classification.to_payload(), "query": query.strip()}

    async def generate_response(
        self,
        owner_id: str,
        query: Any,
        classification: Any,
        conversation_history: list[Any] | None = None,
    ) -> dict[str, Any]:
        try:
            answer = await self._generator.generate(
                owner_id, query, classification, conversation_history
            )
        except RuleXError as exc:
            return exc.to_payload()
        except Exception:
            logger.exception("generate_response failed")
            return _error("Unable to process your query. Please try again.", "INTERNAL_ERROR")
        return answer.to_payload()

    # ── Web scrape ingestion ──────────────────────────────────

    async def _ingest_text(
        self,
        owner_id: str,
        *,
        filename: str,
        file_path: str,
        mime_type: str,
        text: str,
        metadata: dict[str, Any],
    ) -> tuple[Document, IngestionOutcome]:
        document = await self._documents.create_document(
            Document(
                owner_id=owner_id,
                filename=filename,
                file_path=file_path,
                file_size=len(text),
                mime_type=mime_type,
            )
        )

        async def fetch_text() -> str:
            return text

        outcome = await self._pipeline.run(document, fetch_text, metadata)
        return document, outcome

    async def scrape_legal_site(self, owner_id: str, url: Any) -> dict[str, Any]:
        try:
            # Allow-list check happens before any network call or row insert.
            normalized = ensure_allowed_url(url if isinstance(url, str) else "", self._settings.allowed_domains)
            page = await self._web.scrape(normalized)
            content = page.markdown or ""
            if len(content.strip()) < self._settings.ingest_min_text_length:
                return {"success": False, **_error(NO_PAGE_CONTENT_MESSAGE, "EXTRACTION_FAILED")}

            title = page.title or title_from_url(normalized) or "Scraped Page"
            document, outcome = await self._ingest_text(
                owner_id,
                filename=f"{_truncated_title(title)}.md",
                file_path=normalized,
                mime_type="text/markdown",
                text=content,
                metadata={
                    "source_url": normalized,
                    "page_title": title,
                    "source_type": SourceType.WEB_SCRAPE.value,
                    "domain": hostname_of(normalized),
                },
            )
        except RuleXError as exc:
            return {"success": False, **exc.to_payload()}
        except Exception:
            logger.exception("scrape_legal_site failed")
            return {"success": False, **_error("Scraping failed", "INTERNAL_ERROR")}

        if not outcome.success:
            return {
                "success": False,
                **_error(outcome.error_message or "Scraping failed", outcome.error_code or "PROCESSING_ERROR"),
            }
        return {
            "success": True,
            "data": {
                "document_id": str(document.id),
                "title": title,
                "chunks_created": outcome.chunks_created,
                "source_url": normalized,
            },
        }

    # ── External legal sources ────────────────────────────────

    async def search_indian_kanoon(
        self,
        owner_id: str,
        query: Any,
        *,
        page: int = 0,
        ingest: bool = False,
    ) -> dict[str, Any]:
        if not isinstance(query, str) or not query.strip():
            return {"success": False, **_error("Search query is required", "VALIDATION_ERROR")}

        if not self._kanoon.configured:
            return {
                "success": True,
                "data": {
                    "results": [],
                    "total_results": 0,
                    "message": KANOON_NOT_CONFIGURED_MESSAGE,
                    "alternative": KANOON_ALTERNATIVE,
                },
            }

        try:
            search_page = await self._kanoon.search(query.strip(), page=page)
        except RuleXError as exc:
            return {"success": False, **_error("Failed to search Indian Kanoon", exc.code)}
        except Exception:
            logger.exception("search_indian_kanoon failed")
            return {"success": False, **_error("Search failed", "INTERNAL_ERROR")}

        data: dict[str, Any] = {
            "results": [result.to_payload() for result in search_page.results],
            "total_results": search_page.total_results,
        }
        if ingest:
            data["ingested"] = await self._ingest_kanoon_results(owner_id, search_page.results)
        return {"success": True, "data": data}

    async def _ingest_kanoon_results(self, owner_id: str, results: list[Any]) -> list[str]:
        """Fetch and ingest up to the cap; one candidate failing never blocks the rest."""
        ingested: list[str] = []
        for result in results[: self._settings.legal_search_ingest_cap]:
            try:
                kanoon_doc = await self._kanoon.fetch_document(result.id)
                if len(kanoon_doc.text.strip()) < self._settings.ingest_min_text_length:
                    logger.info("Skipping Indian Kanoon doc %s: too little text", result.id)
                    continue
                title = result.title or kanoon_doc.title
                _, outcome = await self._ingest_text(
                    owner_id,
                    filename=f"{_truncated_title(title)}.txt",
                    file_path=kanoon_doc.url,
                    mime_type="text/plain",
                    text=kanoon_doc.text,
                    metadata={
                        "source_url": kanoon_doc.url,
                        "title": title,
                        "source_type": SourceType.INDIAN_KANOON.value,
                        "citation": result.citation or kanoon_doc.citation,
                        "docsource": result.source or kanoon_doc.docsource,
                        "publishdate": result.date or kanoon_doc.publishdate,
                    },
                )
            except ProviderError as exc:
                logger.warning("Could not fetch Indian Kanoon doc %s (%s)", result.id, exc.code)
                continue
            except Exception:
                logger.exception("Ingesting Indian Kanoon doc %s failed", result.id)
                continue
            if outcome.success:
                ingested.append(title)
        return ingested

    async def fetch_data_gov_resource(
        self,
        owner_id: str,
        resource_id: str | None = None,
        *,
        ingest: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> dict[str, Any]:
        if not resource_id:
            return {
                "success": True,
                "data": {
                    "message": "Data.gov.in requires specific resource IDs to fetch data.",
                    "instructions": DATA_GOV_INSTRUCTIONS,
                    "example_resources": DATA_GOV_EXAMPLE_RESOURCES,
                },
            }
        if not self._data_gov.configured:
            return {"success": False, **_error(DATA_GOV_NOT_CONFIGURED_MESSAGE, "SERVICE_ERROR")}

        try:
            resource = await self._data_gov.fetch_resource(resource_id, limit=limit, offset=offset)
            ingested = False
            document_id: str | None = None
            if ingest and resource.records:
                document, outcome = await self._ingest_text(
                    owner_id,
                    filename=f"{_truncated_title(resource.title)}.txt",
                    file_path=resource.url,
                    mime_type="text/plain",
                    text=resource.text,
                    metadata={
                        "source_url": resource.url,
                        "title": resource.title,
                        "source_type": SourceType.DATA_GOV_IN.value,
                        "resource_id": resource.resource_id,
                        "total_records": resource.total_records,
                    },
                )
                ingested = outcome.success
                document_id = str(document.id)
        except RuleXError as exc:
            return {"success": False, **_error("Failed to fetch data from data.gov.in", exc.code)}
        except Exception:
            logger.exception("fetch_data_gov_resource failed")
            return {"success": False, **_error("Request failed", "INTERNAL_ERROR")}

        return {
            "success": True,
            "data": {
                "index_name": resource.title,
                "description": resource.description,
                "total": resource.total_records,
                "records": resource.records,
                "ingested": ingested,
                "document_id": document_id,
            },
        }

    # ── Deletion ──────────────────────────────────────────────

    async def delete_document(self, owner_id: str, document_id: Any) -> dict[str, Any]:
        parsed_id = _parse_uuid(document_id)
        if parsed_id is None:
            return _error("Document not found", "DOC_NOT_FOUND")
        try:
            document = await self._documents.get_document(owner_id, parsed_id)
            if document is None:
                raise NotFoundError("Document not found", "DOC_NOT_FOUND")
            await self._documents.delete_document(owner_id, parsed_id)
            if document.mime_type and not document.file_path.startswith(("http://", "https://")):
                await self._storage.delete(document.file_path)
        except RuleXError as exc:
            return exc.to_payload()
        except Exception:
            logger.exception("delete_document failed for %s", parsed_id)
            return _error("Internal error", "INTERNAL_ERROR")
        return {"success": True, "documentId": str(parsed_id)}

    async def delete_owner_data(self, owner_id: str) -> dict[str, Any]:
        try:
            deleted = await self._documents.delete_owner_data(owner_id)
        except Exception:
            logger.exception("delete_owner_data failed")
            return _error("Internal error", "INTERNAL_ERROR")
        return {"success": True, "documentsDeleted": deleted}


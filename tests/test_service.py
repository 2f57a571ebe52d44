"""Tests for rulex.service.RuleXService against in-memory fakes."""

from __future__ import annotations

from uuid import uuid4

import httpx
import pytest

from rulex.generation.prompts import REFUSAL_MESSAGE
from rulex.indexing.models import DocumentStatus
from rulex.ingestion.firecrawl_client import ScrapedPage
from rulex.ingestion.legal_sources import DataGovClient, IndianKanoonClient
from rulex.service import KANOON_NOT_CONFIGURED_MESSAGE, RuleXService
from fakes import (
    FakeChatModel,
    FakeEmbedder,
    FakeWebClient,
    InMemoryStorage,
    InMemoryStore,
    legal_text,
    make_settings,
)

OWNER = "owner-1"
CLASSIFICATION = {"domain": "gst", "queryType": "informational", "confidence": "high", "keywords": ["gst"]}


def _kanoon_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/search/":
        return httpx.Response(
            200,
            json={
                "found": 3,
                "docs": [
                    {"tid": 1, "title": "Judgment One", "docsource": "Delhi High Court"},
                    {"tid": 2, "title": "Judgment Two"},
                    {"tid": 3, "title": "Judgment Three"},
                ],
            },
        )
    if request.url.path == "/doc/2/":
        return httpx.Response(200, json={"title": "Judgment Two", "doc": "<p>Dismissed.</p>"})
    if request.url.path == "/doc/3/":
        return httpx.Response(500)
    return httpx.Response(200, json={"title": "Judgment One", "doc": f"<p>{legal_text(3)}</p>"})


def _data_gov_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "index_name": "GST Collections",
            "total": 2,
            "records": [
                {"state": "Maharashtra", "collection_crore": "26,039"},
                {"state": "Karnataka", "collection_crore": "11,583"},
            ],
        },
    )


def _service(*, chat=None, web=None, kanoon_key=None, data_gov_key=None, **overrides):
    settings = make_settings(
        indian_kanoon_api_key=kanoon_key,
        data_gov_api_key=data_gov_key,
        indian_kanoon_api_url="https://api.indiankanoon.org",
        **overrides,
    )
    store = InMemoryStore()
    storage = InMemoryStorage()
    web = web or FakeWebClient()
    service = RuleXService(
        settings,
        documents=store,
        chunks=store,
        storage=storage,
        embedder=FakeEmbedder(),
        chat_model=chat or FakeChatModel(configured=False),
        web=web,
        kanoon=IndianKanoonClient(settings, transport=httpx.MockTransport(_kanoon_handler)),
        data_gov=DataGovClient(settings, transport=httpx.MockTransport(_data_gov_handler)),
    )
    return service, store, storage, web


class TestScrape:
    @pytest.mark.asyncio
    async def test_disallowed_domain_makes_no_call_and_no_document(self):
        service, store, _, web = _service()

        result = await service.scrape_legal_site(OWNER, "https://evil.example.com/gst")

        assert result["success"] is False
        assert result["code"] == "VALIDATION_ERROR"
        assert result["error"].startswith("Domain not allowed")
        assert web.scraped == []
        assert store.documents == {}

    @pytest.mark.asyncio
    async def test_allowed_page_is_ingested(self):
        url = "https://cbic.gov.in/gst/cgst-act"
        web = FakeWebClient(pages={url: ScrapedPage(url=url, markdown=legal_text(5), title="CGST Act, 2017")})
        service, store, _, _ = _service(web=web)

        result = await service.scrape_legal_site(OWNER, "cbic.gov.in/gst/cgst-act")

        assert result["success"] is True
        data = result["data"]
        assert data["title"] == "CGST Act, 2017"
        assert data["source_url"] == url
        assert data["chunks_created"] == 1

        [document] = store.documents.values()
        assert document.filename == "CGST Act, 2017.md"
        assert document.mime_type == "text/markdown"
        assert document.status is DocumentStatus.PROCESSED
        [chunk] = store.chunks
        assert chunk.metadata["source_type"] == "web_scrape"
        assert chunk.metadata["domain"] == "cbic.gov.in"
        assert chunk.metadata["source_url"] == url

    @pytest.mark.asyncio
    async def test_empty_page_creates_no_document(self):
        url = "https://gst.gov.in/empty"
        web = FakeWebClient(pages={url: ScrapedPage(url=url, markdown="Loading...", title=None)})
        service, store, _, _ = _service(web=web)

        result = await service.scrape_legal_site(OWNER, url)

        assert result == {
            "success": False,
            "error": "No meaningful content extracted from the page",
            "code": "EXTRACTION_FAILED",
        }
        assert store.documents == {}

    @pytest.mark.asyncio
    async def test_scraper_failure(self):
        service, _, _, _ = _service()

        result = await service.scrape_legal_site(OWNER, "https://mca.gov.in/missing")

        assert result["success"] is False
        assert result["code"] == "PROCESSING_ERROR"


class TestUploads:
    @pytest.mark.asyncio
    async def test_upload_then_process(self):
        service, store, storage, _ = _service()

        registered = await service.register_upload(OWNER, "notes.txt", legal_text(4).encode(), "text/plain")
        assert registered["success"] is True
        assert registered["document"]["status"] == "pending"
        document_id = registered["document"]["id"]

        result = await service.process_document(OWNER, document_id)

        assert result == {"success": True, "chunksProcessed": 1, "documentId": document_id}
        [chunk] = store.chunks
        assert chunk.metadata == {"filename": "notes.txt", "source_type": "upload", "chunk_of": 1}

        again = await service.process_document(OWNER, document_id)
        assert again["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_short_text_reports_extraction_failure(self):
        service, store, _, _ = _service()
        registered = await service.register_upload(OWNER, "tiny.txt", b"too short", "text/plain")

        result = await service.process_document(OWNER, registered["document"]["id"])

        assert result["code"] == "EXTRACTION_FAILED"
        [document] = store.documents.values()
        assert document.status is DocumentStatus.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "document_id, code",
        [(None, "DOC_ID_MISSING"), ("", "DOC_ID_MISSING"), ("not-a-uuid", "DOC_NOT_FOUND"), (str(uuid4()), "DOC_NOT_FOUND")],
    )
    async def test_process_document_lookup_errors(self, document_id, code):
        service, _, _, _ = _service()
        result = await service.process_document(OWNER, document_id)
        assert result["code"] == code

    @pytest.mark.asyncio
    async def test_other_owners_document_is_not_found(self):
        service, _, _, _ = _service()
        registered = await service.register_upload(OWNER, "notes.txt", legal_text(4).encode(), "text/plain")

        result = await service.process_document("intruder", registered["document"]["id"])

        assert result == {"error": "Document not found", "code": "DOC_NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_upload_limits(self):
        service, _, storage, _ = _service(document_max_bytes=10)

        too_big = await service.register_upload(OWNER, "big.txt", b"x" * 11, "text/plain")
        wrong_type = await service.register_upload(OWNER, "scan.png", b"\x89PNG", "image/png")

        assert too_big["code"] == "VALIDATION_ERROR"
        assert wrong_type["code"] == "VALIDATION_ERROR"
        assert storage.files == {}

    @pytest.mark.asyncio
    async def test_delete_document_removes_file(self):
        service, store, storage, _ = _service()
        registered = await service.register_upload(OWNER, "notes.txt", legal_text(4).encode(), "text/plain")
        document_id = registered["document"]["id"]
        await service.process_document(OWNER, document_id)

        result = await service.delete_document(OWNER, document_id)

        assert result["success"] is True
        assert store.documents == {} and store.chunks == []
        assert storage.files == {}

    @pytest.mark.asyncio
    async def test_delete_owner_data(self):
        service, store, _, _ = _service()
        await service.register_upload(OWNER, "a.txt", b"a" * 200, "text/plain")
        await service.register_upload("owner-2", "b.txt", b"b" * 200, "text/plain")

        result = await service.delete_owner_data(OWNER)

        assert result == {"success": True, "documentsDeleted": 1}
        assert [d.owner_id for d in store.documents.values()] == ["owner-2"]


class TestQueries:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [None, "", "   ", 42])
    async def test_search_requires_query(self, query):
        service, _, _, _ = _service()
        assert await service.search_documents(OWNER, query) == {"error": "Valid query required", "code": "QUERY_INVALID"}

    @pytest.mark.asyncio
    async def test_search_returns_chunks(self):
        service, _, _, _ = _service()
        registered = await service.register_upload(OWNER, "notes.txt", legal_text(4).encode(), "text/plain")
        await service.process_document(OWNER, registered["document"]["id"])

        result = await service.search_documents(OWNER, " outward supplies ")

        assert result["query"] == "outward supplies"
        assert result["totalFound"] == 1
        assert result["chunks"][0]["document_filename"] == "notes.txt"

    @pytest.mark.asyncio
    async def test_search_storage_failure(self):
        service, store, _, _ = _service()
        store.fail_reads = True

        assert await service.search_documents(OWNER, "gst") == {"error": "Search failed", "code": "SEARCH_ERROR"}

    @pytest.mark.asyncio
    async def test_generate_refusal_payload(self):
        service, _, _, _ = _service(chat=FakeChatModel())

        result = await service.generate_response(OWNER, "What is GST?", CLASSIFICATION)

        assert result["response"] == REFUSAL_MESSAGE
        assert result["sourceType"] == "general"
        assert result["sourcesUsed"] == 0
        assert result["query"] == "What is GST?"

    @pytest.mark.asyncio
    async def test_generate_validation_payload(self):
        service, _, _, _ = _service()
        result = await service.generate_response(OWNER, "What is GST?", None)
        assert result == {"error": "Valid classification is required", "code": "CLASSIFICATION_MISSING"}

    @pytest.mark.asyncio
    async def test_generate_unexpected_error_is_generic(self):
        service, _, _, _ = _service(chat=FakeChatModel(error=RuntimeError("secret detail")))
        registered = await service.register_upload(OWNER, "notes.txt", legal_text(4).encode(), "text/plain")
        await service.process_document(OWNER, registered["document"]["id"])

        result = await service.generate_response(OWNER, "What is GST?", CLASSIFICATION)

        assert result == {"error": "Unable to process your query. Please try again.", "code": "INTERNAL_ERROR"}

    @pytest.mark.asyncio
    async def test_classify_payload(self):
        service, _, _, _ = _service()
        with pytest.warns(UserWarning):
            result = await service.classify_query("  GST on restaurant bills  ")
        assert result["query"] == "GST on restaurant bills"
        assert result["classification"]["domain"] == "gst"


class TestIndianKanoon:
    @pytest.mark.asyncio
    async def test_not_configured_returns_guidance(self):
        service, _, _, _ = _service()

        result = await service.search_indian_kanoon(OWNER, "section 138 cheque bounce")

        assert result["success"] is True
        assert result["data"]["results"] == []
        assert result["data"]["total_results"] == 0
        assert result["data"]["message"] == KANOON_NOT_CONFIGURED_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_query(self):
        service, _, _, _ = _service(kanoon_key="ik")
        result = await service.search_indian_kanoon(OWNER, " ")
        assert result["success"] is False
        assert result["error"] == "Search query is required"

    @pytest.mark.asyncio
    async def test_search_with_ingest_skips_short_and_failed_documents(self):
        service, store, _, _ = _service(kanoon_key="ik")

        result = await service.search_indian_kanoon(OWNER, "cheque bounce", ingest=True)

        assert result["success"] is True
        data = result["data"]
        assert [r["id"] for r in data["results"]] == ["1", "2", "3"]
        assert data["total_results"] == 3
        assert data["ingested"] == ["Judgment One"]

        [document] = store.documents.values()
        assert document.filename == "Judgment One.txt"
        assert document.file_path == "https://indiankanoon.org/doc/1/"
        assert store.chunks[0].metadata["source_type"] == "indian_kanoon"
        assert store.chunks[0].metadata["docsource"] == "Delhi High Court"

    @pytest.mark.asyncio
    async def test_ingest_cap(self):
        service, store, _, _ = _service(kanoon_key="ik", legal_search_ingest_cap=0)
        result = await service.search_indian_kanoon(OWNER, "cheque bounce", ingest=True)
        assert result["data"]["ingested"] == []
        assert store.documents == {}


class TestDataGov:
    @pytest.mark.asyncio
    async def test_without_resource_id_returns_instructions(self):
        service, _, _, _ = _service()
        result = await service.fetch_data_gov_resource(OWNER)
        assert result["success"] is True
        assert result["data"]["instructions"]

    @pytest.mark.asyncio
    async def test_not_configured(self):
        service, _, _, _ = _service()
        result = await service.fetch_data_gov_resource(OWNER, "abc")
        assert result["success"] is False
        assert "DATA_GOV_IN_API_KEY" in result["error"]

    @pytest.mark.asyncio
    async def test_fetch_and_ingest(self):
        service, store, _, _ = _service(data_gov_key="dg", ingest_min_text_length=50)

        result = await service.fetch_data_gov_resource(OWNER, "gst-collections", ingest=True)

        assert result["success"] is True
        data = result["data"]
        assert data["index_name"] == "GST Collections"
        assert data["total"] == 2
        assert len(data["records"]) == 2
        assert data["ingested"] is True
        assert store.chunks[0].metadata["source_type"] == "data_gov_in"
        assert store.chunks[0].metadata["resource_id"] == "gst-collections"

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from rulex.errors import ProviderError
from rulex.ingestion.firecrawl_client import FirecrawlClient, title_from_url
from fakes import make_settings


def _client(app) -> FirecrawlClient:
    return FirecrawlClient(make_settings(firecrawl_timeout_ms=1000), app=app)


class TestScrape:
    @pytest.mark.asyncio
    async def test_scrape_reads_object_response(self):
        app = MagicMock()
        app.scrape.return_value = SimpleNamespace(
            markdown="# CGST Act\n\nSection 9.",
            metadata=SimpleNamespace(title="CGST Act, 2017"),
        )

        page = await _client(app).scrape("https://cbic.gov.in/cgst")

        assert page.markdown.startswith("# CGST Act")
        assert page.title == "CGST Act, 2017"
        kwargs = app.scrape.call_args.kwargs
        assert kwargs["formats"] == ["markdown"]
        assert kwargs["only_main_content"] is True
        assert kwargs["wait_for"] == 3000

    @pytest.mark.asyncio
    async def test_scrape_reads_dict_response(self):
        app = MagicMock()
        app.scrape.return_value = {"markdown": "text", "metadata": {"title": "Rules"}}

        page = await _client(app).scrape("https://cbic.gov.in/rules")

        assert (page.markdown, page.title) == ("text", "Rules")
        assert page.metadata == {"title": "Rules"}

    @pytest.mark.asyncio
    async def test_sdk_failure_becomes_provider_error(self):
        app = MagicMock()
        app.scrape.side_effect = RuntimeError("502 Bad Gateway")

        with pytest.raises(ProviderError) as excinfo:
            await _client(app).scrape("https://cbic.gov.in/x")
        assert excinfo.value.code == "PROCESSING_ERROR"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(ProviderError):
            await FirecrawlClient(make_settings()).scrape("https://cbic.gov.in/x")


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_v2_shape(self):
        app = MagicMock()
        app.search.return_value = SimpleNamespace(
            web=[
                {"url": "https://cbic.gov.in/rates", "title": "Rates", "markdown": "5%"},
                {"title": "no url"},
                SimpleNamespace(url="https://gst.gov.in/faq", title=None, markdown=None, description="FAQ", metadata=None),
            ]
        )

        hits = await _client(app).search("gst rates", 3)

        assert [(h.url, h.title, h.content) for h in hits] == [
            ("https://cbic.gov.in/rates", "Rates", "5%"),
            ("https://gst.gov.in/faq", None, "FAQ"),
        ]
        assert app.search.call_args.kwargs["limit"] == 3

    @pytest.mark.asyncio
    async def test_search_list_shape(self):
        app = MagicMock()
        app.search.return_value = [{"url": "https://mca.gov.in/a", "markdown": "Companies Act"}]

        hits = await _client(app).search("companies act", 1)

        assert hits[0].content == "Companies Act"

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        app = MagicMock()
        app.search.return_value = 42

        with pytest.raises(ProviderError):
            await _client(app).search("x", 1)


def test_title_from_url():
    assert title_from_url("https://indiacode.nic.in/handle/123/cgst-act") == "cgst-act"
    assert title_from_url("https://indiacode.nic.in/") is None

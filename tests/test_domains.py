"""Unit tests for rulex.ingestion.domains."""

from __future__ import annotations

import pytest

from config import DEFAULT_ALLOWED_DOMAINS
from rulex.errors import ValidationError
from rulex.ingestion.domains import ensure_allowed_url, hostname_of, is_allowed_host, normalize_url


class TestNormalizeUrl:
    def test_adds_https_scheme(self):
        assert normalize_url("cbic.gov.in/htdocs-cbec/gst") == "https://cbic.gov.in/htdocs-cbec/gst"

    def test_keeps_existing_scheme(self):
        assert normalize_url(" http://indiacode.nic.in ") == "http://indiacode.nic.in"

    def test_empty_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_url("   ")


class TestAllowList:
    @pytest.mark.parametrize(
        "host",
        ["cbic.gov.in", "www.cbic.gov.in", "INDIACODE.NIC.IN", "services.gst.gov.in", "egazette.nic.in."],
    )
    def test_allowed_hosts(self, host):
        assert is_allowed_host(host, DEFAULT_ALLOWED_DOMAINS)

    @pytest.mark.parametrize(
        "host",
        ["notcbic.gov.in", "cbic.gov.in.evil.com", "evil.example.com", "gov.in", ""],
    )
    def test_rejected_hosts(self, host):
        assert not is_allowed_host(host, DEFAULT_ALLOWED_DOMAINS)

    def test_hostname_is_lowercased(self):
        assert hostname_of("https://WWW.MCA.GOV.IN/content/mca") == "www.mca.gov.in"


class TestEnsureAllowedUrl:
    def test_returns_normalised_url(self):
        assert (
            ensure_allowed_url("incometaxindia.gov.in/Pages/acts.aspx", DEFAULT_ALLOWED_DOMAINS)
            == "https://incometaxindia.gov.in/Pages/acts.aspx"
        )

    def test_disallowed_domain(self):
        with pytest.raises(ValidationError) as excinfo:
            ensure_allowed_url("https://evil.example.com/gst", DEFAULT_ALLOWED_DOMAINS)
        assert excinfo.value.code == "VALIDATION_ERROR"
        assert excinfo.value.message.startswith("Domain not allowed")
        assert "cbic.gov.in" in excinfo.value.message

    def test_non_http_scheme(self):
        with pytest.raises(ValidationError):
            ensure_allowed_url("ftp://cbic.gov.in/file", DEFAULT_ALLOWED_DOMAINS)

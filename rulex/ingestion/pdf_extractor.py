"""Plain-text extraction for uploaded documents.

PDFs go through ``pypdf`` and only the embedded text layer is read.
Scanned or image-only PDFs therefore come back empty or nearly empty,
and the pipeline reports them as ``EXTRACTION_FAILED`` so the caller can
suggest OCR or another source.  Complex layouts (multi-column, tables,
non-Latin fonts without a ToUnicode map) may extract out of order or
with missing characters.
"""

from __future__ import annotations

import io
import logging
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from rulex.errors import ExtractionError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
_TEXT_MIME_PREFIXES = ("text/",)
_TEXT_MIME_TYPES = {"application/json", "application/xml", "application/x-yaml"}

EXTRACTION_FAILED_MESSAGE = (
    "Could not extract text from PDF. The document may be image-based or encrypted."
)


class PdfTextExtractor(Protocol):
    def extract(self, data: bytes) -> str: ...


class PypdfTextExtractor:
    """Text-layer extraction via pypdf, one page at a time."""

    def extract(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            if reader.is_encrypted:
                # Many "encrypted" PDFs only carry an owner password.
                reader.decrypt("")
            pages: list[str] = []
            for page in reader.pages:
                text = page.extract_text() or ""
                if text.strip():
                    pages.append(text)
        except (PdfReadError, ValueError, KeyError) as exc:
            logger.warning("pypdf could not read document: %r", exc)
            raise ExtractionError(EXTRACTION_FAILED_MESSAGE, "EXTRACTION_FAILED") from exc
        return "\n\n".join(pages)


def is_pdf(mime_type: str | None, filename: str | None = None) -> bool:
    if mime_type and mime_type.lower() == PDF_MIME_TYPE:
        return True
    return bool(filename and filename.lower().endswith(".pdf"))


def is_plain_text(mime_type: str | None) -> bool:
    if not mime_type:
        return False
    lowered = mime_type.lower()
    return lowered.startswith(_TEXT_MIME_PREFIXES) or lowered in _TEXT_MIME_TYPES


def extract_text(
    data: bytes,
    mime_type: str | None,
    filename: str | None = None,
    *,
    pdf_extractor: PdfTextExtractor | None = None,
) -> str:
    """Return the plain text of an uploaded file.

    PDFs use *pdf_extractor* (``PypdfTextExtractor`` by default); textual
    media types are decoded as UTF-8 with replacement.
    """
    if is_pdf(mime_type, filename):
        extractor = pdf_extractor or PypdfTextExtractor()
        return extractor.extract(data)
    if is_plain_text(mime_type):
        return data.decode("utf-8", errors="replace")
    raise ExtractionError(
        f"Unsupported document type: {mime_type or 'unknown'}",
        "EXTRACTION_FAILED",
    )

"""Tests for uploaded-document text extraction."""

import io
from types import SimpleNamespace
from unittest.mock import MagicMock

import openai
import pytest
from pypdf import PdfWriter

from statute_navigator.errors import ExtractionFailure
from statute_navigator.extraction.extractor import VISION_PROMPT, TextExtractor


@pytest.fixture
def extractor() -> TextExtractor:
    return TextExtractor()


def vision_client(reply: str) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=reply))]
    )
    return client


def blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def test_plain_text(extractor):
    assert extractor.extract("Notice to quit.".encode("utf-8"), "text/plain") == "Notice to quit."


def test_mime_parameters_are_ignored(extractor):
    assert extractor.extract(b"rent", "Text/Plain; charset=utf-8") == "rent"


def test_html_body_text(extractor):
    html = b"<html><head><script>x()</script></head><body><p>Summary Ejectment</p></body></html>"
    assert extractor.extract(html, "text/html").strip() == "Summary Ejectment"


def test_invalid_utf8(extractor):
    with pytest.raises(ExtractionFailure):
        extractor.extract(b"\xff\xfe\xfa", "text/plain")


def test_unsupported_mime(extractor):
    with pytest.raises(ExtractionFailure):
        extractor.extract(b"PK\x03\x04", "application/zip")


def test_missing_mime(extractor):
    with pytest.raises(ExtractionFailure):
        extractor.extract(b"data", None)


def test_corrupt_pdf(extractor):
    with pytest.raises(ExtractionFailure):
        extractor.extract(b"definitely not a pdf", "application/pdf")


def test_pdf_without_text_layer(extractor):
    assert extractor.extract(blank_pdf(), "application/pdf") == ""


def test_image_goes_to_vision_model(extractor):
    extractor._client = vision_client("Issue: eviction. Statutes: NCGS 42-26.")

    text = extractor.extract(b"\x89PNG fake", "image/png")

    assert text == "Issue: eviction. Statutes: NCGS 42-26."
    kwargs = extractor._client.chat.completions.create.call_args.kwargs
    content = kwargs["messages"][0]["content"]
    assert content[0]["text"] == VISION_PROMPT
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")


def test_vision_failure(extractor):
    extractor._client = MagicMock()
    extractor._client.chat.completions.create.side_effect = openai.OpenAIError("quota")
    with pytest.raises(ExtractionFailure):
        extractor.extract(b"\x89PNG fake", "image/png")


class TestSafeExtract:
    def test_failure_degrades_to_empty(self, extractor):
        assert extractor.safe_extract(b"PK\x03\x04", "application/zip") == ""

    def test_no_payload(self, extractor):
        assert extractor.safe_extract(None, "application/pdf") == ""
        assert extractor.safe_extract(b"", "text/plain") == ""

    def test_success_passes_through(self, extractor):
        assert extractor.safe_extract(b"lease", "text/plain") == "lease"


def test_html_upload_in_declared_charset(extractor):
    html = b'<html><head><meta charset="windows-1252"></head><body>\xa7 42-26 Tenant\x92s notice</body></html>'
    assert extractor.extract(html, "text/html").strip() == "§ 42-26 Tenant’s notice"

"""
Uploaded document text extraction.

Supported payloads:
  text/plain       decoded as UTF-8
  text/html        visible body text (BeautifulSoup)
  application/pdf  page text via pypdf
  image/*          free-text description of the legal issue and statute
                   references from an OpenAI vision model

Failures raise ExtractionFailure; safe_extract() degrades them to "" so a
bad upload never aborts the question it was attached to.
"""
from __future__ import annotations

import base64
import io
import os

import openai
from loguru import logger
from pypdf import PdfReader

from statute_navigator.errors import ExtractionFailure
from statute_navigator.utils.helpers import html_to_text

VISION_MODEL = "gpt-4o-mini"
VISION_PROMPT = "Extract legal issue and NCGS statute numbers."


class TextExtractor:
    def __init__(self, vision_model: str = VISION_MODEL) -> None:
        self.vision_model = vision_model
        self._client: openai.OpenAI | None = None

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            self._client = openai.OpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        return self._client

    def extract(self, data: bytes, mime_type: str | None) -> str:
        """Turn an uploaded payload into text. Raises ExtractionFailure."""
        mime_type = (mime_type or "").split(";")[0].strip().lower()

        if mime_type == "text/plain":
            return self._extract_plain(data)
        if mime_type == "text/html":
            return html_to_text(data)
        if mime_type == "application/pdf":
            return self._extract_pdf(data)
        if mime_type.startswith("image/"):
            return self._extract_image(data, mime_type)
        raise ExtractionFailure(f"Unsupported mime type: {mime_type or '<none>'}")

    def safe_extract(self, data: bytes | None, mime_type: str | None) -> str:
        """extract() that returns "" instead of raising."""
        if not data:
            return ""
        try:
            return self.extract(data, mime_type)
        except ExtractionFailure as exc:
            logger.warning(f"[Extractor] {exc} | continuing with the question alone")
            return ""

    # --- Formats --------------------------------------------------------------

    @staticmethod
    def _extract_plain(data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionFailure(f"Text upload is not valid UTF-8: {exc}") from exc

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as exc:
            raise ExtractionFailure(f"PDF could not be read: {exc}") from exc
        text = "\n\n".join(p for p in pages if p.strip())
        logger.debug(f"[Extractor] PDF | {len(pages)} page(s) | {len(text)} chars")
        return text

    def _extract_image(self, data: bytes, mime_type: str) -> str:
        encoded = base64.b64encode(data).decode("ascii")
        try:
            response = self.client.chat.completions.create(
                model=self.vision_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": VISION_PROMPT},
                            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                        ],
                    }
                ],
            )
        except openai.OpenAIError as exc:
            raise ExtractionFailure(f"Vision extraction failed: {exc}") from exc
        return response.choices[0].message.content or ""

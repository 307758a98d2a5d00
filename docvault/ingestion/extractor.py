"""
Text Extraction
----------------
Turns raw upload bytes into an ExtractedDocument:

  - .pdf   -> one ExtractedPage per PDF page (pypdf), real page numbers
  - other  -> UTF-8 decoded text as a single page numbered 1

VisionDescriber adds an optional, one-time description of the figures and
tables in a PDF.  It is best-effort: any failure yields None and ingestion
carries on without the enrichment.
"""
from __future__ import annotations

import base64
import io
from pathlib import Path
from typing import Optional

from loguru import logger
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docvault.clients import LazyClient, anthropic_client
from docvault.errors import InputError
from docvault.generation.prompts import VISION_PROMPT
from docvault.schemas import ContentType, ExtractedDocument, ExtractedPage

VISION_MAX_BYTES = 4 * 1024 * 1024   # larger PDFs time out


def detect_content_type(file_name: str) -> ContentType:
    return ContentType.PDF if Path(file_name).suffix.lower() == ".pdf" else ContentType.TEXT


class TextExtractor:
    """Extract plain text (page-aware for PDFs) from file bytes."""

    def extract(self, file_bytes: bytes, file_name: str) -> ExtractedDocument:
        content_type = detect_content_type(file_name)
        if content_type == ContentType.PDF:
            pages = self._extract_pdf(file_bytes, file_name)
        else:
            pages = [ExtractedPage(text=file_bytes.decode("utf-8", errors="replace"), page_number=1)]

        doc = ExtractedDocument(file_name=file_name, content_type=content_type, pages=pages)
        logger.debug(
            f"[Extractor] {file_name} | {content_type.value} | "
            f"{len(pages)} page(s) | {len(doc.text)} chars"
        )
        return doc

    @staticmethod
    def _extract_pdf(file_bytes: bytes, file_name: str) -> list[ExtractedPage]:
        if not file_bytes:
            return []
        try:
            reader = PdfReader(io.BytesIO(file_bytes))
            return [
                ExtractedPage(text=page.extract_text() or "", page_number=number)
                for number, page in enumerate(reader.pages, start=1)
            ]
        except PyPdfError as exc:
            raise InputError(f"Could not read PDF {file_name}: {exc}") from exc


class VisionDescriber:
    """
    One-shot description of images, charts and tables in a PDF via an
    Anthropic document block.
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        max_bytes: int = VISION_MAX_BYTES,
        max_tokens: int = 1024,
        client: Optional[LazyClient] = None,
    ) -> None:
        self.model = model
        self.max_bytes = max_bytes
        self.max_tokens = max_tokens
        self._client = client or anthropic_client()

    def describe(self, pdf_bytes: bytes) -> Optional[str]:
        """Return a description, or None when skipped or on any failure."""
        if not pdf_bytes or len(pdf_bytes) > self.max_bytes:
            return None
        try:
            response = self._client.get().messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "document",
                                "source": {
                                    "type": "base64",
                                    "media_type": "application/pdf",
                                    "data": base64.b64encode(pdf_bytes).decode("ascii"),
                                },
                            },
                            {"type": "text", "text": VISION_PROMPT},
                        ],
                    }
                ],
            )
            text = "".join(
                block.text for block in response.content if getattr(block, "type", "") == "text"
            ).strip()
        except Exception as exc:
            logger.warning(f"[Vision] Description failed, continuing without it: {exc}")
            return None
        return text or None

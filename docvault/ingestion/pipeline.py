"""
Ingestion Pipeline - Extract, Chunk, Embed, Upsert
----------------------------------------------------
    file bytes + file name
        |
        v
    size cap (20 MiB)                      -> "File too large."
        |
        v
    TextExtractor (+ optional VisionDescriber for PDFs)
        |
        v
    empty text?                            -> "No text could be extracted from the file."
        |
        v
    TextChunker.chunk_pages (1000 / 200)
        |
        v
    EmbeddingProvider.embed (one vector per chunk)
        |
        v
    IndexGateway.upsert (id = <file>-<i>-<epoch ms>)

Input and provider failures are reported in the IngestResult, never raised.
ConfigurationError is fatal and propagates to the operator.
"""
from __future__ import annotations

import time
from typing import Optional

from langsmith import traceable
from loguru import logger

from docvault.chunking.chunker import TextChunker
from docvault.chunking.schemas import TextChunk
from docvault.config import IngestionSettings
from docvault.embedding.embedder import EmbeddingProvider
from docvault.errors import (
    INPUT_ERROR_CATEGORY,
    TOO_LARGE_MESSAGE,
    ConfigurationError,
    DocVaultError,
    InputError,
    ProviderError,
)
from docvault.index.gateway import IndexGateway
from docvault.ingestion.extractor import TextExtractor, VisionDescriber
from docvault.schemas import (
    ContentType,
    EmbeddingVector,
    IndexedRecord,
    IngestResult,
    RecordMetadata,
)
from docvault.utils.helpers import sanitize_id

NO_TEXT_MESSAGE = "No text could be extracted from the file."


class IngestionPipeline:
    """
    Usage:
        pipeline = IngestionPipeline(embedder, gateway)
        result = pipeline.ingest(Path("manual.pdf").read_bytes(), "manual.pdf")
        if result.success:
            print(result.chunks_count)
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        gateway: IndexGateway,
        chunker: Optional[TextChunker] = None,
        extractor: Optional[TextExtractor] = None,
        vision: Optional[VisionDescriber] = None,
        settings: Optional[IngestionSettings] = None,
    ) -> None:
        self.embedder = embedder
        self.gateway = gateway
        self.chunker = chunker or TextChunker()
        self.extractor = extractor or TextExtractor()
        self.vision = vision
        self.settings = settings or IngestionSettings()

    @traceable(name="ingest", run_type="chain")
    def ingest(self, file_bytes: bytes, file_name: str) -> IngestResult:
        """Index one file.  Returns success + chunk count, or a user-facing error."""
        logger.info(f"[Ingest] {file_name} | {len(file_bytes):,} bytes")
        try:
            count = self._ingest(file_bytes, file_name)
        except ConfigurationError:
            raise
        except InputError as exc:
            logger.warning(f"[Ingest] Rejected {file_name}: {exc}")
            return IngestResult.failed(exc.user_message, category=INPUT_ERROR_CATEGORY)
        except ProviderError as exc:
            logger.error(
                f"[Ingest] Provider failure for {file_name} (retryable={exc.retryable}): {exc!r}"
            )
            return IngestResult.failed(exc.user_message, category=exc.category.value)
        except DocVaultError as exc:
            logger.error(f"[Ingest] Failed {file_name}: {exc}")
            return IngestResult.failed(exc.user_message)

        logger.info(f"[Ingest] {file_name} indexed | {count} chunk(s)")
        return IngestResult.ok(count)

    def _ingest(self, file_bytes: bytes, file_name: str) -> int:
        if len(file_bytes) > self.settings.max_file_bytes:
            raise InputError(TOO_LARGE_MESSAGE)

        document = self.extractor.extract(file_bytes, file_name)
        if document.is_empty:
            raise InputError(NO_TEXT_MESSAGE)

        if self.vision is not None and document.content_type == ContentType.PDF:
            document.vision_description = self.vision.describe(file_bytes)

        chunks = self.chunker.chunk_pages(document.pages)
        if not chunks:
            raise InputError(NO_TEXT_MESSAGE)

        embeddings = self.embedder.embed([c.text for c in chunks])
        records = self.build_records(file_name, chunks, embeddings, document.vision_description)
        self.gateway.upsert(records)
        return len(chunks)

    def build_records(
        self,
        file_name: str,
        chunks: list[TextChunk],
        embeddings: list[EmbeddingVector],
        vision_description: Optional[str] = None,
    ) -> list[IndexedRecord]:
        """
        One record per chunk.  The id embeds a millisecond timestamp so a
        re-ingested file gets fresh ids; two ingests of the same file in the
        same millisecond would collide and overwrite.
        """
        if len(chunks) != len(embeddings):
            raise ProviderError(
                f"Embedder returned {len(embeddings)} vectors for {len(chunks)} chunks",
                provider="embedding",
            )

        stamp = int(time.time() * 1000)
        safe_name = sanitize_id(file_name)
        cap = self.settings.metadata_text_chars
        return [
            IndexedRecord(
                id=f"{safe_name}-{i}-{stamp}",
                vector=vector,
                metadata=RecordMetadata(
                    file_name=file_name,
                    page_number=chunk.page_number if chunk.page_number is not None else 1,
                    text=chunk.text[:cap],
                    # One-time enrichment: attached to the first record only
                    vision_description=vision_description if i == 0 else None,
                ),
            )
            for i, (chunk, vector) in enumerate(zip(chunks, embeddings))
        ]

"""
Core Pydantic schemas for the DocVault pipeline.

Ingestion produces IndexedRecords; retrieval consumes Matches.  Both carry
file name and page number so the generation step can cite its sources.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from docvault.errors import is_retryable_category

EmbeddingVector = list[float]


# --- Enumerations ------------------------------------------------------------

class ContentType(str, Enum):
    TEXT = "text"
    PDF = "pdf"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# --- Ingestion ---------------------------------------------------------------

class ExtractedPage(BaseModel):
    text: str
    page_number: int = 1


class ExtractedDocument(BaseModel):
    """
    A document as returned by the text extractor.

    Ephemeral: it only lives for the duration of an ingest call.  What
    survives is the set of IndexedRecords built from its chunks.
    """

    file_name: str
    content_type: ContentType
    pages: list[ExtractedPage] = Field(default_factory=list)
    vision_description: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.pages)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class RecordMetadata(BaseModel):
    file_name: str
    page_number: Optional[int] = None
    text: str                                   # Truncated chunk text
    vision_description: Optional[str] = None


class IndexedRecord(BaseModel):
    """One vector in the index.  Re-using an id overwrites the old record."""

    id: str
    vector: EmbeddingVector
    metadata: RecordMetadata


class IngestResult(BaseModel):
    success: bool
    chunks_count: int = 0
    error: Optional[str] = None
    error_category: Optional[str] = None

    @classmethod
    def ok(cls, chunks_count: int) -> "IngestResult":
        return cls(success=True, chunks_count=chunks_count)

    @classmethod
    def failed(cls, error: str, category: Optional[str] = None) -> "IngestResult":
        return cls(success=False, error=error, error_category=category)

    @property
    def retryable(self) -> bool:
        """A failed ingest that may succeed if tried again later."""
        return not self.success and is_retryable_category(self.error_category)


# --- Retrieval ----------------------------------------------------------------

class Match(BaseModel):
    """A query hit.  score is cosine similarity; higher is closer."""

    text: str
    file_name: Optional[str] = None
    page_number: Optional[int] = None
    score: float = 0.0
    vision_description: Optional[str] = None


class ConversationTurn(BaseModel):
    role: str
    content: str = ""


class RetrievalContext(BaseModel):
    """Everything the generation step needs for one question."""

    question: str                 # Raw last user message
    search_query: str             # Condensed query actually embedded
    matches: list[Match] = Field(default_factory=list)
    top_score: float = 0.0
    used_keyword_fallback: bool = False
    context: str                  # Numbered excerpt block
    system_prompt: str            # Instructions + citation format + context

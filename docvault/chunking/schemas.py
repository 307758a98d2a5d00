"""
Chunk schema - the atomic unit that gets embedded and indexed.

Offsets point back into the source text so every chunk can be traced to
the exact span it was cut from.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TextChunk(BaseModel):
    """A trimmed, non-empty window of a document's text."""

    text: str
    index: int = Field(ge=0)             # Position within the document
    start_offset: int = Field(ge=0)      # Inclusive, into the untrimmed source
    end_offset: int                      # Exclusive
    page_number: Optional[int] = None    # Set by chunk_pages()

    @model_validator(mode="after")
    def _check_span(self) -> "TextChunk":
        if self.start_offset >= self.end_offset:
            raise ValueError(
                f"start_offset ({self.start_offset}) must be < end_offset ({self.end_offset})"
            )
        if not self.text.strip():
            raise ValueError("chunk text must not be blank")
        return self

"""
DocVault - Boundary-Aware Text Chunker
---------------------------------------
Splits document text into overlapping character windows for embedding.

For each window [start, start + chunk_size) that would cut the text short,
the chunker looks backwards for a natural boundary:

  1. the last newline at window position >= chunk_overlap
  2. else the last space under the same rule
  3. else a hard cut at the full window length

The next window starts chunk_overlap characters before the previous end, so
context at the boundary appears in both neighbouring chunks.  The boundary
search never looks before chunk_overlap, which guarantees that every window
advances `start` and the loop terminates.
"""
from __future__ import annotations

from typing import Iterable

from loguru import logger

from docvault.chunking.schemas import TextChunk
from docvault.errors import ConfigurationError
from docvault.schemas import ExtractedPage


# ── Constants ─────────────────────────────────────────────────────────────────

DEFAULT_CHUNK_SIZE = 1000      # Max characters per chunk
DEFAULT_CHUNK_OVERLAP = 200    # Characters shared by consecutive chunks


def validate_chunk_params(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ConfigurationError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ConfigurationError(
            f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
        )


def _break_position(window: str, chunk_overlap: int) -> int:
    """Length of the window to keep, preferring newline, then space."""
    last_newline = window.rfind("\n")
    if last_newline >= chunk_overlap:
        return last_newline + 1
    last_space = window.rfind(" ")
    if last_space >= chunk_overlap:
        return last_space + 1
    return len(window)


def split_text_into_chunks(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """
    Split text into overlapping, boundary-aware chunks.

    Pure function: the same input always yields the same chunks.

    Args:
        text:          Full document text.
        chunk_size:    Max characters per chunk.
        chunk_overlap: Characters repeated at the start of the next chunk.

    Returns:
        Chunks in increasing index order.  Offsets refer to the untrimmed
        span in `text`; the chunk's own text is trimmed.
    """
    validate_chunk_params(chunk_size, chunk_overlap)
    if not text or not text.strip():
        return []

    chunks: list[TextChunk] = []
    length = len(text)
    start = 0
    index = 0

    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            end = start + _break_position(text[start:end], chunk_overlap)

        piece = text[start:end].strip()
        if piece:
            chunks.append(
                TextChunk(text=piece, index=index, start_offset=start, end_offset=end)
            )
            index += 1

        if end >= length:
            break
        next_start = end - chunk_overlap
        # Guard against a window that would not move forward
        start = next_start if next_start > start else end

    return chunks


# ── Chunker ───────────────────────────────────────────────────────────────────

class TextChunker:
    """
    Applies the configured chunk size / overlap to whole documents.

    Usage:
        chunker = TextChunker(chunk_size=1000, chunk_overlap=200)
        chunks = chunker.chunk_pages(document.pages)
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        validate_chunk_params(chunk_size, chunk_overlap)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk_text(self, text: str) -> list[TextChunk]:
        return split_text_into_chunks(text, self.chunk_size, self.chunk_overlap)

    def chunk_pages(self, pages: Iterable[ExtractedPage]) -> list[TextChunk]:
        """
        Chunk each page separately so every chunk knows its page number.

        Chunk indices keep increasing across pages; offsets are relative to
        the page the chunk came from.
        """
        all_chunks: list[TextChunk] = []
        page_count = 0
        for page in pages:
            page_count += 1
            for chunk in self.chunk_text(page.text):
                all_chunks.append(
                    chunk.model_copy(
                        update={"index": len(all_chunks), "page_number": page.page_number}
                    )
                )

        logger.debug(
            f"[Chunker] {page_count} page(s) | size={self.chunk_size} "
            f"overlap={self.chunk_overlap} -> {len(all_chunks)} chunk(s)"
        )
        return all_chunks

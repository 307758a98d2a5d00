"""
Embedding Providers
--------------------
`EmbeddingProvider` is the contract the rest of the pipeline depends on:
text in, fixed-length float vector out, one vector per input in input order.

`OpenAIEmbedder` implements it with text-embedding-3-small, requested at a
reduced dimension (768 by default) so it matches the vault index:
  - Batching (many texts per API call)
  - Fixed-size thread pool fan-out across batches, order preserved
  - LangSmith run tracing for cost / latency observability
  - Token usage logging
  - No retries: failures surface immediately as typed errors
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from langsmith import traceable
from loguru import logger

from docvault.clients import LazyClient, openai_client, translate_provider_error
from docvault.errors import ConfigurationError
from docvault.schemas import EmbeddingVector

MODEL = "text-embedding-3-small"
DIMENSIONS = 768
BATCH_SIZE = 96
MAX_WORKERS = 4


class EmbeddingProvider(ABC):
    """Text -> fixed-dimension vector."""

    dimensions: int

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        """One vector per text, same order.  Empty input -> [] without a call."""

    def embed_one(self, text: str) -> EmbeddingVector:
        return self.embed([text])[0]

    def _check_dimensions(self, vectors: list[EmbeddingVector]) -> None:
        for vec in vectors:
            if len(vec) != self.dimensions:
                raise ConfigurationError(
                    f"Embedding dimension mismatch: model returned {len(vec)}, "
                    f"index expects {self.dimensions}"
                )


class OpenAIEmbedder(EmbeddingProvider):
    """OpenAI embeddings API client."""

    def __init__(
        self,
        model: str = MODEL,
        dimensions: int = DIMENSIONS,
        batch_size: int = BATCH_SIZE,
        max_workers: int = MAX_WORKERS,
        client: Optional[LazyClient] = None,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.batch_size = max(1, batch_size)
        self.max_workers = max(1, max_workers)
        self._client = client or openai_client()
        self._usage_lock = threading.Lock()
        self.total_tokens_used: int = 0
        self.total_api_calls: int = 0

    @traceable(name="embed_texts", run_type="embedding")
    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        if not texts:
            return []

        batches = [
            list(texts[i: i + self.batch_size])
            for i in range(0, len(texts), self.batch_size)
        ]

        if len(batches) == 1 or self.max_workers == 1:
            results = [self._embed_batch(b) for b in batches]
        else:
            workers = min(self.max_workers, len(batches))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                # map() yields in submission order and re-raises the first failure
                results = list(pool.map(self._embed_batch, batches))

        vectors = [vec for batch in results for vec in batch]
        self._check_dimensions(vectors)

        logger.debug(
            f"[Embedder] {len(texts)} texts in {len(batches)} batch(es) | "
            f"running total: {self.total_tokens_used} tokens"
        )
        return vectors

    def _embed_batch(self, texts: list[str]) -> list[EmbeddingVector]:
        """Call the OpenAI Embeddings API for a single batch."""
        # Empty strings are rejected by the API
        safe_texts = [t if t.strip() else " " for t in texts]
        start = time.perf_counter()
        try:
            response = self._client.get().embeddings.create(
                model=self.model,
                input=safe_texts,
                dimensions=self.dimensions,
            )
        except Exception as exc:
            raise translate_provider_error(exc, "openai") from exc
        elapsed = time.perf_counter() - start

        embeddings = [item.embedding for item in sorted(response.data, key=lambda x: x.index)]
        tokens_used = response.usage.total_tokens if response.usage else 0
        with self._usage_lock:
            self.total_tokens_used += tokens_used
            self.total_api_calls += 1
        logger.debug(f"[Embedder] API call: {len(texts)} texts, {tokens_used} tokens, {elapsed:.2f}s")
        return embeddings

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "dimensions": self.dimensions,
            "total_api_calls": self.total_api_calls,
            "total_tokens_used": self.total_tokens_used,
            # text-embedding-3-small: $0.020 per million tokens
            "estimated_cost_usd": round(self.total_tokens_used / 1_000_000 * 0.020, 6),
        }

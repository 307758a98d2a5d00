"""
DocVault Serving Pipeline
--------------------------
The two entry points the front ends call:

    ingest(file_bytes, file_name)         -> IngestResult
    answer(turns, file_scope)             -> ChatAnswer (complete text + sources)
    stream_answer(turns, file_scope)      -> (RetrievalContext, Iterator[str])

Every collaborator (embedder, index gateway, generators) is constructed
once by `build_assistant()` and injected, so an alternate vector store or
embedding model can be swapped in without touching the pipeline.
"""
from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

from langsmith import traceable
from loguru import logger

from docvault.chunking.chunker import TextChunker
from docvault.config import Settings
from docvault.embedding.embedder import EmbeddingProvider, OpenAIEmbedder
from docvault.generation.citations import ParsedSource, parse_sources, strip_sources
from docvault.generation.generator import TextGenerator, make_generator
from docvault.index.faiss_gateway import FaissIndexGateway
from docvault.index.gateway import IndexGateway
from docvault.ingestion.extractor import TextExtractor, VisionDescriber
from docvault.ingestion.pipeline import IngestionPipeline
from docvault.retrieval.condenser import QueryCondenser
from docvault.retrieval.keyword_fallback import KeywordFallbackRanker
from docvault.retrieval.orchestrator import RetrievalOrchestrator, Turn, normalise_turns
from docvault.schemas import IngestResult, RetrievalContext

DOCUMENT_LISTING_QUERY = "document"
DOCUMENT_LISTING_TOP_K = 500


# ---------------------------------------------------------------------------
# Result schema
# ---------------------------------------------------------------------------

@dataclass
class ChatAnswer:
    """
    Full output from a single chat turn.

    Timing fields are in milliseconds.
    """

    question: str
    search_query: str
    answer: str
    sources: list[ParsedSource] = field(default_factory=list)
    used_keyword_fallback: bool = False
    top_score: float = 0.0
    retrieval_ms: float = 0.0
    generation_ms: float = 0.0

    @property
    def answer_without_sources(self) -> str:
        return strip_sources(self.answer)

    @property
    def total_ms(self) -> float:
        return self.retrieval_ms + self.generation_ms

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "search_query": self.search_query,
            "answer": self.answer,
            "sources": [s.model_dump() for s in self.sources],
            "used_keyword_fallback": self.used_keyword_fallback,
            "top_score": round(self.top_score, 4),
            "latency_ms": {
                "retrieval": round(self.retrieval_ms, 1),
                "generation": round(self.generation_ms, 1),
                "total": round(self.total_ms, 1),
            },
        }


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------

class VaultAssistant:
    """
    End-to-end document vault assistant.

    Usage:
        assistant = build_assistant(load_settings())
        assistant.ingest(Path("manual.pdf").read_bytes(), "manual.pdf")
        result = assistant.answer([{"role": "user", "content": "What is the XY-500?"}])
        print(result.answer)
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        gateway: IndexGateway,
        generator: TextGenerator,
        orchestrator: RetrievalOrchestrator,
        ingestion: IngestionPipeline,
    ) -> None:
        self.embedder = embedder
        self.gateway = gateway
        self.generator = generator
        self.orchestrator = orchestrator
        self.ingestion = ingestion

    def ingest(self, file_bytes: bytes, file_name: str) -> IngestResult:
        return self.ingestion.ingest(file_bytes, file_name)

    def retrieve(self, turns: Sequence[Turn], file_scope: Optional[str] = None) -> RetrievalContext:
        return self.orchestrator.prepare(turns, file_scope)

    @traceable(name="vault_answer", run_type="chain")
    def answer(self, turns: Sequence[Turn], file_scope: Optional[str] = None) -> ChatAnswer:
        """
        Run retrieval and generation for the latest user question.

        Raises:
            InputError: the conversation holds no user question.
            ProviderError / ConfigurationError: from embedding, index or generation.
        """
        conversation = normalise_turns(turns)

        t0 = time.perf_counter()
        ctx = self.orchestrator.prepare(conversation, file_scope)
        retrieval_ms = (time.perf_counter() - t0) * 1000

        t1 = time.perf_counter()
        text = self.generator.generate(system=ctx.system_prompt, messages=conversation)
        generation_ms = (time.perf_counter() - t1) * 1000

        logger.info(
            f"[VaultAssistant] Complete | retrieve={retrieval_ms:.0f}ms "
            f"generate={generation_ms:.0f}ms | fallback={ctx.used_keyword_fallback}"
        )
        return ChatAnswer(
            question=ctx.question,
            search_query=ctx.search_query,
            answer=text,
            sources=parse_sources(text),
            used_keyword_fallback=ctx.used_keyword_fallback,
            top_score=ctx.top_score,
            retrieval_ms=retrieval_ms,
            generation_ms=generation_ms,
        )

    def stream_answer(
        self, turns: Sequence[Turn], file_scope: Optional[str] = None
    ) -> tuple[RetrievalContext, Iterator[str]]:
        """
        Retrieval and the first generated chunk are produced before this
        returns, so retrieval and generation request errors both raise here
        rather than after an HTTP response has started.  The returned
        iterator yields the rest of the answer as it is generated.
        """
        conversation = normalise_turns(turns)
        ctx = self.orchestrator.prepare(conversation, file_scope)
        chunks = iter(self.generator.stream(system=ctx.system_prompt, messages=conversation))
        first = next(chunks, None)
        if first is None:
            return ctx, iter(())
        return ctx, itertools.chain([first], chunks)

    def list_documents(self) -> list[str]:
        """
        File names present in the vault, sampled with one broad similarity
        query (the gateway contract has no listing call).
        """
        vector = self.embedder.embed_one(DOCUMENT_LISTING_QUERY)
        matches = self.gateway.query(vector, top_k=DOCUMENT_LISTING_TOP_K)
        return sorted({m.file_name for m in matches if m.file_name})


def build_assistant(
    settings: Settings,
    gateway: Optional[IndexGateway] = None,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[TextGenerator] = None,
) -> VaultAssistant:
    """Construct every collaborator from settings; explicit arguments win."""
    emb_cfg = settings.embedding
    gen_cfg = settings.generation

    embedder = embedder or OpenAIEmbedder(
        model=emb_cfg.model,
        dimensions=emb_cfg.dimensions,
        batch_size=emb_cfg.batch_size,
        max_workers=emb_cfg.max_workers,
    )
    if gateway is None:
        gateway = (
            FaissIndexGateway.open(settings.index.index_dir, dimensions=emb_cfg.dimensions)
            if settings.index.persist
            else FaissIndexGateway(dimensions=emb_cfg.dimensions)
        )
    generator = generator or make_generator(
        gen_cfg.provider, gen_cfg.model, gen_cfg.max_tokens, gen_cfg.temperature
    )
    condense_generator = (
        make_generator(gen_cfg.provider, gen_cfg.condense_model, gen_cfg.max_tokens, 0.0)
        if gen_cfg.condense_model
        else generator
    )

    orchestrator = RetrievalOrchestrator(
        embedder=embedder,
        gateway=gateway,
        condenser=QueryCondenser(condense_generator),
        ranker=KeywordFallbackRanker(),
        settings=settings.retrieval,
    )
    ing_cfg = settings.ingestion
    ingestion = IngestionPipeline(
        embedder=embedder,
        gateway=gateway,
        chunker=TextChunker(settings.chunking.chunk_size, settings.chunking.chunk_overlap),
        extractor=TextExtractor(),
        vision=(
            VisionDescriber(model=ing_cfg.vision_model, max_bytes=ing_cfg.vision_max_bytes)
            if ing_cfg.vision_enabled
            else None
        ),
        settings=ing_cfg,
    )

    logger.info(
        f"[VaultAssistant] Ready | embed={emb_cfg.model}/{emb_cfg.dimensions}d | "
        f"generate={gen_cfg.provider}:{gen_cfg.model}"
    )
    return VaultAssistant(embedder, gateway, generator, orchestrator, ingestion)

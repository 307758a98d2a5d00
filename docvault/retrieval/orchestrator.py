"""
Retrieval Orchestrator
-----------------------
Turns a conversation into the grounded system prompt for generation:

    conversation turns
        |
        v
    QueryCondenser (multi-turn only, best-effort)
        |
        v
    EmbeddingProvider.embed_one(search query)
        |
        v
    IndexGateway.query(top_k = fallback_top_k, optional file filter)
        |
        v
    top score < threshold ? KeywordFallbackRanker (raw question) : vector order
        |
        v
    first final_top_k matches -> numbered excerpts + citation instruction

The orchestrator is stateless per call -- call prepare() as many times as
you like from the same instance.
"""
from __future__ import annotations

from typing import Optional, Sequence, Union

from langsmith import traceable
from loguru import logger

from docvault.config import RetrievalSettings
from docvault.embedding.embedder import EmbeddingProvider
from docvault.errors import InputError
from docvault.generation.prompts import (
    ANSWER_INSTRUCTION,
    CITATION_INSTRUCTION,
    EXCERPT_LABEL,
    EXCERPT_PAGE,
    EXCERPT_SOURCE,
    NO_EXCERPTS_MARKER,
    SYSTEM_PROMPT,
    VISUAL_CONTENT_LINE,
)
from docvault.index.gateway import IndexGateway
from docvault.retrieval.condenser import QueryCondenser
from docvault.retrieval.keyword_fallback import KeywordFallbackRanker
from docvault.schemas import ConversationTurn, Match, RetrievalContext, Role

ALL_FILES_SCOPE = "all"

Turn = Union[ConversationTurn, dict]


def normalise_turns(turns: Sequence[Turn]) -> list[ConversationTurn]:
    return [t if isinstance(t, ConversationTurn) else ConversationTurn(**t) for t in turns]


def last_user_question(turns: Sequence[ConversationTurn]) -> str:
    """Trimmed content of the most recent user turn, or InputError."""
    for turn in reversed(turns):
        if turn.role == Role.USER.value:
            question = (turn.content or "").strip()
            if question:
                return question
            break
    raise InputError("No question provided")


def format_excerpts(matches: Sequence[Match]) -> str:
    """Numbered excerpt block; a fixed marker when there is nothing to show."""
    if not matches:
        return NO_EXCERPTS_MARKER

    parts: list[str] = []
    for i, match in enumerate(matches, start=1):
        source = ""
        if match.file_name:
            page = (
                EXCERPT_PAGE.format(page_number=match.page_number)
                if match.page_number is not None
                else ""
            )
            source = EXCERPT_SOURCE.format(file_name=match.file_name, page=page)
        block = f"{EXCERPT_LABEL.format(index=i, source=source)}\n{match.text}"
        if match.vision_description:
            block += "\n" + VISUAL_CONTENT_LINE.format(description=match.vision_description)
        parts.append(block)
    return "\n\n".join(parts)


def build_system_prompt(context: str) -> str:
    return SYSTEM_PROMPT.format(
        instruction=ANSWER_INSTRUCTION,
        citation_instruction=CITATION_INSTRUCTION,
        context=context,
    )


class RetrievalOrchestrator:
    """
    Wires condensation, embedding, index query and keyword fallback into
    one call that yields a RetrievalContext.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        gateway: IndexGateway,
        condenser: QueryCondenser,
        ranker: Optional[KeywordFallbackRanker] = None,
        settings: Optional[RetrievalSettings] = None,
    ) -> None:
        self.embedder = embedder
        self.gateway = gateway
        self.condenser = condenser
        self.ranker = ranker or KeywordFallbackRanker()
        self.settings = settings or RetrievalSettings()

    def resolve_search_query(self, turns: Sequence[ConversationTurn], question: str) -> str:
        if len(turns) <= 1:
            return question
        condensed = self.condenser.condense(turns, max_turns=self.settings.condense_max_turns)
        return condensed.strip() or question

    def select_matches(
        self, matches: Sequence[Match], question: str
    ) -> tuple[list[Match], bool]:
        """
        Apply the confidence check.  Returns (final matches, used_fallback).
        """
        k_final = self.settings.final_top_k
        top_score = matches[0].score if matches else 0.0

        if matches and top_score < self.settings.similarity_threshold:
            ranked = self.ranker.rank(matches, question)[:k_final]
            if ranked:
                return ranked, True
        return list(matches[:k_final]), False

    @traceable(name="prepare_context", run_type="retriever")
    def prepare(
        self,
        turns: Sequence[Turn],
        file_scope: Optional[str] = None,
    ) -> RetrievalContext:
        """
        Build the grounded prompt for the latest user question.

        Args:
            turns:      Full conversation so far, oldest first.
            file_scope: Restrict retrieval to one file name ("all" / None = whole vault).

        Raises:
            InputError: no user question in the conversation.
            ProviderError / ConfigurationError: from the embedder or index.
        """
        conversation = normalise_turns(turns)
        question = last_user_question(conversation)
        search_query = self.resolve_search_query(conversation, question)
        logger.debug(f"[Orchestrator] Search query: {search_query[:80]!r}")

        query_vec = self.embedder.embed_one(search_query)

        metadata_filter = (
            {"file_name": file_scope}
            if file_scope and file_scope != ALL_FILES_SCOPE
            else None
        )
        candidates = [
            m
            for m in self.gateway.query(
                query_vec,
                top_k=self.settings.fallback_top_k,
                metadata_filter=metadata_filter,
            )
            if m.text
        ]
        top_score = candidates[0].score if candidates else 0.0

        final, used_fallback = self.select_matches(candidates, question)
        context = format_excerpts(final)

        logger.info(
            f"[Orchestrator] {len(candidates)} candidates | top score {top_score:.4f} | "
            f"{'keyword fallback' if used_fallback else 'vector ranking'} -> {len(final)} excerpt(s)"
        )

        return RetrievalContext(
            question=question,
            search_query=search_query,
            matches=final,
            top_score=top_score,
            used_keyword_fallback=used_fallback,
            context=context,
            system_prompt=build_system_prompt(context),
        )

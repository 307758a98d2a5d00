"""
Query Condenser
----------------
Rewrites the last few turns of a conversation into one standalone question
so a follow-up like "Who managed it?" retrieves the same passages as
"Who managed the Q3 profit report?".

Condensation is best-effort.  A failed or empty rewrite falls back to the
verbatim last user message and never reaches the caller as an exception.
"""
from __future__ import annotations

from typing import Optional, Sequence

from langsmith import traceable
from loguru import logger

from docvault.generation.generator import TextGenerator
from docvault.generation.prompts import (
    CONDENSE_MAX_TOKENS,
    CONDENSE_SYSTEM_PROMPT,
    CONDENSE_USER_TEMPLATE,
)
from docvault.schemas import ConversationTurn, Role

DEFAULT_MAX_TURNS = 4


def render_transcript(turns: Sequence[ConversationTurn]) -> str:
    return "\n".join(
        f"{'User' if t.role == Role.USER.value else 'Assistant'}: {t.content}"
        for t in turns
    )


class QueryCondenser:
    """Collapses recent conversation turns into a single retrieval query."""

    def __init__(self, generator: TextGenerator, max_tokens: int = CONDENSE_MAX_TOKENS) -> None:
        self.generator = generator
        self.max_tokens = max_tokens

    @traceable(name="condense_query", run_type="chain")
    def condense(
        self,
        turns: Sequence[ConversationTurn],
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> str:
        recent = list(turns)[-max_turns:] if max_turns > 0 else []
        if not recent:
            return ""

        last = recent[-1]
        last_content = (last.content or "").strip()
        if len(recent) <= 1 or last.role != Role.USER.value:
            return last_content

        rewritten = self._rewrite(recent)
        if not rewritten:
            return last_content

        logger.debug(f"[Condenser] {last_content[:60]!r} -> {rewritten[:80]!r}")
        return rewritten

    def _rewrite(self, recent: list[ConversationTurn]) -> Optional[str]:
        prompt = CONDENSE_USER_TEMPLATE.format(conversation=render_transcript(recent))
        try:
            text = self.generator.generate(
                system=CONDENSE_SYSTEM_PROMPT,
                messages=[ConversationTurn(role=Role.USER.value, content=prompt)],
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            logger.warning(f"[Condenser] Rewrite failed, using last message verbatim: {exc}")
            return None
        return (text or "").strip() or None

"""
Keyword Fallback Ranker
------------------------
Dense similarity can miss exact tokens -- serial numbers, part codes,
invoice ids -- that a plain keyword check catches.  When the best vector
score is below the confidence threshold the orchestrator hands its
candidates to this ranker, which keeps the ones mentioning the question's
keywords and orders them by how many distinct keywords they contain.

The ranker fails open: if the question has no usable keywords, or no
candidate mentions any of them, the candidates come back untouched.
"""
from __future__ import annotations

import re
from typing import Sequence

from loguru import logger

from docvault.schemas import Match

STOP_WORDS = frozenset(
    {
        "what", "which", "who", "where", "when", "how",
        "the", "is", "are", "was", "were", "a", "an",
        "it", "its", "this", "that",
        "for", "to", "of", "in", "on", "and", "or",
    }
)

_NON_KEYWORD_CHARS = re.compile(r"[^\w\s-]")
_NUMERIC = re.compile(r"^\d+$")


def extract_keywords(question: str, min_length: int = 2) -> list[str]:
    """
    Significant lower-cased keywords from a question, de-duplicated in
    first-seen order.

    "What is the XY-500 serial number?" -> ["xy-500", "serial", "number"]

    Hyphens survive so codes like XY-500 stay one token; tokens shorter than
    min_length, purely numeric tokens and stop words are dropped.
    """
    normalised = _NON_KEYWORD_CHARS.sub(" ", question.lower())
    seen: dict[str, None] = {}
    for word in normalised.split():
        if len(word) < min_length or _NUMERIC.match(word) or word in STOP_WORDS:
            continue
        seen.setdefault(word, None)
    return list(seen)


def keyword_fallback(
    matches: Sequence[Match], question: str, min_length: int = 2
) -> list[Match]:
    """
    Keep matches containing at least one keyword, most keyword hits first.

    Ties keep their incoming (vector score) order.  Returns the original
    matches unchanged when there is nothing to rank by.
    """
    keywords = extract_keywords(question, min_length)
    if not keywords:
        return list(matches)

    scored: list[tuple[int, Match]] = []
    for match in matches:
        lower = match.text.lower()
        hits = sum(1 for k in keywords if k in lower)
        if hits > 0:
            scored.append((hits, match))

    if not scored:
        return list(matches)

    # sorted() is stable, so equal hit counts keep vector order
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [match for _, match in scored]


class KeywordFallbackRanker:
    """Thin stateful wrapper so the ranker can be injected and logged."""

    def __init__(self, min_keyword_length: int = 2) -> None:
        self.min_keyword_length = min_keyword_length

    def extract_keywords(self, question: str) -> list[str]:
        return extract_keywords(question, self.min_keyword_length)

    def rank(self, matches: Sequence[Match], question: str) -> list[Match]:
        ranked = keyword_fallback(matches, question, self.min_keyword_length)
        logger.debug(
            f"[KeywordFallback] keywords={self.extract_keywords(question)} | "
            f"{len(matches)} -> {len(ranked)} match(es)"
        )
        return ranked

"""
Test cases for the retrieval orchestrator: condensation, confidence check,
keyword fallback and context assembly.
"""

import pytest

from docvault.config import RetrievalSettings
from docvault.errors import InputError
from docvault.generation.prompts import NO_EXCERPTS_MARKER
from docvault.retrieval.condenser import QueryCondenser
from docvault.retrieval.orchestrator import RetrievalOrchestrator, format_excerpts
from docvault.schemas import Match
from tests.conftest import HashEmbedder, ScriptedGenerator, StaticGateway

SETTINGS = RetrievalSettings(similarity_threshold=0.5, fallback_top_k=10, final_top_k=2)


def _m(text, score, name="manual.pdf", page=1):
    return Match(text=text, file_name=name, page_number=page, score=score)


def _orchestrator(matches, replies=None):
    embedder = HashEmbedder()
    gateway = StaticGateway(matches)
    generator = ScriptedGenerator(replies)
    orch = RetrievalOrchestrator(
        embedder=embedder,
        gateway=gateway,
        condenser=QueryCondenser(generator),
        settings=SETTINGS,
    )
    return orch, embedder, gateway, generator


def _ask(question):
    return [{"role": "user", "content": question}]


def test_confident_scores_use_vector_order():
    matches = [
        _m("general overview", 0.82),
        _m("installation guide", 0.75),
        _m("XY-500 serial number table", 0.60),
    ]
    orch, _, gateway, _ = _orchestrator(matches)

    ctx = orch.prepare(_ask("XY-500 serial number"))

    assert ctx.matches == matches[:2]
    assert ctx.used_keyword_fallback is False
    assert ctx.top_score == pytest.approx(0.82)
    assert gateway.queries[0]["top_k"] == 10


def test_low_scores_use_keyword_ranking():
    matches = [
        _m("general overview", 0.42),
        _m("serial plate location", 0.40),
        _m("XY-500 serial number table", 0.38),
    ]
    orch, _, _, _ = _orchestrator(matches)

    ctx = orch.prepare(_ask("XY-500 serial number"))

    assert [m.text for m in ctx.matches] == [
        "XY-500 serial number table",
        "serial plate location",
    ]
    assert ctx.used_keyword_fallback is True


def test_low_scores_without_keyword_hits_keep_vector_order():
    matches = [_m("alpha", 0.3), _m("beta", 0.2), _m("gamma", 0.1)]
    orch, _, _, _ = _orchestrator(matches)

    ctx = orch.prepare(_ask("XY-500 serial number"))

    assert ctx.matches == matches[:2]


def test_no_matches_gives_marker_context():
    orch, _, _, _ = _orchestrator([])

    ctx = orch.prepare(_ask("anything?"))

    assert ctx.matches == []
    assert ctx.top_score == 0.0
    assert ctx.context == NO_EXCERPTS_MARKER
    assert NO_EXCERPTS_MARKER in ctx.system_prompt


def test_empty_text_matches_are_dropped():
    orch, _, _, _ = _orchestrator([_m("", 0.9), _m("real text", 0.8)])

    ctx = orch.prepare(_ask("question"))

    assert [m.text for m in ctx.matches] == ["real text"]


def test_file_scope_becomes_equality_filter():
    orch, _, gateway, _ = _orchestrator([_m("x", 0.9)])

    orch.prepare(_ask("q"), file_scope="manual.pdf")
    orch.prepare(_ask("q"), file_scope="all")
    orch.prepare(_ask("q"))

    assert [q["filter"] for q in gateway.queries] == [{"file_name": "manual.pdf"}, None, None]


def test_multi_turn_embeds_condensed_query_but_ranks_on_raw_question():
    matches = [_m("profit summary", 0.3), _m("managed by Dana Ruiz, XY-500 lead", 0.2)]
    orch, embedder, _, generator = _orchestrator(
        matches, replies=["Who managed the XY-500 project?"]
    )
    turns = [
        {"role": "user", "content": "Tell me about XY-500"},
        {"role": "assistant", "content": "It is a pump."},
        {"role": "user", "content": "Who managed it?"},
    ]

    ctx = orch.prepare(turns)

    assert ctx.question == "Who managed it?"
    assert ctx.search_query == "Who managed the XY-500 project?"
    assert embedder.calls == [["Who managed the XY-500 project?"]]
    assert len(generator.calls) == 1
    # Fallback keywords come from "Who managed it?" -> ["managed"]
    assert ctx.matches[0].text.startswith("managed by")


def test_single_turn_skips_condensation():
    orch, embedder, _, generator = _orchestrator([_m("x", 0.9)])

    ctx = orch.prepare(_ask("  plain question  "))

    assert ctx.search_query == "plain question"
    assert generator.calls == []
    assert embedder.calls == [["plain question"]]


def test_missing_question_raises_input_error():
    orch, _, _, _ = _orchestrator([])

    with pytest.raises(InputError):
        orch.prepare([])
    with pytest.raises(InputError):
        orch.prepare([{"role": "assistant", "content": "hello"}])
    with pytest.raises(InputError):
        orch.prepare(_ask("   "))


def test_excerpt_labels_and_citation_instruction():
    matches = [
        _m("first text", 0.9, name="a.pdf", page=3),
        Match(text="second text", file_name="b.txt", score=0.8),
        Match(text="third text", score=0.7),
        Match(text="chart page", file_name="c.pdf", page_number=1, score=0.6,
              vision_description="A bar chart of sales."),
    ]

    context = format_excerpts(matches)

    assert "[Excerpt 1 | Source: a.pdf, Page 3]\nfirst text" in context
    assert "[Excerpt 2 | Source: b.txt]\nsecond text" in context
    assert "[Excerpt 3]\nthird text" in context
    assert "Visual content: A bar chart of sales." in context


def test_system_prompt_carries_citation_format():
    orch, _, _, _ = _orchestrator([_m("x", 0.9)])

    ctx = orch.prepare(_ask("q"))

    assert "[Source: filename.pdf, Page N]" in ctx.system_prompt
    assert ctx.context in ctx.system_prompt

"""
Test cases for source badge parsing.
"""

from docvault.generation.citations import parse_sources, strip_sources

ANSWER = (
    "The XY-500 ships with a two-year warranty.\n\n"
    "[Source: manual.pdf, Page 4]\n"
    "[Source: warranty.txt]\n"
    "[Source: manual.pdf, Page 4]\n"
    "[source: manual.pdf, page 9]"
)


def test_parse_sources_dedupes_in_mention_order():
    sources = parse_sources(ANSWER)

    assert [(s.file_name, s.page) for s in sources] == [
        ("manual.pdf", 4),
        ("warranty.txt", None),
        ("manual.pdf", 9),
    ]


def test_no_badges_means_no_sources():
    assert parse_sources("I don't know.") == []


def test_strip_sources_leaves_answer_text():
    assert strip_sources(ANSWER) == "The XY-500 ships with a two-year warranty."

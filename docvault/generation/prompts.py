"""
Prompt templates for the DocVault assistant.

Keeping templates in a separate module makes them easy to iterate on
without touching retrieval or generation logic.
"""

# ---------------------------------------------------------------------------
# Answer generation
# ---------------------------------------------------------------------------

ANSWER_INSTRUCTION = (
    "You are a document assistant. Based on the following document excerpts, "
    "answer the user's question. If the text does not contain the answer, say you don't know."
)

CITATION_INSTRUCTION = (
    "At the end of your answer, list the file names used to generate the response as "
    "source badges in this exact format: [Source: filename.pdf, Page N] (one per source; "
    'omit ", Page N" if no page number is given in the excerpt label).'
)

SYSTEM_PROMPT = """\
{instruction}
{citation_instruction}

Document excerpts:
{context}"""

# ---------------------------------------------------------------------------
# Excerpt labels
# ---------------------------------------------------------------------------

EXCERPT_LABEL = "[Excerpt {index}{source}]"
EXCERPT_SOURCE = " | Source: {file_name}{page}"
EXCERPT_PAGE = ", Page {page_number}"
VISUAL_CONTENT_LINE = "Visual content: {description}"

NO_EXCERPTS_MARKER = "No relevant excerpts in the database."

# ---------------------------------------------------------------------------
# Query condensation
# ---------------------------------------------------------------------------

CONDENSE_SYSTEM_PROMPT = (
    "You are a query rewriter. Given a conversation and the latest user message, output a "
    "single standalone question that captures what the user is asking, including any context "
    'from the conversation (e.g. pronouns like "it", "that" should be resolved). '
    "Output only the question, no explanation."
)

CONDENSE_USER_TEMPLATE = "Conversation:\n{conversation}\n\nStandalone question:"

CONDENSE_MAX_TOKENS = 150

# ---------------------------------------------------------------------------
# Vision description (PDF ingestion)
# ---------------------------------------------------------------------------

VISION_PROMPT = (
    "Describe any images, charts, figures, or tables in this document. Be concise. "
    "If there are none, say 'No images or tables detected.'"
)

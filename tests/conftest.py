"""
Shared fakes for the DocVault test suite.

None of these touch the network: the embedder hashes text into vectors,
the generator replays scripted replies, the gateway ranks in plain Python.
"""
import hashlib
import math

import pytest

from docvault.embedding.embedder import EmbeddingProvider
from docvault.generation.generator import TextGenerator
from docvault.index.gateway import IndexGateway, metadata_matches
from docvault.schemas import Match


class HashEmbedder(EmbeddingProvider):
    """Deterministic text -> vector, records every call."""

    def __init__(self, dimensions=8):
        self.dimensions = dimensions
        self.calls = []

    def embed(self, texts):
        if not texts:
            return []
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def _vector(self, text):
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i] / 127.5) - 1.0 for i in range(self.dimensions)]


class ScriptedGenerator(TextGenerator):
    """Returns queued replies in order; an Exception in the queue is raised."""

    def __init__(self, replies=None, model="fake-model"):
        self.model = model
        self.replies = list(replies or [])
        self.calls = []

    def _next(self):
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def generate(self, system, messages, max_tokens=None):
        self.calls.append({"system": system, "messages": list(messages), "max_tokens": max_tokens})
        return self._next()

    def stream(self, system, messages, max_tokens=None):
        self.calls.append({"system": system, "messages": list(messages), "max_tokens": max_tokens})
        text = self._next()
        for word in text.split(" "):
            yield word + " "


class InMemoryGateway(IndexGateway):
    """Brute-force cosine search over a dict of records."""

    def __init__(self, dimensions=8):
        self.dimensions = dimensions
        self.records = {}
        self.upsert_calls = 0
        self.queries = []

    def upsert(self, records):
        self.upsert_calls += 1
        for record in records:
            self.records[record.id] = record

    def query(self, vector, top_k, metadata_filter=None):
        self.queries.append({"top_k": top_k, "filter": metadata_filter})
        scored = []
        for record in self.records.values():
            meta = record.metadata.model_dump()
            if not metadata_matches(meta, metadata_filter):
                continue
            scored.append(
                Match(
                    text=record.metadata.text,
                    file_name=record.metadata.file_name,
                    page_number=record.metadata.page_number,
                    score=_cosine(vector, record.vector),
                    vision_description=record.metadata.vision_description,
                )
            )
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:top_k]


class StaticGateway(IndexGateway):
    """Returns a fixed match list and records how it was queried."""

    def __init__(self, matches, dimensions=8):
        self.dimensions = dimensions
        self.matches = list(matches)
        self.queries = []

    def upsert(self, records):
        raise AssertionError("StaticGateway is read-only")

    def query(self, vector, top_k, metadata_filter=None):
        self.queries.append({"vector": vector, "top_k": top_k, "filter": metadata_filter})
        return self.matches[:top_k]


def _cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a)) or 1.0
    nb = math.sqrt(sum(y * y for y in b)) or 1.0
    return dot / (na * nb)


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def long_text():
    """2400 characters of space-separated words, no newlines."""
    return ("lorem ipsum dolor sit amet " * 100)[:2400]

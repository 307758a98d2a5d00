"""
Test cases for the OpenAI embedder, against a fake SDK client.
"""

import threading
import time
from types import SimpleNamespace

import pytest

from docvault.clients import LazyClient, openai_client
from docvault.embedding.embedder import OpenAIEmbedder
from docvault.errors import ConfigurationError, ProviderError, ProviderErrorCategory


class FakeStatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class FakeEmbeddings:
    """Mimics client.embeddings; vector i encodes the text's first character."""

    def __init__(self, dimensions=4, error=None, wrong_dim=None, delay=0.0):
        self.dimensions = dimensions
        self.error = error
        self.wrong_dim = wrong_dim
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def create(self, model, input, dimensions):
        with self._lock:
            self.calls.append(list(input))
        if self.error is not None:
            raise self.error
        if self.delay:
            time.sleep(self.delay)
        dim = self.wrong_dim or dimensions
        # Return data reversed to prove the embedder re-sorts by index
        data = [
            SimpleNamespace(index=i, embedding=[float(len(text))] + [0.0] * (dim - 1))
            for i, text in enumerate(input)
        ][::-1]
        return SimpleNamespace(data=data, usage=SimpleNamespace(total_tokens=len(input) * 3))


def _embedder(fake, batch_size=2, max_workers=3, dimensions=4):
    client = LazyClient(lambda: SimpleNamespace(embeddings=fake), name="fake-openai")
    return OpenAIEmbedder(
        model="text-embedding-3-small",
        dimensions=dimensions,
        batch_size=batch_size,
        max_workers=max_workers,
        client=client,
    )


def test_empty_input_makes_no_call():
    fake = FakeEmbeddings()

    assert _embedder(fake).embed([]) == []
    assert fake.calls == []


def test_vectors_keep_input_order_across_batches():
    fake = FakeEmbeddings(delay=0.01)
    texts = ["a" * n for n in range(1, 8)]

    vectors = _embedder(fake, batch_size=2, max_workers=3).embed(texts)

    assert [v[0] for v in vectors] == [float(n) for n in range(1, 8)]
    assert all(len(v) == 4 for v in vectors)
    assert sorted(len(c) for c in fake.calls) == [1, 2, 2, 2]


def test_usage_is_tracked():
    fake = FakeEmbeddings()
    emb = _embedder(fake, batch_size=2)

    emb.embed(["one", "two", "three"])
    summary = emb.usage_summary()

    assert summary["total_api_calls"] == 2
    assert summary["total_tokens_used"] == 9


def test_blank_texts_are_sent_as_a_space():
    fake = FakeEmbeddings()

    _embedder(fake, batch_size=10).embed(["", "real"])

    assert fake.calls == [[" ", "real"]]


def test_embed_one():
    vec = _embedder(FakeEmbeddings()).embed_one("abc")

    assert vec == [3.0, 0.0, 0.0, 0.0]


def test_dimension_mismatch_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        _embedder(FakeEmbeddings(wrong_dim=6)).embed(["text"])


def test_rate_limit_is_categorised():
    fake = FakeEmbeddings(error=FakeStatusError("Rate limit reached", 429))

    with pytest.raises(ProviderError) as info:
        _embedder(fake).embed(["text"])

    assert info.value.category == ProviderErrorCategory.RATE_LIMITED
    assert info.value.retryable
    assert info.value.status_code == 429


def test_bad_credentials_are_a_configuration_error():
    fake = FakeEmbeddings(error=FakeStatusError("Incorrect API key provided", 401))

    with pytest.raises(ConfigurationError):
        _embedder(fake).embed(["text"])


def test_failure_in_any_batch_fails_the_call():
    fake = FakeEmbeddings(error=FakeStatusError("upstream exploded", 503))

    with pytest.raises(ProviderError) as info:
        _embedder(fake, batch_size=1, max_workers=4).embed(["a", "b", "c"])

    assert info.value.category == ProviderErrorCategory.TRANSIENT


def test_missing_api_key_fails_on_first_use(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    emb = OpenAIEmbedder(dimensions=4, client=openai_client())

    # Constructing the embedder never touches the environment
    assert emb.embed([]) == []
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY is not set"):
        emb.embed(["text"])

"""
Test cases for the FAISS-backed index gateway.
"""

import pytest

from docvault.errors import ConfigurationError, ProviderError
from docvault.index.faiss_gateway import FaissIndexGateway
from docvault.schemas import IndexedRecord, RecordMetadata

DIM = 4


def _record(rid, vector, name="a.pdf", page=1, text=None, vision=None):
    return IndexedRecord(
        id=rid,
        vector=vector,
        metadata=RecordMetadata(
            file_name=name,
            page_number=page,
            text=text or f"text of {rid}",
            vision_description=vision,
        ),
    )


@pytest.fixture
def populated():
    gw = FaissIndexGateway(dimensions=DIM)
    gw.upsert(
        [
            _record("r1", [1.0, 0.0, 0.0, 0.0], name="a.pdf"),
            _record("r2", [0.8, 0.6, 0.0, 0.0], name="b.pdf"),
            _record("r3", [0.0, 1.0, 0.0, 0.0], name="a.pdf", page=2),
            _record("r4", [0.0, 0.0, 1.0, 0.0], name="c.txt"),
        ]
    )
    return gw


def test_empty_index_returns_no_matches():
    gw = FaissIndexGateway(dimensions=DIM)

    assert gw.query([1.0, 0.0, 0.0, 0.0], top_k=5) == []
    assert len(gw) == 0


def test_query_orders_by_descending_cosine(populated):
    matches = populated.query([1.0, 0.0, 0.0, 0.0], top_k=3)

    assert [m.text for m in matches] == ["text of r1", "text of r2", "text of r3"]
    assert matches[0].score == pytest.approx(1.0, abs=1e-5)
    assert matches[1].score == pytest.approx(0.8, abs=1e-5)
    scores = [m.score for m in matches]
    assert scores == sorted(scores, reverse=True)


def test_top_k_caps_results(populated):
    assert len(populated.query([1.0, 1.0, 1.0, 0.0], top_k=2)) == 2
    assert len(populated.query([1.0, 1.0, 1.0, 0.0], top_k=50)) == 4
    assert populated.query([1.0, 1.0, 1.0, 0.0], top_k=0) == []


def test_vectors_are_normalised_on_the_way_in():
    gw = FaissIndexGateway(dimensions=DIM)
    gw.upsert([_record("big", [10.0, 0.0, 0.0, 0.0])])

    match = gw.query([0.5, 0.0, 0.0, 0.0], top_k=1)[0]

    assert match.score == pytest.approx(1.0, abs=1e-5)


def test_metadata_filter_is_exact_equality(populated):
    matches = populated.query([0.8, 0.6, 0.0, 0.0], top_k=10, metadata_filter={"file_name": "a.pdf"})

    assert {m.file_name for m in matches} == {"a.pdf"}
    assert len(matches) == 2

    assert populated.query([1.0, 0.0, 0.0, 0.0], top_k=10, metadata_filter={"file_name": "A.PDF"}) == []


def test_filter_applies_before_top_k(populated):
    # c.txt is the least similar record but the only one in scope
    matches = populated.query([1.0, 0.0, 0.0, 0.0], top_k=1, metadata_filter={"file_name": "c.txt"})

    assert [m.text for m in matches] == ["text of r4"]


def test_upsert_same_id_overwrites(populated):
    populated.upsert([_record("r1", [0.0, 0.0, 0.0, 1.0], text="replaced")])

    assert len(populated) == 4
    assert populated.faiss_index.ntotal == 4
    top = populated.query([0.0, 0.0, 0.0, 1.0], top_k=1)[0]
    assert top.text == "replaced"
    texts = [m.text for m in populated.query([1.0, 0.0, 0.0, 0.0], top_k=10)]
    assert "text of r1" not in texts


def test_duplicate_ids_within_one_call_keep_the_last():
    gw = FaissIndexGateway(dimensions=DIM)
    gw.upsert(
        [
            _record("x", [1.0, 0.0, 0.0, 0.0], text="first"),
            _record("x", [1.0, 0.0, 0.0, 0.0], text="second"),
        ]
    )

    assert len(gw) == 1
    assert gw.query([1.0, 0.0, 0.0, 0.0], top_k=5)[0].text == "second"


def test_dimension_mismatch_is_a_configuration_error(populated):
    with pytest.raises(ConfigurationError):
        populated.upsert([_record("bad", [1.0, 0.0])])
    with pytest.raises(ConfigurationError):
        populated.query([1.0, 0.0, 0.0], top_k=1)


def test_match_carries_page_and_vision(populated):
    populated.upsert([_record("v", [0.0, 0.0, 0.0, 1.0], name="d.pdf", page=7, vision="A pie chart.")])

    match = populated.query([0.0, 0.0, 0.0, 1.0], top_k=1)[0]

    assert match.file_name == "d.pdf"
    assert match.page_number == 7
    assert match.vision_description == "A pie chart."


def test_persisted_index_round_trips(tmp_path):
    gw = FaissIndexGateway(dimensions=DIM, index_dir=tmp_path)
    gw.upsert([_record("r1", [1.0, 0.0, 0.0, 0.0]), _record("r2", [0.0, 1.0, 0.0, 0.0], name="b.pdf")])

    reloaded = FaissIndexGateway.open(tmp_path, dimensions=DIM)

    assert len(reloaded) == 2
    assert reloaded.query([0.0, 1.0, 0.0, 0.0], top_k=1)[0].file_name == "b.pdf"

    # Ids survive the reload, so overwrite still works
    reloaded.upsert([_record("r1", [0.0, 0.0, 1.0, 0.0], text="moved")])
    assert len(reloaded) == 2
    assert reloaded.query([0.0, 0.0, 1.0, 0.0], top_k=1)[0].text == "moved"


def test_open_missing_directory_starts_empty(tmp_path):
    gw = FaissIndexGateway.open(tmp_path / "nothing-here", dimensions=DIM)

    assert len(gw) == 0


def test_load_rejects_dimension_mismatch(tmp_path):
    FaissIndexGateway(dimensions=DIM, index_dir=tmp_path).upsert([_record("r1", [1.0, 0.0, 0.0, 0.0])])

    with pytest.raises(ConfigurationError):
        FaissIndexGateway.load(tmp_path, dimensions=8)


def test_failed_persist_rolls_back_the_upsert(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("plain file", encoding="utf-8")
    gw = FaissIndexGateway(dimensions=DIM, index_dir=blocker / "index")

    with pytest.raises(ProviderError):
        gw.upsert([_record("r1", [1.0, 0.0, 0.0, 0.0])])

    assert len(gw) == 0
    assert gw.faiss_index.ntotal == 0
    assert gw.query([1.0, 0.0, 0.0, 0.0], top_k=5) == []


def test_failed_persist_keeps_overwritten_record(tmp_path):
    gw = FaissIndexGateway(dimensions=DIM, index_dir=tmp_path / "index")
    gw.upsert([_record("r1", [1.0, 0.0, 0.0, 0.0], text="original")])

    (tmp_path / "index").rename(tmp_path / "moved")
    (tmp_path / "index").write_text("now a file", encoding="utf-8")

    with pytest.raises(ProviderError):
        gw.upsert([_record("r1", [0.0, 1.0, 0.0, 0.0], text="replacement")])

    assert len(gw) == 1
    assert gw.query([1.0, 0.0, 0.0, 0.0], top_k=1)[0].text == "original"

"""Qdrant-backed vector index (in-memory client)"""
import datetime

import pytest

from core.storage import VectorIndexClient, VectorIndexError
from utils.data_models import FrameAnalysis, IndexedRecord

from conftest import BASE_TIME, TEST_VECTOR_SIZE, make_frame


def _vector(*hot):
    vector = [0.0] * TEST_VECTOR_SIZE
    for i in hot:
        vector[i] = 1.0
    return vector


def _record(seconds, vector, summary="frame", app="Mail"):
    frame = make_frame(seconds, app_name=app)
    frame.analysis = FrameAnalysis(summary=summary, active_application=app)
    return IndexedRecord.from_frame(frame, vector, searchable_text=summary, image_path=f"/tmp/{frame.id}.jpg")


def test_upsert_then_search_returns_frame_first(index_client):
    target = _record(0, _vector(0, 1), summary="reading email")
    other = _record(1, _vector(5, 6), summary="terminal")
    index_client.upsert_frame(target)
    index_client.upsert_frame(other)

    results = index_client.search(_vector(0, 1), limit=5, score_threshold=0.3)

    assert [r.id for r in results] == [target.id]
    assert results[0].score == pytest.approx(1.0, abs=1e-4)
    assert results[0].summary == "reading email"
    assert results[0].active_application == "Mail"
    assert results[0].timestamp == BASE_TIME.timestamp()


def test_threshold_filters_weak_matches(index_client):
    strong = _record(0, _vector(0, 1, 2, 3))
    weak = _record(1, _vector(0, 10, 11, 12))
    index_client.upsert_frame(strong)
    index_client.upsert_frame(weak)

    # weak: cosine = 1/4
    assert {r.id for r in index_client.search(_vector(0, 1, 2, 3), score_threshold=0.2)} == {strong.id, weak.id}
    assert [r.id for r in index_client.search(_vector(0, 1, 2, 3), score_threshold=0.5)] == [strong.id]


def test_upsert_same_id_replaces_record(index_client):
    record = _record(0, _vector(0), summary="before")
    index_client.upsert_frame(record)
    record.payload["summary"] = "after"
    index_client.upsert_frame(record)

    assert index_client.collection_info()["pointsCount"] == 1
    assert index_client.search(_vector(0))[0].summary == "after"


def test_time_range_is_inclusive(index_client):
    records = [_record(s, _vector(s % TEST_VECTOR_SIZE)) for s in (0, 10, 20)]
    for r in records:
        index_client.upsert_frame(r)

    t1 = BASE_TIME + datetime.timedelta(seconds=10)
    t2 = BASE_TIME + datetime.timedelta(seconds=20)

    inclusive = index_client.search_by_time_range(t1, t2)
    assert {r.id for r in inclusive} == {records[1].id, records[2].id}
    assert all(r.score == 1.0 for r in inclusive)

    shifted = index_client.search_by_time_range(t1.timestamp() + 0.001, t2.timestamp())
    assert {r.id for r in shifted} == {records[2].id}


def test_recent_is_newest_first_and_limited_to_a_day(index_client):
    old = _record(-2 * 24 * 3600, _vector(0))
    records = [_record(s, _vector(s + 1)) for s in (0, 20, 10)]
    for r in [old] + records:
        index_client.upsert_frame(r)

    recent = index_client.get_recent(limit=10, now=BASE_TIME + datetime.timedelta(seconds=30))

    assert [r.timestamp for r in recent] == [
        (BASE_TIME + datetime.timedelta(seconds=s)).timestamp() for s in (20, 10, 0)
    ]


def test_dimension_mismatch_is_rejected(index_client):
    with pytest.raises(VectorIndexError):
        index_client.upsert_frame(_record(0, [1.0, 0.0, 0.0]))
    assert index_client.collection_info()["pointsCount"] == 0


def test_ensure_collection_is_idempotent(index_client):
    index_client.upsert_frame(_record(0, _vector(0)))

    index_client.ensure_collection()
    index_client.ensure_collection()

    assert index_client.collection_info() == {
        "name": "test_frames",
        "pointsCount": 1,
        "vectorSize": TEST_VECTOR_SIZE,
    }


def test_existing_collection_size_wins(index_client):
    other = VectorIndexClient(client=index_client.client, collection_name="test_frames", vector_size=32)

    other.ensure_collection()

    assert other.vector_size == TEST_VECTOR_SIZE


def test_missing_collection_reports_none(index_client):
    missing = VectorIndexClient(client=index_client.client, collection_name="missing", vector_size=8)

    assert missing.ready() is True
    assert missing.collection_info() is None
    with pytest.raises(VectorIndexError):
        missing.search(_vector(0)[:8])

from datetime import datetime, timedelta, timezone

from mnemosyne.runtime.memory.models import (
    MemoryRecord,
    MemoryType,
    RelativeTime,
    SearchQuery,
    TimeRange,
    utcnow,
)
from mnemosyne.runtime.memory.search_engine import AdvancedSearchEngine, matches_filter


def _corpus():
    now = utcnow()
    return [
        MemoryRecord(
            id="k1",
            content="I read about cat genetics",
            type=MemoryType.KNOWLEDGE,
            importance=0.9,
            tags=["pets", "science"],
            metadata={"source": "book"},
            timestamp=now - timedelta(hours=2),
        ),
        MemoryRecord(
            id="e1",
            content="My cat knocked over a glass",
            type=MemoryType.EXPERIENCE,
            importance=0.3,
            tags=["pets"],
            metadata={"source": "chat"},
            timestamp=now - timedelta(days=3),
        ),
        MemoryRecord(
            id="e2",
            content="The cat show was cancelled",
            type="experience",
            importance=0.6,
            tags=["events"],
            metadata={"source": "email"},
            timestamp=now - timedelta(days=20),
        ),
    ]


def _ids(results):
    return sorted(r.record.id for r in results)


def test_filter_by_record_field_equality():
    engine = AdvancedSearchEngine()
    query = SearchQuery(type="keyword", query="cat", filters={"type": "experience"})

    assert _ids(engine.search(query, _corpus())) == ["e1", "e2"]


def test_filter_by_tag_overlap_and_metadata_membership():
    engine = AdvancedSearchEngine()

    by_tag = SearchQuery(type="keyword", query="cat", filters={"tags": "pets"})
    assert _ids(engine.search(by_tag, _corpus())) == ["e1", "k1"]

    by_source = SearchQuery(type="keyword", query="cat", filters={"source": ["chat", "email"]})
    assert _ids(engine.search(by_source, _corpus())) == ["e1", "e2"]


def test_filter_operators():
    engine = AdvancedSearchEngine()

    important = SearchQuery(type="keyword", query="cat", filters={"importance": {"gte": 0.6}})
    assert _ids(engine.search(important, _corpus())) == ["e2", "k1"]

    banded = SearchQuery(type="keyword", query="cat", filters={"importance": {"gt": 0.3, "lt": 0.9}})
    assert _ids(engine.search(banded, _corpus())) == ["e2"]

    regex = SearchQuery(type="keyword", query="cat", filters={"content": {"regex": "^My "}})
    assert _ids(engine.search(regex, _corpus())) == ["e1"]

    excluded = SearchQuery(type="keyword", query="cat", filters={"source": {"nin": ["book"]}})
    assert _ids(engine.search(excluded, _corpus())) == ["e1", "e2"]


def test_missing_metadata_field_never_matches_comparisons():
    assert matches_filter(None, {"gt": 1}) is False
    assert matches_filter(None, None) is True
    assert matches_filter("abc", {"gt": 1}) is False
    assert matches_filter(["a", "b"], {"contains": "a"}) is True


def test_relative_time_range():
    engine = AdvancedSearchEngine()
    query = SearchQuery(
        type="keyword",
        query="cat",
        time_range=TimeRange(relative=RelativeTime(value=7, unit="days")),
    )

    assert _ids(engine.search(query, _corpus())) == ["e1", "k1"]


def test_absolute_time_range_with_naive_bounds():
    engine = AdvancedSearchEngine()
    records = [
        MemoryRecord(id="jan", content="cat in january", timestamp=datetime(2024, 1, 15, tzinfo=timezone.utc)),
        MemoryRecord(id="mar", content="cat in march", timestamp=datetime(2024, 3, 15, tzinfo=timezone.utc)),
    ]
    query = SearchQuery(
        type="keyword",
        query="cat",
        time_range=TimeRange(start=datetime(2024, 1, 1), end=datetime(2024, 2, 1)),
    )

    assert _ids(engine.search(query, records)) == ["jan"]

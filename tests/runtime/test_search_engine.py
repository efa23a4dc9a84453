from datetime import timedelta

import pytest

from mnemosyne.runtime.memory.collaborators import (
    EmbeddingService,
    SimpleConceptExtractor,
    cosine_similarity,
)
from mnemosyne.runtime.memory.config import SearchEngineConfig
from mnemosyne.runtime.memory.errors import CapabilityUnavailableError, UnsupportedQueryTypeError
from mnemosyne.runtime.memory.models import (
    BoostFactors,
    MemoryRecord,
    MemoryRelationship,
    MemoryRelationshipType,
    SearchQuery,
    SearchQueryType,
    utcnow,
)
from mnemosyne.runtime.memory.search_engine import AdvancedSearchEngine


class KeywordEmbeddingService(EmbeddingService):
    """Two-dimensional vectors: [1, 0] for cat texts, [0, 1] for everything else."""

    def __init__(self) -> None:
        self.generate_calls = 0
        self.similarity_calls = 0

    def generate(self, text):
        self.generate_calls += 1
        return [1.0, 0.0] if "cat" in text.lower() else [0.0, 1.0]

    def similarity(self, vec1, vec2):
        self.similarity_calls += 1
        return cosine_similarity(vec1, vec2)


class CountingConceptExtractor(SimpleConceptExtractor):
    def __init__(self) -> None:
        super().__init__()
        self.extract_calls = 0

    def extract(self, text):
        self.extract_calls += 1
        return super().extract(text)


def _records():
    return [
        MemoryRecord(id="m1", content="I have a cat"),
        MemoryRecord(id="m2", content="dog lover"),
    ]


def test_keyword_search_single_hit_with_highlight():
    engine = AdvancedSearchEngine()
    results = engine.search(SearchQuery(type="keyword", query="cat"), _records())

    assert len(results) == 1
    assert results[0].record.id == "m1"
    assert results[0].score == pytest.approx(1.0)
    assert results[0].keyword_score == pytest.approx(1.0)
    assert any("I have a cat" in h for h in results[0].highlights)


def test_keyword_search_tag_hits_count_half():
    engine = AdvancedSearchEngine()
    record = MemoryRecord(id="t1", content="my cat sleeps", tags=["food"])
    results = engine.search(SearchQuery(type="keyword", query="cat food"), [record])

    assert results[0].score == pytest.approx(0.75)
    assert "Keyword matches: cat, food" in results[0].explanations


def test_keyword_score_is_bounded():
    engine = AdvancedSearchEngine()
    record = MemoryRecord(id="b1", content="cat cat cat", tags=["cat", "cats"])
    results = engine.search(SearchQuery(type=SearchQueryType.KEYWORD, query="cat"), [record])

    assert 0.0 <= results[0].score <= 1.0


def test_keyword_search_ignores_short_terms():
    engine = AdvancedSearchEngine()
    assert engine.search(SearchQuery(type="keyword", query="a an"), _records()) == []


def test_semantic_search_requires_embedding_service():
    engine = AdvancedSearchEngine()
    with pytest.raises(CapabilityUnavailableError) as excinfo:
        engine.search(SearchQuery(type="semantic", query="cat"), _records())
    assert "semantic" in str(excinfo.value)


def test_semantic_search_is_read_only():
    service = KeywordEmbeddingService()
    engine = AdvancedSearchEngine(embedding_service=service)
    records = _records()

    results = engine.search(SearchQuery(type="semantic", query="cat"), records)

    assert [r.record.id for r in results] == ["m1"]
    assert results[0].semantic_score == pytest.approx(1.0)
    assert all(r.embedding is None for r in records)


def test_semantic_search_uses_query_embedding_when_given():
    service = KeywordEmbeddingService()
    engine = AdvancedSearchEngine(embedding_service=service)

    results = engine.search(SearchQuery(type="semantic", query="cat", embedding=[0.0, 1.0]), _records())

    assert [r.record.id for r in results] == ["m2"]


def test_ensure_embeddings_returns_copies():
    engine = AdvancedSearchEngine(embedding_service=KeywordEmbeddingService())
    embedded = MemoryRecord(id="e1", content="dog", embedding=[0.5, 0.5])
    bare = MemoryRecord(id="e2", content="cat")

    updated = engine.ensure_embeddings([embedded, bare])

    assert updated[0] is embedded
    assert updated[1].embedding == [1.0, 0.0]
    assert bare.embedding is None


def test_hybrid_no_lower_than_keyword_when_keyword_weight_is_one():
    engine = AdvancedSearchEngine(embedding_service=KeywordEmbeddingService())
    boosts = BoostFactors(semantic=0.7, keyword=1.0, importance=0.1, recency=0.1)
    records = [
        MemoryRecord(id="h1", content="the cat sat on the mat", importance=0.9),
        MemoryRecord(id="h2", content="a dog in the park", importance=0.2),
    ]

    keyword = engine.search(SearchQuery(type="keyword", query="cat", boost_factors=boosts), records)
    hybrid = engine.search(SearchQuery(type="hybrid", query="cat", boost_factors=boosts), records)

    keyword_scores = {r.record.id: r.score for r in keyword}
    hybrid_scores = {r.record.id: r.score for r in hybrid}
    assert hybrid_scores["h1"] >= keyword_scores["h1"]
    assert hybrid[0].record.id == "h1"
    assert hybrid[0].keyword_score == pytest.approx(1.0)


def test_hybrid_adds_importance_and_recency():
    engine = AdvancedSearchEngine(embedding_service=KeywordEmbeddingService())
    boosts = BoostFactors(semantic=0.0, keyword=1.0, importance=0.5, recency=0.0)
    record = MemoryRecord(id="h1", content="cat nap", importance=0.8)

    results = engine.search(SearchQuery(type="hybrid", query="cat", boost_factors=boosts), [record])

    assert results[0].score == pytest.approx(1.0 + 0.4)


def test_relational_search_expands_over_edges():
    engine = AdvancedSearchEngine()
    records = [
        MemoryRecord(id="a", content="cat toy"),
        MemoryRecord(id="b", content="feeding schedule"),
        MemoryRecord(id="c", content="vet visit"),
    ]
    relationships = [
        MemoryRelationship(source_id="a", target_id="b", type=MemoryRelationshipType.CAUSAL, strength=0.8),
        MemoryRelationship(source_id="b", target_id="c", type="temporal", strength=0.5),
    ]

    results = engine.search(SearchQuery(type="relational", query="cat"), records, relationships)
    by_id = {r.record.id: r for r in results}

    assert by_id["a"].relationship_paths == ["direct"]
    assert by_id["b"].score == pytest.approx(0.4)
    assert by_id["b"].relationship_paths == ["a (direct) → causal→b"]
    assert by_id["c"].score == pytest.approx(0.4 * 0.5 / 3)
    assert "Related via temporal (strength: 0.5)" in by_id["c"].explanations


def test_relational_search_respects_depth():
    engine = AdvancedSearchEngine()
    records = [
        MemoryRecord(id="a", content="cat toy"),
        MemoryRecord(id="b", content="feeding schedule"),
        MemoryRecord(id="c", content="vet visit"),
    ]
    relationships = [
        MemoryRelationship(source_id="a", target_id="b", strength=0.8),
        MemoryRelationship(source_id="b", target_id="c", strength=0.5),
    ]

    results = engine.search(
        SearchQuery(type="relational", query="cat", conceptual_depth=1), records, relationships
    )

    assert {r.record.id for r in results} == {"a", "b"}


def test_relational_without_edges_falls_back_to_semantic():
    engine = AdvancedSearchEngine(embedding_service=KeywordEmbeddingService())
    results = engine.search(SearchQuery(type="relational", query="cat"), _records(), [])

    assert [r.record.id for r in results] == ["m1"]
    assert results[0].semantic_score == pytest.approx(1.0)


def test_temporal_search_prefers_recent_content_matches():
    engine = AdvancedSearchEngine()
    now = utcnow()
    records = [
        MemoryRecord(id="old", content="old meeting", timestamp=now - timedelta(days=40)),
        MemoryRecord(id="new", content="meeting notes", timestamp=now - timedelta(hours=1)),
        MemoryRecord(id="lunch", content="lunch", timestamp=now - timedelta(hours=1, minutes=10)),
    ]

    results = engine.search(SearchQuery(type="temporal", query="meeting"), records)

    assert results[0].record.id == "new"
    assert "Content match" in results[0].explanations
    lunch = next(r for r in results if r.record.id == "lunch")
    assert "Content match" not in lunch.explanations


def test_temporal_search_density_for_close_records():
    engine = AdvancedSearchEngine()
    now = utcnow()
    records = [
        MemoryRecord(id="x", content="first", timestamp=now - timedelta(minutes=5)),
        MemoryRecord(id="y", content="second", timestamp=now - timedelta(minutes=15)),
    ]

    results = engine.search(SearchQuery(type="temporal", query=""), records)

    assert len(results) == 2
    for result in results:
        assert "Temporal clustering: 1.000" in result.explanations


def test_temporal_empty_query_matches_every_record():
    engine = AdvancedSearchEngine()
    old = MemoryRecord(id="old", content="quiet week", timestamp=utcnow() - timedelta(days=40))

    results = engine.search(SearchQuery(type="temporal", query=""), [old])

    assert [r.record.id for r in results] == ["old"]
    assert results[0].score == pytest.approx(0.5)
    assert "Content match" in results[0].explanations


def test_conceptual_search_matches_similar_concepts():
    engine = AdvancedSearchEngine(SimpleConceptExtractor())
    records = [
        MemoryRecord(id="g", content="tomato gardening tips"),
        MemoryRecord(id="q", content="quarterly budget review"),
    ]

    results = engine.search(SearchQuery(type="conceptual", query="gardening tomatoes"), records)

    assert [r.record.id for r in results] == ["g"]
    assert "gardening → gardening" in results[0].concept_matches
    assert "tomatoes → tomato" in results[0].concept_matches
    assert engine.get_cache_stats()["concept_cache_size"] == 1


def test_conceptual_without_extractor_falls_back_to_keyword():
    engine = AdvancedSearchEngine()
    results = engine.search(SearchQuery(type="conceptual", query="cat"), _records())

    assert [r.record.id for r in results] == ["m1"]
    assert results[0].keyword_score == pytest.approx(1.0)


def test_multi_modal_requires_embedding_service():
    engine = AdvancedSearchEngine(SimpleConceptExtractor())
    with pytest.raises(CapabilityUnavailableError):
        engine.search(SearchQuery(type="multi_modal", query="cat"), _records())


def test_multi_modal_averages_strategy_scores():
    engine = AdvancedSearchEngine(SimpleConceptExtractor(), KeywordEmbeddingService())

    results = engine.search(SearchQuery(type="multi_modal", query="cat"), _records())

    assert len(results) == 1
    assert results[0].record.id == "m1"
    assert results[0].score == pytest.approx(1.0)
    assert results[0].semantic_score == pytest.approx(1.0)
    assert results[0].keyword_score == pytest.approx(1.0)


def test_unknown_query_type_fails_fast():
    engine = AdvancedSearchEngine.with_defaults()
    with pytest.raises(UnsupportedQueryTypeError) as excinfo:
        engine.search(SearchQuery(type="bogus", query="cat"), _records())

    assert isinstance(excinfo.value, ValueError)
    assert str(excinfo.value) == "Unsupported search type: bogus"


def test_threshold_offset_and_limit():
    engine = AdvancedSearchEngine()
    records = [
        MemoryRecord(id="full", content="cat food bowl"),
        MemoryRecord(id="half", content="cat only"),
        MemoryRecord(id="none", content="nothing here"),
    ]

    thresholded = engine.search(SearchQuery(type="keyword", query="cat food", threshold=0.75), records)
    assert [r.record.id for r in thresholded] == ["full"]

    paged = engine.search(SearchQuery(type="keyword", query="cat food", offset=1, limit=1), records)
    assert [r.record.id for r in paged] == ["half"]

    defaulted = engine.search(SearchQuery(type="keyword", query="cat food", limit=0), records)
    assert [r.record.id for r in defaulted] == ["full", "half"]


def test_default_limit_from_config():
    engine = AdvancedSearchEngine(config=SearchEngineConfig(default_limit=2))
    records = [MemoryRecord(id=f"r{i}", content=f"cat number {i}") for i in range(5)]

    results = engine.search(SearchQuery(type="keyword", query="cat"), records)

    assert len(results) == 2


def test_cache_returns_identical_results_without_collaborator_calls():
    service = KeywordEmbeddingService()
    extractor = CountingConceptExtractor()
    engine = AdvancedSearchEngine(extractor, service)
    query = SearchQuery(type="multi_modal", query="cat tricks")
    records = _records()

    first = engine.search(query, records)
    calls = (service.generate_calls, service.similarity_calls, extractor.extract_calls)
    second = engine.search(query, records)

    assert [(r.record.id, r.score) for r in second] == [(r.record.id, r.score) for r in first]
    assert (service.generate_calls, service.similarity_calls, extractor.extract_calls) == calls
    assert engine.get_cache_stats()["query_cache_size"] == 1


def test_cached_results_survive_caller_edits():
    engine = AdvancedSearchEngine()
    query = SearchQuery(type="keyword", query="cat")

    first = engine.search(query, _records())
    first[0].score = 42.0
    first[0].explanations.append("edited by caller")
    first[0].record.content = "rewritten"
    second = engine.search(query, _records())

    assert second[0].score == pytest.approx(1.0)
    assert "edited by caller" not in second[0].explanations
    assert second[0].record.content == "I have a cat"

    second[0].score = 7.0
    assert engine.search(query, _records())[0].score == pytest.approx(1.0)


def test_revision_token_bypasses_stale_cache():
    engine = AdvancedSearchEngine()
    query = SearchQuery(type="keyword", query="cat")

    assert len(engine.search(query, _records(), revision=1)) == 1
    grown = _records() + [MemoryRecord(id="m3", content="another cat")]
    assert len(engine.search(query, grown, revision=1)) == 1
    assert len(engine.search(query, grown, revision=2)) == 2


def test_clear_cache_and_disabled_cache():
    engine = AdvancedSearchEngine(SimpleConceptExtractor())
    engine.search(SearchQuery(type="conceptual", query="gardening"), _records())
    assert engine.get_cache_stats() == {"query_cache_size": 1, "concept_cache_size": 1}

    engine.clear_cache()
    assert engine.get_cache_stats() == {"query_cache_size": 0, "concept_cache_size": 0}

    uncached = AdvancedSearchEngine(config=SearchEngineConfig(cache_enabled=False))
    uncached.search(SearchQuery(type="keyword", query="cat"), _records())
    assert uncached.get_cache_stats()["query_cache_size"] == 0

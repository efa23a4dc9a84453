"""
Advanced Search Engine - Ranked retrieval over memory record snapshots

WHAT: Seven search strategies over an in-memory record collection
WHERE: mnemosyne/runtime/memory/search_engine.py - retrieval layer
WHO: Agent memory APIs answering recall queries
TIME: O(n) per strategy for n records (relational adds O(E)); cache hits O(1)

Pipeline for every `search()` call:
1. query-cache lookup (hit returns a copy of the stored ranking)
2. time-range restriction, then field filters
3. strategy dispatch:
   semantic | keyword | hybrid | relational | temporal | conceptual | multi_modal
4. threshold cut, score sort (descending), offset/limit pagination
5. cache store

The engine is read-only with respect to its inputs. Records lacking an
embedding get one generated transiently for scoring; callers who want it
persisted run `ensure_embeddings()` first and store the returned copies.

Caching Notes:
- The query cache never ages; it is dropped only by `clear_cache()`
- Cached rankings are stored and handed out as deep copies, so edits to a
  returned result never leak into later hits
- A limit of 0 (or None) means the configured default limit
- Callers that mutate their collection can pass a `revision` token to
  `search()` so stale rankings are not served
- Concept extraction for a query string is cached separately
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from time import monotonic
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .collaborators import (
    ConceptExtractor,
    EmbeddingService,
    SimpleConceptExtractor,
    SimpleEmbeddingService,
)
from .config import SearchEngineConfig
from .errors import CapabilityUnavailableError, UnsupportedQueryTypeError
from .models import (
    BoostFactors,
    MemoryRecord,
    MemoryRelationship,
    SearchQuery,
    SearchQueryType,
    SearchResult,
    TimeRange,
    age_in_days,
    utcnow,
)
from .relational import RelationalCaps, RelationshipGraph
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")

RECORD_FIELDS = ("id", "agent_id", "type", "content", "importance", "tags", "duration")
FILTER_OPERATORS = frozenset({"eq", "ne", "gt", "lt", "gte", "lte", "in", "nin", "contains", "regex"})


def _field_value(record: MemoryRecord, field: str) -> Any:
    if field in RECORD_FIELDS:
        return getattr(record, field)
    return record.metadata.get(field)


def _is_operator_mapping(expected: Any) -> bool:
    return isinstance(expected, Mapping) and bool(expected) and all(k in FILTER_OPERATORS for k in expected)


def _equals(value: Any, expected: Any) -> bool:
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _member_of(value: Any, options: Any) -> bool:
    if not isinstance(options, (list, tuple, set, frozenset)):
        return False
    if isinstance(value, list):
        return any(item in options for item in value)
    return value in options


def _apply_operator(value: Any, operator: str, operand: Any) -> bool:
    try:
        if operator == "eq":
            return _equals(value, operand)
        if operator == "ne":
            return not _equals(value, operand)
        if operator == "in":
            return _member_of(value, operand)
        if operator == "nin":
            return not _member_of(value, operand)
        if operator == "contains":
            if isinstance(value, (str, list)):
                return operand in value
            return False
        if operator == "regex":
            return isinstance(value, str) and re.search(operand, value) is not None
        if value is None:
            return False
        if operator == "gt":
            return value > operand
        if operator == "lt":
            return value < operand
        if operator == "gte":
            return value >= operand
        if operator == "lte":
            return value <= operand
    except (TypeError, re.error):
        return False
    return False


def _copy_results(results: Sequence[SearchResult]) -> List[SearchResult]:
    return [r.model_copy(deep=True) for r in results]


def matches_filter(value: Any, expected: Any) -> bool:
    """Equality, list membership, or an operator mapping like {"gte": 0.5}."""
    if _is_operator_mapping(expected):
        return all(_apply_operator(value, op, operand) for op, operand in expected.items())
    if isinstance(expected, (list, tuple, set, frozenset)):
        return _member_of(value, expected)
    return _equals(value, expected)


class AdvancedSearchEngine:
    """
    Executes typed SearchQuery objects against record snapshots.

    One instance per agent: the query and concept caches are private and
    unsynchronized, so calls must be serialized by the owner.
    """

    def __init__(
        self,
        concept_extractor: Optional[ConceptExtractor] = None,
        embedding_service: Optional[EmbeddingService] = None,
        *,
        config: Optional[SearchEngineConfig] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.concept_extractor = concept_extractor
        self.embedding_service = embedding_service
        self.config = config or SearchEngineConfig()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._query_cache: Dict[str, List[SearchResult]] = {}
        self._concept_cache: Dict[str, List[str]] = {}

    @classmethod
    def with_defaults(
        cls,
        *,
        config: Optional[SearchEngineConfig] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> AdvancedSearchEngine:
        """Create an engine wired to the simple built-in collaborators."""
        return cls(
            SimpleConceptExtractor(),
            SimpleEmbeddingService(),
            config=config,
            telemetry=telemetry,
        )

    # ============================================================
    # Public API
    # ============================================================

    def search(
        self,
        query: SearchQuery,
        records: Sequence[MemoryRecord],
        relationships: Optional[Sequence[MemoryRelationship]] = None,
        *,
        revision: Optional[Any] = None,
    ) -> List[SearchResult]:
        """
        Execute a search query.

        Args:
            query: Strategy, text and paging options
            records: Record snapshot to search (never modified)
            relationships: Edges for relational / multi-modal search
            revision: Optional collection version folded into the cache key

        Returns:
            Ranked results, at most `limit` long

        Raises:
            CapabilityUnavailableError: Strategy needs an embedding service
            UnsupportedQueryTypeError: Unknown strategy tag
        """
        attributes = {"strategy": query.type, "record_count": len(records)}
        with self._telemetry.span("memory.search", attributes=attributes) as span:
            start = monotonic()
            try:
                cache_key = query.cache_key(revision)
                if self.config.cache_enabled and cache_key in self._query_cache:
                    logger.debug(f"Cache hit for query: {query.query}")
                    span.set_attribute("cache_hit", True)
                    cached = self._query_cache[cache_key]
                    span.set_attribute("result_count", len(cached))
                    return _copy_results(cached)
                span.set_attribute("cache_hit", False)

                now = utcnow()
                candidates: List[MemoryRecord] = list(records)
                if query.time_range is not None:
                    candidates = self._filter_by_time_range(candidates, query.time_range, now)
                if query.filters:
                    candidates = self._apply_filters(candidates, query.filters)

                results = self._dispatch(query, candidates, relationships, now)

                if query.threshold is not None:
                    results = [r for r in results if r.score >= query.threshold]

                results.sort(key=lambda r: r.score, reverse=True)

                limit = query.limit or self.config.default_limit
                results = results[query.offset : query.offset + limit]

                if self.config.cache_enabled:
                    self._query_cache[cache_key] = _copy_results(results)

                duration_ms = (monotonic() - start) * 1000.0
                logger.debug(f"Search completed in {duration_ms:.1f}ms, found {len(results)} results")
                span.set_attribute("result_count", len(results))
                return results
            except Exception as e:
                logger.error(f"Search failed: {e}")
                raise

    def ensure_embedding(self, record: MemoryRecord) -> MemoryRecord:
        """Return `record` unchanged if embedded, else a copy carrying a new embedding."""
        if record.embedding:
            return record
        service = self._require_embeddings()
        return record.model_copy(update={"embedding": service.generate(record.content)})

    def ensure_embeddings(self, records: Iterable[MemoryRecord]) -> List[MemoryRecord]:
        return [self.ensure_embedding(record) for record in records]

    def clear_cache(self) -> None:
        self._query_cache.clear()
        self._concept_cache.clear()

    def get_cache_stats(self) -> Dict[str, int]:
        return {
            "query_cache_size": len(self._query_cache),
            "concept_cache_size": len(self._concept_cache),
        }

    # ============================================================
    # Dispatch
    # ============================================================

    def _dispatch(
        self,
        query: SearchQuery,
        records: List[MemoryRecord],
        relationships: Optional[Sequence[MemoryRelationship]],
        now: datetime,
    ) -> List[SearchResult]:
        try:
            strategy = SearchQueryType(query.type)
        except ValueError:
            raise UnsupportedQueryTypeError(str(query.type)) from None

        if strategy is SearchQueryType.SEMANTIC:
            return self._semantic_search(query, records)
        if strategy is SearchQueryType.KEYWORD:
            return self._keyword_search(query, records)
        if strategy is SearchQueryType.HYBRID:
            return self._hybrid_search(query, records, now)
        if strategy is SearchQueryType.RELATIONAL:
            return self._relational_search(query, records, relationships)
        if strategy is SearchQueryType.TEMPORAL:
            return self._temporal_search(query, records, now)
        if strategy is SearchQueryType.CONCEPTUAL:
            return self._conceptual_search(query, records)
        return self._multi_modal_search(query, records, relationships)

    # ============================================================
    # Strategies
    # ============================================================

    def _semantic_search(self, query: SearchQuery, records: Sequence[MemoryRecord]) -> List[SearchResult]:
        service = self._require_embeddings(SearchQueryType.SEMANTIC)
        query_embedding = query.embedding or service.generate(query.query)

        results: List[SearchResult] = []
        for record in records:
            # Transient embedding; the caller's record is left untouched
            embedding = record.embedding or service.generate(record.content)
            similarity = service.similarity(query_embedding, embedding)
            if similarity > 0:
                results.append(
                    SearchResult(
                        record=record,
                        score=similarity,
                        semantic_score=similarity,
                        explanations=[f"Semantic similarity: {similarity:.3f}"],
                    )
                )
        return results

    def _keyword_search(self, query: SearchQuery, records: Sequence[MemoryRecord]) -> List[SearchResult]:
        terms = self._tokenize(query.query)
        if not terms:
            return []

        results: List[SearchResult] = []
        for record in records:
            content = record.content.lower()
            tags = [tag.lower() for tag in record.tags]

            content_hits = 0
            tag_hits = 0
            matched_terms: List[str] = []
            highlights: List[str] = []

            for term in terms:
                if term in content:
                    content_hits += 1
                    matched_terms.append(term)
                    highlight = self._extract_highlight(record.content, term)
                    if highlight:
                        highlights.append(highlight)
                if any(term in tag for tag in tags):
                    tag_hits += 1
                    if term not in matched_terms:
                        matched_terms.append(term)

            # Tag hits add half a point per term; capped at 1.0
            score = min(1.0, (content_hits + 0.5 * tag_hits) / len(terms))
            if score > 0:
                results.append(
                    SearchResult(
                        record=record,
                        score=score,
                        keyword_score=score,
                        explanations=[f"Keyword matches: {', '.join(matched_terms)}"],
                        highlights=highlights,
                    )
                )
        return results

    def _hybrid_search(
        self, query: SearchQuery, records: Sequence[MemoryRecord], now: datetime
    ) -> List[SearchResult]:
        boosts = query.boost_factors or BoostFactors()
        semantic_results = self._semantic_search(query, records)
        keyword_results = self._keyword_search(query, records)

        combined: Dict[str, SearchResult] = {}
        for result in semantic_results:
            combined[result.record.id] = result.model_copy(update={"score": result.score * boosts.semantic})

        for result in keyword_results:
            existing = combined.get(result.record.id)
            if existing is None:
                combined[result.record.id] = result.model_copy(update={"score": result.score * boosts.keyword})
                continue
            existing.score += result.score * boosts.keyword
            existing.keyword_score = result.score
            existing.explanations = existing.explanations + result.explanations
            existing.highlights = existing.highlights + result.highlights

        for result in combined.values():
            if boosts.importance:
                result.score += result.record.importance * boosts.importance
            if boosts.recency:
                result.score += self._recency_score(result.record, now) * boosts.recency

        return list(combined.values())

    def _relational_search(
        self,
        query: SearchQuery,
        records: Sequence[MemoryRecord],
        relationships: Optional[Sequence[MemoryRelationship]],
    ) -> List[SearchResult]:
        if not relationships:
            return self._semantic_search(query, records)

        direct_matches = self._keyword_search(query, records)
        results = [m.model_copy(update={"relationship_paths": ["direct"]}) for m in direct_matches]

        depth = (
            query.conceptual_depth
            if query.conceptual_depth is not None
            else self.config.default_conceptual_depth
        )
        graph = RelationshipGraph(relationships)
        hits = graph.expand(
            [(m.record, m.score) for m in direct_matches],
            {record.id: record for record in records},
            RelationalCaps(hops=depth),
        )
        for hit in hits:
            rel = hit.relationship
            results.append(
                SearchResult(
                    record=hit.record,
                    score=hit.score,
                    relationship_paths=[hit.path_string],
                    explanations=[f"Related via {rel.type} (strength: {rel.strength})"],
                )
            )
        return results

    def _temporal_search(
        self, query: SearchQuery, records: Sequence[MemoryRecord], now: datetime
    ) -> List[SearchResult]:
        ordered = sorted(records, key=lambda r: r.timestamp, reverse=True)
        needle = query.query.lower()

        results: List[SearchResult] = []
        for index, record in enumerate(ordered):
            explanations: List[str] = []

            recency = self._recency_score(record, now)
            score = recency * 0.5

            if needle in record.content.lower():
                score += 0.5
                explanations.append("Content match")

            density = self._temporal_density(ordered, index)
            score += density * 0.3

            if score > 0:
                results.append(
                    SearchResult(
                        record=record,
                        score=score,
                        explanations=explanations
                        + [f"Recency: {recency:.3f}", f"Temporal clustering: {density:.3f}"],
                    )
                )
        return results

    def _conceptual_search(self, query: SearchQuery, records: Sequence[MemoryRecord]) -> List[SearchResult]:
        extractor = self.concept_extractor
        if extractor is None:
            return self._keyword_search(query, records)

        query_concepts = self._query_concepts(query, extractor)
        if not query_concepts:
            return []

        threshold = self.config.concept_match_threshold
        results: List[SearchResult] = []
        for record in records:
            record_concepts = extractor.extract(record.content)

            score = 0.0
            concept_matches: List[str] = []
            for query_concept in query_concepts:
                for record_concept in record_concepts:
                    similarity = extractor.similarity(query_concept, record_concept)
                    if similarity > threshold:
                        score += similarity
                        concept_matches.append(f"{query_concept} → {record_concept}")

            score /= len(query_concepts)
            if score > 0:
                results.append(
                    SearchResult(
                        record=record,
                        score=score,
                        concept_matches=concept_matches,
                        explanations=[f"Concept matches: {len(concept_matches)}"],
                    )
                )
        return results

    def _multi_modal_search(
        self,
        query: SearchQuery,
        records: Sequence[MemoryRecord],
        relationships: Optional[Sequence[MemoryRelationship]],
    ) -> List[SearchResult]:
        self._require_embeddings(SearchQueryType.MULTI_MODAL)

        batches = [
            self._semantic_search(query, records),
            self._keyword_search(query, records),
            self._conceptual_search(query, records),
        ]
        if relationships:
            batches.append(self._relational_search(query, records, relationships))

        merged: Dict[str, SearchResult] = {}
        totals: Dict[str, float] = {}
        counts: Dict[str, int] = {}
        for batch in batches:
            for result in batch:
                record_id = result.record.id
                existing = merged.get(record_id)
                if existing is None:
                    merged[record_id] = result.model_copy()
                    totals[record_id] = result.score
                    counts[record_id] = 1
                    continue
                totals[record_id] += result.score
                counts[record_id] += 1
                existing.explanations = existing.explanations + result.explanations
                existing.highlights = existing.highlights + result.highlights
                existing.concept_matches = existing.concept_matches + result.concept_matches
                existing.relationship_paths = existing.relationship_paths + result.relationship_paths
                if existing.semantic_score is None:
                    existing.semantic_score = result.semantic_score
                if existing.keyword_score is None:
                    existing.keyword_score = result.keyword_score

        for record_id, result in merged.items():
            result.score = totals[record_id] / counts[record_id]
        return list(merged.values())

    # ============================================================
    # Helper Methods
    # ============================================================

    def _require_embeddings(self, strategy: Optional[SearchQueryType] = None) -> EmbeddingService:
        if self.embedding_service is None:
            raise CapabilityUnavailableError(
                "Embedding service", strategy.value if strategy is not None else None
            )
        return self.embedding_service

    def _query_concepts(self, query: SearchQuery, extractor: ConceptExtractor) -> List[str]:
        concepts = self._concept_cache.get(query.query)
        if concepts is None:
            concepts = list(extractor.extract(query.query))
            self._concept_cache[query.query] = concepts

        if not query.expand_query:
            return list(concepts)

        expanded: List[str] = []
        for concept in list(concepts) + list(extractor.expand(concepts)):
            if concept not in expanded:
                expanded.append(concept)
        return expanded

    def _filter_by_time_range(
        self, records: Sequence[MemoryRecord], time_range: TimeRange, now: datetime
    ) -> List[MemoryRecord]:
        start, end = time_range.resolve(now)
        kept: List[MemoryRecord] = []
        for record in records:
            if start is not None and record.timestamp < start:
                continue
            if end is not None and record.timestamp > end:
                continue
            kept.append(record)
        return kept

    def _apply_filters(self, records: Sequence[MemoryRecord], filters: Mapping[str, Any]) -> List[MemoryRecord]:
        return [
            record
            for record in records
            if all(matches_filter(_field_value(record, name), expected) for name, expected in filters.items())
        ]

    def _recency_score(self, record: MemoryRecord, now: datetime) -> float:
        return max(0.0, 1.0 - age_in_days(record.timestamp, now) / self.config.recency_window_days)

    def _temporal_density(self, ordered: Sequence[MemoryRecord], index: int) -> float:
        """Share of window neighbours created within the temporal cluster span."""
        window = self.config.temporal_window
        lo = max(0, index - window)
        hi = min(len(ordered), index + window + 1)
        anchor = ordered[index].timestamp

        neighbours = 0
        close = 0
        for i in range(lo, hi):
            if i == index:
                continue
            neighbours += 1
            gap = abs((anchor - ordered[i].timestamp).total_seconds())
            if gap < self.config.temporal_cluster_seconds:
                close += 1
        return close / neighbours if neighbours else 0.0

    def _tokenize(self, text: str) -> List[str]:
        return [
            term
            for term in _NON_WORD.sub(" ", text.lower()).split()
            if len(term) >= self.config.min_token_length
        ]

    def _extract_highlight(self, text: str, term: str) -> str:
        index = text.lower().find(term.lower())
        if index == -1:
            return ""
        window = self.config.highlight_window
        start = max(0, index - window)
        end = min(len(text), index + len(term) + window)
        return text[start:end]


__all__ = ["AdvancedSearchEngine", "matches_filter"]

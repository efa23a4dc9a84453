"""
Memory Models - Type-safe data structures for retrieval and lifecycle

WHAT: Pydantic models for memory records, relationships, queries, results,
      access bookkeeping, priorities, clusters and summaries
WHERE: mnemosyne/runtime/memory/models.py - data layer
WHO: Search and management engines exchanging snapshots with the record store
TIME: Model validation <1ms

All timestamps are timezone-aware UTC; naive datetimes handed in by a store
are interpreted as UTC. Records are plain snapshots: the engines return new
copies instead of writing back into the caller's collection.

Notes:
- importance is validated into [0, 1] on construction
- a MemoryCluster cannot be built with fewer than two members
- SearchQuery is frozen; its normalized JSON form is the result-cache key
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

SECONDS_PER_DAY = 86400.0

RELATIVE_UNITS: Mapping[str, float] = {
    "minutes": 60.0,
    "hours": 3600.0,
    "days": SECONDS_PER_DAY,
    "weeks": 7 * SECONDS_PER_DAY,
    "months": 30 * SECONDS_PER_DAY,
    "years": 365 * SECONDS_PER_DAY,
}

AccessType = Literal["read", "write", "update"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_in_days(timestamp: datetime, now: datetime) -> float:
    return (now - timestamp).total_seconds() / SECONDS_PER_DAY


def generate_memory_id(prefix: str) -> str:
    """Generate a millisecond timestamp key with a short UUID suffix."""
    millis = int(utcnow().timestamp() * 1000)
    return f"{prefix}_{millis}_{uuid.uuid4().hex[:9]}"


class MemoryType(str, Enum):
    EXPERIENCE = "experience"
    KNOWLEDGE = "knowledge"
    INTERACTION = "interaction"
    GOAL = "goal"
    CONTEXT = "context"
    OBSERVATION = "observation"
    REFLECTION = "reflection"
    LEARNING = "learning"
    REASONING = "reasoning"


class MemoryDuration(str, Enum):
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"
    WORKING = "working"
    EPISODIC = "episodic"


class MemoryRelationshipType(str, Enum):
    CAUSAL = "causal"
    TEMPORAL = "temporal"
    SEMANTIC = "semantic"
    ASSOCIATIVE = "associative"
    HIERARCHICAL = "hierarchical"
    CONTRADICTORY = "contradictory"
    SUPPORTIVE = "supportive"
    REFERENCES = "references"


class SearchQueryType(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"
    RELATIONAL = "relational"
    TEMPORAL = "temporal"
    CONCEPTUAL = "conceptual"
    MULTI_MODAL = "multi_modal"


def _enum_to_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class MemoryRecord(BaseModel):
    """
    A single stored memory entry owned by the external record store.

    Examples:
    - content="User prefers dark mode after 9pm", type=observation
    - content="Deploys on Fridays tend to fail", type=reflection
    """

    id: str = Field(default_factory=lambda: generate_memory_id("mem"))
    agent_id: str = ""
    type: MemoryType = MemoryType.EXPERIENCE
    content: str = ""
    embedding: Optional[List[float]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utcnow)
    tags: List[str] = Field(default_factory=list)
    duration: MemoryDuration = MemoryDuration.LONG_TERM
    expires_at: Optional[datetime] = None

    @field_validator("timestamp", "expires_at")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


class MemoryRelationship(BaseModel):
    """
    Directed, typed, weighted edge between two memory records.

    Supplied per call to relational search and priority scoring; the engine
    never persists it.
    """

    id: str = Field(default_factory=lambda: f"rel_{uuid.uuid4().hex[:12]}")
    source_id: str
    target_id: str
    type: str = MemoryRelationshipType.ASSOCIATIVE.value
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _relationship_type_value(cls, value: Any) -> Any:
        return _enum_to_value(value)


class RelativeTime(BaseModel):
    value: float = Field(ge=0.0)
    unit: str = "days"


class TimeRange(BaseModel):
    """Absolute window (start/end) or a window relative to now."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    relative: Optional[RelativeTime] = None

    @field_validator("start", "end")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def resolve(self, now: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
        if self.relative is not None:
            seconds = RELATIVE_UNITS.get(self.relative.unit, RELATIVE_UNITS["days"])
            return now - timedelta(seconds=self.relative.value * seconds), None
        return self.start, self.end


class BoostFactors(BaseModel):
    semantic: float = 0.7
    keyword: float = 0.3
    importance: float = 0.1
    recency: float = 0.1


class SearchQuery(BaseModel):
    """Immutable search request; `type` stays a plain string until dispatch."""

    model_config = ConfigDict(frozen=True)

    type: str = SearchQueryType.HYBRID.value
    query: str = ""
    embedding: Optional[List[float]] = None
    time_range: Optional[TimeRange] = None
    filters: Optional[Dict[str, Any]] = None
    boost_factors: Optional[BoostFactors] = None
    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    threshold: Optional[float] = None
    expand_query: bool = False
    conceptual_depth: Optional[int] = Field(default=None, ge=0)

    @field_validator("type", mode="before")
    @classmethod
    def _query_type_value(cls, value: Any) -> Any:
        return _enum_to_value(value)

    def cache_key(self, revision: Optional[Any] = None) -> str:
        """Normalized JSON serialization of every field (plus revision token)."""
        payload = self.model_dump(mode="json")
        if revision is not None:
            payload["_revision"] = revision
        return json.dumps(payload, sort_keys=True, default=str)


class SearchResult(BaseModel):
    """Ranked match produced per query; never persisted."""

    record: MemoryRecord
    score: float
    semantic_score: Optional[float] = None
    keyword_score: Optional[float] = None
    explanations: List[str] = Field(default_factory=list)
    highlights: List[str] = Field(default_factory=list)
    concept_matches: List[str] = Field(default_factory=list)
    relationship_paths: List[str] = Field(default_factory=list)


class MemoryAccess(BaseModel):
    """Per-record, per-access-type counter with last access time."""

    memory_id: str
    access_type: AccessType
    frequency: int = Field(default=1, ge=0)
    timestamp: datetime = Field(default_factory=utcnow)


class PriorityFactors(BaseModel):
    importance: float = 0.0
    recency: float = 0.0
    access_frequency: float = 0.0
    emotional_valence: float = 0.0
    relationship_count: float = 0.0

    def total(self) -> float:
        return (
            self.importance
            + self.recency
            + self.access_frequency
            + self.emotional_valence
            + self.relationship_count
        )


class MemoryPriority(BaseModel):
    memory_id: str
    priority: float
    factors: PriorityFactors
    calculated: datetime = Field(default_factory=utcnow)


class ClusterTimeRange(BaseModel):
    start: datetime
    end: datetime


class MemoryCluster(BaseModel):
    """Group of related records; ephemeral, produced on demand."""

    id: str
    memories: List[MemoryRecord] = Field(min_length=2)
    centroid: List[float] = Field(default_factory=list)
    cohesion_score: float = 0.0
    time_range: ClusterTimeRange
    concepts: List[str] = Field(default_factory=list)

    @property
    def memory_ids(self) -> List[str]:
        return [m.id for m in self.memories]


class SummarizedMemory(MemoryRecord):
    """MemoryRecord compressed from a cluster, carrying its provenance."""

    original_memory_ids: List[str] = Field(default_factory=list)
    summary_method: str = "temporal"
    compression_ratio: float = 0.0


__all__ = [
    "AccessType",
    "BoostFactors",
    "ClusterTimeRange",
    "MemoryAccess",
    "MemoryCluster",
    "MemoryDuration",
    "MemoryPriority",
    "MemoryRecord",
    "MemoryRelationship",
    "MemoryRelationshipType",
    "MemoryType",
    "PriorityFactors",
    "RELATIVE_UNITS",
    "RelativeTime",
    "SearchQuery",
    "SearchQueryType",
    "SearchResult",
    "SummarizedMemory",
    "TimeRange",
    "age_in_days",
    "ensure_utc",
    "generate_memory_id",
    "utcnow",
]

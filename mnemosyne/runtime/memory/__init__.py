"""
Agent Memory Engines - Retrieval & Lifecycle

WHAT: Local library for ranked memory retrieval and memory lifecycle policies
WHERE: mnemosyne/runtime/memory/ - runtime engine subsystem
WHO: Agents recalling memories and running periodic maintenance
TIME: Search O(n) per strategy; maintenance O(n) plus clustering

Search strategies (AdvancedSearchEngine.search):
- semantic: cosine similarity of embeddings
- keyword: term hits in content and tags, with highlights
- hybrid: weighted semantic + keyword + importance + recency
- relational: keyword seeds expanded over relationship edges
- temporal: recency, content match and temporal density
- conceptual: extracted concepts compared by string similarity
- multi_modal: mean of semantic, keyword, conceptual (and relational)

Lifecycle operations (MemoryManagementEngine):
- apply_decay(records): importance decay with a floor and access boost
- prioritize(records): five-factor retention priority, cached per record
- cluster(records) / summarize(cluster): temporal, embedding or concept groups
- track_access(id, type): access bookkeeping, invalidates cached priority
- cleanup(records, priorities): drop records under a priority threshold

Boundary Notes:
- Engines never persist anything; callers store the returned copies
- One engine instance per agent; calls are serialized by the owner
"""

from .clustering import cluster_memories, kmeans  # noqa: F401
from .collaborators import (  # noqa: F401
    ConceptExtractor,
    EmbeddingService,
    SimpleConceptExtractor,
    SimpleEmbeddingService,
    cosine_similarity,
    levenshtein_distance,
)
from .config import (  # noqa: F401
    MemoryManagementPolicy,
    MemoryPolicyConfig,
    PriorityWeights,
    SearchEngineConfig,
    default_policies,
)
from .consolidation import MaintenanceReport, run_maintenance, summarize_cluster  # noqa: F401
from .errors import (  # noqa: F401
    CapabilityUnavailableError,
    MemoryEngineError,
    UnsupportedQueryTypeError,
)
from .management import MemoryManagementEngine  # noqa: F401
from .models import (  # noqa: F401
    BoostFactors,
    MemoryAccess,
    MemoryCluster,
    MemoryDuration,
    MemoryPriority,
    MemoryRecord,
    MemoryRelationship,
    MemoryRelationshipType,
    MemoryType,
    PriorityFactors,
    RelativeTime,
    SearchQuery,
    SearchQueryType,
    SearchResult,
    SummarizedMemory,
    TimeRange,
)
from .relational import RelationalCaps, RelationshipGraph  # noqa: F401
from .search_engine import AdvancedSearchEngine  # noqa: F401
from .telemetry import (  # noqa: F401
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
)

__all__ = [
    "AdvancedSearchEngine",
    "BoostFactors",
    "CapabilityUnavailableError",
    "ConceptExtractor",
    "EmbeddingService",
    "LoggingTelemetryClient",
    "MaintenanceReport",
    "MemoryAccess",
    "MemoryCluster",
    "MemoryDuration",
    "MemoryEngineError",
    "MemoryManagementEngine",
    "MemoryManagementPolicy",
    "MemoryPolicyConfig",
    "MemoryPriority",
    "MemoryRecord",
    "MemoryRelationship",
    "MemoryRelationshipType",
    "MemoryType",
    "NoOpTelemetryClient",
    "PriorityFactors",
    "PriorityWeights",
    "RecordingTelemetryClient",
    "RelationalCaps",
    "RelationshipGraph",
    "RelativeTime",
    "SearchEngineConfig",
    "SearchQuery",
    "SearchQueryType",
    "SearchResult",
    "SimpleConceptExtractor",
    "SimpleEmbeddingService",
    "SummarizedMemory",
    "TelemetryClient",
    "TelemetrySpan",
    "TimeRange",
    "UnsupportedQueryTypeError",
    "cluster_memories",
    "cosine_similarity",
    "default_policies",
    "kmeans",
    "levenshtein_distance",
    "run_maintenance",
    "summarize_cluster",
]

"""
Memory Clustering - Group related records ahead of summarization

WHAT: Temporal, embedding (K-means) and shared-concept clustering
WHERE: mnemosyne/runtime/memory/clustering.py - lifecycle layer
WHO: MemoryManagementEngine.cluster() and maintenance passes
TIME: Temporal/concept O(n log n); K-means O(iterations * n * k * dims)

Methods (selected by MemoryPolicyConfig.summary_method):
- temporal: sort by timestamp, split wherever the gap exceeds the
  configured span (1 hour by default)
- clustering / embedding: K-means over embedded records with
  k = min(max_clusters, n // 3), Euclidean distance, at most
  `kmeans_max_iterations` rounds, converged once no centroid moves more
  than `kmeans_tolerance`
- concept_based / concept: one group per shared tag

A cluster always has at least two members; would-be singletons are dropped.
Records that cannot be placed (missing timestamp, malformed vector) are
logged and skipped without failing the batch.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import MemoryPolicyConfig
from .models import ClusterTimeRange, MemoryCluster, MemoryRecord, generate_memory_id

logger = logging.getLogger(__name__)

TEMPORAL = "temporal"
CLUSTERING = "clustering"
CONCEPT_BASED = "concept_based"

METHOD_ALIASES: Dict[str, str] = {
    "temporal": TEMPORAL,
    "time": TEMPORAL,
    "clustering": CLUSTERING,
    "embedding": CLUSTERING,
    "concept_based": CONCEPT_BASED,
    "concept": CONCEPT_BASED,
}


def normalize_method(name: Optional[str]) -> Optional[str]:
    """Canonical method name, or None when the name is unknown."""
    if not name:
        return TEMPORAL
    return METHOD_ALIASES.get(name.strip().lower())


def content_similarity(memory1: MemoryRecord, memory2: MemoryRecord) -> float:
    """Jaccard similarity of lower-cased whitespace tokens."""
    words1 = set(memory1.content.lower().split())
    words2 = set(memory2.content.lower().split())
    union = words1 | words2
    return len(words1 & words2) / len(union) if union else 0.0


def calculate_cohesion(memories: Sequence[MemoryRecord]) -> float:
    """Average pairwise content similarity."""
    if len(memories) < 2:
        return 1.0

    total = 0.0
    comparisons = 0
    for i in range(len(memories)):
        for j in range(i + 1, len(memories)):
            total += content_similarity(memories[i], memories[j])
            comparisons += 1
    return total / comparisons if comparisons else 0.0


def shared_tags(memories: Sequence[MemoryRecord], limit: int = 5) -> List[str]:
    """Tags carried by more than one member, most frequent first."""
    counts = Counter(tag for memory in memories for tag in memory.tags)
    return [tag for tag, count in counts.most_common() if count > 1][:limit]


def calculate_centroid(memories: Sequence[MemoryRecord]) -> List[float]:
    embeddings = [m.embedding for m in memories if m.embedding]
    if not embeddings:
        return []
    return np.mean(np.asarray(embeddings, dtype=float), axis=0).tolist()


def build_cluster(
    memories: Sequence[MemoryRecord],
    kind: str,
    concepts: Optional[List[str]] = None,
    *,
    with_centroid: bool = False,
) -> MemoryCluster:
    timestamps = [m.timestamp for m in memories]
    return MemoryCluster(
        id=generate_memory_id(kind),
        memories=list(memories),
        centroid=calculate_centroid(memories) if with_centroid else [],
        cohesion_score=calculate_cohesion(memories),
        time_range=ClusterTimeRange(start=min(timestamps), end=max(timestamps)),
        concepts=list(concepts) if concepts else shared_tags(memories),
    )


def _min_size(config: MemoryPolicyConfig) -> int:
    return max(2, config.min_cluster_size)


def cluster_by_time(memories: Sequence[MemoryRecord], config: MemoryPolicyConfig) -> List[MemoryCluster]:
    timed: List[MemoryRecord] = []
    for memory in memories:
        if isinstance(memory.timestamp, datetime):
            timed.append(memory)
        else:
            logger.warning(f"Skipping memory {memory.id} in temporal clustering: missing timestamp")

    clusters: List[MemoryCluster] = []
    min_size = _min_size(config)
    current: List[MemoryRecord] = []
    last_timestamp: Optional[datetime] = None

    for memory in sorted(timed, key=lambda m: m.timestamp):
        if last_timestamp is None or (memory.timestamp - last_timestamp).total_seconds() <= config.temporal_gap_seconds:
            current.append(memory)
        else:
            if len(current) >= min_size:
                clusters.append(build_cluster(current, "temporal"))
            current = [memory]
        last_timestamp = memory.timestamp

    if len(current) >= min_size:
        clusters.append(build_cluster(current, "temporal"))

    return clusters


def _embedded_records(memories: Sequence[MemoryRecord]) -> Tuple[List[MemoryRecord], Optional[np.ndarray]]:
    """Records with usable vectors of the dominant dimension, plus their matrix."""
    candidates: List[Tuple[MemoryRecord, np.ndarray]] = []
    for memory in memories:
        if not memory.embedding:
            continue
        try:
            vector = np.asarray(memory.embedding, dtype=float)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping memory {memory.id} in embedding clustering: {e}")
            continue
        if vector.ndim != 1 or not np.isfinite(vector).all():
            logger.warning(f"Skipping memory {memory.id} in embedding clustering: malformed vector")
            continue
        candidates.append((memory, vector))

    if not candidates:
        return [], None

    dimension = Counter(len(v) for _, v in candidates).most_common(1)[0][0]
    kept = [(m, v) for m, v in candidates if len(v) == dimension]
    if len(kept) < len(candidates):
        logger.warning(
            f"Skipping {len(candidates) - len(kept)} memories with embedding dimension != {dimension}"
        )
    return [m for m, _ in kept], np.vstack([v for _, v in kept])


def _assign(vectors: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    distances = np.linalg.norm(vectors[:, None, :] - centroids[None, :, :], axis=2)
    return np.argmin(distances, axis=1)


def kmeans(
    vectors: np.ndarray,
    k: int,
    *,
    max_iterations: int = 10,
    tolerance: float = 0.01,
    seed: Optional[int] = 0,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Lloyd's K-means with a hard iteration cap.

    Args:
        vectors: (n, d) matrix
        k: Number of centroids (clipped to n)
        max_iterations: Assignment/update rounds before giving up
        tolerance: Centroid movement below which a centroid counts as settled
        seed: Seed for picking the initial centroids among the inputs

    Returns:
        (labels, centroids) after a final assignment pass
    """
    k = max(1, min(k, len(vectors)))
    rng = np.random.default_rng(seed)
    centroids = vectors[rng.choice(len(vectors), size=k, replace=False)].copy()

    for _ in range(max_iterations):
        labels = _assign(vectors, centroids)
        converged = True
        for j in range(k):
            members = vectors[labels == j]
            if len(members) == 0:
                continue
            updated = members.mean(axis=0)
            if np.linalg.norm(updated - centroids[j]) > tolerance:
                converged = False
                centroids[j] = updated
        if converged:
            break

    return _assign(vectors, centroids), centroids


def cluster_by_embedding(memories: Sequence[MemoryRecord], config: MemoryPolicyConfig) -> List[MemoryCluster]:
    embedded, vectors = _embedded_records(memories)
    if len(embedded) < 2 or vectors is None:
        return []

    k = max(1, min(config.max_clusters, len(embedded) // 3))
    labels, _ = kmeans(
        vectors,
        k,
        max_iterations=config.kmeans_max_iterations,
        tolerance=config.kmeans_tolerance,
        seed=config.kmeans_seed,
    )

    min_size = _min_size(config)
    clusters: List[MemoryCluster] = []
    for label in range(k):
        group = [memory for memory, assigned in zip(embedded, labels) if assigned == label]
        if len(group) >= min_size:
            clusters.append(build_cluster(group, "embedding", with_centroid=True))
    return clusters


def cluster_by_concepts(memories: Sequence[MemoryRecord], config: MemoryPolicyConfig) -> List[MemoryCluster]:
    groups: Dict[str, List[MemoryRecord]] = {}
    for memory in memories:
        try:
            tags = list(dict.fromkeys(memory.tags))
        except TypeError as e:
            logger.warning(f"Skipping memory {memory.id} in concept clustering: {e}")
            continue
        for tag in tags:
            groups.setdefault(tag, []).append(memory)

    min_size = _min_size(config)
    return [
        build_cluster(group, "concept", [tag])
        for tag, group in groups.items()
        if len(group) >= min_size
    ]


def cluster_memories(memories: Sequence[MemoryRecord], config: MemoryPolicyConfig) -> List[MemoryCluster]:
    """Dispatch on config.summary_method; unknown methods fall back to temporal."""
    method = normalize_method(config.summary_method)
    if method is None:
        logger.warning(f"Unknown clustering method {config.summary_method!r}; using temporal")
        method = TEMPORAL

    if method == CLUSTERING:
        return cluster_by_embedding(memories, config)
    if method == CONCEPT_BASED:
        return cluster_by_concepts(memories, config)
    return cluster_by_time(memories, config)


__all__ = [
    "CLUSTERING",
    "CONCEPT_BASED",
    "TEMPORAL",
    "build_cluster",
    "calculate_centroid",
    "calculate_cohesion",
    "cluster_by_concepts",
    "cluster_by_embedding",
    "cluster_by_time",
    "cluster_memories",
    "content_similarity",
    "kmeans",
    "normalize_method",
    "shared_tags",
]

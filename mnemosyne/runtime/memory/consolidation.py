"""
Memory Consolidation - Compress clusters into summary memories

WHAT: Template-framed summaries of memory clusters, plus a full maintenance pass
WHERE: mnemosyne/runtime/memory/consolidation.py - lifecycle layer
WHO: MemoryManagementEngine.summarize() and periodic maintenance jobs
TIME: O(total content length) per summary

A summary keeps its provenance: the ids of every member, the method that
produced it and the compression ratio (summary length over the summed length
of the member contents). Summarization never deletes; whether the originals
are kept is the caller's call, and `preserve_original` is recorded in the
summary metadata for the store to act on.

Framing by method:
- temporal: "Timeline summary from <start date> to <end date>: ..."
- clustering: "Related memories about <cluster concepts>: ..."
- concept_based: "Conceptual summary (<top 3 concepts>): ..."
- anything else: "Summary of <n> related memories: ..."
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from .clustering import CLUSTERING, CONCEPT_BASED, TEMPORAL, normalize_method
from .config import MemoryPolicyConfig
from .models import MemoryCluster, MemoryPriority, MemoryRecord, MemoryRelationship, SummarizedMemory

if TYPE_CHECKING:
    from .management import MemoryManagementEngine

logger = logging.getLogger(__name__)

AUTO_GENERATED_TAG = "auto_generated"

SUMMARY_TAGS: Dict[str, str] = {
    TEMPORAL: "temporal_summary",
    CLUSTERING: "cluster_summary",
    CONCEPT_BASED: "conceptual_summary",
}


def compose_summary(cluster: MemoryCluster, method: str) -> str:
    events = "; ".join(m.content for m in cluster.memories)

    if method == TEMPORAL:
        start = cluster.time_range.start.date().isoformat()
        end = cluster.time_range.end.date().isoformat()
        return f"Timeline summary from {start} to {end}: {events}"
    if method == CLUSTERING:
        themes = ", ".join(cluster.concepts) or "a shared theme"
        return f"Related memories about {themes}: {events}"
    if method == CONCEPT_BASED:
        main_concepts = ", ".join(cluster.concepts[:3])
        return f"Conceptual summary ({main_concepts}): {events}"
    return f"Summary of {len(cluster.memories)} related memories: {events}"


def summarize_cluster(cluster: MemoryCluster, config: MemoryPolicyConfig) -> SummarizedMemory:
    """
    Build one SummarizedMemory from a cluster.

    Args:
        cluster: Cluster with at least two members
        config: Supplies summary_method and preserve_original

    Returns:
        Summary record with importance = max member importance
    """
    method = normalize_method(config.summary_method) or config.summary_method
    content = compose_summary(cluster, method)

    original_ids = [m.id for m in cluster.memories]
    original_size = sum(len(m.content) for m in cluster.memories)
    compression_ratio = len(content) / original_size if original_size else 0.0
    importance = min(1.0, max(m.importance for m in cluster.memories))

    first = cluster.memories[0]
    metadata = {
        **first.metadata,
        "is_summary": True,
        "original_count": len(cluster.memories),
        "time_range": {
            "start": cluster.time_range.start.isoformat(),
            "end": cluster.time_range.end.isoformat(),
        },
        "concepts": list(cluster.concepts),
        "original_memory_ids": original_ids,
        "preserve_original": config.preserve_original,
    }

    return SummarizedMemory(
        id=f"summary_{cluster.id}",
        agent_id=first.agent_id,
        type=first.type,
        content=content,
        metadata=metadata,
        importance=importance,
        tags=[SUMMARY_TAGS.get(method, "summary"), AUTO_GENERATED_TAG],
        duration=first.duration,
        original_memory_ids=original_ids,
        summary_method=method,
        compression_ratio=compression_ratio,
    )


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance pass; originals are never dropped by summaries."""

    records: List[MemoryRecord]
    priorities: List[MemoryPriority]
    clusters: List[MemoryCluster] = field(default_factory=list)
    summaries: List[SummarizedMemory] = field(default_factory=list)
    removed_count: int = 0


def run_maintenance(
    engine: MemoryManagementEngine,
    records: Sequence[MemoryRecord],
    config: Optional[MemoryPolicyConfig] = None,
    relationships: Optional[Sequence[MemoryRelationship]] = None,
    *,
    drop_expired: bool = False,
) -> MaintenanceReport:
    """
    Convenience pass: decay, prioritize, clean up, then cluster and summarize.

    Each stage runs only when its policy is enabled on the engine
    (cleanup follows prioritization). The returned records are the snapshot
    the caller should swap into its store; summaries are additional records.
    """
    cfg = config or MemoryPolicyConfig()

    current = engine.apply_decay(records, cfg)

    priorities: List[MemoryPriority] = []
    removed = 0
    if engine.policy_enabled("prioritization"):
        priorities = engine.prioritize(current, cfg, relationships)
        kept = engine.cleanup(current, priorities, cfg.priority_threshold, drop_expired=drop_expired)
        removed = len(current) - len(kept)
        current = kept

    clusters: List[MemoryCluster] = []
    summaries: List[SummarizedMemory] = []
    if engine.policy_enabled("summarization"):
        clusters = engine.cluster(current, cfg)
        for cluster in clusters:
            try:
                summaries.append(engine.summarize(cluster, cfg))
            except Exception as e:
                logger.warning(f"Failed to summarize cluster {cluster.id}: {e}")

    logger.info(
        f"Maintenance pass: {len(current)} kept, {removed} removed, "
        f"{len(clusters)} clusters, {len(summaries)} summaries"
    )
    return MaintenanceReport(
        records=current,
        priorities=priorities,
        clusters=clusters,
        summaries=summaries,
        removed_count=removed,
    )


__all__ = [
    "AUTO_GENERATED_TAG",
    "MaintenanceReport",
    "SUMMARY_TAGS",
    "compose_summary",
    "run_maintenance",
    "summarize_cluster",
]

"""
Memory Management Engine - Decay, priority, access bookkeeping, clustering

WHAT: Lifecycle policies applied to snapshots of an agent's memory records
WHERE: mnemosyne/runtime/memory/management.py - lifecycle layer
WHO: Agent maintenance loops (decay sweeps, cleanup, cluster-and-summarize)
TIME: O(n) per decay/priority sweep; clustering per clustering.py

Decay:
    amount = decay_fn(age_days) * decay_rate / access_multiplier
    importance = max(floor, importance - amount)
  decay_fn is linear (age * 0.01), exponential (1 - e^(-0.1 * age)) or
  sigmoid (1 / (1 + e^(10 - age))); access_multiplier is `access_boost` when
  the record was accessed within `recent_access_days`, else 1. Records at or
  below the floor are left alone and no record is ever removed by decay.

Priority (weighted sum of five factors, each normalized to [0, 1]):
    importance, recency (linear over 30 days), access frequency
    (accesses / 10), |emotional valence| from metadata, relationship
    degree (edges / 5)
  Results are cached per record for an hour and dropped on `track_access`.

Failure isolation: a record that cannot be scored is logged and skipped;
decay passes it through unchanged.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .clustering import cluster_memories
from .config import MemoryManagementPolicy, MemoryPolicyConfig, PriorityWeights, default_policies
from .consolidation import summarize_cluster
from .models import (
    AccessType,
    MemoryAccess,
    MemoryCluster,
    MemoryPriority,
    MemoryRecord,
    MemoryRelationship,
    PriorityFactors,
    SummarizedMemory,
    age_in_days,
    utcnow,
)
from .relational import relationship_degrees
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

DecayFunction = Callable[[float, float, int], float]

ACCESS_TYPES = ("read", "write", "update")
EMOTIONAL_VALENCE_KEYS = ("emotional_valence", "emotionalValence")


def _linear_decay(age: float, importance: float, access_count: int) -> float:
    return age * 0.01


def _exponential_decay(age: float, importance: float, access_count: int) -> float:
    return 1.0 - math.exp(-age * 0.1)


def _sigmoid_decay(age: float, importance: float, access_count: int) -> float:
    return 1.0 / (1.0 + math.exp(-age + 10.0))


DECAY_FUNCTIONS: Dict[str, DecayFunction] = {
    "linear": _linear_decay,
    "exponential": _exponential_decay,
    "sigmoid": _sigmoid_decay,
}


def get_decay_function(name: str) -> DecayFunction:
    decay_fn = DECAY_FUNCTIONS.get(name)
    if decay_fn is None:
        logger.warning(f"Unknown decay function {name!r}; using exponential")
        return _exponential_decay
    return decay_fn


def emotional_valence(metadata: Mapping[str, Any]) -> float:
    """|valence| from metadata, clipped to [0, 1]; non-numeric values count as 0."""
    for key in EMOTIONAL_VALENCE_KEYS:
        value = metadata.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            return min(1.0, abs(float(value)))
    return 0.0


class MemoryManagementEngine:
    """
    Applies lifecycle policies to record snapshots.

    Holds per-instance state that outlives single calls: the access tracker
    and the priority cache. One instance per agent, called sequentially.
    """

    def __init__(
        self,
        policies: Optional[Iterable[MemoryManagementPolicy]] = None,
        *,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.policies: List[MemoryManagementPolicy] = (
            list(policies) if policies is not None else default_policies()
        )
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._access_tracker: Dict[str, Dict[str, MemoryAccess]] = {}
        self._priority_cache: Dict[str, MemoryPriority] = {}

    def policy_enabled(self, policy_type: str) -> bool:
        return any(p.policy_type == policy_type and p.enabled for p in self.policies)

    # ============================================================
    # Decay
    # ============================================================

    def apply_decay(
        self,
        records: Sequence[MemoryRecord],
        config: Optional[MemoryPolicyConfig] = None,
        *,
        now: Optional[datetime] = None,
    ) -> List[MemoryRecord]:
        """
        Reduce importance of aging records.

        Args:
            records: Snapshot to decay (not modified)
            config: Decay knobs; defaults when omitted
            now: Reference time, defaults to the current UTC time

        Returns:
            Updated copies in input order; unchanged when no decay policy is enabled
        """
        cfg = config or MemoryPolicyConfig()
        if not self.policy_enabled("decay"):
            logger.debug("No enabled decay policy; importance left unchanged")
            return list(records)

        decay_fn = get_decay_function(cfg.decay_function)
        now = now or utcnow()
        updated: List[MemoryRecord] = []
        decayed = 0

        with self._telemetry.span(
            "memory.decay", attributes={"record_count": len(records), "function": cfg.decay_function}
        ) as span:
            for record in records:
                try:
                    new_record = self._decay_record(record, cfg, decay_fn, now)
                except Exception as e:
                    logger.warning(f"Skipping decay for memory {getattr(record, 'id', '?')}: {e}")
                    updated.append(record)
                    continue
                if new_record.importance != record.importance:
                    decayed += 1
                updated.append(new_record)
            span.set_attribute("decayed_count", decayed)

        return updated

    def _decay_record(
        self,
        record: MemoryRecord,
        config: MemoryPolicyConfig,
        decay_fn: DecayFunction,
        now: datetime,
    ) -> MemoryRecord:
        floor = config.importance_threshold
        importance = float(record.importance)
        if not importance > floor:
            return record.model_copy()

        age = max(0.0, age_in_days(record.timestamp, now))
        access_count = self._total_accesses(record.id)
        base_decay = decay_fn(age, importance, access_count)

        access_multiplier = 1.0
        last_access = self._last_access(record.id)
        if last_access is not None and age_in_days(last_access, now) < config.recent_access_days:
            access_multiplier = config.access_boost if config.access_boost > 0 else 1.0

        amount = max(0.0, base_decay * config.decay_rate / access_multiplier)
        new_importance = min(1.0, max(floor, importance - amount))

        if new_importance != importance:
            logger.debug(f"Applied decay to memory {record.id}: {importance:.3f} → {new_importance:.3f}")
        return record.model_copy(update={"importance": new_importance})

    # ============================================================
    # Priority
    # ============================================================

    def prioritize(
        self,
        records: Sequence[MemoryRecord],
        config: Optional[MemoryPolicyConfig] = None,
        relationships: Optional[Sequence[MemoryRelationship]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> List[MemoryPriority]:
        """Score retention priority per record, highest first."""
        cfg = config or MemoryPolicyConfig()
        now = now or utcnow()
        degrees = relationship_degrees(relationships)
        priorities: List[MemoryPriority] = []
        cache_hits = 0

        with self._telemetry.span("memory.prioritize", attributes={"record_count": len(records)}) as span:
            for record in records:
                try:
                    cached = self._priority_cache.get(record.id)
                    if cached is not None and (now - cached.calculated).total_seconds() < cfg.priority_cache_seconds:
                        priorities.append(cached)
                        cache_hits += 1
                        continue

                    priority = self._score_priority(record, cfg, degrees, now)
                except Exception as e:
                    logger.warning(f"Skipping priority for memory {getattr(record, 'id', '?')}: {e}")
                    continue

                priorities.append(priority)
                self._priority_cache[record.id] = priority
            span.set_attribute("cache_hits", cache_hits)

        priorities.sort(key=lambda p: p.priority, reverse=True)
        return priorities

    def _score_priority(
        self,
        record: MemoryRecord,
        config: MemoryPolicyConfig,
        degrees: Mapping[str, int],
        now: datetime,
    ) -> MemoryPriority:
        weights: PriorityWeights = config.priority_factors

        importance = min(1.0, max(0.0, float(record.importance)))
        age = age_in_days(record.timestamp, now)
        recency = min(1.0, max(0.0, 1.0 - age / config.recency_window_days))
        access = min(1.0, self._total_accesses(record.id) / config.access_saturation)
        valence = emotional_valence(record.metadata)
        relationship = min(1.0, degrees.get(record.id, 0) / config.relationship_saturation)

        factors = PriorityFactors(
            importance=importance * weights.importance,
            recency=recency * weights.recency,
            access_frequency=access * weights.access_frequency,
            emotional_valence=valence * weights.emotional_valence,
            relationship_count=relationship * weights.relationship_count,
        )
        return MemoryPriority(memory_id=record.id, priority=factors.total(), factors=factors, calculated=now)

    # ============================================================
    # Clustering & summarization
    # ============================================================

    def cluster(
        self, records: Sequence[MemoryRecord], config: Optional[MemoryPolicyConfig] = None
    ) -> List[MemoryCluster]:
        cfg = config or MemoryPolicyConfig()
        with self._telemetry.span(
            "memory.cluster", attributes={"record_count": len(records), "method": cfg.summary_method}
        ) as span:
            clusters = cluster_memories(records, cfg)
            span.set_attribute("cluster_count", len(clusters))
        logger.debug(f"Clustered {len(records)} memories into {len(clusters)} {cfg.summary_method} clusters")
        return clusters

    def summarize(
        self, cluster: MemoryCluster, config: Optional[MemoryPolicyConfig] = None
    ) -> SummarizedMemory:
        cfg = config or MemoryPolicyConfig()
        if cfg.preserve_original:
            logger.debug("Preserving original memories during summarization")

        with self._telemetry.span(
            "memory.summarize", attributes={"member_count": len(cluster.memories), "method": cfg.summary_method}
        ):
            summary = summarize_cluster(cluster, cfg)

        logger.info(
            f"Created {summary.summary_method} summary for {len(cluster.memories)} memories "
            f"(compression: {summary.compression_ratio * 100:.1f}%)"
        )
        return summary

    # ============================================================
    # Access tracking & cleanup
    # ============================================================

    def track_access(self, memory_id: str, access_type: AccessType = "read") -> MemoryAccess:
        """Count an access and invalidate the record's cached priority."""
        if access_type not in ACCESS_TYPES:
            raise ValueError(f"Unknown access type: {access_type}")

        accesses = self._access_tracker.setdefault(memory_id, {})
        existing = accesses.get(access_type)
        if existing is not None:
            existing.frequency += 1
            existing.timestamp = utcnow()
        else:
            existing = MemoryAccess(memory_id=memory_id, access_type=access_type)
            accesses[access_type] = existing

        self._priority_cache.pop(memory_id, None)
        return existing

    def cleanup(
        self,
        records: Sequence[MemoryRecord],
        priorities: Sequence[MemoryPriority],
        threshold: float = 0.1,
        *,
        drop_expired: bool = False,
        now: Optional[datetime] = None,
    ) -> List[MemoryRecord]:
        """Keep records whose priority is at or above `threshold`; unknown ids score 0."""
        priority_map = {p.memory_id: p.priority for p in priorities}
        now = now or utcnow()

        with self._telemetry.span("memory.cleanup", attributes={"record_count": len(records)}) as span:
            kept = [
                record
                for record in records
                if priority_map.get(record.id, 0.0) >= threshold
                and not (drop_expired and record.is_expired(now))
            ]
            removed = len(records) - len(kept)
            span.set_attribute("removed_count", removed)

        if removed > 0:
            logger.info(f"Cleaned up {removed} low-priority memories")
        return kept

    def get_memory_accesses(self, memory_id: str) -> List[MemoryAccess]:
        return list(self._access_tracker.get(memory_id, {}).values())

    def clear_caches(self) -> None:
        self._priority_cache.clear()

    def get_stats(self) -> Dict[str, int]:
        return {
            "tracked_records": len(self._access_tracker),
            "cached_priorities": len(self._priority_cache),
            "total_accesses": sum(
                access.frequency for accesses in self._access_tracker.values() for access in accesses.values()
            ),
        }

    def _total_accesses(self, memory_id: str) -> int:
        return sum(a.frequency for a in self._access_tracker.get(memory_id, {}).values())

    def _last_access(self, memory_id: str) -> Optional[datetime]:
        accesses = self._access_tracker.get(memory_id)
        if not accesses:
            return None
        return max(a.timestamp for a in accesses.values())


__all__ = [
    "DECAY_FUNCTIONS",
    "MemoryManagementEngine",
    "emotional_valence",
    "get_decay_function",
]

"""
Relational Traversal - Depth-bounded walks over memory relationships

WHAT: Adjacency view of MemoryRelationship edges and breadth-first expansion
WHERE: mnemosyne/runtime/memory/relational.py - retrieval layer
WHO: Relational and multi-modal search; relationship-degree priority factor
TIME: O(V + E) per search, bounded by the hop cap

Expansion starts from scored seed records and follows outgoing edges up to
`caps.hops` hops. Each hop scores

    edge.strength * parent_score / (path_length + 1)

where path_length counts the path entries so far (the seed entry included).
A single visited set is shared by all seeds, so each record is reached at
most once and the first path found wins, even when a later path would have
scored higher. Seeds themselves are never re-emitted.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .models import MemoryRecord, MemoryRelationship

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " → "


@dataclass(slots=True)
class RelationalCaps:
    """Traversal caps for relational expansion."""

    hops: int = 2  # Max traversal depth from a seed


@dataclass(slots=True)
class TraversalHit:
    """Record reached through one or more relationship hops."""

    record: MemoryRecord
    score: float
    path: List[str]
    relationship: MemoryRelationship

    @property
    def path_string(self) -> str:
        return PATH_SEPARATOR.join(self.path)


class RelationshipGraph:
    """Outgoing adjacency built once per call from relationship snapshots."""

    def __init__(self, relationships: Iterable[MemoryRelationship]) -> None:
        self._outgoing: Dict[str, List[MemoryRelationship]] = defaultdict(list)
        self._edge_count = 0
        for rel in relationships:
            self._outgoing[rel.source_id].append(rel)
            self._edge_count += 1

    @property
    def edge_count(self) -> int:
        return self._edge_count

    def neighbors(self, node_id: str) -> List[MemoryRelationship]:
        return self._outgoing.get(node_id, [])

    def expand(
        self,
        seeds: Sequence[Tuple[MemoryRecord, float]],
        records_by_id: Mapping[str, MemoryRecord],
        caps: RelationalCaps,
    ) -> List[TraversalHit]:
        """
        Breadth-first expansion from scored seeds.

        Args:
            seeds: (record, score) pairs, expanded in the given order
            records_by_id: Records eligible as traversal targets
            caps: Hop cap

        Returns:
            Hits in discovery order; targets outside `records_by_id` are skipped
        """
        visited: Set[str] = {record.id for record, _ in seeds}
        hits: List[TraversalHit] = []

        if caps.hops <= 0:
            return hits

        for seed, seed_score in seeds:
            queue = deque([(seed.id, seed_score, [f"{seed.id} (direct)"], caps.hops)])
            while queue:
                node_id, parent_score, path, remaining = queue.popleft()
                for rel in self.neighbors(node_id):
                    target = records_by_id.get(rel.target_id)
                    if target is None or target.id in visited:
                        continue
                    visited.add(target.id)

                    score = rel.strength * (parent_score / (len(path) + 1))
                    new_path = path + [f"{rel.type}→{rel.target_id}"]
                    hits.append(
                        TraversalHit(record=target, score=score, path=new_path, relationship=rel)
                    )
                    if remaining > 1:
                        queue.append((target.id, score, new_path, remaining - 1))

        logger.debug(
            f"Relational expansion: {len(seeds)} seeds, {len(hits)} related records, "
            f"{self._edge_count} edges, hops={caps.hops}"
        )
        return hits


def relationship_degrees(relationships: Optional[Iterable[MemoryRelationship]]) -> Dict[str, int]:
    """Count edges touching each record, either endpoint."""
    counts: Dict[str, int] = defaultdict(int)
    for rel in relationships or ():
        counts[rel.source_id] += 1
        counts[rel.target_id] += 1
    return dict(counts)


__all__ = [
    "PATH_SEPARATOR",
    "RelationalCaps",
    "RelationshipGraph",
    "TraversalHit",
    "relationship_degrees",
]

import logging
from datetime import timedelta

import numpy as np
import pytest
from pydantic import ValidationError

from mnemosyne.runtime.memory.clustering import (
    build_cluster,
    calculate_cohesion,
    cluster_memories,
    content_similarity,
    kmeans,
    normalize_method,
)
from mnemosyne.runtime.memory.config import MemoryPolicyConfig
from mnemosyne.runtime.memory.management import MemoryManagementEngine
from mnemosyne.runtime.memory.models import MemoryCluster, MemoryRecord, utcnow
from mnemosyne.runtime.memory.telemetry import RecordingTelemetryClient


def _at(memory_id, minutes, base, **kwargs):
    return MemoryRecord(id=memory_id, content=f"event {memory_id}", timestamp=base + timedelta(minutes=minutes), **kwargs)


def test_temporal_clustering_splits_on_gaps():
    base = utcnow() - timedelta(days=1)
    records = [_at("t0", 0, base), _at("t2h", 120, base), _at("t30", 30, base)]

    clusters = cluster_memories(records, MemoryPolicyConfig(summary_method="temporal"))

    assert len(clusters) == 1
    assert clusters[0].memory_ids == ["t0", "t30"]
    assert clusters[0].time_range.start == records[0].timestamp
    assert clusters[0].time_range.end == records[2].timestamp
    assert clusters[0].centroid == []


def test_temporal_clustering_skips_records_without_timestamp(caplog):
    base = utcnow()
    broken = MemoryRecord.model_construct(id="broken", content="no time", timestamp=None)

    with caplog.at_level(logging.WARNING):
        clusters = cluster_memories([_at("a", 0, base), broken, _at("b", 10, base)], MemoryPolicyConfig())

    assert [c.memory_ids for c in clusters] == [["a", "b"]]
    assert "missing timestamp" in caplog.text


def test_kmeans_separates_distinct_groups():
    vectors = np.array([[0, 0], [0, 1], [1, 0], [10, 10], [10, 11], [11, 10]], dtype=float)

    labels, centroids = kmeans(vectors, 2, max_iterations=10, tolerance=0.01, seed=0)

    assert labels[0] == labels[1] == labels[2]
    assert labels[3] == labels[4] == labels[5]
    assert labels[0] != labels[3]
    assert centroids.shape == (2, 2)


def test_embedding_clustering_builds_centroids():
    base = utcnow()
    records = [
        _at(f"a{i}", i, base, embedding=[0.0 + i * 0.1, 0.0]) for i in range(3)
    ] + [
        _at(f"b{i}", i, base, embedding=[10.0, 10.0 + i * 0.1]) for i in range(3)
    ]

    clusters = cluster_memories(records, MemoryPolicyConfig(summary_method="embedding"))

    assert clusters
    for cluster in clusters:
        assert len(cluster.memories) >= 2
        assert len(cluster.centroid) == 2


def test_embedding_clustering_needs_two_vectors():
    base = utcnow()
    records = [_at("a", 0, base, embedding=[1.0, 0.0]), _at("b", 1, base)]

    assert cluster_memories(records, MemoryPolicyConfig(summary_method="clustering")) == []


def test_embedding_clustering_skips_minority_dimension(caplog):
    base = utcnow()
    records = [_at(f"a{i}", i, base, embedding=[1.0, float(i)]) for i in range(6)]
    records.append(_at("odd", 7, base, embedding=[1.0, 2.0, 3.0]))

    with caplog.at_level(logging.WARNING):
        clusters = cluster_memories(records, MemoryPolicyConfig(summary_method="clustering"))

    assert all("odd" not in c.memory_ids for c in clusters)
    assert "embedding dimension" in caplog.text


def test_concept_clustering_groups_by_shared_tag():
    base = utcnow()
    records = [
        _at("p1", 0, base, tags=["pets", "home"]),
        _at("p2", 5, base, tags=["pets"]),
        _at("solo", 10, base, tags=["work", "work"]),
    ]

    clusters = cluster_memories(records, MemoryPolicyConfig(summary_method="concept_based"))

    assert len(clusters) == 1
    assert clusters[0].concepts == ["pets"]
    assert clusters[0].memory_ids == ["p1", "p2"]


@pytest.mark.parametrize("method", ["temporal", "clustering", "concept_based", "bogus"])
def test_clusters_never_have_fewer_than_two_members(method):
    base = utcnow()
    records = [
        _at(f"r{i}", i * 45, base, tags=[f"tag{i % 3}"], embedding=[float(i % 2), float(i)])
        for i in range(9)
    ]

    clusters = cluster_memories(records, MemoryPolicyConfig(summary_method=method))

    assert all(len(c.memories) >= 2 for c in clusters)


def test_unknown_method_falls_back_to_temporal(caplog):
    base = utcnow()
    with caplog.at_level(logging.WARNING):
        clusters = cluster_memories([_at("a", 0, base), _at("b", 1, base)], MemoryPolicyConfig(summary_method="bogus"))

    assert len(clusters) == 1
    assert "Unknown clustering method" in caplog.text
    assert normalize_method("Embedding") == "clustering"
    assert normalize_method("") == "temporal"
    assert normalize_method("bogus") is None


def test_cohesion_is_mean_pairwise_jaccard():
    base = utcnow()
    a = MemoryRecord(id="a", content="red apple pie", timestamp=base)
    b = MemoryRecord(id="b", content="green apple pie", timestamp=base)
    c = MemoryRecord(id="c", content="blue sky", timestamp=base)

    assert content_similarity(a, b) == pytest.approx(2 / 4)
    assert calculate_cohesion([a, b, c]) == pytest.approx((0.5 + 0.0 + 0.0) / 3)
    assert build_cluster([a, b], "temporal").cohesion_score == pytest.approx(0.5)


def test_cluster_model_rejects_singletons():
    record = MemoryRecord(id="a", content="alone")
    with pytest.raises(ValidationError):
        MemoryCluster(id="c", memories=[record], time_range={"start": record.timestamp, "end": record.timestamp})


def test_engine_cluster_emits_span():
    telemetry = RecordingTelemetryClient()
    engine = MemoryManagementEngine(telemetry=telemetry)
    base = utcnow()

    clusters = engine.cluster([_at("a", 0, base), _at("b", 5, base)], MemoryPolicyConfig())

    (span,) = telemetry.named("memory.cluster")
    assert span["cluster_count"] == len(clusters) == 1
    assert span["method"] == "temporal"
    assert span["success"] is True

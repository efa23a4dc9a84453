"""
Engine Configuration - Search knobs and memory management policies

WHAT: Dataclass configuration for the search engine and the management engine
WHERE: mnemosyne/runtime/memory/config.py - configuration layer
WHO: Agent loops constructing engines; maintenance jobs choosing policies
TIME: Construction only, no runtime cost

Every knob has a default matching the engines' documented behaviour, so
`SearchEngineConfig()` and `MemoryPolicyConfig()` are always valid. The
`from_env()` constructors read overrides from the environment:

- MNEMOSYNE_SEARCH_*  (e.g. MNEMOSYNE_SEARCH_DEFAULT_LIMIT=20)
- MNEMOSYNE_POLICY_*  (e.g. MNEMOSYNE_POLICY_DECAY_FUNCTION=sigmoid)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Literal, Mapping, Optional

DecayFunctionName = Literal["linear", "exponential", "sigmoid"]
PolicyType = Literal["decay", "prioritization", "summarization", "consolidation", "cleanup"]

SEARCH_ENV_PREFIX = "MNEMOSYNE_SEARCH_"
POLICY_ENV_PREFIX = "MNEMOSYNE_POLICY_"

_TRUTHY = {"1", "true", "yes", "on"}


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUTHY
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def _env_overrides(prefix: str, defaults: Any, env: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    """Collect `prefix + FIELD_NAME` overrides for the scalar fields of a dataclass."""
    source = os.environ if env is None else env
    overrides: Dict[str, Any] = {}
    for f in fields(defaults):
        raw = source.get(prefix + f.name.upper())
        if raw is None or raw == "":
            continue
        default = getattr(defaults, f.name)
        if default is None:
            overrides[f.name] = int(raw) if raw.lstrip("-").isdigit() else raw
        elif isinstance(default, (bool, int, float, str)):
            overrides[f.name] = _coerce(raw, default)
    return overrides


@dataclass(slots=True)
class SearchEngineConfig:
    """Tunables for AdvancedSearchEngine."""

    default_limit: int = 10
    highlight_window: int = 30  # characters on each side of a keyword hit
    min_token_length: int = 3
    recency_window_days: float = 30.0
    default_conceptual_depth: int = 2
    concept_match_threshold: float = 0.5
    temporal_window: int = 5  # positions on each side in recency order
    temporal_cluster_seconds: float = 3600.0
    cache_enabled: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> SearchEngineConfig:
        """Create from MNEMOSYNE_SEARCH_* environment variables."""
        return cls(**_env_overrides(SEARCH_ENV_PREFIX, cls(), env))


@dataclass(slots=True)
class PriorityWeights:
    """Weights of the five priority factors; not required to sum to 1."""

    importance: float = 0.3
    recency: float = 0.2
    access_frequency: float = 0.2
    emotional_valence: float = 0.15
    relationship_count: float = 0.15


@dataclass(slots=True)
class MemoryPolicyConfig:
    """Knobs for decay, prioritization, clustering and summarization."""

    # Decay
    decay_rate: float = 0.01
    decay_function: str = "exponential"
    access_boost: float = 1.5
    recent_access_days: float = 7.0
    importance_threshold: float = 0.1  # decay floor

    # Prioritization
    priority_factors: PriorityWeights = field(default_factory=PriorityWeights)
    priority_cache_seconds: float = 3600.0
    priority_threshold: float = 0.1
    recency_window_days: float = 30.0
    access_saturation: int = 10
    relationship_saturation: int = 5

    # Clustering / summarization
    summary_method: str = "temporal"
    temporal_gap_seconds: float = 3600.0
    min_cluster_size: int = 2
    max_clusters: int = 5
    kmeans_max_iterations: int = 10
    kmeans_tolerance: float = 0.01
    kmeans_seed: Optional[int] = 0
    preserve_original: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> MemoryPolicyConfig:
        """Create from MNEMOSYNE_POLICY_* environment variables.

        Priority weights are read from MNEMOSYNE_POLICY_WEIGHT_<FACTOR>.
        """
        base = cls()
        config = cls(**_env_overrides(POLICY_ENV_PREFIX, base, env))
        weight_overrides = _env_overrides(POLICY_ENV_PREFIX + "WEIGHT_", base.priority_factors, env)
        if weight_overrides:
            config.priority_factors = PriorityWeights(**weight_overrides)
        return config


@dataclass(slots=True)
class MemoryManagementPolicy:
    """A named policy toggled on or off for a management engine."""

    policy_type: PolicyType
    enabled: bool = True
    name: str = ""
    priority: int = 0
    config: Optional[MemoryPolicyConfig] = None


def default_policies() -> List[MemoryManagementPolicy]:
    return [
        MemoryManagementPolicy(policy_type="decay", name="importance-decay"),
        MemoryManagementPolicy(policy_type="prioritization", name="retention-priority"),
        MemoryManagementPolicy(policy_type="summarization", name="cluster-summaries"),
    ]


__all__ = [
    "DecayFunctionName",
    "MemoryManagementPolicy",
    "MemoryPolicyConfig",
    "PolicyType",
    "PriorityWeights",
    "SearchEngineConfig",
    "default_policies",
]

"""
Search Collaborators - Embedding and concept services consumed by search

WHAT: Pluggable interfaces plus deterministic default implementations
WHERE: mnemosyne/runtime/memory/collaborators.py - service boundary
WHO: AdvancedSearchEngine (semantic, hybrid, conceptual, multi-modal search)
TIME: Defaults are pure CPU, <1ms per call for short texts

Real deployments subclass `EmbeddingService` to wrap an embedding model and
`ConceptExtractor` to wrap an NLP pipeline; network calls, retries and any
asynchrony stay inside those subclasses. The defaults are good enough for
tests and offline agents:

- SimpleEmbeddingService: 384-dim pseudo-vector seeded by a 32-bit string
  hash, cosine similarity
- SimpleConceptExtractor: stop-word filtered tokens, plural/singular
  expansion, normalized Levenshtein similarity
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

import numpy as np

_NON_WORD = re.compile(r"[^\w\s]")


def cosine_similarity(vec1: Sequence[float] | None, vec2: Sequence[float] | None) -> float:
    """Cosine similarity; malformed or mismatched vectors score 0.0."""
    if vec1 is None or vec2 is None or len(vec1) == 0 or len(vec1) != len(vec2):
        return 0.0
    try:
        v1 = np.asarray(vec1, dtype=float)
        v2 = np.asarray(vec2, dtype=float)
    except (TypeError, ValueError):
        return 0.0
    if v1.ndim != 1 or v2.ndim != 1 or not (np.isfinite(v1).all() and np.isfinite(v2).all()):
        return 0.0
    norm = np.linalg.norm(v1) * np.linalg.norm(v2)
    return float(np.dot(v1, v2) / norm) if norm > 0 else 0.0


def string_hash(text: str) -> int:
    """32-bit signed rolling hash (h = h * 31 + c)."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein distance between two strings."""
    if not s1 or not s2:
        return max(len(s1), len(s2))

    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            cost = 0 if c1 == c2 else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


class EmbeddingService:
    """Base embedding collaborator; override both hooks."""

    def generate(self, text: str) -> List[float]:
        """Return the embedding vector for `text`."""

        raise NotImplementedError

    def similarity(self, vec1: Sequence[float], vec2: Sequence[float]) -> float:
        """Return similarity of two vectors of equal dimension."""

        raise NotImplementedError


class ConceptExtractor:
    """Base concept collaborator; override all three hooks."""

    def extract(self, text: str) -> List[str]:
        raise NotImplementedError

    def expand(self, concepts: Iterable[str]) -> List[str]:
        raise NotImplementedError

    def similarity(self, concept1: str, concept2: str) -> float:
        """Return concept similarity in [0, 1]."""

        raise NotImplementedError


class SimpleEmbeddingService(EmbeddingService):
    """Deterministic hash-seeded pseudo-embeddings; not semantically meaningful."""

    def __init__(self, dimensions: int = 384) -> None:
        self.dimensions = dimensions

    def generate(self, text: str) -> List[float]:
        seed = string_hash(text)
        return (np.sin(seed + np.arange(self.dimensions)) * 0.1).tolist()

    def similarity(self, vec1: Sequence[float], vec2: Sequence[float]) -> float:
        return cosine_similarity(vec1, vec2)


class SimpleConceptExtractor(ConceptExtractor):
    """Token-level concepts with string-distance similarity."""

    STOP_WORDS = frozenset(
        {
            "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
            "of", "with", "by", "from", "up", "about", "into", "through", "during",
            "before", "after", "above", "below", "between", "among", "within",
            "without", "under", "over", "inside", "outside", "near", "far",
            "beside", "behind", "across", "around", "against", "toward", "down",
            "downward", "upward", "inward", "outward", "backward", "forward",
            "left", "right", "north", "south", "east", "west", "is", "are", "was",
            "were", "will", "be", "been", "being", "have", "has", "had", "do",
            "does", "did", "can", "could", "should", "would", "may", "might",
            "must", "shall", "need", "in front of", "next to", "away from",
        }
    )

    def __init__(self, max_concepts: int = 10, min_length: int = 4) -> None:
        self.max_concepts = max_concepts
        self.min_length = min_length

    def extract(self, text: str) -> List[str]:
        words = _NON_WORD.sub(" ", text.lower()).split()
        concepts: List[str] = []
        for word in words:
            if len(word) < self.min_length or word in self.STOP_WORDS or word in concepts:
                continue
            concepts.append(word)
            if len(concepts) >= self.max_concepts:
                break
        return concepts

    def expand(self, concepts: Iterable[str]) -> List[str]:
        # Plural/singular variants only
        expanded: List[str] = []
        for concept in concepts:
            expanded.append(concept)
            expanded.append(concept[:-1] if concept.endswith("s") else concept + "s")
        return expanded

    def similarity(self, concept1: str, concept2: str) -> float:
        longest = max(len(concept1), len(concept2))
        if longest == 0:
            return 1.0
        return 1.0 - levenshtein_distance(concept1, concept2) / longest


__all__ = [
    "ConceptExtractor",
    "EmbeddingService",
    "SimpleConceptExtractor",
    "SimpleEmbeddingService",
    "cosine_similarity",
    "levenshtein_distance",
    "string_hash",
]

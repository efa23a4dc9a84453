"""
Telemetry Collection - Engine operation spans

WHAT: Lightweight spans around search and maintenance operations
WHERE: mnemosyne/runtime/memory/telemetry.py - observability layer
WHO: AdvancedSearchEngine and MemoryManagementEngine
TIME: Zero-overhead when disabled, <0.1ms overhead when enabled

Each engine wraps its public operations in a span carrying the strategy or
policy in use, input/output counts and, for search, whether the result came
from the query cache. Clients decide where spans go.
"""

from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Context manager capturing span attributes and duration."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._client = client
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._start: float = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._start = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        self.attributes.setdefault("success", exc is None)
        if exc is not None:
            self.attributes.setdefault("error", type(exc).__name__)
        self.attributes["duration_ms"] = (time.perf_counter() - self._start) * 1000.0
        self._client.emit_span(self.name, self.attributes)
        return False


class TelemetryClient:
    """Base telemetry client; override `emit_span` for custom sinks."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        """Handle span completion. Subclasses override this hook."""

        raise NotImplementedError


@dataclass(slots=True)
class NoOpTelemetryClient(TelemetryClient):
    """Telemetry client that silently discards spans."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:  # noqa: D401 - intentionally empty
        pass


class LoggingTelemetryClient(TelemetryClient):
    """Routes spans to the module logger at a fixed level."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self.level = level

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        payload = {k: attributes[k] for k in sorted(attributes)}
        logger.log(self.level, f"[telemetry] {name}: {payload}")


@dataclass
class RecordingTelemetryClient(TelemetryClient):
    """Keeps finished spans in memory, newest last."""

    spans: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        self.spans.append((name, dict(attributes)))

    def named(self, name: str) -> List[Dict[str, Any]]:
        return [attrs for span_name, attrs in self.spans if span_name == name]


__all__ = [
    "LoggingTelemetryClient",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "TelemetryClient",
    "TelemetrySpan",
]

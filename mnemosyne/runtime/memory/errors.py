"""Exception types raised by the search and management engines."""

from __future__ import annotations

from typing import Optional


class MemoryEngineError(RuntimeError):
    """Base class for engine failures surfaced to callers."""


class CapabilityUnavailableError(MemoryEngineError):
    """Raised when a strategy needs a collaborator that was not configured."""

    def __init__(self, capability: str, strategy: Optional[str] = None) -> None:
        self.capability = capability
        self.strategy = strategy
        detail = f" for {strategy} search" if strategy else ""
        super().__init__(f"{capability} not available{detail}")


class UnsupportedQueryTypeError(MemoryEngineError, ValueError):
    """Raised when a query carries an unknown strategy tag."""

    def __init__(self, query_type: str) -> None:
        self.query_type = query_type
        super().__init__(f"Unsupported search type: {query_type}")


__all__ = [
    "CapabilityUnavailableError",
    "MemoryEngineError",
    "UnsupportedQueryTypeError",
]

"""Mnemosyne agent memory engine package."""

__all__ = [
    "runtime",
]

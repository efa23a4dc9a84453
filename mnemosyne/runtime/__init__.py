"""
Runtime Module

WHAT: Runtime subsystem for agent memory retrieval and lifecycle management
WHERE: mnemosyne/runtime/ - engine layer above the agent's record store
WHO: Agents recalling, decaying, pruning and summarizing their memories
TIME: Per-call CPU work over in-memory snapshots; no I/O

The record store (database, vector index, file) lives outside this package.
Engines here receive record snapshots per call and hand back rankings,
priorities and updated copies; persistence is the caller's job.
"""

__all__ = ["memory"]

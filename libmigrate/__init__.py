"""
Legacy Library Migration

A migration toolkit for moving a school library's records out of a legacy
SQLite database file and into a normalized target record store.

Supports:
- Schema inference over source files with unknown table and column names
- Legacy-ID to target-ID resolution, including cold-start reconstruction
- Idempotent, resumable, batched imports with per-record error isolation
- Derived fines computed from imported borrowing history
"""

__version__ = "0.1.0"

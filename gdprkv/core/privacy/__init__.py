"""
Subject-owned records and their GDPR lifecycle.

This package provides:
- Policy / Subject / Record models and the tombstone retention math
- storage ports with in-process implementations
- the record write/tombstone engine, subject erasure and the purge sweeper

Nothing here writes audit events on its own except the purge sweeper.
"""

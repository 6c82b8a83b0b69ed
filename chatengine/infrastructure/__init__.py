"""Infrastructure Layer — storage, completion backends and cross-cutting concerns.

Invariants:
    - All external calls wrapped with retry/error mapping into core/errors.py types

Design Decisions:
    - Resilient wrappers over raw clients (ADR: single responsibility)
"""

"""Core Layer — pure domain logic, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Store mutations are synchronous; only the shell awaits IO around them

Design Decisions:
    - Functional core separated from imperative shell (ADR: impureim sandwich)
"""

"""Services Layer — async orchestration of the send, file and regeneration flows.

Invariants:
    - Services compose core stores with infrastructure capabilities via constructor injection
    - No service reaches for a module-level singleton

Design Decisions:
    - ChatEngine is the only container; routes and tests hold it explicitly
"""

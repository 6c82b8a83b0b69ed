"""Database Infrastructure — SQLAlchemy declarative Base.

Invariants:
    - Single async engine per process (initialized via init_db)

Design Decisions:
    - aiosqlite driver by default: the snapshot is local, embedded storage
"""

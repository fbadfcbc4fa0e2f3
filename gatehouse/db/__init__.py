"""Database Base — SQLAlchemy declarative Base and shared column types.

Invariants:
    - All timestamps are timezone-aware UTC (UTCDateTime)

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for tests
"""

"""Gatehouse — credential authentication with lockout and an idempotent email job queue.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Explicit imports only, no star exports
"""

__version__ = "1.0.0"

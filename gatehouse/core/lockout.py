"""Lockout Rules — pure decisions over the state returned by the atomic increment.

Invariants:
    - The lock decision itself is made by the store in one statement; these
      functions only interpret its result
    - just_locked() is true for exactly one increment per lock episode: the one
      whose post-increment count equals the threshold
    - No IO, no async

Design Decisions:
    - Equality, not >=, for just_locked: concurrent requests overshoot the
      threshold, and only the exact crosser may trigger the notification
"""

from datetime import datetime

from gatehouse.core.repository_protocols import LockoutState


def is_locked(locked_at: datetime | None) -> bool:
    return locked_at is not None


def just_locked(state: LockoutState, max_attempts: int) -> bool:
    return state.failed_login_attempts == max_attempts and state.locked_at is not None

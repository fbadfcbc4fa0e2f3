"""Lockout Coordinator — attempt counting and lock transitions over the credential store.

Invariants:
    - Every transition is the store's single atomic statement; no lock is held
      in-process and nothing is read before it is written
    - The lock notification fires for the exact crosser only (core/lockout.py)
"""

import logging
from dataclasses import dataclass

from gatehouse.core.domain_types import UserId
from gatehouse.core.lockout import just_locked
from gatehouse.core.repository_protocols import CredentialStore, LockoutState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutOutcome:
    state: LockoutState
    just_locked: bool


class LockoutCoordinator:
    def __init__(self, store: CredentialStore, max_attempts: int):
        self._store = store
        self.max_attempts = max_attempts

    async def record_failure(self, user_id: UserId) -> LockoutOutcome:
        state = await self._store.increment_failed_attempts_and_maybe_lock(
            user_id, self.max_attempts,
        )
        locked_now = just_locked(state, self.max_attempts)
        if locked_now:
            logger.warning(
                "Account locked after repeated failed logins",
                extra={
                    "user_id": str(user_id),
                    "attempt": state.failed_login_attempts,
                },
            )
        return LockoutOutcome(state=state, just_locked=locked_now)

    async def reset(self, user_id: UserId) -> None:
        await self._store.reset_failed_attempts(user_id)

"""ORM Models — SQLAlchemy declarative models for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - User owns lockout state; sessions and reset tokens reference it

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from gatehouse.models.role import Role  # noqa: F401
from gatehouse.models.user import User  # noqa: F401
from gatehouse.models.auth_session import AuthSession  # noqa: F401
from gatehouse.models.password_reset_token import PasswordResetToken  # noqa: F401
from gatehouse.models.job import Job  # noqa: F401
from gatehouse.models.sent_marker import SentMarker  # noqa: F401

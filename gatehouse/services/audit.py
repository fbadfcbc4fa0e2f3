"""Audit Trail — security events written to the dedicated audit logger.

Invariants:
    - One record per security-relevant outcome (login, logout, reset)
    - Failure reasons are recorded here and never returned to clients
    - Never raises: an audit write can't fail the request it describes
"""

import logging

from gatehouse.core.domain_types import LoginFailureReason
from gatehouse.infrastructure.observability import AUDIT_LOGGER

audit_logger = logging.getLogger(AUDIT_LOGGER)


class AuditAction:
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    LOGOUT_ALL = "LOGOUT_ALL"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"


def audit(
    action: str,
    *,
    user_id: object | None = None,
    session_id: object | None = None,
    reason: LoginFailureReason | None = None,
    ip_address: str | None = None,
    request_id: str | None = None,
    level: int = logging.INFO,
) -> None:
    audit_logger.log(
        level,
        action,
        extra={
            "action": action,
            "user_id": str(user_id) if user_id else None,
            "session_id": str(session_id) if session_id else None,
            "reason": reason.value if reason else None,
            "ip_address": ip_address,
            "request_id": request_id,
        },
    )


def audit_login_failed(
    reason: LoginFailureReason,
    *,
    user_id: object | None = None,
    ip_address: str | None = None,
    request_id: str | None = None,
) -> None:
    level = logging.WARNING if reason is LoginFailureReason.LOCKED_NOW else logging.INFO
    audit(
        AuditAction.LOGIN_FAILED, user_id=user_id, reason=reason,
        ip_address=ip_address, request_id=request_id, level=level,
    )

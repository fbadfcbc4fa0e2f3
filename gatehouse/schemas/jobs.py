"""Job Payload Schemas — one pydantic model per JobType, validated at enqueue and at dispatch.

Invariants:
    - PAYLOAD_SCHEMAS covers every JobType member (checked in tests)
    - Unknown keys are rejected: a payload for the wrong type never validates silently
    - Validation failures surface as core ValidationError (400 / non-retryable)
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError

from gatehouse.core.domain_types import JobType, parse_job_type
from gatehouse.core.errors import ValidationError


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    to: EmailStr


class VerificationPayload(_Payload):
    user_id: str = Field(min_length=1)
    token: str = Field(min_length=1)


class PasswordResetPayload(_Payload):
    user_id: str = Field(min_length=1)
    token: str = Field(min_length=1)


class WelcomePayload(_Payload):
    user_id: str = Field(min_length=1)


class AccountLockedPayload(_Payload):
    user_id: str = Field(min_length=1)


class InvitationPayload(_Payload):
    token: str = Field(min_length=1)
    role_name: str = Field(min_length=1)
    expires_at: datetime


EmailPayload = (
    VerificationPayload | PasswordResetPayload | WelcomePayload
    | AccountLockedPayload | InvitationPayload
)

PAYLOAD_SCHEMAS: dict[JobType, type[_Payload]] = {
    JobType.VERIFICATION: VerificationPayload,
    JobType.PASSWORD_RESET: PasswordResetPayload,
    JobType.WELCOME: WelcomePayload,
    JobType.ACCOUNT_LOCKED: AccountLockedPayload,
    JobType.INVITATION: InvitationPayload,
}


def validate_payload(job_type: JobType | str, payload: dict[str, Any]) -> EmailPayload:
    """Parse a raw payload for its type. Raises UnknownJobTypeError or ValidationError."""
    resolved = job_type if isinstance(job_type, JobType) else parse_job_type(job_type)
    try:
        return PAYLOAD_SCHEMAS[resolved].model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid payload for {resolved.value}",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err["loc"]),
                    "message": err["msg"],
                    "type": err["type"],
                }
                for err in e.errors()
            ],
        ) from e

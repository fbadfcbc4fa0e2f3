"""Email Templates — renders subject, HTML and plain-text bodies per email job type.

Invariants:
    - Every JobType renders (exhaustive match, assert_never on fallthrough)
    - HTML is autoescaped; plain text is not
    - Tokens are URL-quoted into links; the link is the only place a token appears
"""

from dataclasses import dataclass
from typing import TypeVar, assert_never
from urllib.parse import quote

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from gatehouse.core.domain_types import JobType
from gatehouse.core.errors import InternalError
from gatehouse.schemas.jobs import (
    AccountLockedPayload, EmailPayload, InvitationPayload, PasswordResetPayload,
    VerificationPayload, WelcomePayload,
)

_env = Environment(
    loader=PackageLoader("gatehouse", "templates/email"),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


P = TypeVar("P", bound=EmailPayload)


def _expect(payload: EmailPayload, model: type[P]) -> P:
    if not isinstance(payload, model):
        raise InternalError(
            f"{type(payload).__name__} cannot render as {model.__name__}",
            code="EMAIL_PAYLOAD_MISMATCH",
        )
    return payload


def _link(base_url: str, path: str, token: str | None = None) -> str:
    url = f"{base_url.rstrip('/')}/{path}"
    return f"{url}?token={quote(token, safe='')}" if token else url


class EmailRenderer:
    def __init__(self, base_url: str, password_reset_expiry_hours: int = 1):
        self._base_url = base_url
        self._reset_hours = password_reset_expiry_hours

    def render(self, job_type: JobType, payload: EmailPayload) -> RenderedEmail:
        match job_type:
            case JobType.VERIFICATION:
                payload = _expect(payload, VerificationPayload)
                return self._render(
                    "verification", "Verify your email",
                    action_url=_link(self._base_url, "verify-email", payload.token),
                    action_label="Verify Email",
                )
            case JobType.PASSWORD_RESET:
                payload = _expect(payload, PasswordResetPayload)
                return self._render(
                    "password_reset", "Reset your password",
                    action_url=_link(self._base_url, "reset-password", payload.token),
                    action_label="Reset Password",
                    expiry_hours=self._reset_hours,
                )
            case JobType.WELCOME:
                _expect(payload, WelcomePayload)
                return self._render(
                    "welcome", "Welcome aboard",
                    action_url=_link(self._base_url, "login"),
                    action_label="Sign In",
                )
            case JobType.ACCOUNT_LOCKED:
                _expect(payload, AccountLockedPayload)
                return self._render(
                    "account_locked", "Your account has been locked",
                    action_url=_link(self._base_url, "forgot-password"),
                    action_label="Reset Password",
                )
            case JobType.INVITATION:
                payload = _expect(payload, InvitationPayload)
                expires = payload.expires_at
                return self._render(
                    "invitation", "You've been invited to join",
                    heading="You've been invited",
                    action_url=_link(self._base_url, "accept-invitation", payload.token),
                    action_label="Accept Invitation",
                    role_name=payload.role_name,
                    expires_on=f"{expires:%A, %B} {expires.day}, {expires.year}",
                )
            case _:
                assert_never(job_type)

    @staticmethod
    def _render(
        name: str, subject: str, heading: str | None = None, **context: object,
    ) -> RenderedEmail:
        context["heading"] = heading or subject
        return RenderedEmail(
            subject=subject,
            html=_env.get_template(f"{name}.html").render(**context),
            text=_env.get_template(f"{name}.txt").render(**context),
        )

"""Tests for per-type email rendering.

Tests:
    - Every JobType renders a subject, HTML and text body
    - Tokens appear URL-quoted in the action link of both bodies
    - HTML bodies escape payload values; text bodies keep them verbatim
    - The reset email states the configured expiry
    - A payload of the wrong model is an InternalError, never a half-rendered email
"""

from datetime import datetime, timezone

import pytest

from gatehouse.core.domain_types import JobType
from gatehouse.core.errors import InternalError
from gatehouse.schemas.jobs import validate_payload
from gatehouse.services.email_templates import EmailRenderer

BASE_URL = "https://app.gatehouse.example.org"

PAYLOADS = {
    JobType.VERIFICATION: {"to": "ada@example.org", "user_id": "u-1", "token": "tok/en+1"},
    JobType.PASSWORD_RESET: {"to": "ada@example.org", "user_id": "u-1", "token": "tok/en+1"},
    JobType.WELCOME: {"to": "ada@example.org", "user_id": "u-1"},
    JobType.ACCOUNT_LOCKED: {"to": "ada@example.org", "user_id": "u-1"},
    JobType.INVITATION: {
        "to": "ada@example.org",
        "token": "tok/en+1",
        "role_name": "<b>editor</b>",
        "expires_at": datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc),
    },
}


def render(job_type: JobType, renderer: EmailRenderer | None = None):
    renderer = renderer or EmailRenderer(BASE_URL, password_reset_expiry_hours=1)
    return renderer.render(job_type, validate_payload(job_type, PAYLOADS[job_type]))


@pytest.mark.parametrize("job_type", list(JobType))
def test_every_type_renders(job_type):
    email = render(job_type)

    assert email.subject
    assert "<html" in email.html.lower()
    assert email.text.strip()
    assert BASE_URL in email.text


@pytest.mark.parametrize(("job_type", "path"), [
    (JobType.VERIFICATION, "verify-email"),
    (JobType.PASSWORD_RESET, "reset-password"),
    (JobType.INVITATION, "accept-invitation"),
])
def test_token_links_are_quoted(job_type, path):
    email = render(job_type)

    link = f"{BASE_URL}/{path}?token=tok%2Fen%2B1"
    assert link in email.text
    assert link in email.html
    assert "tok/en+1" not in email.text


def test_subjects():
    assert render(JobType.VERIFICATION).subject == "Verify your email"
    assert render(JobType.PASSWORD_RESET).subject == "Reset your password"
    assert render(JobType.ACCOUNT_LOCKED).subject == "Your account has been locked"
    assert render(JobType.INVITATION).subject == "You've been invited to join"


def test_html_escapes_payload_values():
    email = render(JobType.INVITATION)

    assert "&lt;b&gt;editor&lt;/b&gt;" in email.html
    assert "<b>editor</b>" not in email.html
    assert "<b>editor</b>" in email.text
    assert "Monday, March 9, 2026" in email.text


def test_reset_expiry_wording():
    one = render(JobType.PASSWORD_RESET)
    two = render(JobType.PASSWORD_RESET, EmailRenderer(BASE_URL, password_reset_expiry_hours=2))

    assert "expire in 1 hour." in one.text
    assert "expire in 2 hours." in two.text


def test_mismatched_payload_raises_internal_error():
    welcome = validate_payload(JobType.WELCOME, PAYLOADS[JobType.WELCOME])

    with pytest.raises(InternalError) as exc_info:
        EmailRenderer(BASE_URL).render(JobType.PASSWORD_RESET, welcome)

    assert exc_info.value.code == "EMAIL_PAYLOAD_MISMATCH"

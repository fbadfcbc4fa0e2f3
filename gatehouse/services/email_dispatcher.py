"""Email Dispatcher — idempotent send of one email job.

Invariants:
    - A job id with a sent marker is never handed to the transport again
    - The marker is written only after the transport confirmed the send
    - A failed marker write is logged and swallowed: a later redelivery may send
      once more, but a send is never dropped
    - Transport failures propagate as ServiceUnavailableError(EMAIL_SEND_FAILED)
      so the queue's backoff drives the retry
"""

import logging

from gatehouse.core.domain_types import JobId, JobType
from gatehouse.core.errors import GatehouseError, ServiceUnavailableError
from gatehouse.core.repository_protocols import (
    EmailMessage, EmailTransport, SentMarkerStore,
)
from gatehouse.schemas.jobs import validate_payload
from gatehouse.services.email_templates import EmailRenderer

logger = logging.getLogger(__name__)


class EmailDispatcher:
    def __init__(
        self,
        transport: EmailTransport,
        markers: SentMarkerStore,
        renderer: EmailRenderer,
        sender: str,
    ):
        self._transport = transport
        self._markers = markers
        self._renderer = renderer
        self._sender = sender

    async def dispatch(self, job_id: JobId, job_type: JobType, payload: dict) -> bool:
        """Send the email for this job. Returns False when it was already sent."""
        log_extra = {"job_id": job_id, "job_type": job_type.value}
        data = validate_payload(job_type, payload)

        if await self._markers.is_sent(job_id):
            logger.warning("Email already sent, skipping duplicate", extra=log_extra)
            return False

        rendered = self._renderer.render(job_type, data)
        message = EmailMessage(
            sender=self._sender,
            to=data.to,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
        )
        try:
            await self._transport.send(message)
        except Exception as e:
            if isinstance(e, ServiceUnavailableError) and e.code == "EMAIL_SEND_FAILED":
                raise
            logger.error(f"Email send failed: {e}", extra=log_extra)
            raise ServiceUnavailableError(
                "Failed to send email", code="EMAIL_SEND_FAILED",
            ) from e

        try:
            await self._markers.mark_sent(job_id)
        except GatehouseError as e:
            logger.error(
                "Failed to mark email sent, duplicate possible on retry",
                extra={**log_extra, "error_code": e.code},
            )

        logger.info(f"Email sent: {rendered.subject}", extra=log_extra)
        return True

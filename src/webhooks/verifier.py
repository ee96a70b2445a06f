"""
Inbound webhook verifier.

Validates a status-change callback, authenticates it against the signing
secret recorded for the job, and only then hands it to the completion
handler. Every failure is mapped to an HTTP status code.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..job_registry.schemas import JobRecord
from ..shared.config import SecuritySettings
from .exceptions import (
    AuthenticationError, JobNotFoundError, ValidationError, WebhookError
)
from .metrics import WebhookMetrics, get_webhook_metrics
from .models import StatusChangeEvent, STATUS_CHANGE_EVENT
from .notifier import JobLookup
from .security import WebhookSecurity
from .validation import WebhookValidator

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'X-Webhook-Signature'
EVENT_HEADER = 'X-Webhook-Event'
WEBHOOK_ID_HEADER = 'X-Webhook-ID'

CompletionHandler = Callable[[StatusChangeEvent, JobRecord], Awaitable[Any]]


class VerificationState(str, Enum):
    """Terminal states of one inbound request."""
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    REJECTED = "rejected"


@dataclass
class VerificationResult:
    """Outcome of verifying (and handling) one inbound callback."""
    status_code: int
    state: VerificationState
    message: str
    event: Optional[StatusChangeEvent] = None
    record: Optional[JobRecord] = None
    authenticated: bool = False
    handler_result: Any = None

    def to_response(self) -> dict:
        body = {"received": self.state != VerificationState.REJECTED, "status": self.state.value, "message": self.message}
        if self.event is not None:
            body["agentStatus"] = self.event.status.value
        if self.state == VerificationState.ACCEPTED:
            body["authenticated"] = self.authenticated
        return body


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup over any mapping."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class InboundVerifier:
    """Receiving side of the status-change protocol."""

    def __init__(
        self,
        registry: JobLookup,
        settings: Optional[SecuritySettings] = None,
        metrics: Optional[WebhookMetrics] = None
    ):
        self.registry = registry
        self.settings = settings or SecuritySettings()
        self.metrics = metrics or get_webhook_metrics()

    async def verify(self, raw_body: bytes, headers: Mapping[str, str], job_id: str) -> VerificationResult:
        """
        Validate and authenticate an inbound callback without handling it.

        The job is looked up by the URL path segment, never by the id in
        the body. Accepted results carry the event and the job record.
        """
        try:
            return await self._verify(raw_body, headers, job_id)
        except WebhookError as e:
            self.metrics.increment('inbound_rejected')
            logger.warning(f"Rejected callback for job {job_id}: {e.message} ({e.status_code})")
            return VerificationResult(e.status_code, VerificationState.REJECTED, e.message)
        except Exception as e:
            self.metrics.increment('inbound_rejected')
            logger.error(f"Error verifying callback for job {job_id}: {e}", exc_info=True)
            return VerificationResult(500, VerificationState.REJECTED, "Webhook verification failed")

    async def _verify(self, raw_body: bytes, headers: Mapping[str, str], job_id: str) -> VerificationResult:
        logger.info(
            f"Agent callback received for job {job_id} "
            f"(webhook id {_header(headers, WEBHOOK_ID_HEADER)}, signed: {bool(_header(headers, SIGNATURE_HEADER))})"
        )

        if self.settings.expected_user_agent:
            if _header(headers, 'User-Agent') != self.settings.expected_user_agent:
                raise AuthenticationError("Invalid User-Agent")

        event_header = _header(headers, EVENT_HEADER)
        if event_header is not None and event_header != STATUS_CHANGE_EVENT:
            raise ValidationError(f"Unsupported event type: {event_header}")

        event = WebhookValidator.parse_status_change(raw_body)

        if not event.is_terminal:
            logger.info(f"Ignoring non-final status {event.status.value} for job {job_id}")
            self.metrics.increment('inbound_ignored')
            return VerificationResult(200, VerificationState.IGNORED, "Non-final status ignored", event=event)

        record = await self.registry.find(job_id)
        if record is None:
            raise JobNotFoundError(job_id)

        authenticated = False
        if record.has_secret:
            signature = _header(headers, SIGNATURE_HEADER)
            if not signature:
                raise AuthenticationError("Missing signature")
            if not WebhookSecurity.verify(record.signing_secret, raw_body, signature):
                raise AuthenticationError("Invalid signature")
            authenticated = True
        elif self.settings.reject_unsigned_webhooks:
            raise AuthenticationError("No signing secret on record for this job")
        else:
            logger.warning(
                f"No signing secret on record for job {job_id}; accepting callback unauthenticated. "
                "Set REJECT_UNSIGNED_WEBHOOKS=true to refuse these."
            )
            self.metrics.increment('unauthenticated_accepts')

        if event.id != job_id:
            logger.warning(f"Callback body id {event.id} differs from path job id {job_id}")

        return VerificationResult(
            200,
            VerificationState.ACCEPTED,
            "Webhook verified",
            event=event,
            record=record,
            authenticated=authenticated
        )

    async def process(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        job_id: str,
        handler: Optional[CompletionHandler] = None
    ) -> VerificationResult:
        """
        Verify a callback and, when accepted, invoke the completion handler.

        A handler failure turns the response into a 500 but leaves the
        verification outcome (state, authenticated) intact.
        """
        result = await self.verify(raw_body, headers, job_id)

        if result.state != VerificationState.ACCEPTED:
            return result

        self.metrics.increment('inbound_accepted')

        if handler is None:
            return result

        try:
            result.handler_result = await handler(result.event, result.record)
            result.message = "Webhook processed"
        except Exception as e:
            self.metrics.increment('handler_failures')
            logger.error(f"Completion handler failed for job {job_id}: {e}", exc_info=True)
            result.status_code = 500
            result.message = f"Failed to process accepted webhook: {e}"

        return result

"""
Completion notifier.

Turns a terminal job-status change into a signed completion event and
drives its delivery to the job's callback URL. Notification is
best-effort: nothing here raises into the flow that reported the status.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol, Set

from ..job_registry.schemas import JobRecord
from .delivery import WebhookDeliveryService
from .metrics import WebhookMetrics, get_webhook_metrics
from .models import (
    AgentEventType, AgentInfo, AgentStatusReport, AgentWebhookPayload,
    JobStatus, NotificationState, TERMINAL_STATUSES, to_utc_iso, utc_now_iso
)

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Agent execution failed"


class JobLookup(Protocol):
    async def find(self, job_id: str) -> Optional[JobRecord]:
        ...


class NotificationOutcome(str, Enum):
    """Result of one notify() call."""
    SKIPPED = "skipped"
    UNNOTIFIABLE = "unnotifiable"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"


def notification_state(status: JobStatus) -> NotificationState:
    """Map a job status onto the notifier's per-job state."""
    if status == JobStatus.FINISHED:
        return NotificationState.SUCCEEDED
    if status == JobStatus.ERROR:
        return NotificationState.FAILED
    return NotificationState.PENDING


def build_completion_payload(report: AgentStatusReport, record: JobRecord) -> AgentWebhookPayload:
    """
    Build the outbound event for a terminal status report.

    Metadata is copied from the registry record unchanged.
    """
    if report.status not in TERMINAL_STATUSES:
        raise ValueError(f"Cannot build a completion event for status {report.status.value}")

    failed = report.status == JobStatus.ERROR

    return AgentWebhookPayload(
        event=AgentEventType.FAILED if failed else AgentEventType.COMPLETED,
        agent=AgentInfo(
            id=report.job_id,
            name=report.name or report.job_id,
            status=report.status,
            summary=report.summary,
            created_at=report.created_at or to_utc_iso(record.created_at),
            finished_at=utc_now_iso(),
            pr_url=report.pr_url,
            error=(report.error or DEFAULT_FAILURE_MESSAGE) if failed else None,
        ),
        metadata=dict(record.metadata),
    )


class CompletionNotifier:
    """Notifies a job's requester when the job reaches a terminal state."""

    def __init__(
        self,
        registry: JobLookup,
        delivery_service: WebhookDeliveryService,
        metrics: Optional[WebhookMetrics] = None
    ):
        self.registry = registry
        self.delivery_service = delivery_service
        self.metrics = metrics or get_webhook_metrics()
        self._background_tasks: Set[asyncio.Task] = set()

    async def notify(self, report: AgentStatusReport) -> NotificationOutcome:
        """
        Handle a status report for one job.

        Non-terminal statuses are ignored. Duplicate terminal reports are
        delivered again; receivers must be idempotent.
        """
        state = notification_state(report.status)
        if state == NotificationState.PENDING:
            logger.debug(f"Ignoring non-terminal status {report.status.value} for job {report.job_id}")
            self.metrics.increment('notifications_skipped')
            return NotificationOutcome.SKIPPED

        try:
            record = await self.registry.find(report.job_id)
        except Exception as e:
            logger.error(f"Job registry lookup failed for {report.job_id}: {e}", exc_info=True)
            record = None

        if record is None:
            logger.error(f"No registry record for job {report.job_id}; completion cannot be notified")
            self.metrics.increment('unnotifiable_jobs')
            return NotificationOutcome.UNNOTIFIABLE

        if not record.has_secret:
            logger.warning(f"Job {report.job_id} has no signing secret; sending unsigned completion event")

        payload = build_completion_payload(report, record)

        delivered = await self.delivery_service.deliver(
            record.callback_url,
            payload,
            secret=record.signing_secret
        )

        if delivered:
            logger.info(f"Job {report.job_id} {state.value}: completion event delivered to {record.callback_url}")
            return NotificationOutcome.DELIVERED

        logger.error(f"Job {report.job_id} {state.value}: completion event could not be delivered to {record.callback_url}")
        return NotificationOutcome.DELIVERY_FAILED

    def notify_in_background(self, report: AgentStatusReport) -> asyncio.Task:
        """Schedule notify() without blocking the caller."""
        task = asyncio.create_task(self.notify(report))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    @property
    def pending_notifications(self) -> int:
        return len(self._background_tasks)

    async def drain(self) -> None:
        """Wait for all scheduled notifications (used at shutdown)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

"""
Job registration API endpoints.

Callers register a job before launching it, receive the signing secret
to embed in the launch request, and push status reports that trigger
completion notifications.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ...webhooks.models import AgentStatusReport, JobStatus, TERMINAL_STATUSES
from ...webhooks.security import WebhookSecurity
from ..dependencies import RelayServices, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


# Request/Response models
class RegisterJobRequest(BaseModel):
    """Request model for registering a launched job."""
    job_id: str = Field(..., min_length=1)
    callback_url: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RegisterJobResponse(BaseModel):
    """Response model for a registered job."""
    job_id: str
    signing_secret: str
    webhook_url: str


class JobResponse(BaseModel):
    """Response model for a job record; the secret is masked."""
    job_id: str
    callback_url: str
    signing_secret: Optional[str]
    has_secret: bool
    metadata: Dict[str, Any]
    created_at: datetime


class StatusReportRequest(BaseModel):
    """A status observed for a job."""
    status: JobStatus
    name: Optional[str] = None
    summary: Optional[str] = None
    created_at: Optional[str] = None
    pr_url: Optional[str] = None
    error: Optional[str] = None


class StatusReportResponse(BaseModel):
    job_id: str
    status: JobStatus
    notification: str


@router.post("/jobs", response_model=RegisterJobResponse, status_code=status.HTTP_201_CREATED)
async def register_job(
    request: RegisterJobRequest,
    services: RelayServices = Depends(get_services)
):
    """
    Register a job and issue its signing secret.

    `webhook_url` is the inbound callback URL to hand to the agent API
    together with the secret.
    """
    secret = await services.registry.register(request.job_id, request.callback_url, request.metadata)

    if services.poller is not None:
        services.poller.track(request.job_id)

    return RegisterJobResponse(
        job_id=request.job_id,
        signing_secret=secret,
        webhook_url=services.settings.callback_url_for(request.job_id)
    )


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, services: RelayServices = Depends(get_services)):
    """Get a registered job."""
    record = await services.registry.lookup(job_id)

    return JobResponse(
        job_id=record.job_id,
        callback_url=record.callback_url,
        signing_secret=WebhookSecurity.mask_secret(record.signing_secret) if record.has_secret else None,
        has_secret=record.has_secret,
        metadata=record.metadata,
        created_at=record.created_at
    )


@router.post("/jobs/{job_id}/status", response_model=StatusReportResponse, status_code=status.HTTP_202_ACCEPTED)
async def report_job_status(
    job_id: str,
    request: StatusReportRequest,
    services: RelayServices = Depends(get_services)
):
    """
    Report a job's status.

    Terminal statuses schedule a completion notification in the
    background; the response does not wait for delivery.
    """
    await services.registry.lookup(job_id)

    report = AgentStatusReport(job_id=job_id, **request.model_dump())

    if report.status in TERMINAL_STATUSES:
        services.notifier.notify_in_background(report)
        notification = "scheduled"
    else:
        notification = "skipped"

    logger.info(f"Status {report.status.value} reported for job {job_id}; notification {notification}")

    return StatusReportResponse(job_id=job_id, status=report.status, notification=notification)

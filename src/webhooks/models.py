"""
Webhook data models.

Defines the wire formats for outbound completion events and inbound
status-change callbacks, plus the ephemeral delivery attempt records.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    """Status values reported by the coding-agent API."""
    CREATING = "CREATING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = frozenset({JobStatus.FINISHED, JobStatus.ERROR})


class AgentEventType(str, Enum):
    """Outbound completion event types."""
    COMPLETED = "agent.completed"
    FAILED = "agent.failed"


class NotificationState(str, Enum):
    """Per-job notification state."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class DeliveryOutcome(str, Enum):
    """Classification of a single delivery attempt."""
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


STATUS_CHANGE_EVENT = "statusChange"

# Metadata keys the email reply handler understands. The core never
# inspects metadata; these are only read by the reply handler.
METADATA_EMAIL_AGENT_ID = "emailAgentId"
METADATA_ORIGINAL_EMAIL_ID = "originalEmailId"
METADATA_SENDER_EMAIL = "senderEmail"
METADATA_EMAIL_SUBJECT = "emailSubject"
METADATA_AGENT_EMAIL_ADDRESS = "agentEmailAddress"


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with a Z suffix."""
    return to_utc_iso(datetime.now(timezone.utc))


def to_utc_iso(value: datetime) -> str:
    """ISO 8601 in UTC with a Z suffix; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_terminal(status: Any) -> bool:
    """True for statuses that end a job (FINISHED, ERROR)."""
    try:
        return JobStatus(status) in TERMINAL_STATUSES
    except ValueError:
        return False


class AgentInfo(BaseModel):
    """Agent section of an outbound completion event."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="External job identifier")
    name: str = Field(..., description="Human-readable agent name")
    status: JobStatus = Field(..., description="Terminal status")
    summary: Optional[str] = Field(None, description="Result summary")
    created_at: str = Field(..., alias="createdAt", description="Job creation time (ISO 8601)")
    finished_at: str = Field(..., alias="finishedAt", description="Notification time (ISO 8601)")
    pr_url: Optional[str] = Field(None, alias="prUrl", description="Pull request URL")
    error: Optional[str] = Field(None, description="Failure description")


class AgentWebhookPayload(BaseModel):
    """Outbound completion event posted to a job's callback URL."""
    model_config = ConfigDict(populate_by_name=True)

    event: AgentEventType = Field(..., description="Event type")
    agent: AgentInfo = Field(..., description="Agent details")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Caller metadata, passed through")

    def to_wire(self) -> Dict[str, Any]:
        """Wire representation: camelCase keys, absent optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json_bytes(self) -> bytes:
        """Serialize once; these exact bytes are signed and sent."""
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")


class StatusChangeSource(BaseModel):
    """Source repository of a status-change callback."""
    repository: Optional[str] = None
    ref: Optional[str] = None


class StatusChangeTarget(BaseModel):
    """Target branch / PR of a status-change callback."""
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    branch_name: Optional[str] = Field(None, alias="branchName")
    pr_url: Optional[str] = Field(None, alias="prUrl")


class StatusChangeEvent(BaseModel):
    """Inbound status-change callback from the coding-agent API."""
    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(..., description="Always 'statusChange'")
    timestamp: str = Field(..., description="Event time (ISO 8601)")
    id: str = Field(..., description="Agent / job identifier")
    status: JobStatus = Field(..., description="Reported status")
    source: Optional[StatusChangeSource] = Field(default_factory=StatusChangeSource)
    target: Optional[StatusChangeTarget] = Field(default_factory=StatusChangeTarget)
    summary: Optional[str] = None

    @field_validator("source", "target", mode="after")
    @classmethod
    def default_when_null(cls, v, info):
        # Explicit nulls read the same as an absent section
        if v is None:
            return StatusChangeSource() if info.field_name == "source" else StatusChangeTarget()
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class AgentStatusReport(BaseModel):
    """A job status observed by a poll or pushed by a caller."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., description="External job identifier")
    status: JobStatus = Field(..., description="Observed status")
    name: Optional[str] = Field(None, description="Agent name")
    summary: Optional[str] = Field(None, description="Result summary")
    created_at: Optional[str] = Field(None, description="Job creation time (ISO 8601)")
    pr_url: Optional[str] = Field(None, description="Pull request URL")
    error: Optional[str] = Field(None, description="Failure description")


class DeliveryAttempt(BaseModel):
    """Individual delivery attempt details (not persisted)."""
    attempt_number: int = Field(..., ge=1, description="1-based attempt counter")
    outcome: DeliveryOutcome = Field(..., description="Attempt classification")
    status_code: Optional[int] = Field(None, description="Response status code")
    error: Optional[str] = Field(None, description="Error message")
    duration_ms: Optional[int] = Field(None, description="Request duration in milliseconds")


class DeliveryResult(BaseModel):
    """Outcome of a full delivery sequence."""
    url: str
    success: bool
    attempts: List[DeliveryAttempt] = Field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

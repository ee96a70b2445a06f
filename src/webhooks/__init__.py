"""
Webhook system for the Agent Callback Relay.

Signing, outbound delivery with retries, completion notification and
inbound status-change verification.
"""

from .models import (
    AgentEventType,
    AgentInfo,
    AgentStatusReport,
    AgentWebhookPayload,
    DeliveryAttempt,
    DeliveryOutcome,
    DeliveryResult,
    JobStatus,
    NotificationState,
    StatusChangeEvent,
    TERMINAL_STATUSES,
)

from .exceptions import (
    WebhookError,
    ValidationError,
    AuthenticationError,
    JobNotFoundError,
    DuplicateJobError,
    ReplyError,
)

from .security import WebhookSecurity
from .validation import WebhookValidator
from .delivery import WebhookDeliveryService, next_delay
from .notifier import CompletionNotifier, NotificationOutcome
from .verifier import InboundVerifier, VerificationResult, VerificationState

__all__ = [
    # Models
    'AgentEventType',
    'AgentInfo',
    'AgentStatusReport',
    'AgentWebhookPayload',
    'DeliveryAttempt',
    'DeliveryOutcome',
    'DeliveryResult',
    'JobStatus',
    'NotificationState',
    'StatusChangeEvent',
    'TERMINAL_STATUSES',

    # Errors
    'WebhookError',
    'ValidationError',
    'AuthenticationError',
    'JobNotFoundError',
    'DuplicateJobError',
    'ReplyError',

    # Services
    'WebhookSecurity',
    'WebhookValidator',
    'WebhookDeliveryService',
    'next_delay',
    'CompletionNotifier',
    'NotificationOutcome',
    'InboundVerifier',
    'VerificationResult',
    'VerificationState',
]

"""
Webhook error taxonomy.

Each error carries the HTTP status code it maps to when it reaches the
inbound HTTP surface.
"""

from typing import Optional


class WebhookError(Exception):
    """Base class for webhook relay errors."""

    status_code = 500
    error_type = "webhook_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(WebhookError):
    """Malformed or unsupported payload."""

    status_code = 400
    error_type = "validation_error"


class AuthenticationError(WebhookError):
    """Missing or invalid signature."""

    status_code = 401
    error_type = "authentication_error"


class JobNotFoundError(WebhookError):
    """No registry record for the requested job id."""

    status_code = 404
    error_type = "job_not_found"

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class DuplicateJobError(WebhookError):
    """A record for this job id already exists."""

    status_code = 409
    error_type = "duplicate_job"

    def __init__(self, job_id: str):
        super().__init__(f"Job already registered: {job_id}")
        self.job_id = job_id


class ReplyError(WebhookError):
    """The downstream email reply could not be sent."""

    status_code = 500
    error_type = "reply_error"

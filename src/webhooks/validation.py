"""
Webhook validation utilities.

Provides validation for callback URLs, job registration input and
inbound status-change payloads.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse
import logging

from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .models import JobStatus, StatusChangeEvent, STATUS_CHANGE_EVENT

logger = logging.getLogger(__name__)

REQUIRED_EVENT_FIELDS = ('event', 'id', 'status', 'timestamp')
RECOGNIZED_STATUSES = frozenset(status.value for status in JobStatus)

MAX_URL_LENGTH = 2048
MAX_JOB_ID_LENGTH = 255
MAX_METADATA_BYTES = 10 * 1024


class WebhookValidator:
    """Validates webhook configurations and data."""

    @staticmethod
    def validate_url(url: str) -> Tuple[bool, Optional[str]]:
        """
        Validate a callback URL.

        Args:
            url: URL to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not isinstance(url, str) or not url:
            return False, "URL is required"

        if len(url) > MAX_URL_LENGTH:
            return False, f"URL must be {MAX_URL_LENGTH} characters or less"

        try:
            parsed = urlparse(url)

            if parsed.scheme not in ['http', 'https']:
                return False, "URL must use HTTP or HTTPS protocol"

            if not parsed.hostname:
                return False, "URL must have a valid hostname"

            if not re.match(r'^[a-z0-9.\-\[\]:]+$', parsed.hostname.lower()):
                return False, "Invalid hostname format"

            # Accessing .port raises ValueError for out-of-range ports
            parsed.port

            return True, None

        except ValueError as e:
            return False, f"Invalid URL format: {str(e)}"

    @staticmethod
    def validate_registration(
        job_id: str,
        callback_url: str,
        metadata: Optional[Dict[str, Any]]
    ) -> List[str]:
        """
        Validate job registration input.

        Returns:
            List of validation errors
        """
        errors = []

        if not isinstance(job_id, str) or not job_id.strip():
            errors.append("Job ID is required")
        elif len(job_id) > MAX_JOB_ID_LENGTH:
            errors.append(f"Job ID must be {MAX_JOB_ID_LENGTH} characters or less")

        url_valid, url_error = WebhookValidator.validate_url(callback_url)
        if not url_valid:
            errors.append(f"Invalid callback URL: {url_error}")

        if metadata is not None:
            if not isinstance(metadata, dict):
                errors.append("Metadata must be a dictionary")
            else:
                try:
                    if len(json.dumps(metadata)) > MAX_METADATA_BYTES:
                        errors.append("Metadata too large (max 10KB)")
                except (TypeError, ValueError):
                    errors.append("Metadata is not JSON serializable")

        return errors

    @staticmethod
    def parse_status_change(raw_body: Union[bytes, str]) -> StatusChangeEvent:
        """
        Parse and validate an inbound status-change body.

        Args:
            raw_body: Body bytes exactly as received

        Returns:
            Parsed event

        Raises:
            ValidationError: on bad JSON, missing fields, or an
                unrecognized event or status value
        """
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ValidationError(f"Invalid JSON payload: {e}")

        if not isinstance(payload, dict):
            raise ValidationError("Invalid payload structure")

        missing = [name for name in REQUIRED_EVENT_FIELDS if not payload.get(name)]
        if missing:
            raise ValidationError(f"Invalid payload structure: missing {', '.join(missing)}")

        if payload['event'] != STATUS_CHANGE_EVENT:
            raise ValidationError(f"Invalid event type: {payload['event']}")

        if not isinstance(payload['status'], str) or payload['status'] not in RECOGNIZED_STATUSES:
            raise ValidationError(f"Invalid status: {payload['status']}")

        try:
            return StatusChangeEvent.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid payload structure: {e.error_count()} field error(s)")

"""
Webhook delivery system.

Handles delivery of completion events with bounded retries, exponential
backoff, per-class retry policy and a hard per-attempt timeout.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp
from aiohttp import ClientError, ClientTimeout

from ..shared.config import DeliverySettings
from .metrics import WebhookMetrics, get_webhook_metrics
from .models import AgentWebhookPayload, DeliveryAttempt, DeliveryOutcome, DeliveryResult
from .security import WebhookSecurity

logger = logging.getLogger(__name__)

Payload = Union[AgentWebhookPayload, Dict[str, Any], bytes]
SleepFunc = Callable[[float], Awaitable[Any]]

SIGNATURE_HEADER = 'X-Signature'
ATTEMPT_HEADER = 'X-Delivery-Attempt'


def next_delay(attempt_index: int, base_seconds: float = 1.0, cap_seconds: float = 10.0) -> float:
    """
    Backoff before the attempt following `attempt_index`.

    attempt_index is the 0-based index of the attempt that just failed,
    so the delay before attempt 2 is next_delay(0) == 1s and before
    attempt 3 is next_delay(1) == 2s.
    """
    if attempt_index < 0:
        raise ValueError("attempt_index must be >= 0")
    return min(base_seconds * (2 ** attempt_index), cap_seconds)


def classify_status(status_code: int) -> DeliveryOutcome:
    """Map an HTTP response status to an attempt outcome."""
    if 200 <= status_code < 300:
        return DeliveryOutcome.SUCCESS

    # Client errors are assumed permanent
    if 400 <= status_code < 500:
        return DeliveryOutcome.TERMINAL_FAILURE

    # 5xx, and anything unexpected such as an unfollowed redirect
    return DeliveryOutcome.RETRYABLE_FAILURE


def encode_payload(payload: Payload) -> bytes:
    """Serialize a payload exactly once into the bytes that will be sent."""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if isinstance(payload, AgentWebhookPayload):
        return payload.to_json_bytes()
    return json.dumps(payload, separators=(",", ":"), default=str).encode('utf-8')


class WebhookDeliveryService:
    """Delivers event payloads to callback URLs with retry logic."""

    def __init__(
        self,
        settings: Optional[DeliverySettings] = None,
        sleep: SleepFunc = asyncio.sleep,
        metrics: Optional[WebhookMetrics] = None
    ):
        self.settings = settings or DeliverySettings()
        self._sleep = sleep
        self.metrics = metrics or get_webhook_metrics()

    def build_headers(self, body: bytes, attempt_number: int, secret: Optional[str] = None) -> Dict[str, str]:
        """Headers for one attempt; the signature covers the exact body bytes."""
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': self.settings.user_agent,
            ATTEMPT_HEADER: str(attempt_number),
        }

        if secret:
            headers[SIGNATURE_HEADER] = WebhookSecurity.sign(secret, body)

        return headers

    async def deliver(
        self,
        url: str,
        payload: Payload,
        secret: Optional[str] = None,
        max_attempts: Optional[int] = None
    ) -> bool:
        """
        Deliver a payload to a URL.

        Args:
            url: Destination callback URL
            payload: Event payload (model, dict, or pre-serialized bytes)
            secret: Optional signing secret
            max_attempts: Attempts including the first (defaults to settings)

        Returns:
            True on a 2xx response, False once attempts are exhausted or a
            4xx response ends the sequence. Never raises.
        """
        result = await self.deliver_with_report(url, payload, secret, max_attempts)
        return result.success

    async def deliver_with_report(
        self,
        url: str,
        payload: Payload,
        secret: Optional[str] = None,
        max_attempts: Optional[int] = None
    ) -> DeliveryResult:
        """Deliver a payload and return every attempt's outcome."""
        attempts_allowed = max_attempts or self.settings.max_attempts
        result = DeliveryResult(url=url, success=False)

        try:
            body = encode_payload(payload)
        except (TypeError, ValueError) as e:
            logger.error(f"Webhook payload for {url} is not serializable: {e}")
            self.metrics.increment('deliveries_failed')
            return result

        timeout = ClientTimeout(total=self.settings.timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                for attempt_index in range(attempts_allowed):
                    attempt_number = attempt_index + 1

                    if attempt_index > 0:
                        delay = next_delay(
                            attempt_index - 1,
                            self.settings.backoff_base_seconds,
                            self.settings.backoff_cap_seconds
                        )
                        logger.info(f"Retrying webhook to {url} in {delay:.1f}s (attempt {attempt_number}/{attempts_allowed})")
                        self.metrics.increment('retries_attempted')
                        await self._sleep(delay)

                    attempt = await self._attempt_delivery(session, url, body, attempt_number, secret)
                    result.attempts.append(attempt)

                    if attempt.outcome == DeliveryOutcome.SUCCESS:
                        result.success = True
                        logger.info(f"Webhook sent successfully to: {url} (attempt {attempt_number})")
                        break

                    if attempt.outcome == DeliveryOutcome.TERMINAL_FAILURE:
                        logger.error(
                            f"Webhook to {url} failed with client error: "
                            f"{attempt.status_code or attempt.error} - not retrying"
                        )
                        break
                else:
                    logger.error(f"All {attempts_allowed} webhook attempts failed for: {url}")

        except Exception as e:
            logger.error(f"Unexpected error delivering webhook to {url}: {e}", exc_info=True)

        self.metrics.increment('deliveries_succeeded' if result.success else 'deliveries_failed')
        return result

    async def _attempt_delivery(
        self,
        session: aiohttp.ClientSession,
        url: str,
        body: bytes,
        attempt_number: int,
        secret: Optional[str]
    ) -> DeliveryAttempt:
        """Make one POST and classify the result."""
        headers = self.build_headers(body, attempt_number, secret)
        self.metrics.increment('delivery_attempts')
        start_time = time.monotonic()

        status_code = None
        error = None

        try:
            async with session.post(
                url,
                data=body,
                headers=headers,
                allow_redirects=False  # Don't follow redirects for security
            ) as response:
                status_code = response.status
                outcome = classify_status(status_code)
                if outcome != DeliveryOutcome.SUCCESS:
                    response_body = (await response.read()).decode("utf-8", "replace")
                    error = f"HTTP {status_code}: {response_body[:200]}"

        except asyncio.TimeoutError:
            outcome = DeliveryOutcome.RETRYABLE_FAILURE
            error = f"Request timeout after {self.settings.timeout_seconds} seconds"

        except aiohttp.InvalidURL as e:
            outcome = DeliveryOutcome.TERMINAL_FAILURE
            error = f"Invalid callback URL: {e}"

        except ClientError as e:
            outcome = DeliveryOutcome.RETRYABLE_FAILURE
            error = f"HTTP client error: {e}"

        duration_ms = int((time.monotonic() - start_time) * 1000)
        self.metrics.observe_duration(duration_ms)

        attempt = DeliveryAttempt(
            attempt_number=attempt_number,
            outcome=outcome,
            status_code=status_code,
            error=error,
            duration_ms=duration_ms
        )

        if outcome == DeliveryOutcome.SUCCESS:
            logger.debug(f"Webhook attempt {attempt_number} to {url} succeeded ({status_code}, {duration_ms}ms)")
        else:
            logger.warning(f"Webhook attempt {attempt_number} to {url} failed: {error}")

        return attempt

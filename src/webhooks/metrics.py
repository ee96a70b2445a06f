"""
In-process counters for webhook delivery and verification.

Operators detect systemic delivery failure from these counters and the
logs; the original requester only ever sees silent non-delivery.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Any


class WebhookMetrics:
    """Monotonic counters plus an average delivery time."""

    COUNTERS = (
        'delivery_attempts',
        'deliveries_succeeded',
        'deliveries_failed',
        'retries_attempted',
        'unnotifiable_jobs',
        'notifications_skipped',
        'inbound_accepted',
        'inbound_ignored',
        'inbound_rejected',
        'unauthenticated_accepts',
        'handler_failures',
    )

    def __init__(self):
        self._counts: Counter = Counter({name: 0 for name in self.COUNTERS})
        self._total_duration_ms = 0
        self._timed_attempts = 0
        self.started_at = datetime.now(timezone.utc)

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown webhook metric: {name}")
        self._counts[name] += amount

    def observe_duration(self, duration_ms: int) -> None:
        self._total_duration_ms += duration_ms
        self._timed_attempts += 1

    def get(self, name: str) -> int:
        return self._counts[name]

    def reset(self) -> None:
        self.__init__()

    def snapshot(self) -> Dict[str, Any]:
        """Get a copy of all counters."""
        average = (
            self._total_duration_ms / self._timed_attempts if self._timed_attempts else 0.0
        )
        return {
            **dict(self._counts),
            'average_attempt_time_ms': round(average, 2),
            'since': self.started_at.isoformat(),
        }


webhook_metrics = WebhookMetrics()


def get_webhook_metrics() -> WebhookMetrics:
    """Get the process-wide webhook metrics instance."""
    return webhook_metrics

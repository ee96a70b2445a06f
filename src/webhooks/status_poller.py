"""
Agent status polling.

Watches launched jobs through the coding-agent API and triggers the
completion notifier when a job moves into a terminal state.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import aiohttp
from aiohttp import ClientError, ClientTimeout

from ..job_registry.schemas import JobRecord
from ..shared.config import AgentApiSettings
from .models import AgentStatusReport, JobStatus, TERMINAL_STATUSES
from .notifier import CompletionNotifier, NotificationOutcome

logger = logging.getLogger(__name__)


class RecentJobs(Protocol):
    async def recent(self, since: datetime) -> List[JobRecord]:
        ...


def report_from_agent(agent: Dict[str, Any]) -> AgentStatusReport:
    """Convert an agent API object into a status report."""
    target = agent.get('target') or {}
    return AgentStatusReport(
        job_id=agent['id'],
        status=JobStatus(agent['status']),
        name=agent.get('name'),
        summary=agent.get('summary'),
        created_at=agent.get('createdAt'),
        pr_url=target.get('prUrl'),
    )


class AgentStatusClient:
    """Reads agent status from the coding-agent API."""

    def __init__(self, settings: AgentApiSettings):
        self.settings = settings

    async def get_agent(self, job_id: str) -> Optional[AgentStatusReport]:
        """
        Fetch one agent's current status.

        Returns:
            The status report, or None if the agent no longer exists

        Raises:
            aiohttp.ClientError / asyncio.TimeoutError on transport failure,
            ValueError on an unrecognized payload
        """
        url = f"{self.settings.base_url.rstrip('/')}/v0/agents/{job_id}"
        headers = {
            'Authorization': f'Bearer {self.settings.api_key}',
            'Content-Type': 'application/json'
        }

        async with aiohttp.ClientSession(timeout=ClientTimeout(total=self.settings.timeout_seconds)) as session:
            async with session.get(url, headers=headers) as response:
                if response.status == 404:
                    return None
                response.raise_for_status()
                data = await response.json()

        try:
            return report_from_agent(data)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Unrecognized agent payload for {job_id}: {e}")


class StatusPoller:
    """
    Tracks the last seen status of each launched job.

    A job is notified once, on the poll that first sees it terminal; it
    is then dropped from tracking.
    """

    def __init__(self, client: AgentStatusClient, notifier: CompletionNotifier):
        self.client = client
        self.notifier = notifier
        self.tracked: Dict[str, Optional[JobStatus]] = {}

    def track(self, job_id: str, last_status: Optional[JobStatus] = None) -> None:
        self.tracked[job_id] = last_status

    def untrack(self, job_id: str) -> None:
        self.tracked.pop(job_id, None)

    async def track_registered(self, registry: RecentJobs, since: datetime) -> int:
        """
        Start tracking every job registered since `since`.

        Used at startup so jobs launched before a restart are still
        watched. Returns the number of jobs newly tracked.
        """
        added = 0
        for record in await registry.recent(since):
            if record.job_id not in self.tracked:
                self.track(record.job_id)
                added += 1

        logger.info(f"Tracking {added} registered jobs created since {since.isoformat()}")
        return added

    async def check_once(self) -> List[NotificationOutcome]:
        """Poll every tracked job once and notify terminal transitions."""
        outcomes = []

        for job_id, last_status in list(self.tracked.items()):
            try:
                report = await self.client.get_agent(job_id)
            except (ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.error(f"Failed to fetch agent status for {job_id}: {e}")
                continue

            if report is None:
                # Expired or deleted upstream
                logger.warning(f"Agent {job_id} not found; no longer tracking it")
                self.untrack(job_id)
                continue

            if report.status in TERMINAL_STATUSES:
                if last_status not in TERMINAL_STATUSES:
                    outcomes.append(await self.notifier.notify(report))
                self.untrack(job_id)
            elif report.status == JobStatus.EXPIRED:
                logger.info(f"Agent {job_id} expired without finishing; no longer tracking it")
                self.untrack(job_id)
            else:
                self.tracked[job_id] = report.status

        return outcomes

    async def run(self, interval_seconds: float, stop: asyncio.Event) -> None:
        """Poll until `stop` is set."""
        logger.info(f"Status poller started ({len(self.tracked)} jobs, every {interval_seconds}s)")

        while not stop.is_set():
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"Status poll failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Status poller stopped")

"""
Email reply handler.

Once a status-change callback is verified, the original email sender is
told how the job ended by replying to their email through the Inbound
Email API.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout

from ..job_registry.schemas import JobRecord
from ..shared.config import InboundEmailSettings
from .exceptions import ReplyError
from .models import (
    JobStatus, StatusChangeEvent,
    METADATA_AGENT_EMAIL_ADDRESS, METADATA_EMAIL_SUBJECT, METADATA_ORIGINAL_EMAIL_ID
)

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Your code request"


@dataclass
class ReplyContent:
    subject: str
    text: str


def generate_reply_content(event: StatusChangeEvent, metadata: Optional[Dict[str, Any]] = None) -> ReplyContent:
    """Build the reply email for a finished or failed job."""
    metadata = metadata or {}
    request_subject = metadata.get(METADATA_EMAIL_SUBJECT) or DEFAULT_SUBJECT
    repository = event.source.repository or "unknown"

    if event.status == JobStatus.FINISHED:
        text = "Hi there!\n\nGreat news! I've completed the task you requested."

        if event.summary:
            text += f"\n\nHere's what I accomplished:\n{event.summary}"

        if event.target.pr_url:
            text += f"\n\nYou can view the changes here: {event.target.pr_url}"
        elif event.target.branch_name:
            text += f"\n\nThe changes have been made to branch: {event.target.branch_name}"

        text += (
            f"\n\nAgent: {event.id}\nRepository: {repository}\nCompleted: {event.timestamp}"
            "\n\nLet me know if you need any adjustments!"
        )
        return ReplyContent(subject=f"✅ Task Complete: {request_subject}", text=text)

    if event.status == JobStatus.ERROR:
        text = (
            "Hi there,\n\nI encountered an issue while working on your request."
            f"\n\nAgent: {event.id}\nRepository: {repository}\nFailed at: {event.timestamp}"
            "\n\nI'll investigate this issue. Please feel free to try again or contact "
            "support if the problem persists."
        )
        return ReplyContent(subject=f"❌ Task Failed: {request_subject}", text=text)

    return ReplyContent(
        subject=f"Agent Update: {request_subject}",
        text=f"Your code request has been processed with status: {event.status.value}"
    )


class InboundReplyClient:
    """Minimal client for the Inbound Email reply endpoint."""

    def __init__(self, settings: InboundEmailSettings):
        self.settings = settings

    async def send_reply(self, email_id: str, sender: str, content: ReplyContent) -> Optional[str]:
        """
        Reply to a received email.

        Returns:
            Provider id of the sent reply, if it returned one

        Raises:
            ReplyError: API key missing, transport failure or non-2xx
        """
        if not self.settings.api_key:
            raise ReplyError("Email service not configured (INBOUND_API_KEY missing)")

        url = f"{self.settings.api_base_url.rstrip('/')}/emails/{email_id}/reply"
        headers = {
            'Authorization': f'Bearer {self.settings.api_key}',
            'Content-Type': 'application/json'
        }
        body = {
            'from': sender,
            'text': content.text,
            'subject': content.subject,
            'includeOriginal': True
        }

        try:
            async with aiohttp.ClientSession(timeout=ClientTimeout(total=self.settings.timeout_seconds)) as session:
                async with session.post(url, json=body, headers=headers) as response:
                    if response.status >= 300:
                        error_text = (await response.read()).decode("utf-8", "replace")
                        raise ReplyError(f"Failed to send reply: {response.status} {error_text[:200]}")

                    # The reply is already sent; an unreadable body only loses its id
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as e:
                        logger.warning(f"Reply sent but response body was not JSON: {e}")
                        data = None
        except ClientError as e:
            raise ReplyError(f"Failed to send reply: {e}")
        except asyncio.TimeoutError:
            raise ReplyError(f"Reply request timed out after {self.settings.timeout_seconds} seconds")

        reply_id = data.get('id') if isinstance(data, dict) else None
        logger.info(f"Reply sent successfully: {reply_id}")
        return reply_id


class EmailReplyHandler:
    """Completion handler that replies to the email that launched the job."""

    def __init__(self, settings: InboundEmailSettings, client: Optional[InboundReplyClient] = None):
        self.settings = settings
        self.client = client or InboundReplyClient(settings)

    def sender_for(self, record: JobRecord) -> str:
        agent_address = record.metadata.get(METADATA_AGENT_EMAIL_ADDRESS)
        if agent_address:
            return f"Inbound <{agent_address}>"
        return self.settings.from_address

    async def __call__(self, event: StatusChangeEvent, record: JobRecord) -> Dict[str, Any]:
        email_id = record.metadata.get(METADATA_ORIGINAL_EMAIL_ID)
        if not email_id:
            logger.warning(f"No original email id recorded for job {record.job_id}; cannot send reply")
            return {"replySent": False, "reason": "No email to reply to"}

        content = generate_reply_content(event, record.metadata)
        reply_id = await self.client.send_reply(email_id, self.sender_for(record), content)
        return {"replySent": True, "replyId": reply_id}

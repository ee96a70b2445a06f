"""
Job Registry - Repository and Service

The repository wraps single-row SQL operations on a session; the
JobRegistry service owns sessions and implements register / lookup.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..webhooks.exceptions import DuplicateJobError, JobNotFoundError, ValidationError
from ..webhooks.security import WebhookSecurity
from ..webhooks.validation import WebhookValidator
from .database import DatabaseManager
from .models import JobRegistryEntry
from .schemas import JobRecord

logger = structlog.get_logger(__name__)


class JobRegistryRepository:
    """Data access for the job_registry table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        job_id: str,
        callback_url: str,
        signing_secret: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None
    ) -> JobRegistryEntry:
        """Insert a new entry; raises DuplicateJobError on an existing job id."""
        entry = JobRegistryEntry(
            job_id=job_id,
            callback_url=callback_url,
            signing_secret=signing_secret,
            job_metadata=metadata or {},
            created_at=created_at or datetime.now(timezone.utc)
        )

        try:
            self.session.add(entry)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("Duplicate job registration", job_id=job_id, error=str(e.orig))
            raise DuplicateJobError(job_id)
        except Exception as e:
            await self.session.rollback()
            logger.error("Error creating job registry entry", job_id=job_id, error=str(e))
            raise

        return entry

    async def get(self, job_id: str) -> Optional[JobRegistryEntry]:
        """Get an entry by job id."""
        result = await self.session.execute(
            select(JobRegistryEntry).where(JobRegistryEntry.job_id == job_id)
        )
        return result.scalar_one_or_none()

    async def list_created_since(self, cutoff: datetime) -> List[JobRegistryEntry]:
        """Entries created at or after a cutoff, oldest first."""
        result = await self.session.execute(
            select(JobRegistryEntry)
            .where(JobRegistryEntry.created_at >= cutoff)
            .order_by(JobRegistryEntry.created_at)
        )
        return list(result.scalars().all())

    async def delete_created_before(self, cutoff: datetime) -> int:
        """Delete entries created before a cutoff. Returns the number removed."""
        result = await self.session.execute(
            delete(JobRegistryEntry).where(JobRegistryEntry.created_at < cutoff)
        )
        await self.session.commit()
        return result.rowcount or 0


class JobRegistry:
    """
    Durable mapping from an external job id to its callback URL, signing
    secret and metadata.

    register() is the only place signing secrets are generated. Records
    are never updated; lookup() is read-only and safe to call
    concurrently and repeatedly.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def register(
        self,
        job_id: str,
        callback_url: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Record a launched job and return its new signing secret.

        The caller embeds the secret in the job-launch request so the
        external system can sign its callback.

        Raises:
            ValidationError: invalid job id, URL or metadata
            DuplicateJobError: job id already registered
        """
        errors = WebhookValidator.validate_registration(job_id, callback_url, metadata)
        if errors:
            raise ValidationError("; ".join(errors))

        secret = WebhookSecurity.generate_secret()

        async with self.db_manager.get_session() as session:
            await JobRegistryRepository(session).create(job_id, callback_url, secret, metadata)

        logger.info(
            "Registered job",
            job_id=job_id,
            callback_url=callback_url,
            secret=WebhookSecurity.mask_secret(secret)
        )
        return secret

    async def find(self, job_id: str) -> Optional[JobRecord]:
        """Look up a job, returning None when it is not registered."""
        async with self.db_manager.get_session() as session:
            entry = await JobRegistryRepository(session).get(job_id)
            return JobRecord.from_entry(entry) if entry else None

    async def lookup(self, job_id: str) -> JobRecord:
        """
        Look up a job.

        Raises:
            JobNotFoundError: no record for job_id
        """
        record = await self.find(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    async def recent(self, since: datetime) -> List[JobRecord]:
        """Jobs registered at or after `since`."""
        async with self.db_manager.get_session() as session:
            entries = await JobRegistryRepository(session).list_created_since(since)
            return [JobRecord.from_entry(entry) for entry in entries]

    async def prune(self, older_than: datetime) -> int:
        """Housekeeping: remove records created before `older_than`."""
        async with self.db_manager.get_session() as session:
            removed = await JobRegistryRepository(session).delete_created_before(older_than)

        logger.info("Pruned job registry", removed=removed, cutoff=older_than.isoformat())
        return removed

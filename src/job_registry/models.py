"""
Job Registry - Database Models

A dedicated table mapping an external job id to its callback URL,
signing secret and caller metadata. Rows are write-once.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Text, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRegistryEntry(Base):
    """
    One launched job awaiting its completion callback.
    Created when the job is launched, read when the callback arrives.
    """
    __tablename__ = "job_registry"

    job_id = Column(Text, primary_key=True)
    callback_url = Column(Text, nullable=False)

    # Nullable for jobs launched before signing secrets existed
    signing_secret = Column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    job_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

    __table_args__ = (
        Index('ix_job_registry_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<JobRegistryEntry(job_id={self.job_id}, callback_url='{self.callback_url}')>"

"""
Job Registry - Pydantic Schemas

Read-side representation of a registry entry handed to callers.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobRecord(BaseModel):
    """Immutable view of a registered job."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    job_id: str = Field(..., description="External job identifier")
    callback_url: str = Field(..., description="Where the completion event is POSTed")
    signing_secret: Optional[str] = Field(None, description="Hex-encoded HMAC secret")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Caller metadata")
    created_at: datetime = Field(..., description="Registration time")

    @property
    def has_secret(self) -> bool:
        return bool(self.signing_secret)

    @classmethod
    def from_entry(cls, entry) -> "JobRecord":
        """Build from a JobRegistryEntry row."""
        return cls(
            job_id=entry.job_id,
            callback_url=entry.callback_url,
            signing_secret=entry.signing_secret,
            metadata=dict(entry.job_metadata or {}),
            created_at=entry.created_at,
        )

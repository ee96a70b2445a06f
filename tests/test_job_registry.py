"""
Tests for the job registry.
Runs the repository and service against in-memory SQLite.
"""
import re
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.job_registry.database import DatabaseManager
from src.job_registry.repositories import JobRegistry, JobRegistryRepository
from src.job_registry.schemas import JobRecord
from src.shared.config import DatabaseSettings
from src.webhooks.exceptions import DuplicateJobError, JobNotFoundError, ValidationError


CALLBACK_URL = "https://example.com/hooks/agent"


@pytest.fixture
async def db_manager():
    """In-memory database with the registry table created."""
    manager = DatabaseManager(DatabaseSettings(database_url="sqlite+aiosqlite:///:memory:"))
    await manager.initialize(create_tables=True)
    yield manager
    await manager.close()


@pytest.fixture
def registry(db_manager):
    return JobRegistry(db_manager)


class TestDatabaseManager:
    """Test connection management."""

    @pytest.mark.asyncio
    async def test_health_check(self, db_manager):
        assert db_manager.is_connected is True
        assert await db_manager.health_check() is True

    @pytest.mark.asyncio
    async def test_session_requires_initialize(self):
        manager = DatabaseManager(DatabaseSettings(database_url="sqlite+aiosqlite:///:memory:"))

        with pytest.raises(RuntimeError):
            async with manager.get_session():
                pass

    def test_default_url_is_postgres(self):
        settings = DatabaseSettings(database_url=None, db_host="db", db_name="relay")

        assert settings.get_database_url().startswith("postgresql+asyncpg://")
        assert "@db:5432/relay" in settings.get_database_url()


class TestJobRegistry:
    """Test register / lookup semantics."""

    @pytest.mark.asyncio
    async def test_register_returns_hex_secret(self, registry):
        secret = await registry.register("bc-1", CALLBACK_URL, {"originalEmailId": "em-1"})

        assert re.fullmatch(r"[0-9a-f]{64,}", secret)

    @pytest.mark.asyncio
    async def test_lookup_returns_registered_record(self, registry):
        metadata = {"originalEmailId": "em-1", "emailSubject": "Fix the login page"}
        secret = await registry.register("bc-1", CALLBACK_URL, metadata)

        record = await registry.lookup("bc-1")

        assert isinstance(record, JobRecord)
        assert record.job_id == "bc-1"
        assert record.callback_url == CALLBACK_URL
        assert record.signing_secret == secret
        assert record.metadata == metadata
        assert record.has_secret is True
        assert record.created_at is not None

    @pytest.mark.asyncio
    async def test_each_job_gets_a_distinct_secret(self, registry):
        first = await registry.register("bc-1", CALLBACK_URL)
        second = await registry.register("bc-2", CALLBACK_URL)

        assert first != second

    @pytest.mark.asyncio
    async def test_lookup_is_repeatable(self, registry):
        await registry.register("bc-1", CALLBACK_URL, {"k": "v"})

        records = [await registry.lookup("bc-1") for _ in range(5)]

        assert all(r == records[0] for r in records)

    @pytest.mark.asyncio
    async def test_lookup_unknown_job(self, registry):
        with pytest.raises(JobNotFoundError) as exc_info:
            await registry.lookup("missing")

        assert exc_info.value.status_code == 404
        assert await registry.find("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_registration_keeps_first_record(self, registry):
        secret = await registry.register("bc-1", CALLBACK_URL)

        with pytest.raises(DuplicateJobError):
            await registry.register("bc-1", "https://other.example.com/hook")

        record = await registry.lookup("bc-1")
        assert record.callback_url == CALLBACK_URL
        assert record.signing_secret == secret

    @pytest.mark.asyncio
    @pytest.mark.parametrize("job_id, url, metadata", [
        ("", CALLBACK_URL, None),
        ("bc-1", "ftp://example.com/hook", None),
        ("bc-1", "not-a-url", None),
        ("bc-1", CALLBACK_URL, ["not", "a", "dict"]),
        ("x" * 300, CALLBACK_URL, None),
    ])
    async def test_register_rejects_invalid_input(self, registry, job_id, url, metadata):
        with pytest.raises(ValidationError):
            await registry.register(job_id, url, metadata)

    @pytest.mark.asyncio
    async def test_record_is_immutable(self, registry):
        await registry.register("bc-1", CALLBACK_URL)
        record = await registry.lookup("bc-1")

        with pytest.raises(PydanticValidationError):
            record.callback_url = "https://attacker.example.com"

    @pytest.mark.asyncio
    async def test_legacy_record_without_secret(self, db_manager, registry):
        async with db_manager.get_session() as session:
            await JobRegistryRepository(session).create("legacy-1", CALLBACK_URL, None)

        record = await registry.lookup("legacy-1")

        assert record.signing_secret is None
        assert record.has_secret is False
        assert record.metadata == {}

    @pytest.mark.asyncio
    async def test_prune(self, db_manager, registry):
        now = datetime.now(timezone.utc)
        async with db_manager.get_session() as session:
            repo = JobRegistryRepository(session)
            await repo.create("old-1", CALLBACK_URL, "s" * 64, created_at=now - timedelta(days=40))
            await repo.create("old-2", CALLBACK_URL, "s" * 64, created_at=now - timedelta(days=31))
            await repo.create("new-1", CALLBACK_URL, "s" * 64, created_at=now - timedelta(days=1))

        removed = await registry.prune(now - timedelta(days=30))

        assert removed == 2
        assert await registry.find("old-1") is None
        assert await registry.find("new-1") is not None

from __future__ import annotations

import pytest

from coachstore.errors import ErrorCode, PermissionDeniedError
from coachstore.manager import DatabaseManager
from coachstore.migrations.engine import MigrationEngine
from coachstore.seeding import SeedLoader

ADMIN = "admin-1"


@pytest.fixture
def manager(client, test_settings) -> DatabaseManager:
    return DatabaseManager(
        client,
        MigrationEngine(client, settings=test_settings),
        SeedLoader(client, settings=test_settings),
    )


@pytest.mark.asyncio
async def test_initialize_migrates_and_seeds(manager: DatabaseManager) -> None:
    result = await manager.initialize(seed_data=True, admin_user_id=ADMIN)

    assert result.success
    assert result.data.migrations.new_version == "1.4.0"
    assert result.data.migrations.migrations_run == 5
    assert result.data.seeding.sports_created == 6
    assert result.data.errors == []


@pytest.mark.asyncio
async def test_initialize_without_admin_reports_error(manager: DatabaseManager) -> None:
    result = await manager.initialize(seed_data=True)

    assert not result.success
    assert result.error.code == ErrorCode.INITIALIZATION_FAILED
    assert result.error.message == "Seeding requires an admin user id"
    # migrations still ran and are reported
    assert result.error.details["migrations"]["new_version"] == "1.4.0"
    assert result.error.details["seeding"] is None


@pytest.mark.asyncio
async def test_initialize_collects_every_failure(manager: DatabaseManager, backend) -> None:
    backend.fail("get", PermissionDeniedError("denied"))
    backend.fail("insert", PermissionDeniedError("denied"))

    result = await manager.initialize(seed_data=True, admin_user_id=ADMIN)

    assert result.error.message.startswith("Migration failed: ")
    assert "; Seeding failed: " in result.error.message


@pytest.mark.asyncio
async def test_status_is_read_only_until_initialized(manager: DatabaseManager, backend) -> None:
    before = (await manager.get_status()).data
    assert before.migrations.current_version == "0.0.0"
    assert before.migrations.needs_migration is True
    assert before.seeding.is_empty is True
    assert backend.snapshot() == {}

    await manager.initialize(seed_data=True, admin_user_id=ADMIN)
    after = (await manager.get_status()).data

    assert after.migrations.current_version == "1.4.0"
    assert after.migrations.pending_migrations == 0
    assert after.seeding.sports == 6


@pytest.mark.asyncio
async def test_status_failure(manager: DatabaseManager, backend) -> None:
    backend.fail("get", PermissionDeniedError("denied"))

    result = await manager.get_status()

    assert result.error.code == ErrorCode.STATUS_CHECK_FAILED


@pytest.mark.asyncio
async def test_reset_reseeds_full_catalog(manager: DatabaseManager) -> None:
    await manager.initialize(seed_data=True, admin_user_id=ADMIN)

    result = await manager.reset(ADMIN)

    assert result.success
    assert result.data.migrations.migrations_run == 0
    assert result.data.seeding.sports_created == 10
    status = (await manager.get_status()).data
    assert status.seeding.sports == 10
    assert (await manager.validate_integrity()).data.valid is True


@pytest.mark.asyncio
async def test_reset_failure(manager: DatabaseManager, backend) -> None:
    backend.fail("run_query", PermissionDeniedError("denied"))

    result = await manager.reset(ADMIN)

    assert result.error.code == ErrorCode.RESET_FAILED
    assert result.error.message.startswith("Failed to clear data")


@pytest.mark.asyncio
async def test_context_manager_closes_client(manager: DatabaseManager, backend) -> None:
    async with manager:
        assert (await manager.health_check()).data.status == "healthy"

    with pytest.raises(ConnectionError):
        await backend.ping()

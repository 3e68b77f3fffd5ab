"""
Operator-facing bootstrap: migrations, seeding and status in one place.

Usage:
    manager = await build_manager(get_settings())
    async with manager:
        result = await manager.initialize(seed_data=True, admin_user_id="admin")

`DatabaseManager` does not serialize concurrent `initialize` calls; run it
from one deployment step at a time.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from coachstore.client import DocumentStoreClient
from coachstore.config import Settings, get_settings
from coachstore.domain.results import HealthReport, Result
from coachstore.errors import ErrorCode
from coachstore.infrastructure.db_factory import create_backend
from coachstore.migrations.engine import MigrationEngine, MigrationRunSummary, MigrationStatusReport
from coachstore.seeding.loader import IntegrityReport, SeedCheckReport, SeedLoader, SeedSummary
from coachstore.utils.logging import get_logger


class InitializationReport(BaseModel):
    migrations: Optional[MigrationRunSummary] = None
    seeding: Optional[SeedSummary] = None
    errors: List[str] = Field(default_factory=list)


class DatabaseStatus(BaseModel):
    migrations: MigrationStatusReport
    seeding: SeedCheckReport


class DatabaseManager:
    """
    Runs the migration engine and the seed loader over one shared client.

    Parameters
    ----------
    client : DocumentStoreClient
        Shared store client; closed by `close()`.
    engine : MigrationEngine
    seeder : SeedLoader
    logger : logging.Logger, optional
        Injected logger; defaults to this module's logger.
    """

    def __init__(
        self,
        client: DocumentStoreClient,
        engine: MigrationEngine,
        seeder: SeedLoader,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.engine = engine
        self.seeder = seeder
        self._log = logger or get_logger(__name__)

    async def __aenter__(self) -> "DatabaseManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def initialize(
        self,
        run_migrations: bool = True,
        seed_data: bool = False,
        admin_user_id: Optional[str] = None,
        force: bool = False,
        include_additional_sports: bool = False,
    ) -> Result[InitializationReport]:
        """
        Apply pending migrations, then optionally seed.

        Both steps run even when the first one fails; the failure lists every
        error and carries the partial report in `details`.
        """
        report = InitializationReport()
        self._log.info("Initializing database", extra={"run_migrations": run_migrations, "seed_data": seed_data})

        if run_migrations:
            migrated = await self.engine.run_pending_migrations()
            if migrated.success:
                report.migrations = migrated.data
                self._log.info("Migrations completed", extra={"migrations_run": migrated.data.migrations_run})
            else:
                report.errors.append(f"Migration failed: {migrated.error.message}")

        if seed_data:
            if not admin_user_id:
                report.errors.append("Seeding requires an admin user id")
            else:
                seeded = await self.seeder.seed_all(
                    admin_user_id, force=force, include_additional_sports=include_additional_sports
                )
                if seeded.success:
                    report.seeding = seeded.data
                else:
                    report.errors.append(f"Seeding failed: {seeded.error.message}")

        if report.errors:
            self._log.error("Database initialization completed with errors", extra={"errors": report.errors})
            return Result.fail(
                code=ErrorCode.INITIALIZATION_FAILED,
                message="; ".join(report.errors),
                details=report.model_dump(mode="json"),
            )
        self._log.info("Database initialization completed")
        return Result.ok(report, message="Database initialized")

    async def get_status(self) -> Result[DatabaseStatus]:
        """Read-only migration and seeding status."""
        migrations = await self.engine.check_migration_status()
        seeding = await self.seeder.check_seeded_data()
        for result in (migrations, seeding):
            if not result.success:
                return Result.fail(
                    code=ErrorCode.STATUS_CHECK_FAILED,
                    message=result.error.message,
                    details={"cause": result.error.code},
                    retryable=result.error.retryable,
                )
        return Result.ok(DatabaseStatus(migrations=migrations.data, seeding=seeding.data))

    async def reset(self, admin_user_id: str) -> Result[InitializationReport]:
        """Clear the seeded collections and re-initialize with the full sample catalog."""
        self._log.warning("Resetting database, all seeded data will be cleared")
        cleared = await self.seeder.clear_all_data()
        if not cleared.success:
            return Result.fail(
                code=ErrorCode.RESET_FAILED,
                message=f"Failed to clear data: {cleared.error.message}",
                details=cleared.error.details,
            )

        initialized = await self.initialize(
            run_migrations=True,
            seed_data=True,
            admin_user_id=admin_user_id,
            force=True,
            include_additional_sports=True,
        )
        if not initialized.success:
            return Result.fail(
                code=ErrorCode.RESET_FAILED,
                message=f"Failed to re-initialize: {initialized.error.message}",
                details=initialized.error.details,
            )
        self._log.info("Database reset completed")
        return Result.ok(initialized.data, message="Database reset and re-initialized")

    async def validate_integrity(self) -> Result[IntegrityReport]:
        return await self.seeder.validate_data_integrity()

    async def health_check(self) -> Result[HealthReport]:
        return await self.client.health_check()

    async def close(self) -> None:
        await self.client.close()


async def build_manager(settings: Optional[Settings] = None) -> DatabaseManager:
    """Wire a client over the configured backend and hand it to the engine and the seeder."""
    settings = settings or get_settings()
    backend = await create_backend(settings)
    client = DocumentStoreClient(backend, settings=settings)
    return DatabaseManager(
        client,
        MigrationEngine(client, settings=settings),
        SeedLoader(client, settings=settings),
    )


__all__ = ["DatabaseManager", "DatabaseStatus", "InitializationReport", "build_manager"]

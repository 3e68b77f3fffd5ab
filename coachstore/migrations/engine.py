"""
Versioned migration engine.

State lives in the store itself: one `MigrationState` document (id
`current_state` in `migration_state`) records which migrations have run, and
every lifecycle step appends a `MigrationExecution` audit record to
`migrations`.

`run_pending_migrations` applies whatever is not yet recorded in ascending
version order and persists the state after each completed migration, so the
recorded ids never lag behind the data. When a migration's `up()` fails, its
own `down()` is attempted and the run stops. Migrations completed earlier in
the same run are kept unless compensation is enabled, in which case they are
rolled back too, newest first.

The engine does not guard against two concurrent runs; callers serialize
`run_pending_migrations` (e.g. with a deployment lock).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from coachstore.client import DocumentStoreClient, utc_now_strict
from coachstore.config import Settings, get_settings
from coachstore.domain.models import Collections, MigrationExecution, MigrationState
from coachstore.domain.results import QueryOptions, Result
from coachstore.errors import ErrorCode, MigrationDefinitionError
from coachstore.migrations.builtin import BUILTIN_MIGRATIONS
from coachstore.migrations.lifecycle import Migration, MigrationRun, MigrationStatus
from coachstore.migrations.versioning import ZERO_VERSION, compare_versions, max_version, parse_version, version_key
from coachstore.utils.logging import get_logger
from coachstore.utils.timing import timed_block

STATE_DOCUMENT_ID = "current_state"


class MigrationRunSummary(BaseModel):
    migrations_run: int
    new_version: str
    executed_migrations: List[str] = Field(default_factory=list)


class RollbackSummary(BaseModel):
    migrations_rolled_back: int
    new_version: str
    executed_migrations: List[str] = Field(default_factory=list)


class MigrationStatusReport(BaseModel):
    current_version: str
    latest_version: str
    pending_migrations: int
    executed_migrations: int
    needs_migration: bool
    pending_ids: List[str] = Field(default_factory=list)


class MigrationEngine:
    """
    Runs and rolls back migrations against a `DocumentStoreClient`.

    Parameters
    ----------
    client : DocumentStoreClient
        Store access for both the engine's bookkeeping and the migrations.
    migrations : iterable of Migration, optional
        Defaults to the built-in list. Declaration order does not matter.
    settings : Settings, optional
        Supplies the default for compensating on failure.
    """

    def __init__(
        self,
        client: DocumentStoreClient,
        migrations: Optional[Iterable[Migration]] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        settings = settings or get_settings()
        self.client = client
        self.migrations: List[Migration] = list(BUILTIN_MIGRATIONS if migrations is None else migrations)
        self.compensate_on_failure = settings.migration_compensate_on_failure
        self._log = logger or get_logger(__name__)
        self._validate()

    def _validate(self) -> None:
        seen = set()
        for migration in self.migrations:
            if not migration.id:
                raise MigrationDefinitionError("Migration id must not be empty")
            if migration.id in seen:
                raise MigrationDefinitionError(f"Duplicate migration id: {migration.id}")
            seen.add(migration.id)
            try:
                parse_version(migration.version)
            except ValueError as exc:
                raise MigrationDefinitionError(f"Migration {migration.id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    @property
    def latest_version(self) -> str:
        return max_version(m.version for m in self.migrations)

    def _by_version(self, migrations: Iterable[Migration], descending: bool = False) -> List[Migration]:
        return sorted(
            migrations,
            key=lambda m: (version_key(m.version), m.id),
            reverse=descending,
        )

    def pending_migrations(self, state: MigrationState) -> List[Migration]:
        executed = set(state.executed_migration_ids)
        return self._by_version(m for m in self.migrations if m.id not in executed)

    def _recorded_version(self, executed_ids: Iterable[str]) -> str:
        executed = set(executed_ids)
        return max_version(m.version for m in self.migrations if m.id in executed)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    async def get_current_state(self, create_if_missing: bool = True) -> Result[MigrationState]:
        """
        Load the state document, creating it on first access.

        With `create_if_missing=False` a missing document yields an unsaved
        default state and nothing is written.
        """
        result = await self.client.get_by_id(Collections.MIGRATION_STATE, STATE_DOCUMENT_ID, use_cache=False)
        if not result.success:
            return Result.fail(
                code=ErrorCode.MIGRATION_STATE_FETCH_FAILED,
                message="Failed to get migration state",
                details=result.error.model_dump(),
                retryable=result.error.retryable,
            )
        if result.data is not None:
            return Result.ok(MigrationState.from_document(result.data))
        if not create_if_missing:
            return Result.ok(MigrationState())

        initial = MigrationState(current_version=ZERO_VERSION, executed_migration_ids=[])
        created = await self.client.create_with_id(
            Collections.MIGRATION_STATE, STATE_DOCUMENT_ID, initial.to_document()
        )
        if created.success:
            self._log.info("Initialized migration state")
            return Result.ok(MigrationState.from_document(created.data))
        if created.error.code == ErrorCode.ALREADY_EXISTS:
            # created concurrently; read the winner
            return await self.get_current_state(create_if_missing=False)
        return Result.fail(
            code=ErrorCode.MIGRATION_STATE_INIT_FAILED,
            message="Failed to initialize migration state",
            details=created.error.model_dump(),
        )

    async def _save_state(self, state: MigrationState) -> Result[Any]:
        return await self.client.update(
            Collections.MIGRATION_STATE,
            STATE_DOCUMENT_ID,
            {
                "currentVersion": state.current_version,
                "executedMigrationIds": list(state.executed_migration_ids),
                "lastMigrationAt": state.last_migration_at,
            },
        )

    async def _record(
        self,
        migration: Migration,
        status: str,
        error: Optional[BaseException] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        record = MigrationExecution(
            migration_id=migration.id,
            version=migration.version,
            name=migration.name,
            description=migration.description,
            status=status,
            executed_at=utc_now_strict(),
            error=str(error) if error is not None else None,
            duration_ms=round(duration_ms, 3) if duration_ms is not None else None,
        )
        result = await self.client.create(Collections.MIGRATIONS, record.to_document())
        if not result.success:
            # audit failures must not interrupt the migration itself
            self._log.error(
                "Failed to record migration execution",
                extra={"migration_id": migration.id, "status": status, "code": result.error.code},
            )

    # ------------------------------------------------------------------
    # Rollback of a single migration
    # ------------------------------------------------------------------

    async def _roll_back(
        self, run: MigrationRun, state: MigrationState
    ) -> Tuple[bool, MigrationState, Optional[BaseException]]:
        """
        Drive `run` through rolling_back and run `down()`.

        On success the migration is removed from the state (and the state is
        persisted if it was recorded there). Returns (ok, state, error).
        """
        migration = run.migration
        run.begin_rollback()
        await self._record(migration, "rollback_started")
        try:
            await migration.down(self.client)
        except Exception as exc:
            run.fail_rollback()
            run.error = exc
            await self._record(migration, "rollback_failed", exc)
            self._log.error(
                "Rollback failed",
                extra={"migration_id": migration.id, "version": migration.version, "error": str(exc)},
            )
            return False, state, exc

        run.finish_rollback()
        await self._record(migration, "rollback_completed")
        self._log.info("Rolled back migration", extra={"migration_id": migration.id, "version": migration.version})

        if migration.id in state.executed_migration_ids:
            remaining = [mid for mid in state.executed_migration_ids if mid != migration.id]
            state = state.model_copy(
                update={
                    "executed_migration_ids": remaining,
                    "current_version": self._recorded_version(remaining),
                    "last_migration_at": utc_now_strict(),
                }
            )
            saved = await self._save_state(state)
            if not saved.success:
                return False, state, RuntimeError(saved.error.message)
        return True, state, None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def run_pending_migrations(self, compensate_on_failure: Optional[bool] = None) -> Result[MigrationRunSummary]:
        compensate = self.compensate_on_failure if compensate_on_failure is None else compensate_on_failure
        try:
            state_result = await self.get_current_state()
            if not state_result.success:
                return state_result
            state = state_result.data
            pending = self.pending_migrations(state)

            if not pending:
                self._log.info("No pending migrations", extra={"version": state.current_version})
                return Result.ok(
                    MigrationRunSummary(
                        migrations_run=0,
                        new_version=state.current_version,
                        executed_migrations=list(state.executed_migration_ids),
                    ),
                    message="No pending migrations",
                )

            self._log.info("Starting migrations", extra={"pending": [m.id for m in pending]})
            completed_this_run: List[MigrationRun] = []

            for migration in pending:
                run = MigrationRun(migration)
                run.start()
                self._log.info("Running migration", extra={"migration_id": migration.id, "version": migration.version})
                await self._record(migration, "started")
                error: Optional[BaseException] = None
                with timed_block(f"migration:{migration.id}") as timing:
                    try:
                        await migration.up(self.client)
                    except Exception as exc:
                        error = exc
                if error is not None:
                    run.fail()
                    run.error = error
                    self._log.error(
                        "Migration failed",
                        extra={"migration_id": migration.id, "version": migration.version, "error": str(error)},
                    )
                    await self._record(migration, "failed", error, duration_ms=timing.duration_ms)
                    return await self._handle_failure(run, state, completed_this_run, compensate)

                run.complete()
                await self._record(migration, "completed", duration_ms=timing.duration_ms)
                state = state.model_copy(
                    update={
                        "executed_migration_ids": [*state.executed_migration_ids, migration.id],
                        "current_version": max_version([state.current_version, migration.version]),
                        "last_migration_at": utc_now_strict(),
                    }
                )
                saved = await self._save_state(state)
                if not saved.success:
                    return Result.fail(
                        code=ErrorCode.MIGRATION_PROCESS_FAILED,
                        message=f"Migration {migration.id} completed but its state could not be saved",
                        details={"migrationId": migration.id, "error": saved.error.model_dump()},
                    )
                completed_this_run.append(run)

            self._log.info(
                "Migrations completed",
                extra={"count": len(completed_this_run), "version": state.current_version},
            )
            return Result.ok(
                MigrationRunSummary(
                    migrations_run=len(completed_this_run),
                    new_version=state.current_version,
                    executed_migrations=list(state.executed_migration_ids),
                ),
                message=f"Successfully ran {len(completed_this_run)} migrations",
            )
        except Exception as exc:
            self._log.exception("Migration process failed")
            return Result.fail(
                code=ErrorCode.MIGRATION_PROCESS_FAILED,
                message="Migration process failed",
                details={"error": str(exc)},
            )

    async def _handle_failure(
        self,
        run: MigrationRun,
        state: MigrationState,
        completed_this_run: List[MigrationRun],
        compensate: bool,
    ) -> Result[Any]:
        migration = run.migration
        rolled_back, state, _ = await self._roll_back(run, state)

        compensated: List[str] = []
        compensation_failed: Optional[str] = None
        if compensate:
            for earlier in reversed(completed_this_run):
                ok, state, _ = await self._roll_back(earlier, state)
                if not ok:
                    compensation_failed = earlier.migration.id
                    break
                compensated.append(earlier.migration.id)

        return Result.fail(
            code=ErrorCode.MIGRATION_EXECUTION_FAILED,
            message=f"Migration failed: {migration.name}",
            details={
                "migrationId": migration.id,
                "version": migration.version,
                "error": str(run.error),
                "rollback": run.status.value,
                "compensated": compensated,
                "compensationFailed": compensation_failed,
                "currentVersion": state.current_version,
                "rolledBack": rolled_back,
            },
        )

    async def rollback_to_version(self, target_version: str) -> Result[RollbackSummary]:
        """
        Run `down()` for every executed migration above `target_version`,
        newest first. A malformed target raises ValueError.
        """
        parse_version(target_version)
        try:
            state_result = await self.get_current_state()
            if not state_result.success:
                return state_result
            state = state_result.data
            executed = set(state.executed_migration_ids)
            to_roll_back = self._by_version(
                (m for m in self.migrations if m.id in executed and compare_versions(m.version, target_version) > 0),
                descending=True,
            )

            if not to_roll_back:
                return Result.ok(
                    RollbackSummary(
                        migrations_rolled_back=0,
                        new_version=state.current_version,
                        executed_migrations=list(state.executed_migration_ids),
                    ),
                    message="No migrations to rollback",
                )

            self._log.info(
                "Starting rollback",
                extra={"target_version": target_version, "migrations": [m.id for m in to_roll_back]},
            )
            rolled_back: List[str] = []
            for migration in to_roll_back:
                run = MigrationRun(migration, initial=MigrationStatus.COMPLETED)
                ok, state, error = await self._roll_back(run, state)
                if not ok:
                    return Result.fail(
                        code=ErrorCode.ROLLBACK_EXECUTION_FAILED,
                        message=f"Rollback failed: {migration.name}",
                        details={
                            "migrationId": migration.id,
                            "version": migration.version,
                            "error": str(error),
                            "rolledBack": rolled_back,
                            "currentVersion": state.current_version,
                        },
                    )
                rolled_back.append(migration.id)

            return Result.ok(
                RollbackSummary(
                    migrations_rolled_back=len(rolled_back),
                    new_version=state.current_version,
                    executed_migrations=list(state.executed_migration_ids),
                ),
                message=f"Successfully rolled back {len(rolled_back)} migrations",
            )
        except Exception as exc:
            self._log.exception("Rollback process failed")
            return Result.fail(
                code=ErrorCode.ROLLBACK_PROCESS_FAILED,
                message="Rollback process failed",
                details={"error": str(exc)},
            )

    async def check_migration_status(self) -> Result[MigrationStatusReport]:
        """Read-only: never creates the state document."""
        state_result = await self.get_current_state(create_if_missing=False)
        if not state_result.success:
            return Result.fail(
                code=ErrorCode.MIGRATION_STATUS_CHECK_FAILED,
                message="Failed to check migration status",
                details=state_result.error.model_dump(),
            )
        state = state_result.data
        pending = self.pending_migrations(state)
        return Result.ok(
            MigrationStatusReport(
                current_version=state.current_version,
                latest_version=self.latest_version,
                pending_migrations=len(pending),
                executed_migrations=len(state.executed_migration_ids),
                needs_migration=bool(pending),
                pending_ids=[m.id for m in pending],
            )
        )

    async def get_migration_history(self, limit: Optional[int] = None) -> Result[List[MigrationExecution]]:
        """Execution records, newest first."""
        result = await self.client.query(
            Collections.MIGRATIONS,
            QueryOptions(order_by=[("executedAt", "desc")], limit=limit),
            use_cache=False,
        )
        if not result.success:
            return Result.fail(
                code=ErrorCode.MIGRATION_HISTORY_FETCH_FAILED,
                message="Failed to get migration history",
                details=result.error.model_dump(),
            )
        return Result.ok([MigrationExecution.from_document(item) for item in result.data.items])


__all__ = [
    "MigrationEngine",
    "MigrationRunSummary",
    "MigrationStatusReport",
    "RollbackSummary",
    "STATE_DOCUMENT_ID",
]

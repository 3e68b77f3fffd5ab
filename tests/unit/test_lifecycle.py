from __future__ import annotations

import pytest
from transitions import MachineError

from coachstore.migrations.lifecycle import Migration, MigrationRun, MigrationStatus


async def _noop(client) -> None:
    return None


@pytest.fixture
def migration() -> Migration:
    return Migration(id="m1", version="1.0.0", name="noop", up=_noop, down=_noop)


def test_successful_run(migration: Migration) -> None:
    run = MigrationRun(migration)

    run.start()
    run.complete()

    assert run.status is MigrationStatus.COMPLETED


def test_failure_then_rollback(migration: Migration) -> None:
    run = MigrationRun(migration)

    run.start()
    run.fail()
    run.begin_rollback()
    run.finish_rollback()

    assert run.status is MigrationStatus.ROLLED_BACK


def test_rollback_can_fail(migration: Migration) -> None:
    run = MigrationRun(migration, initial=MigrationStatus.COMPLETED)

    run.begin_rollback()
    run.fail_rollback()

    assert run.status is MigrationStatus.ROLLBACK_FAILED


@pytest.mark.parametrize(
    "initial,trigger",
    [
        (MigrationStatus.PENDING, "complete"),
        (MigrationStatus.PENDING, "begin_rollback"),
        (MigrationStatus.COMPLETED, "start"),
        (MigrationStatus.ROLLED_BACK, "begin_rollback"),
        (MigrationStatus.RUNNING, "finish_rollback"),
    ],
)
def test_invalid_transitions_raise(migration: Migration, initial: MigrationStatus, trigger: str) -> None:
    run = MigrationRun(migration, initial=initial)

    with pytest.raises(MachineError):
        getattr(run, trigger)()

    assert run.status is initial

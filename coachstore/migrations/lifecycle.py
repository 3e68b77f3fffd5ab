"""
Migration definitions and the per-migration lifecycle.

Allowed transitions:

    pending -> running -> completed
    running -> failed -> rolling_back -> rolled_back | rollback_failed
    completed -> rolling_back            (explicit rollback to a version)

Any other trigger raises `transitions.MachineError`; the engine never catches
it, since it can only mean a bug in the engine itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from transitions import Machine

if TYPE_CHECKING:
    from coachstore.client import DocumentStoreClient

MigrationAction = Callable[["DocumentStoreClient"], Awaitable[None]]


@dataclass(frozen=True)
class Migration:
    """A versioned, reversible change to stored data."""

    id: str
    version: str
    name: str
    up: MigrationAction
    down: MigrationAction
    description: str = ""


class MigrationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


class MigrationRun:
    """
    Wraps a Migration to track one execution of it through the lifecycle.

    Triggers (`start`, `complete`, `fail`, `begin_rollback`, `finish_rollback`,
    `fail_rollback`) are added by the machine; `state` holds the status value.
    """

    def __init__(self, migration: Migration, initial: MigrationStatus = MigrationStatus.PENDING) -> None:
        self.migration = migration
        self.error: Optional[BaseException] = None
        self.machine = Machine(
            model=self,
            states=[s.value for s in MigrationStatus],
            initial=initial.value,
            auto_transitions=False,
        )
        self.machine.add_transition("start", MigrationStatus.PENDING.value, MigrationStatus.RUNNING.value)
        self.machine.add_transition("complete", MigrationStatus.RUNNING.value, MigrationStatus.COMPLETED.value)
        self.machine.add_transition("fail", MigrationStatus.RUNNING.value, MigrationStatus.FAILED.value)
        self.machine.add_transition(
            "begin_rollback",
            [MigrationStatus.FAILED.value, MigrationStatus.COMPLETED.value],
            MigrationStatus.ROLLING_BACK.value,
        )
        self.machine.add_transition(
            "finish_rollback", MigrationStatus.ROLLING_BACK.value, MigrationStatus.ROLLED_BACK.value
        )
        self.machine.add_transition(
            "fail_rollback", MigrationStatus.ROLLING_BACK.value, MigrationStatus.ROLLBACK_FAILED.value
        )

    @property
    def status(self) -> MigrationStatus:
        return MigrationStatus(self.state)  # type: ignore[attr-defined]


__all__ = ["Migration", "MigrationAction", "MigrationRun", "MigrationStatus"]

"""
Versioned, reversible migrations for the document store.
"""

from coachstore.migrations.builtin import BUILTIN_MIGRATIONS
from coachstore.migrations.engine import (
    STATE_DOCUMENT_ID,
    MigrationEngine,
    MigrationRunSummary,
    MigrationStatusReport,
    RollbackSummary,
)
from coachstore.migrations.lifecycle import Migration, MigrationRun, MigrationStatus
from coachstore.migrations.versioning import compare_versions, parse_version

__all__ = [
    "BUILTIN_MIGRATIONS",
    "Migration",
    "MigrationEngine",
    "MigrationRun",
    "MigrationRunSummary",
    "MigrationStatus",
    "MigrationStatusReport",
    "RollbackSummary",
    "STATE_DOCUMENT_ID",
    "compare_versions",
    "parse_version",
]

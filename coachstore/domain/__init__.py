"""
Domain package for coachstore.

Exports the typed collection records and the result/query contracts used by
the client, the migration engine, and the seed loader.
"""

from coachstore.domain.models import (
    Achievement,
    AppSettings,
    Collections,
    MigrationExecution,
    MigrationState,
    Quiz,
    QuizQuestion,
    Record,
    Skill,
    Sport,
)
from coachstore.domain.results import (
    ArrayOperation,
    BatchOperation,
    CacheStats,
    ErrorDetails,
    HealthReport,
    OrderBy,
    QueryOptions,
    QueryPage,
    RealtimeUpdate,
    Result,
    WhereClause,
)

__all__ = [
    "Achievement",
    "AppSettings",
    "ArrayOperation",
    "BatchOperation",
    "CacheStats",
    "Collections",
    "ErrorDetails",
    "HealthReport",
    "MigrationExecution",
    "MigrationState",
    "OrderBy",
    "QueryOptions",
    "QueryPage",
    "Quiz",
    "QuizQuestion",
    "RealtimeUpdate",
    "Record",
    "Result",
    "Skill",
    "Sport",
    "WhereClause",
]

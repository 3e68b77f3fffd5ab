"""
Sample data loading and referential-integrity checks.
"""

from coachstore.seeding.loader import (
    MANAGED_COLLECTIONS,
    IntegrityReport,
    SeedCheckReport,
    SeededEntityMap,
    SeedLoader,
    SeedSummary,
)

__all__ = [
    "IntegrityReport",
    "MANAGED_COLLECTIONS",
    "SeedCheckReport",
    "SeedLoader",
    "SeedSummary",
    "SeededEntityMap",
]

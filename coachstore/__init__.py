"""
coachstore - document-store access layer for the coaching platform.

This package provides the data layer that domain services build on:

- A bounded, TTL-based cache with per-document and per-query invalidation
- Retry classification for transient backend failures
- A Result-returning document store client (CRUD, queries, atomic batches,
  counters, array operations, realtime subscriptions) over memory or Postgres
- A versioned, reversible migration engine with state kept in the store
- A seed loader that wires cross-collection references and validates them
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from coachstore.cache import CacheManager
from coachstore.client import DocumentStoreClient
from coachstore.config import Settings, get_settings
from coachstore.domain.results import BatchOperation, QueryOptions, QueryPage, Result
from coachstore.errors import ErrorCode, StoreError
from coachstore.infrastructure.backend import DELETE_FIELD
from coachstore.infrastructure.db_factory import create_backend
from coachstore.infrastructure.memory import MemoryDocumentStore
from coachstore.manager import DatabaseManager, build_manager
from coachstore.migrations import Migration, MigrationEngine
from coachstore.retry import RetryClassifier
from coachstore.seeding import SeedLoader
from coachstore.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Client
    "BatchOperation",
    "CacheManager",
    "DELETE_FIELD",
    "DocumentStoreClient",
    "ErrorCode",
    "QueryOptions",
    "QueryPage",
    "Result",
    "RetryClassifier",
    "StoreError",
    # Backends
    "MemoryDocumentStore",
    "create_backend",
    # Bootstrap
    "DatabaseManager",
    "Migration",
    "MigrationEngine",
    "SeedLoader",
    "build_manager",
    # Logging
    "configure_logging",
    "get_logger",
]

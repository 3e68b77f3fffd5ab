"""
Infrastructure package: document backends and their construction.
"""

from coachstore.infrastructure.backend import DELETE_FIELD, AbstractDocumentBackend, Change, DocumentBackend
from coachstore.infrastructure.db_factory import PoolManager, build_dsn, create_backend
from coachstore.infrastructure.memory import MemoryDocumentStore
from coachstore.infrastructure.postgres import PostgresDocumentStore

__all__ = [
    "AbstractDocumentBackend",
    "Change",
    "DELETE_FIELD",
    "DocumentBackend",
    "MemoryDocumentStore",
    "PoolManager",
    "PostgresDocumentStore",
    "build_dsn",
    "create_backend",
]

"""
Pytest configuration for coachstore.

Provides fixtures for:
- Settings with zero retry delays
- A memory backend with fault injection (`FlakyBackend`)
- A client wired to it, plus a classifier that counts its calls
- Postgres settings for integration tests
"""

from __future__ import annotations

import os
from collections import Counter
from typing import Any, Dict, List

import pytest

from coachstore.client import DocumentStoreClient
from coachstore.config import Settings
from coachstore.infrastructure.memory import MemoryDocumentStore
from coachstore.retry import RetryClassifier, RetryDecision


class FlakyBackend(MemoryDocumentStore):
    """
    Memory backend that raises queued errors before delegating.

    `fail("insert", TransientStoreError("down"))` makes the next insert raise
    once; `calls` counts every attempt per method.
    """

    def __init__(self) -> None:
        super().__init__()
        self.failures: Dict[str, List[BaseException]] = {}
        self.calls: Counter = Counter()

    def fail(self, method: str, *errors: BaseException) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def _attempt(self, method: str) -> None:
        self.calls[method] += 1
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    async def get(self, collection, doc_id):
        self._attempt("get")
        return await super().get(collection, doc_id)

    async def insert(self, collection, data, doc_id=None):
        self._attempt("insert")
        return await super().insert(collection, data, doc_id)

    async def update(self, collection, doc_id, patch):
        self._attempt("update")
        return await super().update(collection, doc_id, patch)

    async def delete(self, collection, doc_id):
        self._attempt("delete")
        return await super().delete(collection, doc_id)

    async def run_query(self, collection, options):
        self._attempt("run_query")
        return await super().run_query(collection, options)

    async def commit(self, operations):
        self._attempt("commit")
        return await super().commit(operations)

    async def increment(self, collection, doc_id, field, delta, updates):
        self._attempt("increment")
        return await super().increment(collection, doc_id, field, delta, updates)

    async def apply_array_ops(self, collection, doc_id, operations, updates):
        self._attempt("apply_array_ops")
        return await super().apply_array_ops(collection, doc_id, operations, updates)

    async def watch(self, collection, doc_id, listener):
        self._attempt("watch")
        return await super().watch(collection, doc_id, listener)


class CountingClassifier(RetryClassifier):
    """RetryClassifier that records every classification."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.decisions: List[RetryDecision] = []

    def classify(self, error: BaseException, attempt: int = 1) -> RetryDecision:
        decision = super().classify(error, attempt)
        self.decisions.append(decision)
        return decision


class SleepRecorder:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        retry_max_attempts=3,
        retry_base_delay_ms=10,
        retry_max_delay_ms=100,
        cache_max_size=100,
        batch_max_operations=50,
        seed_clear_page_size=5,
        log_level="DEBUG",
    )


@pytest.fixture
def backend() -> FlakyBackend:
    return FlakyBackend()


@pytest.fixture
def classifier(test_settings: Settings) -> CountingClassifier:
    return CountingClassifier(
        max_attempts=test_settings.retry_max_attempts,
        base_delay_ms=test_settings.retry_base_delay_ms,
        max_delay_ms=test_settings.retry_max_delay_ms,
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def client(
    backend: FlakyBackend,
    classifier: CountingClassifier,
    test_settings: Settings,
    sleeper: SleepRecorder,
) -> DocumentStoreClient:
    return DocumentStoreClient(backend, classifier=classifier, settings=test_settings, sleep=sleeper)


@pytest.fixture(scope="session")
def postgres_settings() -> Settings:
    """
    Settings for integration tests against a real Postgres.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        store_backend="postgres",
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "coachstore_test"),
        db_documents_table="documents_test",
        db_notify_channel="coachstore_test_changes",
        retry_base_delay_ms=10,
        log_level="DEBUG",
    )

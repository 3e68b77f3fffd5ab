"""
Document store client.

`DocumentStoreClient` is the contract every domain service, the migration
engine and the seed loader build on. It composes a `DocumentBackend` with the
`CacheManager` and the `RetryClassifier` and turns every outcome into a
`Result`:

- reads go through the cache (documents by id, query pages by fingerprint);
- every write invalidates the touched document keys and the collection's
  query pages before it returns, whether it succeeded or not;
- transient backend failures are retried with tenacity, asking the
  classifier exactly once per failed attempt; anything that survives the
  retry budget comes back as a failed `Result`.

Example
-------
    client = DocumentStoreClient(MemoryDocumentStore())
    created = await client.create("sports", {"name": "Hockey"})
    fetched = await client.get_by_id("sports", created.data["id"])
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type, TypeVar, Union

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from coachstore.cache import CacheManager, document_key, query_key
from coachstore.config import Settings, get_settings
from coachstore.domain.models import Record
from coachstore.domain.results import (
    ArrayOperation,
    BatchOperation,
    CacheStats,
    HealthReport,
    QueryOptions,
    QueryPage,
    RealtimeUpdate,
    Result,
)
from coachstore.errors import ErrorCode, StoreError
from coachstore.infrastructure.backend import DELETE_FIELD, Change, DocumentBackend
from coachstore.realtime import Subscription, UpdateCallback
from coachstore.retry import RetryClassifier, RetryDecision, is_transient
from coachstore.utils.logging import get_logger
from coachstore.utils.timing import timed_block

T = TypeVar("T")
R = TypeVar("R", bound=Record)

Payload = Union[Dict[str, Any], Record]

_HEALTH_COLLECTION = "_health"
_IMMUTABLE_FIELDS = ("id", "createdAt")

_last_timestamp: Optional[datetime] = None


def utc_now_strict() -> datetime:
    """Timezone-aware UTC now, strictly greater than any value returned before."""
    global _last_timestamp
    now = datetime.now(timezone.utc)
    if _last_timestamp is not None and now <= _last_timestamp:
        now = _last_timestamp + timedelta(microseconds=1)
    _last_timestamp = now
    return now


def _as_fields(data: Payload) -> Dict[str, Any]:
    """Plain field map with None values removed (None is never written)."""
    if isinstance(data, Record):
        return data.to_document()
    return {key: value for key, value in dict(data).items() if value is not None}


def _without_sentinels(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not DELETE_FIELD}


class DocumentStoreClient:
    """
    Cached, retrying, Result-returning access to a document backend.

    Parameters
    ----------
    backend : DocumentBackend
        Storage implementation (memory or Postgres).
    cache : CacheManager, optional
        Shared cache; built from settings when omitted.
    classifier : RetryClassifier, optional
        Retry policy; built from settings when omitted.
    settings : Settings, optional
        Defaults to `get_settings()`.
    logger : logging.Logger, optional
        Injected logger; defaults to this module's logger.
    sleep : coroutine function
        Used between retries; tests pass a no-op.
    clock : callable
        Source of write timestamps.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        cache: Optional[CacheManager] = None,
        classifier: Optional[RetryClassifier] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now_strict,
    ) -> None:
        settings = settings or get_settings()
        self.backend = backend
        self.cache = (
            cache
            if cache is not None
            else CacheManager(max_size=settings.cache_max_size, default_ttl=settings.cache_default_ttl_seconds)
        )
        self.classifier = classifier if classifier is not None else RetryClassifier.from_settings(settings)
        self.batch_max_operations = settings.batch_max_operations
        self._log = logger or get_logger(__name__)
        self._sleep = sleep
        self._now = clock
        self._subscriptions: List[Subscription] = []

    async def __aenter__(self) -> "DocumentStoreClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Retry and failure plumbing
    # ------------------------------------------------------------------

    async def _with_retry(self, action: str, func: Callable[[], Awaitable[T]], **context: Any) -> T:
        decisions: Dict[int, RetryDecision] = {}

        def should_retry(retry_state: RetryCallState) -> bool:
            outcome = retry_state.outcome
            if outcome is None or not outcome.failed:
                return False
            error = outcome.exception()
            decision = self.classifier.classify(error, retry_state.attempt_number)
            decisions[retry_state.attempt_number] = decision
            if decision.retryable:
                self._log.warning(
                    "Transient failure, retrying",
                    extra={
                        "action": action,
                        "attempt": retry_state.attempt_number,
                        "delay_ms": decision.delay_ms,
                        "reason": decision.reason,
                        **context,
                    },
                )
            return decision.retryable

        def wait(retry_state: RetryCallState) -> float:
            decision = decisions.get(retry_state.attempt_number)
            return decision.delay_ms / 1000.0 if decision else 0.0

        retrying = AsyncRetrying(
            retry=should_retry,
            wait=wait,
            stop=stop_after_attempt(self.classifier.max_attempts),
            sleep=self._sleep,
            reraise=True,
        )

        # tenacity only awaits coroutine functions; call sites pass lambdas
        async def attempt() -> T:
            return await func()

        return await retrying(attempt)

    def _failure(self, action: str, error: BaseException, **context: Any) -> Result[Any]:
        transient, reason = is_transient(error)
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        code = error.code if isinstance(error, StoreError) else ErrorCode.INTERNAL
        details: Dict[str, Any] = {"action": action, **context}
        if isinstance(error, StoreError) and error.details is not None:
            details["cause"] = error.details
        if transient:
            details.update({"lastCode": code, "attempts": self.classifier.max_attempts})
            code = ErrorCode.MAX_RETRIES_EXCEEDED
        self._log.error(
            "Store operation failed",
            extra={"action": action, "code": code, "reason": reason, "error": message, **context},
        )
        return Result.fail(code=code, message=message, details=details, retryable=transient)

    def _invalidate(self, collection: str, *doc_ids: Optional[str]) -> None:
        for doc_id in doc_ids:
            if doc_id:
                self.cache.invalidate(document_key(collection, doc_id))
        self.cache.invalidate_collection(collection)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, collection: str, data: Payload) -> Result[Dict[str, Any]]:
        """Insert a new document with a generated id; returns the stored fields and id."""
        return await self._insert(collection, data, None)

    async def create_with_id(self, collection: str, doc_id: str, data: Payload) -> Result[Dict[str, Any]]:
        """Insert a document under a caller-chosen id; fails with ALREADY_EXISTS on a clash."""
        return await self._insert(collection, data, doc_id)

    async def _insert(self, collection: str, data: Payload, doc_id: Optional[str]) -> Result[Dict[str, Any]]:
        now = self._now()
        fields = {key: value for key, value in _as_fields(data).items() if key != "id"}
        fields.update({"createdAt": now, "updatedAt": now})
        try:
            new_id = await self._with_retry(
                "create",
                lambda: self.backend.insert(collection, fields, doc_id),
                collection=collection,
            )
        except Exception as exc:
            return self._failure("create", exc, collection=collection, doc_id=doc_id)
        finally:
            self.cache.invalidate_collection(collection)
        self._log.debug("Document created", extra={"collection": collection, "doc_id": new_id})
        return Result.ok({**fields, "id": new_id})

    async def get_by_id(
        self,
        collection: str,
        doc_id: str,
        use_cache: bool = True,
        cache_ttl: Optional[float] = None,
        model: Optional[Type[R]] = None,
    ) -> Result[Any]:
        """
        Fetch one document. A missing document is a success with `data=None`.

        With `model`, the document is returned as that `Record` subclass.
        """
        key = document_key(collection, doc_id)
        document: Optional[Dict[str, Any]] = self.cache.get(key) if use_cache else None
        if document is None:
            generation = self.cache.generation()
            try:
                document = await self._with_retry(
                    "get_by_id",
                    lambda: self.backend.get(collection, doc_id),
                    collection=collection,
                    doc_id=doc_id,
                )
            except Exception as exc:
                return self._failure("get_by_id", exc, collection=collection, doc_id=doc_id)
            if document is not None and use_cache:
                self.cache.set(key, document, cache_ttl, since=generation)
        if document is not None and model is not None:
            return Result.ok(model.from_document(document))
        return Result.ok(document)

    async def update(self, collection: str, doc_id: str, data: Payload) -> Result[Dict[str, Any]]:
        """
        Merge `data` into an existing document and stamp `updatedAt`.

        Dotted keys address nested fields; `DELETE_FIELD` removes a field.
        """
        patch = {key: value for key, value in _as_fields(data).items() if key not in _IMMUTABLE_FIELDS}
        patch["updatedAt"] = self._now()
        try:
            await self._with_retry(
                "update",
                lambda: self.backend.update(collection, doc_id, patch),
                collection=collection,
                doc_id=doc_id,
            )
        except Exception as exc:
            return self._failure("update", exc, collection=collection, doc_id=doc_id)
        finally:
            self._invalidate(collection, doc_id)
        return Result.ok({**_without_sentinels(patch), "id": doc_id})

    async def delete(self, collection: str, doc_id: str, soft_delete: bool = False) -> Result[None]:
        """Hard delete, or with `soft_delete` set `isDeleted`/`deletedAt` and keep the record."""
        if soft_delete:
            now = self._now()
            action = "soft_delete"
            operation = lambda: self.backend.update(  # noqa: E731
                collection, doc_id, {"isDeleted": True, "deletedAt": now, "updatedAt": now}
            )
        else:
            action = "delete"
            operation = lambda: self.backend.delete(collection, doc_id)  # noqa: E731
        try:
            await self._with_retry(action, operation, collection=collection, doc_id=doc_id)
        except Exception as exc:
            return self._failure(action, exc, collection=collection, doc_id=doc_id)
        finally:
            self._invalidate(collection, doc_id)
        return Result.ok(None, message="Document soft-deleted" if soft_delete else "Document deleted")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(
        self,
        collection: str,
        options: Union[QueryOptions, Dict[str, Any], None] = None,
        use_cache: bool = True,
        model: Optional[Type[R]] = None,
    ) -> Result[QueryPage]:
        """
        Run a query; `items` follow the `order_by` clauses then `id`.

        `total` counts every match regardless of `limit` and `cursor`.
        """
        if not isinstance(options, QueryOptions):
            options = QueryOptions.model_validate(options or {})
        key = query_key(collection, options.fingerprint())
        page: Optional[QueryPage] = self.cache.get(key) if use_cache else None
        if page is None:
            generation = self.cache.generation()
            try:
                page = await self._with_retry(
                    "query",
                    lambda: self.backend.run_query(collection, options),
                    collection=collection,
                )
            except Exception as exc:
                return self._failure("query", exc, collection=collection)
            if use_cache:
                self.cache.set(key, page, since=generation)
        if model is not None:
            page = page.model_copy(update={"items": [model.from_document(item) for item in page.items]})
        return Result.ok(page)

    async def exists(self, collection: str, doc_id: str) -> Result[bool]:
        result = await self.get_by_id(collection, doc_id)
        if not result.success:
            return Result.from_error(result.error)
        return Result.ok(result.data is not None)

    async def count(
        self, collection: str, options: Union[QueryOptions, Dict[str, Any], None] = None
    ) -> Result[int]:
        if not isinstance(options, QueryOptions):
            options = QueryOptions.model_validate(options or {})
        result = await self.query(collection, options.model_copy(update={"limit": 1, "cursor": None}))
        if not result.success:
            return Result.from_error(result.error)
        return Result.ok(result.data.total)

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def subscribe_to_document(
        self, collection: str, doc_id: str, callback: UpdateCallback
    ) -> Result[Subscription]:
        """
        Deliver the current document, then every change to it.

        The initial update is `added` with the document, or `removed` with
        `data=None` when it does not exist yet.
        """

        async def render(change: Optional[Change]) -> RealtimeUpdate:
            if change is None:
                document = await self._with_retry(
                    "snapshot", lambda: self.backend.get(collection, doc_id), collection=collection
                )
                return RealtimeUpdate(type="added" if document else "removed", data=document)
            if change.type == "removed":
                return RealtimeUpdate(type="removed", data=None)
            data = change.data
            if data is None:
                data = await self.backend.get(collection, doc_id)
            return RealtimeUpdate(type=change.type, data=data)

        return await self._subscribe(collection, doc_id, f"{collection}/{doc_id}", callback, render)

    async def subscribe_to_collection(
        self,
        collection: str,
        options: Union[QueryOptions, Dict[str, Any], None],
        callback: UpdateCallback,
    ) -> Result[Subscription]:
        """Deliver the matching items now and again, re-queried, after every change in the collection."""
        if not isinstance(options, QueryOptions):
            options = QueryOptions.model_validate(options or {})

        async def render(change: Optional[Change]) -> RealtimeUpdate:
            page = await self._with_retry(
                "snapshot", lambda: self.backend.run_query(collection, options), collection=collection
            )
            return RealtimeUpdate(type=change.type if change else "added", data=page.items)

        return await self._subscribe(collection, None, f"{collection}:*", callback, render)

    async def _subscribe(self, collection, doc_id, name, callback, render) -> Result[Subscription]:
        subscription = Subscription(
            callback, render, name=name, logger=self._log, on_close=self._forget_subscription
        )
        try:
            cancel = await self._with_retry(
                "subscribe",
                lambda: self.backend.watch(collection, doc_id, subscription.push),
                collection=collection,
            )
        except Exception as exc:
            subscription.unsubscribe()
            failure = self._failure("subscribe", exc, collection=collection, doc_id=doc_id)
            return Result.fail(
                code=ErrorCode.SUBSCRIPTION_FAILED,
                message=failure.error.message,
                details=failure.error.details,
                retryable=failure.error.retryable,
            )
        subscription.attach(cancel)
        subscription.push_initial()
        self._subscriptions.append(subscription)
        self._log.debug("Subscribed", extra={"subscription": name})
        return Result.ok(subscription)

    @property
    def subscriptions(self) -> List[Subscription]:
        """Live subscriptions opened through this client."""
        return list(self._subscriptions)

    def _forget_subscription(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    # ------------------------------------------------------------------
    # Batches and atomic mutations
    # ------------------------------------------------------------------

    async def batch_write(self, operations: Iterable[Union[BatchOperation, Dict[str, Any]]]) -> Result[List[str]]:
        """
        Apply creates, updates and deletes as one all-or-nothing unit.

        Returns the document ids in operation order (generated ids for creates).
        Batches above `BATCH_MAX_OPERATIONS` are rejected; callers chunk.
        """
        ops = [op if isinstance(op, BatchOperation) else BatchOperation.model_validate(op) for op in operations]
        if len(ops) > self.batch_max_operations:
            return Result.fail(
                code=ErrorCode.BATCH_TOO_LARGE,
                message=f"Batch of {len(ops)} operations exceeds the limit of {self.batch_max_operations}",
                details={"size": len(ops), "limit": self.batch_max_operations},
            )
        if not ops:
            return Result.ok([])

        now = self._now()
        stamped: List[BatchOperation] = []
        for op in ops:
            if op.type == "create":
                fields = {k: v for k, v in _as_fields(op.data or {}).items() if k != "id"}
                fields.update({"createdAt": now, "updatedAt": now})
                stamped.append(op.model_copy(update={"data": fields}))
            elif op.type == "update":
                fields = {k: v for k, v in _as_fields(op.data or {}).items() if k not in _IMMUTABLE_FIELDS}
                fields["updatedAt"] = now
                stamped.append(op.model_copy(update={"data": fields}))
            else:
                stamped.append(op)

        try:
            ids = await self._with_retry("batch_write", lambda: self.backend.commit(stamped), size=len(stamped))
        except Exception as exc:
            return self._failure("batch_write", exc, size=len(stamped))
        finally:
            for op in stamped:
                self._invalidate(op.collection, op.id)
        self._log.debug("Batch committed", extra={"size": len(stamped)})
        return Result.ok(ids)

    async def increment_field(self, collection: str, doc_id: str, field: str, delta: float = 1) -> Result[None]:
        """Atomically add `delta` to a numeric field (missing counts as 0)."""
        updates = {"updatedAt": self._now()}
        try:
            await self._with_retry(
                "increment_field",
                lambda: self.backend.increment(collection, doc_id, field, delta, updates),
                collection=collection,
                doc_id=doc_id,
            )
        except Exception as exc:
            return self._failure("increment_field", exc, collection=collection, doc_id=doc_id, field=field)
        finally:
            self._invalidate(collection, doc_id)
        return Result.ok(None)

    async def array_operations(
        self,
        collection: str,
        doc_id: str,
        operations: Iterable[Union[ArrayOperation, Dict[str, Any]]],
    ) -> Result[None]:
        """Atomic array union (`add`) / removal (`remove`) on one document."""
        ops = [op if isinstance(op, ArrayOperation) else ArrayOperation.model_validate(op) for op in operations]
        updates = {"updatedAt": self._now()}
        try:
            await self._with_retry(
                "array_operations",
                lambda: self.backend.apply_array_ops(collection, doc_id, ops, updates),
                collection=collection,
                doc_id=doc_id,
            )
        except Exception as exc:
            return self._failure("array_operations", exc, collection=collection, doc_id=doc_id)
        finally:
            self._invalidate(collection, doc_id)
        return Result.ok(None)

    # ------------------------------------------------------------------
    # Health and cache pass-throughs
    # ------------------------------------------------------------------

    async def health_check(self) -> Result[HealthReport]:
        """
        Minimal read against the store. Latency is reported in both outcomes;
        any error makes the status `unhealthy`.
        """
        error: Optional[str] = None
        with timed_block("health_check") as timing:
            try:
                await self.backend.get(_HEALTH_COLLECTION, "ping")
            except Exception as exc:
                error = str(exc) or type(exc).__name__
        report = HealthReport(
            status="unhealthy" if error else "healthy",
            latency_ms=round(timing.duration_ms, 3),
            cache_stats=self.cache.stats(),
            error=error,
        )
        if error:
            self._log.warning("Health check failed", extra={"error": error, "latency_ms": report.latency_ms})
        return Result.ok(report)

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def close(self) -> None:
        """Cancel live subscriptions and release the backend."""
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()
        self._subscriptions.clear()
        await self.backend.close()


__all__ = ["DocumentStoreClient", "utc_now_strict"]

"""
In-process document backend.

`MemoryDocumentStore` keeps every collection in a dict of dicts and evaluates
queries in Python with the same semantics as the Postgres backend. It is the
default backend for tests and for local development without a database.

Documents are deep-copied on the way in and on the way out, so neither the
caller nor a watcher can mutate stored state. Batches are staged against a
private overlay and only applied once every operation has validated, so a
failing batch leaves the store untouched.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from coachstore.domain.results import ArrayOperation, BatchOperation, QueryOptions, QueryPage, WhereClause
from coachstore.errors import AlreadyExistsError, NotFoundError, StoreValidationError
from coachstore.infrastructure.backend import (
    AbstractDocumentBackend,
    CancelWatch,
    Change,
    ChangeListener,
    apply_array_operation,
    apply_increment,
    apply_patch,
    get_path,
    is_missing,
)

_Document = Dict[str, Any]


def _with_id(doc_id: str, data: _Document) -> _Document:
    document = copy.deepcopy(data)
    document["id"] = doc_id
    return document


def _strip_id(data: _Document) -> _Document:
    document = copy.deepcopy(data)
    document.pop("id", None)
    return document


# ---------------------------------------------------------------------------
# Query evaluation
# ---------------------------------------------------------------------------


def _rank(value: Any) -> Tuple[float, Any]:
    """Total order across value types; missing fields sort before everything."""
    if is_missing(value):
        return (0, 0)
    if value is None:
        return (1, 0)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, datetime):
        return (2.5, value)
    if isinstance(value, bool):
        return (4, value)
    if isinstance(value, (int, float)):
        return (3, value)
    return (5, json.dumps(value, sort_keys=True, default=str))


def _compare(left: Any, right: Any) -> Optional[int]:
    """-1/0/1 for values of the same kind, None when they are not comparable."""
    left_rank, left_key = _rank(left)
    right_rank, right_key = _rank(right)
    if left_rank != right_rank or left_rank in (0, 1, 5):
        return None
    return (left_key > right_key) - (left_key < right_key)


def matches(document: _Document, clause: WhereClause) -> bool:
    value = get_path(document, clause.field)
    if is_missing(value):
        return False
    op, target = clause.operator, clause.value

    if op == "==":
        return value == target
    if op == "!=":
        return value != target
    if op in ("<", "<=", ">", ">="):
        order = _compare(value, target)
        if order is None:
            return False
        return {
            "<": order < 0,
            "<=": order <= 0,
            ">": order > 0,
            ">=": order >= 0,
        }[op]
    if op in ("in", "not-in"):
        if not isinstance(target, (list, tuple, set)):
            raise StoreValidationError(f"Operator {op!r} needs a list value")
        found = value in list(target)
        return found if op == "in" else not found
    if op == "array-contains":
        return isinstance(value, list) and target in value
    if op == "array-contains-any":
        if not isinstance(target, (list, tuple, set)):
            raise StoreValidationError("Operator 'array-contains-any' needs a list value")
        return isinstance(value, list) and any(item in value for item in target)
    raise StoreValidationError(f"Unsupported operator {op!r}")


def sort_documents(documents: List[_Document], options: QueryOptions) -> List[_Document]:
    """Sort by the order_by clauses, then by id, using stable passes from last key to first."""
    ordered = sorted(documents, key=lambda doc: doc["id"])
    for order in reversed(options.order_by):
        ordered.sort(
            key=lambda doc, field=order.field: _rank(get_path(doc, field)),
            reverse=order.direction == "desc",
        )
    return ordered


def paginate(ordered: List[_Document], options: QueryOptions) -> QueryPage:
    start = 0
    if options.cursor is not None:
        for index, document in enumerate(ordered):
            if document["id"] == options.cursor:
                start = index + 1
                break
    remaining = ordered[start:]
    page = remaining if options.limit is None else remaining[: options.limit]
    has_more = len(remaining) > len(page)
    return QueryPage(
        items=page,
        total=len(ordered),
        has_more=has_more,
        next_cursor=page[-1]["id"] if page and has_more else None,
    )


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class MemoryDocumentStore(AbstractDocumentBackend):
    """
    Dict-backed implementation of `DocumentBackend`.

    Parameters
    ----------
    id_factory : callable, optional
        Generates ids for inserts without an explicit id.
    """

    name = "memory"

    def __init__(self, id_factory: Optional[Callable[[], str]] = None) -> None:
        self._collections: Dict[str, Dict[str, _Document]] = {}
        self._id_factory = id_factory or self.new_id
        self._watchers: Dict[int, Tuple[str, Optional[str], ChangeListener]] = {}
        self._watch_ids = itertools.count(1)
        self._closed = False
        # Declared (collection, field) indexes; queries never need them here
        self.indexes: set[Tuple[str, str]] = set()

    def _collection(self, name: str) -> Dict[str, _Document]:
        return self._collections.setdefault(name, {})

    # -- reads ---------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[_Document]:
        stored = self._collections.get(collection, {}).get(doc_id)
        if stored is None:
            return None
        return _with_id(doc_id, stored)

    async def run_query(self, collection: str, options: QueryOptions) -> QueryPage:
        candidates = [_with_id(doc_id, data) for doc_id, data in self._collections.get(collection, {}).items()]
        matched = [doc for doc in candidates if all(matches(doc, clause) for clause in options.where)]
        return paginate(sort_documents(matched, options), options)

    # -- single-document writes ----------------------------------------------

    async def insert(self, collection: str, data: _Document, doc_id: Optional[str] = None) -> str:
        target = self._collection(collection)
        new_id = doc_id or self._id_factory()
        if new_id in target:
            raise AlreadyExistsError(f"Document {collection}/{new_id} already exists")
        target[new_id] = _strip_id(data)
        self._emit([Change(collection, new_id, "added", _with_id(new_id, target[new_id]))])
        return new_id

    async def update(self, collection: str, doc_id: str, patch: _Document) -> None:
        stored = self._require(collection, doc_id)
        updated = apply_patch(copy.deepcopy(stored), _strip_id(patch))
        self._collection(collection)[doc_id] = updated
        self._emit([Change(collection, doc_id, "modified", _with_id(doc_id, updated))])

    async def delete(self, collection: str, doc_id: str) -> None:
        if self._collections.get(collection, {}).pop(doc_id, None) is not None:
            self._emit([Change(collection, doc_id, "removed")])

    async def increment(
        self, collection: str, doc_id: str, field: str, delta: float, updates: _Document
    ) -> None:
        updated = copy.deepcopy(self._require(collection, doc_id))
        apply_increment(updated, field, delta)
        apply_patch(updated, updates)
        self._collection(collection)[doc_id] = updated
        self._emit([Change(collection, doc_id, "modified", _with_id(doc_id, updated))])

    async def apply_array_ops(
        self,
        collection: str,
        doc_id: str,
        operations: Sequence[ArrayOperation],
        updates: _Document,
    ) -> None:
        updated = copy.deepcopy(self._require(collection, doc_id))
        for operation in operations:
            apply_array_operation(updated, operation)
        apply_patch(updated, updates)
        self._collection(collection)[doc_id] = updated
        self._emit([Change(collection, doc_id, "modified", _with_id(doc_id, updated))])

    # -- batches -------------------------------------------------------------

    async def commit(self, operations: Sequence[BatchOperation]) -> List[str]:
        # (collection, id) -> staged document, or None for a staged delete
        staged: Dict[Tuple[str, str], Optional[_Document]] = {}
        changes: List[Change] = []
        ids: List[str] = []

        def current(collection: str, doc_id: str) -> Optional[_Document]:
            if (collection, doc_id) in staged:
                return staged[(collection, doc_id)]
            return self._collections.get(collection, {}).get(doc_id)

        for operation in operations:
            collection = operation.collection
            if operation.type == "create":
                doc_id = operation.id or self._id_factory()
                if current(collection, doc_id) is not None:
                    raise AlreadyExistsError(f"Document {collection}/{doc_id} already exists")
                staged[(collection, doc_id)] = _strip_id(operation.data or {})
                changes.append(Change(collection, doc_id, "added"))
            elif operation.type == "update":
                doc_id = operation.id
                existing = current(collection, doc_id)
                if existing is None:
                    raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
                staged[(collection, doc_id)] = apply_patch(copy.deepcopy(existing), _strip_id(operation.data or {}))
                changes.append(Change(collection, doc_id, "modified"))
            else:
                doc_id = operation.id
                if current(collection, doc_id) is not None:
                    changes.append(Change(collection, doc_id, "removed"))
                staged[(collection, doc_id)] = None
            ids.append(doc_id)

        for (collection, doc_id), document in staged.items():
            if document is None:
                self._collection(collection).pop(doc_id, None)
            else:
                self._collection(collection)[doc_id] = document

        emitted = []
        for change in changes:
            final = staged[(change.collection, change.doc_id)]
            data = None if change.type == "removed" or final is None else _with_id(change.doc_id, final)
            emitted.append(Change(change.collection, change.doc_id, change.type, data))
        self._emit(emitted)
        return ids

    # -- realtime ------------------------------------------------------------

    async def watch(self, collection: str, doc_id: Optional[str], listener: ChangeListener) -> CancelWatch:
        watch_id = next(self._watch_ids)
        self._watchers[watch_id] = (collection, doc_id, listener)

        def cancel() -> None:
            self._watchers.pop(watch_id, None)

        return cancel

    def _emit(self, changes: List[Change]) -> None:
        if not changes or not self._watchers:
            return
        loop = asyncio.get_running_loop()
        for change in changes:
            for collection, doc_id, listener in list(self._watchers.values()):
                if collection != change.collection:
                    continue
                if doc_id is not None and doc_id != change.doc_id:
                    continue
                loop.call_soon(listener, change)

    # -- lifecycle -----------------------------------------------------------

    async def create_field_index(self, collection: str, field: str) -> None:
        self.indexes.add((collection, field))

    async def drop_field_index(self, collection: str, field: str) -> None:
        self.indexes.discard((collection, field))

    async def ping(self) -> None:
        if self._closed:
            raise ConnectionError("memory store is closed")

    async def close(self) -> None:
        self._watchers.clear()
        self._closed = True

    # -- helpers -------------------------------------------------------------

    def _require(self, collection: str, doc_id: str) -> _Document:
        stored = self._collections.get(collection, {}).get(doc_id)
        if stored is None:
            raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
        return stored

    def snapshot(self) -> Dict[str, Dict[str, _Document]]:
        """Deep copy of every stored document, keyed by collection then id."""
        return copy.deepcopy(self._collections)

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))


__all__ = ["MemoryDocumentStore", "matches", "paginate", "sort_documents"]

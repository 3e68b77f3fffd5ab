"""
Backend interfaces for the document store.

A backend is the I/O edge of coachstore: it stores schema-less field maps per
collection, evaluates queries, commits batches atomically, applies atomic
field mutations, and pushes change notifications. It knows nothing about
caching, retries, or timestamps; those belong to `DocumentStoreClient`.

Concrete backends implement the `DocumentBackend` protocol, usually by
subclassing `AbstractDocumentBackend`, and raise `coachstore.errors.StoreError`
subclasses on failure.
"""

from __future__ import annotations

import abc
import copy
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Protocol, Sequence, runtime_checkable

from coachstore.domain.results import ArrayOperation, BatchOperation, QueryOptions, QueryPage
from coachstore.errors import StoreValidationError

ChangeType = Literal["added", "modified", "removed"]


class _DeleteField:
    """Sentinel: as a value in an update, removes the field."""

    _instance: Optional["_DeleteField"] = None

    def __new__(cls) -> "_DeleteField":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __copy__(self) -> "_DeleteField":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_DeleteField":
        return self

    def __reduce__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()

_MISSING = object()


@dataclass(frozen=True)
class Change:
    """A committed write, as pushed to watchers."""

    collection: str
    doc_id: str
    type: ChangeType
    data: Optional[Dict[str, Any]] = None


ChangeListener = Callable[[Change], None]
CancelWatch = Callable[[], None]


@runtime_checkable
class DocumentBackend(Protocol):
    """
    Common interface all document backends must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier ("memory", "postgres").
    """

    name: str

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document (with its `id`) or None when it does not exist."""
        ...

    async def insert(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Insert a new document and return its id. Raises AlreadyExistsError on id clash."""
        ...

    async def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:
        """Merge `patch` (dotted keys, DELETE_FIELD values) into an existing document."""
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove the document; deleting a missing document is a no-op."""
        ...

    async def run_query(self, collection: str, options: QueryOptions) -> QueryPage:
        ...

    async def commit(self, operations: Sequence[BatchOperation]) -> List[str]:
        """Apply all operations atomically and return the affected ids in order."""
        ...

    async def increment(
        self, collection: str, doc_id: str, field: str, delta: float, updates: Dict[str, Any]
    ) -> None:
        ...

    async def apply_array_ops(
        self,
        collection: str,
        doc_id: str,
        operations: Sequence[ArrayOperation],
        updates: Dict[str, Any],
    ) -> None:
        ...

    async def watch(
        self, collection: str, doc_id: Optional[str], listener: ChangeListener
    ) -> CancelWatch:
        ...

    async def create_field_index(self, collection: str, field: str) -> None:
        ...

    async def drop_field_index(self, collection: str, field: str) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...


class AbstractDocumentBackend(abc.ABC):
    """
    ABC helper for class-based backends with the field-path helpers they share.

    Subclasses set `name` and implement the abstract coroutines.
    """

    name: str

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:20]

    @abc.abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def insert(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def run_query(self, collection: str, options: QueryOptions) -> QueryPage:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def commit(self, operations: Sequence[BatchOperation]) -> List[str]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def increment(
        self, collection: str, doc_id: str, field: str, delta: float, updates: Dict[str, Any]
    ) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def apply_array_ops(
        self,
        collection: str,
        doc_id: str,
        operations: Sequence[ArrayOperation],
        updates: Dict[str, Any],
    ) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def watch(
        self, collection: str, doc_id: Optional[str], listener: ChangeListener
    ) -> CancelWatch:  # pragma: no cover
        raise NotImplementedError

    async def create_field_index(self, collection: str, field: str) -> None:
        """Secondary index on one field; backends without indexes ignore it."""
        return None

    async def drop_field_index(self, collection: str, field: str) -> None:
        return None

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Field-path helpers (shared by backends that mutate documents in Python)
# ---------------------------------------------------------------------------


def split_path(field: str) -> List[str]:
    parts = field.split(".")
    if not field or any(not part for part in parts):
        raise StoreValidationError(f"Invalid field path: {field!r}")
    return parts


def get_path(document: Dict[str, Any], field: str, default: Any = _MISSING) -> Any:
    """Read a dotted field path; returns `default` (a private sentinel) when absent."""
    node: Any = document
    for part in split_path(field):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def set_path(document: Dict[str, Any], field: str, value: Any) -> None:
    parts = split_path(field)
    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            child = {}
            node[part] = child
        elif not isinstance(child, dict):
            raise StoreValidationError(f"Cannot set {field!r}: {part!r} is not a map")
        node = child
    node[parts[-1]] = value


def delete_path(document: Dict[str, Any], field: str) -> None:
    parts = split_path(field)
    node: Any = document
    for part in parts[:-1]:
        if not isinstance(node, dict) or part not in node:
            return
        node = node[part]
    if isinstance(node, dict):
        node.pop(parts[-1], None)


def apply_patch(document: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Apply an update patch in place and return the document."""
    for field, value in patch.items():
        if value is DELETE_FIELD:
            delete_path(document, field)
        else:
            set_path(document, field, copy.deepcopy(value))
    return document


def apply_increment(document: Dict[str, Any], field: str, delta: float) -> None:
    current = get_path(document, field, default=0)
    if current is None:
        current = 0
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        raise StoreValidationError(f"Cannot increment non-numeric field {field!r}")
    set_path(document, field, current + delta)


def apply_array_operation(document: Dict[str, Any], operation: ArrayOperation) -> None:
    """Union (`add`) or removal (`remove`) of one value."""
    current = get_path(document, operation.field, default=None)
    if current is None:
        current = []
    if not isinstance(current, list):
        raise StoreValidationError(f"Field {operation.field!r} is not an array")
    if operation.operation == "add":
        updated = list(current)
        if operation.value not in updated:
            updated.append(copy.deepcopy(operation.value))
    else:
        updated = [item for item in current if item != operation.value]
    set_path(document, operation.field, updated)


def is_missing(value: Any) -> bool:
    return value is _MISSING


__all__ = [
    "AbstractDocumentBackend",
    "CancelWatch",
    "Change",
    "ChangeListener",
    "ChangeType",
    "DELETE_FIELD",
    "DocumentBackend",
    "apply_array_operation",
    "apply_increment",
    "apply_patch",
    "delete_path",
    "get_path",
    "is_missing",
    "set_path",
    "split_path",
]

"""
Contracts shared by the client, the migration engine and the seed loader.

Every public operation returns a `Result` envelope; queries are described by
`QueryOptions`; multi-document writes by `BatchOperation`. These are pydantic
models so malformed inputs (unknown operators, a delete without an id) are
rejected at construction, before anything reaches the store.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from coachstore.errors import StoreError

T = TypeVar("T")

Operator = Literal[
    "==",
    "!=",
    "<",
    "<=",
    ">",
    ">=",
    "in",
    "not-in",
    "array-contains",
    "array-contains-any",
]
Direction = Literal["asc", "desc"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorDetails(BaseModel):
    """Structured failure carried by a failed `Result`."""

    code: str
    message: str
    details: Optional[Any] = None
    retryable: bool = False


class Result(BaseModel, Generic[T]):
    """
    Uniform result envelope.

    `success=False` always comes with `error`; `success=True` may carry
    `data=None` (e.g. a lookup of a document that does not exist).
    """

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetails] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "Result[Any]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        details: Optional[Any] = None,
        retryable: bool = False,
    ) -> "Result[Any]":
        return cls(
            success=False,
            error=ErrorDetails(code=code, message=message, details=details, retryable=retryable),
        )

    @classmethod
    def from_error(cls, error: ErrorDetails) -> "Result[Any]":
        return cls(success=False, error=error)

    def unwrap(self) -> Any:
        """Return `data`, raising StoreError when the result failed."""
        if not self.success:
            error = self.error
            raise StoreError(error.message, code=error.code, details=error.details, retryable=error.retryable)
        return self.data


class WhereClause(BaseModel):
    field: str
    operator: Operator
    value: Any = None

    model_config = {"frozen": True}


class OrderBy(BaseModel):
    field: str
    direction: Direction = "asc"

    model_config = {"frozen": True}


class QueryOptions(BaseModel):
    """
    Query description: conjunctive `where`, lexicographic `order_by`, `limit`
    and a start-after `cursor` (id of the last document of the previous page).

    Clauses may be given as models, dicts, or tuples:
        QueryOptions(where=[("sportId", "==", sport_id)], order_by=[("order", "asc")], limit=20)
    """

    where: List[WhereClause] = Field(default_factory=list)
    order_by: List[OrderBy] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=1)
    cursor: Optional[str] = None

    @field_validator("where", mode="before")
    @classmethod
    def _coerce_where(cls, value: Any) -> Any:
        if value is None:
            return []
        return [
            {"field": item[0], "operator": item[1], "value": item[2]}
            if isinstance(item, (tuple, list))
            else item
            for item in value
        ]

    @field_validator("order_by", mode="before")
    @classmethod
    def _coerce_order_by(cls, value: Any) -> Any:
        if value is None:
            return []
        coerced = []
        for item in value:
            if isinstance(item, str):
                coerced.append({"field": item})
            elif isinstance(item, (tuple, list)):
                coerced.append({"field": item[0], "direction": item[1] if len(item) > 1 else "asc"})
            else:
                coerced.append(item)
        return coerced

    def fingerprint(self) -> str:
        """Stable hash of the options, used as the query cache key."""
        canonical = json.dumps(self.model_dump(mode="json"), sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class QueryPage(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False
    next_cursor: Optional[str] = None


class BatchOperation(BaseModel):
    """One write inside an atomic batch."""

    type: Literal["create", "update", "delete"]
    collection: str
    id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "BatchOperation":
        if self.type in ("update", "delete") and not self.id:
            raise ValueError(f"{self.type} operation requires an id")
        if self.type in ("create", "update") and self.data is None:
            raise ValueError(f"{self.type} operation requires data")
        return self

    @classmethod
    def create(cls, collection: str, data: Dict[str, Any], id: Optional[str] = None) -> "BatchOperation":
        return cls(type="create", collection=collection, id=id, data=data)

    @classmethod
    def update(cls, collection: str, id: str, data: Dict[str, Any]) -> "BatchOperation":
        return cls(type="update", collection=collection, id=id, data=data)

    @classmethod
    def delete(cls, collection: str, id: str) -> "BatchOperation":
        return cls(type="delete", collection=collection, id=id)


class ArrayOperation(BaseModel):
    field: str
    operation: Literal["add", "remove"]
    value: Any


class RealtimeUpdate(BaseModel):
    type: Literal["added", "modified", "removed"]
    data: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)


class CacheStats(BaseModel):
    size: int
    max_size: int
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0


class HealthReport(BaseModel):
    status: Literal["healthy", "unhealthy"]
    latency_ms: float
    cache_stats: CacheStats
    error: Optional[str] = None


__all__ = [
    "ArrayOperation",
    "BatchOperation",
    "CacheStats",
    "Direction",
    "ErrorDetails",
    "HealthReport",
    "Operator",
    "OrderBy",
    "QueryOptions",
    "QueryPage",
    "RealtimeUpdate",
    "Result",
    "WhereClause",
]

"""
PostgreSQL document backend.

Every document lives in one JSONB table keyed by `(collection, id)`. Queries
are compiled to SQL over `data #> path` expressions with bound parameters;
ordering follows jsonb's cross-type order with missing fields first.

Writes run in a transaction and announce themselves with `pg_notify` inside
that transaction, so a notification is only delivered once the write is
committed. A single LISTEN connection (opened lazily on the first `watch`)
fans notifications out to registered watchers.

Timestamps are stored as ISO-8601 UTC strings with microsecond precision, which
keeps them sortable inside jsonb, and are decoded back to `datetime` on read.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import psycopg
from psycopg import AsyncConnection, AsyncCursor, sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from coachstore.domain.results import ArrayOperation, BatchOperation, QueryOptions, QueryPage, WhereClause
from coachstore.errors import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    StoreValidationError,
    TransientStoreError,
)
from coachstore.infrastructure.backend import (
    AbstractDocumentBackend,
    CancelWatch,
    Change,
    ChangeListener,
    apply_patch,
    split_path,
)
from coachstore.utils.logging import get_logger

if TYPE_CHECKING:
    from coachstore.infrastructure.db_factory import PoolManager

_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{6}\+00:00$")

_COMPARISON_SQL = {"==": "=", "!=": "<>", "<": "<", "<=": "<=", ">": ">", ">=": ">="}

# JSON null and missing are both treated as an empty array by array operations
_ARRAY_AT = "COALESCE(NULLIF(data #> %(path)s::text[], 'null'::jsonb), '[]'::jsonb)"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


_dumps = partial(json.dumps, default=_encode)


def to_jsonb(value: Any) -> Jsonb:
    return Jsonb(value, dumps=_dumps)


def decode_document(value: Any) -> Any:
    """Recursively turn stored ISO timestamps back into aware datetimes."""
    if isinstance(value, dict):
        return {key: decode_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_document(item) for item in value]
    if isinstance(value, str) and _ISO_TIMESTAMP.match(value):
        return datetime.fromisoformat(value)
    return value


@asynccontextmanager
async def translate_errors() -> AsyncIterator[None]:
    """Re-raise psycopg failures as `StoreError` subclasses."""
    try:
        yield
    except StoreError:
        raise
    except psycopg.errors.UniqueViolation as exc:
        raise AlreadyExistsError(str(exc)) from exc
    except psycopg.errors.InsufficientPrivilege as exc:
        raise PermissionDeniedError(str(exc)) from exc
    except psycopg.DataError as exc:
        raise StoreValidationError(str(exc)) from exc
    except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
        raise TransientStoreError(str(exc)) from exc
    except psycopg.Error as exc:
        raise StoreError(str(exc), details={"sqlstate": exc.sqlstate}) from exc


# ---------------------------------------------------------------------------
# Query compilation
# ---------------------------------------------------------------------------


def _field_expr(field: str) -> Tuple[sql.Composable, List[Any]]:
    if field == "id":
        return sql.SQL("to_jsonb(id)"), []
    return sql.SQL("(data #> %s::text[])"), [split_path(field)]


def compile_where(clause: WhereClause) -> Tuple[sql.Composable, List[Any]]:
    """SQL condition and its positional parameters for one where clause."""
    expr, expr_params = _field_expr(clause.field)
    op, value = clause.operator, clause.value

    if op in ("==", "!="):
        condition = sql.SQL("{} {} %s").format(expr, sql.SQL(_COMPARISON_SQL[op]))
        return condition, expr_params + [to_jsonb(value)]
    if op in ("<", "<=", ">", ">="):
        condition = sql.SQL("({e} {op} %s AND jsonb_typeof({e}) = jsonb_typeof(%s))").format(
            e=expr, op=sql.SQL(_COMPARISON_SQL[op])
        )
        return condition, expr_params + [to_jsonb(value)] + expr_params + [to_jsonb(value)]
    if op in ("in", "not-in", "array-contains-any"):
        if not isinstance(value, (list, tuple, set)):
            raise StoreValidationError(f"Operator {op!r} needs a list value")
        candidates = [to_jsonb(item) for item in value]
        if not candidates:
            if op == "not-in":
                return sql.SQL("{} IS NOT NULL").format(expr), expr_params
            return sql.SQL("FALSE"), []
        if op == "in":
            return sql.SQL("{} = ANY(%s)").format(expr), expr_params + [candidates]
        if op == "not-in":
            return sql.SQL("NOT ({} = ANY(%s))").format(expr), expr_params + [candidates]
        condition = sql.SQL(
            "CASE WHEN jsonb_typeof({e}) = 'array' THEN EXISTS ("
            "SELECT 1 FROM jsonb_array_elements({e}) AS elem(v) WHERE elem.v = ANY(%s)"
            ") ELSE FALSE END"
        ).format(e=expr)
        return condition, expr_params + expr_params + [candidates]
    if op == "array-contains":
        condition = sql.SQL("(jsonb_typeof({e}) = 'array' AND {e} @> jsonb_build_array(%s))").format(e=expr)
        return condition, expr_params + expr_params + [to_jsonb(value)]
    raise StoreValidationError(f"Unsupported operator {op!r}")


def compile_order(options: QueryOptions) -> Tuple[sql.Composable, List[Any]]:
    parts: List[sql.Composable] = []
    params: List[Any] = []
    for order in options.order_by:
        expr, expr_params = _field_expr(order.field)
        direction = sql.SQL("DESC NULLS LAST" if order.direction == "desc" else "ASC NULLS FIRST")
        parts.append(sql.SQL("{} {}").format(expr, direction))
        params.extend(expr_params)
    parts.append(sql.SQL("id ASC"))
    return sql.SQL(", ").join(parts), params


def _index_name(table: str, collection: str, field: str) -> str:
    raw = f"ix_{table}_{collection}_{field}".lower()
    return re.sub(r"[^a-z0-9_]", "_", raw)[:63]


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class PostgresDocumentStore(AbstractDocumentBackend):
    """
    JSONB-table implementation of `DocumentBackend`.

    Parameters
    ----------
    pools : PoolManager
        Owns the async connection pool and opens the dedicated LISTEN connection.
    table : str
        Documents table name.
    channel : str
        NOTIFY channel used for change notifications.
    """

    name = "postgres"

    def __init__(
        self,
        pools: "PoolManager",
        table: str = "documents",
        channel: str = "coachstore_changes",
        logger=None,
    ) -> None:
        self._pools = pools
        self._table_name = table
        self._table = sql.Identifier(table)
        self._channel = channel
        self._log = logger or get_logger(__name__)
        self._watchers: Dict[int, Tuple[str, Optional[str], ChangeListener]] = {}
        self._watch_ids = itertools.count(1)
        self._listen_conn: Optional[AsyncConnection] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._listener_lock = asyncio.Lock()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncCursor]:
        async with translate_errors():
            async with self._pools.pool.connection() as conn:
                async with conn.transaction():
                    async with conn.cursor(row_factory=dict_row) as cur:
                        yield cur

    # -- schema --------------------------------------------------------------

    async def ensure_schema(self) -> None:
        """Create the documents table and its GIN index if they do not exist."""
        async with self._transaction() as cur:
            await cur.execute(
                sql.SQL(
                    """
                    CREATE TABLE IF NOT EXISTS {table} (
                        collection TEXT NOT NULL,
                        id TEXT NOT NULL,
                        data JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                        PRIMARY KEY (collection, id)
                    )
                    """
                ).format(table=self._table)
            )
            await cur.execute(
                sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} USING GIN (data jsonb_path_ops)").format(
                    index=sql.Identifier(f"{self._table_name}_data_gin"), table=self._table
                )
            )

    async def create_field_index(self, collection: str, field: str) -> None:
        path = "{" + ",".join(split_path(field)) + "}"
        async with self._transaction() as cur:
            await cur.execute(
                sql.SQL(
                    "CREATE INDEX IF NOT EXISTS {index} ON {table} ((data #> {path}::text[])) "
                    "WHERE collection = {collection}"
                ).format(
                    index=sql.Identifier(_index_name(self._table_name, collection, field)),
                    table=self._table,
                    path=sql.Literal(path),
                    collection=sql.Literal(collection),
                )
            )

    async def drop_field_index(self, collection: str, field: str) -> None:
        async with self._transaction() as cur:
            await cur.execute(
                sql.SQL("DROP INDEX IF EXISTS {index}").format(
                    index=sql.Identifier(_index_name(self._table_name, collection, field))
                )
            )

    # -- reads ---------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self._transaction() as cur:
            await cur.execute(
                sql.SQL("SELECT id, data FROM {} WHERE collection = %s AND id = %s").format(self._table),
                [collection, doc_id],
            )
            row = await cur.fetchone()
        if row is None:
            return None
        return {**decode_document(row["data"]), "id": row["id"]}

    async def run_query(self, collection: str, options: QueryOptions) -> QueryPage:
        order_sql, order_params = compile_order(options)
        conditions: List[sql.Composable] = [sql.SQL("collection = %s")]
        where_params: List[Any] = [collection]
        for clause in options.where:
            condition, params = compile_where(clause)
            conditions.append(condition)
            where_params.extend(params)

        fetch = None if options.limit is None else options.limit + 1
        statement = sql.SQL(
            """
            WITH matched AS (
                SELECT id, data, ROW_NUMBER() OVER (ORDER BY {order}) AS position
                FROM {table}
                WHERE {conditions}
            )
            SELECT totals.total, page.id, page.data
            FROM (SELECT COUNT(*) AS total FROM matched) AS totals
            LEFT JOIN LATERAL (
                SELECT id, data, position FROM matched
                WHERE position > COALESCE((SELECT position FROM matched WHERE id = %s), 0)
                ORDER BY position
                LIMIT %s
            ) AS page ON TRUE
            ORDER BY page.position
            """
        ).format(order=order_sql, table=self._table, conditions=sql.SQL(" AND ").join(conditions))

        async with self._transaction() as cur:
            await cur.execute(statement, order_params + where_params + [options.cursor, fetch])
            rows = await cur.fetchall()

        total = int(rows[0]["total"]) if rows else 0
        items = [{**decode_document(row["data"]), "id": row["id"]} for row in rows if row["id"] is not None]
        has_more = options.limit is not None and len(items) > options.limit
        if has_more:
            items = items[: options.limit]
        return QueryPage(
            items=items,
            total=total,
            has_more=has_more,
            next_cursor=items[-1]["id"] if has_more and items else None,
        )

    # -- cursor-level write helpers -----------------------------------------

    async def _notify(self, cur: AsyncCursor, collection: str, doc_id: str, change: str) -> None:
        payload = json.dumps({"collection": collection, "id": doc_id, "type": change})
        await cur.execute("SELECT pg_notify(%s, %s)", [self._channel, payload])

    async def _insert(self, cur: AsyncCursor, collection: str, data: Dict[str, Any], doc_id: str) -> None:
        document = {key: value for key, value in data.items() if key != "id"}
        await cur.execute(
            sql.SQL("INSERT INTO {} (collection, id, data) VALUES (%s, %s, %s)").format(self._table),
            [collection, doc_id, to_jsonb(document)],
        )
        await self._notify(cur, collection, doc_id, "added")

    async def _update(self, cur: AsyncCursor, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:
        # the row lock serialises concurrent patches to the same document
        await cur.execute(
            sql.SQL("SELECT data FROM {} WHERE collection = %s AND id = %s FOR UPDATE").format(self._table),
            [collection, doc_id],
        )
        row = await cur.fetchone()
        if row is None:
            raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
        patch = {key: value for key, value in patch.items() if key != "id"}
        document = apply_patch(decode_document(row["data"]), patch)
        await cur.execute(
            sql.SQL("UPDATE {} SET data = %s WHERE collection = %s AND id = %s").format(self._table),
            [to_jsonb(document), collection, doc_id],
        )
        await self._notify(cur, collection, doc_id, "modified")

    async def _delete(self, cur: AsyncCursor, collection: str, doc_id: str) -> None:
        await cur.execute(
            sql.SQL("DELETE FROM {} WHERE collection = %s AND id = %s RETURNING id").format(self._table),
            [collection, doc_id],
        )
        if await cur.fetchone() is not None:
            await self._notify(cur, collection, doc_id, "removed")

    # -- writes --------------------------------------------------------------

    async def insert(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        new_id = doc_id or self.new_id()
        async with self._transaction() as cur:
            await self._insert(cur, collection, data, new_id)
        return new_id

    async def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:
        async with self._transaction() as cur:
            await self._update(cur, collection, doc_id, patch)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._transaction() as cur:
            await self._delete(cur, collection, doc_id)

    async def commit(self, operations: Sequence[BatchOperation]) -> List[str]:
        ids: List[str] = []
        async with self._transaction() as cur:
            for operation in operations:
                if operation.type == "create":
                    doc_id = operation.id or self.new_id()
                    await self._insert(cur, operation.collection, operation.data or {}, doc_id)
                elif operation.type == "update":
                    doc_id = operation.id
                    await self._update(cur, operation.collection, doc_id, operation.data or {})
                else:
                    doc_id = operation.id
                    await self._delete(cur, operation.collection, doc_id)
                ids.append(doc_id)
        return ids

    async def _ensure_parents(self, cur: AsyncCursor, collection: str, doc_id: str, field: str) -> List[str]:
        """
        Create the missing intermediate maps of a dotted `field`.

        `jsonb_set` only creates the last path element, so `stats.views` on a
        document without `stats` would otherwise be a silent no-op. A parent
        that exists but is not a map is rejected, as in the memory backend.
        """
        path = split_path(field)
        for depth in range(1, len(path)):
            prefix = path[:depth]
            params = {"prefix": prefix, "collection": collection, "id": doc_id}
            await cur.execute(
                sql.SQL(
                    """
                    UPDATE {table}
                    SET data = jsonb_set(data, %(prefix)s::text[], '{{}}'::jsonb, true)
                    WHERE collection = %(collection)s AND id = %(id)s
                      AND COALESCE(data #> %(prefix)s::text[], 'null'::jsonb) = 'null'::jsonb
                    """
                ).format(table=self._table),
                params,
            )
            await cur.execute(
                sql.SQL(
                    "SELECT jsonb_typeof(data #> %(prefix)s::text[]) AS kind FROM {table} "
                    "WHERE collection = %(collection)s AND id = %(id)s"
                ).format(table=self._table),
                params,
            )
            row = await cur.fetchone()
            if row is None:
                raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
            if row["kind"] != "object":
                raise StoreValidationError(f"Cannot set {field!r}: {prefix[-1]!r} is not a map")
        return path

    async def increment(
        self, collection: str, doc_id: str, field: str, delta: float, updates: Dict[str, Any]
    ) -> None:
        async with self._transaction() as cur:
            path = await self._ensure_parents(cur, collection, doc_id, field)
            await cur.execute(
                sql.SQL(
                    """
                    UPDATE {table}
                    SET data = jsonb_set(
                        data,
                        %(path)s::text[],
                        to_jsonb(COALESCE((data #>> %(path)s::text[])::numeric, 0) + %(delta)s::numeric),
                        true
                    ) || %(updates)s
                    WHERE collection = %(collection)s AND id = %(id)s
                    RETURNING id
                    """
                ).format(table=self._table),
                {
                    "path": path,
                    "delta": delta,
                    "updates": to_jsonb(updates),
                    "collection": collection,
                    "id": doc_id,
                },
            )
            if await cur.fetchone() is None:
                raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
            await self._notify(cur, collection, doc_id, "modified")

    async def apply_array_ops(
        self,
        collection: str,
        doc_id: str,
        operations: Sequence[ArrayOperation],
        updates: Dict[str, Any],
    ) -> None:
        add = sql.SQL(
            f"""
            UPDATE {{table}}
            SET data = jsonb_set(
                data,
                %(path)s::text[],
                CASE WHEN EXISTS (
                    SELECT 1 FROM jsonb_array_elements({_ARRAY_AT}) AS elem(v) WHERE elem.v = %(value)s
                )
                THEN {_ARRAY_AT}
                ELSE {_ARRAY_AT} || jsonb_build_array(%(value)s)
                END,
                true
            )
            WHERE collection = %(collection)s AND id = %(id)s
            RETURNING id
            """
        ).format(table=self._table)
        remove = sql.SQL(
            f"""
            UPDATE {{table}}
            SET data = jsonb_set(
                data,
                %(path)s::text[],
                COALESCE(
                    (
                        SELECT jsonb_agg(elem.v ORDER BY elem.n)
                        FROM jsonb_array_elements({_ARRAY_AT}) WITH ORDINALITY AS elem(v, n)
                        WHERE elem.v <> %(value)s
                    ),
                    '[]'::jsonb
                ),
                true
            )
            WHERE collection = %(collection)s AND id = %(id)s
            RETURNING id
            """
        ).format(table=self._table)

        async with self._transaction() as cur:
            for operation in operations:
                path = await self._ensure_parents(cur, collection, doc_id, operation.field)
                await cur.execute(
                    add if operation.operation == "add" else remove,
                    {
                        "path": path,
                        "value": to_jsonb(operation.value),
                        "collection": collection,
                        "id": doc_id,
                    },
                )
                if await cur.fetchone() is None:
                    raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
            await cur.execute(
                sql.SQL("UPDATE {} SET data = data || %s WHERE collection = %s AND id = %s RETURNING id").format(
                    self._table
                ),
                [to_jsonb(updates), collection, doc_id],
            )
            if await cur.fetchone() is None:
                raise NotFoundError(f"Document {collection}/{doc_id} does not exist")
            await self._notify(cur, collection, doc_id, "modified")

    # -- realtime ------------------------------------------------------------

    async def watch(self, collection: str, doc_id: Optional[str], listener: ChangeListener) -> CancelWatch:
        await self._ensure_listener()
        watch_id = next(self._watch_ids)
        self._watchers[watch_id] = (collection, doc_id, listener)

        def cancel() -> None:
            self._watchers.pop(watch_id, None)

        return cancel

    async def _ensure_listener(self) -> None:
        async with self._listener_lock:
            if self._listener_task is not None:
                return
            async with translate_errors():
                conn = await self._pools.connect_listener()
                await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self._channel)))
            self._listen_conn = conn
            self._listener_task = asyncio.create_task(self._listen(conn), name="coachstore-listen")

    async def _listen(self, conn: AsyncConnection) -> None:
        async for notification in conn.notifies():
            try:
                payload = json.loads(notification.payload)
                await self._dispatch(payload["collection"], payload["id"], payload["type"])
            except (StoreError, KeyError, ValueError):
                self._log.exception(
                    "Failed to dispatch change notification",
                    extra={"payload": notification.payload},
                )

    async def _dispatch(self, collection: str, doc_id: str, change_type: str) -> None:
        targets = [
            listener
            for watched_collection, watched_id, listener in list(self._watchers.values())
            if watched_collection == collection and watched_id in (None, doc_id)
        ]
        if not targets:
            return
        data = None if change_type == "removed" else await self.get(collection, doc_id)
        change = Change(collection, doc_id, change_type, data)  # type: ignore[arg-type]
        for listener in targets:
            listener(change)

    # -- lifecycle -----------------------------------------------------------

    async def ping(self) -> None:
        async with self._transaction() as cur:
            await cur.execute("SELECT 1")
            await cur.fetchone()

    async def close(self) -> None:
        self._watchers.clear()
        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None
        if self._listen_conn is not None:
            await self._listen_conn.close()
            self._listen_conn = None
        await self._pools.close()


__all__ = [
    "PostgresDocumentStore",
    "compile_order",
    "compile_where",
    "decode_document",
    "to_jsonb",
    "translate_errors",
]

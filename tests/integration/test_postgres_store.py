"""
Integration tests for the Postgres document backend.

These tests run against a real PostgreSQL instance and verify that:
1. The client contract holds over the JSONB table (CRUD, queries, batches)
2. Atomic mutations and change notifications work across connections
3. Migrations and seeding run end to end

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime
from typing import AsyncIterator, List

import pytest
import pytest_asyncio

from coachstore.client import DocumentStoreClient
from coachstore.config import Settings
from coachstore.domain.results import BatchOperation, RealtimeUpdate
from coachstore.errors import ErrorCode
from coachstore.infrastructure.db_factory import create_backend
from coachstore.manager import DatabaseManager
from coachstore.migrations.engine import MigrationEngine
from coachstore.seeding import SeedLoader

CONCURRENT_INCREMENTS = 20
NOTIFY_TIMEOUT_SECONDS = 5.0

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest_asyncio.fixture
async def pg_client(postgres_settings: Settings) -> AsyncIterator[DocumentStoreClient]:
    backend = await create_backend(postgres_settings)
    async with backend._pools.pool.connection() as conn:
        await conn.execute(f"TRUNCATE {postgres_settings.db_documents_table}")
    client = DocumentStoreClient(backend, settings=postgres_settings)
    try:
        yield client
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_crud_round_trip(pg_client: DocumentStoreClient) -> None:
    created = await pg_client.create("sports", {"name": "Hockey", "metadata": {"views": 1}})
    doc_id = created.data["id"]

    await pg_client.update("sports", doc_id, {"metadata.likes": 2})
    fetched = (await pg_client.get_by_id("sports", doc_id, use_cache=False)).data

    assert fetched["metadata"] == {"views": 1, "likes": 2}
    assert isinstance(fetched["createdAt"], datetime)
    assert fetched["updatedAt"] > fetched["createdAt"]

    await pg_client.delete("sports", doc_id)
    assert (await pg_client.get_by_id("sports", doc_id)).data is None


@pytest.mark.asyncio
async def test_duplicate_id_is_already_exists(pg_client: DocumentStoreClient) -> None:
    await pg_client.create_with_id("app_settings", "global", {"maintenanceMode": False})

    second = await pg_client.create_with_id("app_settings", "global", {"maintenanceMode": True})

    assert second.error.code == ErrorCode.ALREADY_EXISTS


@pytest.mark.asyncio
async def test_query_semantics_match_memory_backend(pg_client: DocumentStoreClient) -> None:
    for name, order, tags in [("b", 2, ["x"]), ("a", 1, ["y"]), ("c", 3, []), ("d", None, ["x", "y"])]:
        await pg_client.create("skills", {"name": name, "order": order, "tags": tags})

    ordered = (await pg_client.query("skills", {"order_by": [("order", "asc")]})).data
    contains = (await pg_client.query("skills", {"where": [("tags", "array-contains", "x")], "order_by": ["name"]})).data
    ranged = (await pg_client.query("skills", {"where": [("order", ">=", 2)], "order_by": ["name"]})).data
    first_page = (await pg_client.query("skills", {"order_by": ["name"], "limit": 2})).data

    assert [item["name"] for item in ordered.items] == ["d", "a", "b", "c"]
    assert [item["name"] for item in contains.items] == ["b", "d"]
    assert [item["name"] for item in ranged.items] == ["b", "c"]
    assert first_page.total == 4
    assert first_page.has_more is True
    assert first_page.next_cursor == first_page.items[-1]["id"]


@pytest.mark.asyncio
async def test_batch_is_atomic(pg_client: DocumentStoreClient) -> None:
    result = await pg_client.batch_write(
        [
            BatchOperation.create("sports", {"name": "Ghost"}),
            BatchOperation.update("sports", "missing", {"name": "x"}),
        ]
    )

    assert result.error.code == ErrorCode.NOT_FOUND
    assert (await pg_client.count("sports")).data == 0


@pytest.mark.asyncio
async def test_concurrent_increments_are_atomic(pg_client: DocumentStoreClient) -> None:
    doc_id = (await pg_client.create("sports", {"name": "Hockey"})).data["id"]

    await asyncio.gather(
        *[pg_client.increment_field("sports", doc_id, "skillsCount") for _ in range(CONCURRENT_INCREMENTS)]
    )

    assert (await pg_client.get_by_id("sports", doc_id)).data["skillsCount"] == CONCURRENT_INCREMENTS


@pytest.mark.asyncio
async def test_array_operations(pg_client: DocumentStoreClient) -> None:
    doc_id = (await pg_client.create("users", {"badges": ["a"]})).data["id"]

    await pg_client.array_operations(
        "users",
        doc_id,
        [
            {"field": "badges", "operation": "add", "value": "b"},
            {"field": "badges", "operation": "add", "value": "a"},
            {"field": "badges", "operation": "remove", "value": "a"},
            {"field": "tags", "operation": "add", "value": "new"},
        ],
    )
    document = (await pg_client.get_by_id("users", doc_id)).data

    assert document["badges"] == ["b"]
    assert document["tags"] == ["new"]


@pytest.mark.asyncio
async def test_document_subscription_receives_notifications(pg_client: DocumentStoreClient) -> None:
    received: List[RealtimeUpdate] = []
    arrived = asyncio.Event()

    def callback(update: RealtimeUpdate) -> None:
        received.append(update)
        if len(received) == 2:
            arrived.set()

    subscription = (await pg_client.subscribe_to_document("sports", "hockey", callback)).data
    await pg_client.create_with_id("sports", "hockey", {"name": "Hockey"})
    await asyncio.wait_for(arrived.wait(), timeout=NOTIFY_TIMEOUT_SECONDS)
    subscription.unsubscribe()

    assert [update.type for update in received] == ["removed", "added"]
    assert received[1].data["name"] == "Hockey"


@pytest.mark.asyncio
async def test_bootstrap_end_to_end(pg_client: DocumentStoreClient, postgres_settings: Settings) -> None:
    manager = DatabaseManager(
        pg_client,
        MigrationEngine(pg_client, settings=postgres_settings),
        SeedLoader(pg_client, settings=postgres_settings),
    )

    initialized = await manager.initialize(seed_data=True, admin_user_id="integration")
    integrity = await manager.validate_integrity()
    rolled_back = await manager.engine.rollback_to_version("1.0.0")

    assert initialized.success, initialized.error
    assert initialized.data.migrations.new_version == "1.4.0"
    assert initialized.data.seeding.sports_created == 6
    assert integrity.data.valid is True
    assert rolled_back.data.new_version == "1.0.0"


@pytest.mark.asyncio
async def test_nested_mutations_create_missing_parents(pg_client: DocumentStoreClient) -> None:
    doc_id = (await pg_client.create("content", {"title": "Intro"})).data["id"]

    incremented = await pg_client.increment_field("content", doc_id, "metadata.stats.views", 2)
    appended = await pg_client.array_operations(
        "content", doc_id, [{"field": "profile.tags", "operation": "add", "value": "drills"}]
    )
    document = (await pg_client.get_by_id("content", doc_id)).data

    assert incremented.success and appended.success
    assert document["metadata"] == {"stats": {"views": 2}}
    assert document["profile"] == {"tags": ["drills"]}


@pytest.mark.asyncio
async def test_nested_increment_through_scalar_is_rejected(pg_client: DocumentStoreClient) -> None:
    doc_id = (await pg_client.create("content", {"title": "Intro"})).data["id"]

    result = await pg_client.increment_field("content", doc_id, "title.views")

    assert result.error.code == ErrorCode.INVALID_ARGUMENT
    assert (await pg_client.get_by_id("content", doc_id, use_cache=False)).data["title"] == "Intro"

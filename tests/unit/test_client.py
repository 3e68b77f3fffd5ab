from __future__ import annotations

import asyncio

import pytest

from coachstore.cache import document_key
from coachstore.client import DocumentStoreClient
from coachstore.domain.models import Sport
from coachstore.domain.results import ArrayOperation, BatchOperation, QueryOptions
from coachstore.errors import ErrorCode, NotFoundError, PermissionDeniedError, TransientStoreError
from coachstore.infrastructure.backend import DELETE_FIELD
from coachstore.infrastructure.memory import MemoryDocumentStore

CONCURRENT_INCREMENTS = 10
MAX_ATTEMPTS = 3


async def _seed_sports(client: DocumentStoreClient) -> dict:
    ids = {}
    for name, order, featured in [
        ("Basketball", 2, True),
        ("Soccer", 1, True),
        ("Tennis", 3, False),
        ("Yoga", 1, False),
    ]:
        created = await client.create("sports", {"name": name, "order": order, "isFeatured": featured})
        ids[name] = created.data["id"]
    return ids


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_stamps_timestamps_and_strips_none(client: DocumentStoreClient, backend) -> None:
    result = await client.create("sports", {"name": "Hockey", "icon": None, "id": "ignored"})

    assert result.success
    doc_id = result.data["id"]
    assert doc_id != "ignored"
    assert result.data["createdAt"] == result.data["updatedAt"]
    assert result.data["createdAt"].tzinfo is not None

    stored = await backend.get("sports", doc_id)
    assert "icon" not in stored
    assert stored["name"] == "Hockey"


@pytest.mark.asyncio
async def test_create_accepts_record_models(client: DocumentStoreClient) -> None:
    created = await client.create("sports", Sport(name="Hockey", tags=["ice"]))

    fetched = await client.get_by_id("sports", created.data["id"], model=Sport)

    assert isinstance(fetched.data, Sport)
    assert fetched.data.name == "Hockey"
    assert fetched.data.tags == ["ice"]
    assert fetched.data.id == created.data["id"]


@pytest.mark.asyncio
async def test_create_with_id_rejects_duplicates(client: DocumentStoreClient, backend) -> None:
    first = await client.create_with_id("app_settings", "global", {"maintenanceMode": False})
    second = await client.create_with_id("app_settings", "global", {"maintenanceMode": True})

    assert first.success
    assert first.data["id"] == "global"
    assert not second.success
    assert second.error.code == ErrorCode.ALREADY_EXISTS
    assert backend.calls["insert"] == 2  # fatal, not retried


@pytest.mark.asyncio
async def test_get_missing_document_is_success_with_none(client: DocumentStoreClient) -> None:
    result = await client.get_by_id("sports", "does-not-exist")

    assert result.success
    assert result.data is None
    assert result.error is None


@pytest.mark.asyncio
async def test_get_by_id_serves_repeat_reads_from_cache(client: DocumentStoreClient, backend) -> None:
    created = await client.create("sports", {"name": "Hockey"})
    doc_id = created.data["id"]

    await client.get_by_id("sports", doc_id)
    await client.get_by_id("sports", doc_id)
    assert backend.calls["get"] == 1

    await client.get_by_id("sports", doc_id, use_cache=False)
    assert backend.calls["get"] == 2


@pytest.mark.asyncio
async def test_update_then_get_never_returns_stale_data(client: DocumentStoreClient) -> None:
    created = await client.create("sports", {"name": "Hockey", "order": 1})
    doc_id = created.data["id"]
    await client.get_by_id("sports", doc_id)  # warm the cache

    for order in range(2, 6):
        updated = await client.update("sports", doc_id, {"order": order})
        assert updated.success
        fetched = await client.get_by_id("sports", doc_id)
        assert fetched.data["order"] == order


@pytest.mark.asyncio
async def test_failed_write_still_invalidates_cache(client: DocumentStoreClient, backend) -> None:
    created = await client.create("sports", {"name": "Hockey"})
    doc_id = created.data["id"]
    await client.get_by_id("sports", doc_id)
    # another process changes the document behind the cache
    await MemoryDocumentStore.update(backend, "sports", doc_id, {"name": "Ice Hockey"})
    backend.fail("update", PermissionDeniedError("read only"))

    failed = await client.update("sports", doc_id, {"name": "Field Hockey"})
    fetched = await client.get_by_id("sports", doc_id)

    assert not failed.success
    assert failed.error.code == ErrorCode.PERMISSION_DENIED
    assert fetched.data["name"] == "Ice Hockey"


class HeldReadStore(MemoryDocumentStore):
    """Memory store whose reads can be paused after they have read the data."""

    def __init__(self) -> None:
        super().__init__()
        self.hold = False
        self.reading = asyncio.Event()
        self.release = asyncio.Event()

    async def _pause(self) -> None:
        if self.hold:
            self.hold = False
            self.reading.set()
            await self.release.wait()

    async def get(self, collection, doc_id):
        document = await super().get(collection, doc_id)
        await self._pause()
        return document

    async def run_query(self, collection, options):
        page = await super().run_query(collection, options)
        await self._pause()
        return page


@pytest.mark.asyncio
async def test_read_overlapping_a_write_does_not_cache_old_document(test_settings) -> None:
    store = HeldReadStore()
    client = DocumentStoreClient(store, settings=test_settings)
    doc_id = (await client.create("sports", {"name": "Old"})).data["id"]

    store.hold = True
    reader = asyncio.create_task(client.get_by_id("sports", doc_id))
    await store.reading.wait()
    await client.update("sports", doc_id, {"name": "New"})
    store.release.set()

    assert (await reader).data["name"] == "Old"
    assert (await client.get_by_id("sports", doc_id)).data["name"] == "New"


@pytest.mark.asyncio
async def test_query_overlapping_a_create_does_not_cache_old_page(test_settings) -> None:
    store = HeldReadStore()
    client = DocumentStoreClient(store, settings=test_settings)
    await client.create("sports", {"name": "Hockey"})

    store.hold = True
    reader = asyncio.create_task(client.query("sports"))
    await store.reading.wait()
    await client.create("sports", {"name": "Curling"})
    store.release.set()

    assert (await reader).data.total == 1
    assert (await client.query("sports")).data.total == 2


@pytest.mark.asyncio
async def test_successful_writes_reach_the_backend(client: DocumentStoreClient, backend) -> None:
    created = await client.create("sports", {"name": "Hockey"})
    doc_id = created.data["id"]
    assert isinstance(doc_id, str)
    assert backend.count("sports") == 1

    await client.update("sports", doc_id, {"name": "Ice Hockey"})
    await client.increment_field("sports", doc_id, "skillsCount", 2)
    stored = await backend.get("sports", doc_id)
    assert stored["name"] == "Ice Hockey"
    assert stored["skillsCount"] == 2

    await client.delete("sports", doc_id)
    assert backend.count("sports") == 0
    assert backend.calls["insert"] == 1
    assert backend.calls["update"] == 1


@pytest.mark.asyncio
async def test_transient_failure_is_raised_inside_the_retry_loop(client: DocumentStoreClient, backend) -> None:
    backend.fail("insert", TransientStoreError("unavailable"))

    created = await client.create("sports", {"name": "Hockey"})

    assert created.success
    assert backend.calls["insert"] == 2
    assert backend.count("sports") == 1


@pytest.mark.asyncio
async def test_update_keeps_id_and_created_at_and_advances_updated_at(client: DocumentStoreClient) -> None:
    created = await client.create("sports", {"name": "Hockey"})
    doc_id = created.data["id"]

    result = await client.update("sports", doc_id, {"id": "other", "createdAt": "1999-01-01", "name": "Ice Hockey"})
    fetched = await client.get_by_id("sports", doc_id)

    assert result.success
    assert result.data["id"] == doc_id
    assert fetched.data["id"] == doc_id
    assert fetched.data["createdAt"] == created.data["createdAt"]
    assert fetched.data["updatedAt"] > created.data["updatedAt"]
    assert fetched.data["name"] == "Ice Hockey"


@pytest.mark.asyncio
async def test_update_supports_dotted_paths_and_field_deletion(client: DocumentStoreClient) -> None:
    created = await client.create("sports", {"name": "Hockey", "metadata": {"views": 1, "likes": 2}, "icon": "x"})
    doc_id = created.data["id"]

    result = await client.update("sports", doc_id, {"metadata.views": 5, "icon": DELETE_FIELD})
    fetched = await client.get_by_id("sports", doc_id)

    assert "icon" not in result.data
    assert fetched.data["metadata"] == {"views": 5, "likes": 2}
    assert "icon" not in fetched.data


@pytest.mark.asyncio
async def test_update_of_missing_document_is_fatal(client: DocumentStoreClient, backend, classifier) -> None:
    result = await client.update("sports", "missing", {"name": "x"})

    assert not result.success
    assert result.error.code == ErrorCode.NOT_FOUND
    assert result.error.retryable is False
    assert backend.calls["update"] == 1
    assert len(classifier.decisions) == 1


@pytest.mark.asyncio
async def test_hard_delete_removes_document(client: DocumentStoreClient) -> None:
    created = await client.create("sports", {"name": "Hockey"})
    doc_id = created.data["id"]
    await client.get_by_id("sports", doc_id)

    deleted = await client.delete("sports", doc_id)

    assert deleted.success
    assert (await client.get_by_id("sports", doc_id)).data is None
    assert (await client.exists("sports", doc_id)).data is False


@pytest.mark.asyncio
async def test_soft_delete_flags_document_and_keeps_it(client: DocumentStoreClient) -> None:
    created = await client.create("sports", {"name": "Hockey"})
    doc_id = created.data["id"]
    await client.get_by_id("sports", doc_id)

    deleted = await client.delete("sports", doc_id, soft_delete=True)
    fetched = await client.get_by_id("sports", doc_id)

    assert deleted.success
    assert fetched.data["isDeleted"] is True
    assert fetched.data["deletedAt"] == fetched.data["updatedAt"]
    assert fetched.data["name"] == "Hockey"


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_single_transient_failure_is_masked(client: DocumentStoreClient, backend, classifier, sleeper) -> None:
    backend.fail("insert", TransientStoreError("temporarily unavailable"))

    result = await client.create("sports", {"name": "Hockey"})

    assert result.success
    assert backend.calls["insert"] == 2
    assert len(classifier.decisions) == 1
    assert classifier.decisions[0].retryable is True
    assert sleeper.delays == [pytest.approx(0.01)]


@pytest.mark.asyncio
async def test_exhausted_retries_surface_last_error(client: DocumentStoreClient, backend, classifier) -> None:
    backend.fail("run_query", *[TransientStoreError("down") for _ in range(MAX_ATTEMPTS)])

    result = await client.query("sports")

    assert not result.success
    assert result.error.code == ErrorCode.MAX_RETRIES_EXCEEDED
    assert result.error.retryable is True
    assert result.error.details["lastCode"] == ErrorCode.UNAVAILABLE
    assert result.error.details["attempts"] == MAX_ATTEMPTS
    assert backend.calls["run_query"] == MAX_ATTEMPTS
    assert len(classifier.decisions) == MAX_ATTEMPTS


@pytest.mark.asyncio
async def test_backoff_delays_follow_classifier(client: DocumentStoreClient, backend, sleeper) -> None:
    backend.fail("get", TimeoutError(), TimeoutError())

    result = await client.get_by_id("sports", "any")

    assert result.success
    assert sleeper.delays == [pytest.approx(0.01), pytest.approx(0.02)]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_query_orders_by_clauses_then_id(client: DocumentStoreClient) -> None:
    ids = await _seed_sports(client)

    result = await client.query(
        "sports",
        QueryOptions(order_by=[("isFeatured", "desc"), ("order", "asc")]),
    )

    names = [item["name"] for item in result.data.items]
    assert names == ["Soccer", "Basketball", "Yoga", "Tennis"]
    assert result.data.total == len(ids)
    assert result.data.has_more is False


@pytest.mark.asyncio
async def test_query_ties_break_on_id(client: DocumentStoreClient) -> None:
    ids = await _seed_sports(client)

    result = await client.query("sports", {"where": [("order", "==", 1)], "order_by": [("order", "asc")]})

    assert [item["id"] for item in result.data.items] == sorted([ids["Soccer"], ids["Yoga"]])


@pytest.mark.asyncio
async def test_query_pages_with_cursor(client: DocumentStoreClient) -> None:
    await _seed_sports(client)
    options = QueryOptions(order_by=[("name", "asc")], limit=3)

    first = (await client.query("sports", options)).data
    second = (await client.query("sports", options.model_copy(update={"cursor": first.next_cursor}))).data

    assert [item["name"] for item in first.items] == ["Basketball", "Soccer", "Tennis"]
    assert first.total == 4
    assert first.has_more is True
    assert first.next_cursor == first.items[-1]["id"]
    assert [item["name"] for item in second.items] == ["Yoga"]
    assert second.has_more is False
    assert second.next_cursor is None


@pytest.mark.asyncio
async def test_query_operators(client: DocumentStoreClient) -> None:
    for name, tags, level in [("a", ["x", "y"], 1), ("b", ["y"], 2), ("c", [], 3)]:
        await client.create("skills", {"name": name, "tags": tags, "level": level})
    await client.create("skills", {"name": "d"})

    async def names(*where) -> list:
        page = (await client.query("skills", {"where": list(where), "order_by": ["name"]})).data
        return [item["name"] for item in page.items]

    assert await names(("level", ">=", 2)) == ["b", "c"]
    assert await names(("level", "<", 2)) == ["a"]
    assert await names(("level", "!=", 2)) == ["a", "c"]
    assert await names(("name", "in", ["a", "d"])) == ["a", "d"]
    assert await names(("name", "not-in", ["a", "d"])) == ["b", "c"]
    assert await names(("tags", "array-contains", "y")) == ["a", "b"]
    assert await names(("tags", "array-contains-any", ["x", "z"])) == ["a"]
    assert await names(("level", ">", 0), ("tags", "array-contains", "y")) == ["a", "b"]


@pytest.mark.asyncio
async def test_missing_fields_sort_first_ascending(client: DocumentStoreClient) -> None:
    await client.create("skills", {"name": "ranked", "order": 1})
    await client.create("skills", {"name": "unranked"})

    page = (await client.query("skills", {"order_by": [("order", "asc")]})).data

    assert [item["name"] for item in page.items] == ["unranked", "ranked"]


@pytest.mark.asyncio
async def test_cached_query_is_invalidated_by_writes(client: DocumentStoreClient, backend) -> None:
    await client.create("sports", {"name": "Hockey"})
    assert (await client.query("sports")).data.total == 1
    assert (await client.query("sports")).data.total == 1
    assert backend.calls["run_query"] == 1

    await client.create("sports", {"name": "Curling"})

    assert (await client.query("sports")).data.total == 2
    assert (await client.count("sports")).data == 2


@pytest.mark.asyncio
async def test_count_respects_where(client: DocumentStoreClient) -> None:
    await _seed_sports(client)

    result = await client.count("sports", {"where": [("isFeatured", "==", True)]})

    assert result.data == 2


# ---------------------------------------------------------------------------
# Batches and atomic mutations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_batch_write_commits_all_operations(client: DocumentStoreClient) -> None:
    keep = (await client.create("sports", {"name": "Keep"})).data["id"]
    drop = (await client.create("sports", {"name": "Drop"})).data["id"]

    result = await client.batch_write(
        [
            BatchOperation.create("sports", {"name": "New"}),
            BatchOperation.update("sports", keep, {"name": "Kept"}),
            {"type": "delete", "collection": "sports", "id": drop},
        ]
    )

    assert result.success
    new_id, updated_id, deleted_id = result.data
    assert (updated_id, deleted_id) == (keep, drop)
    assert (await client.get_by_id("sports", new_id)).data["name"] == "New"
    assert (await client.get_by_id("sports", keep)).data["name"] == "Kept"
    assert (await client.get_by_id("sports", drop)).data is None


@pytest.mark.asyncio
async def test_batch_write_is_all_or_nothing(client: DocumentStoreClient, backend) -> None:
    before = backend.snapshot()

    result = await client.batch_write(
        [
            BatchOperation.create("sports", {"name": "Ghost"}),
            BatchOperation.update("sports", "missing", {"name": "x"}),
        ]
    )

    assert not result.success
    assert result.error.code == ErrorCode.NOT_FOUND
    assert backend.snapshot() == before
    assert (await client.query("sports", use_cache=False)).data.total == 0


@pytest.mark.asyncio
async def test_batch_over_limit_is_rejected_without_store_access(client: DocumentStoreClient, backend) -> None:
    operations = [BatchOperation.create("sports", {"name": f"s{i}"}) for i in range(client.batch_max_operations + 1)]

    result = await client.batch_write(operations)

    assert not result.success
    assert result.error.code == ErrorCode.BATCH_TOO_LARGE
    assert backend.calls["commit"] == 0


@pytest.mark.asyncio
async def test_concurrent_increments_do_not_lose_updates(client: DocumentStoreClient) -> None:
    doc_id = (await client.create("sports", {"name": "Hockey"})).data["id"]
    await client.get_by_id("sports", doc_id)

    results = await asyncio.gather(
        *[client.increment_field("sports", doc_id, "skillsCount") for _ in range(CONCURRENT_INCREMENTS)]
    )
    await client.increment_field("sports", doc_id, "skillsCount", delta=-3)

    assert all(result.success for result in results)
    assert (await client.get_by_id("sports", doc_id)).data["skillsCount"] == CONCURRENT_INCREMENTS - 3


@pytest.mark.asyncio
async def test_increment_of_missing_document_fails(client: DocumentStoreClient) -> None:
    result = await client.increment_field("sports", "missing", "skillsCount")

    assert result.error.code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_array_operations_union_and_remove(client: DocumentStoreClient) -> None:
    doc_id = (await client.create("users", {"tags": ["a", "b"]})).data["id"]
    await client.get_by_id("users", doc_id)

    result = await client.array_operations(
        "users",
        doc_id,
        [
            ArrayOperation(field="tags", operation="add", value="c"),
            ArrayOperation(field="tags", operation="add", value="b"),
            {"field": "tags", "operation": "remove", "value": "a"},
            {"field": "badges", "operation": "add", "value": "first"},
        ],
    )
    fetched = (await client.get_by_id("users", doc_id)).data

    assert result.success
    assert fetched["tags"] == ["b", "c"]
    assert fetched["badges"] == ["first"]


# ---------------------------------------------------------------------------
# Health and cache
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_check_reports_healthy(client: DocumentStoreClient) -> None:
    result = await client.health_check()

    assert result.success
    assert result.data.status == "healthy"
    assert result.data.latency_ms >= 0
    assert result.data.error is None


@pytest.mark.asyncio
async def test_health_check_reports_unhealthy_with_latency(client: DocumentStoreClient, backend) -> None:
    backend.fail("get", NotFoundError("collection missing"))

    result = await client.health_check()

    assert result.success
    assert result.data.status == "unhealthy"
    assert result.data.latency_ms >= 0
    assert "collection missing" in result.data.error


@pytest.mark.asyncio
async def test_cache_stats_and_clear(client: DocumentStoreClient) -> None:
    doc_id = (await client.create("sports", {"name": "Hockey"})).data["id"]
    await client.get_by_id("sports", doc_id)
    await client.get_by_id("sports", doc_id)

    stats = client.get_cache_stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert document_key("sports", doc_id) in client.cache

    client.clear_cache()

    assert client.get_cache_stats().size == 0

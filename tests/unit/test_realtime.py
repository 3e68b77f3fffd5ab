from __future__ import annotations

from typing import List

import pytest

from coachstore.client import DocumentStoreClient
from coachstore.domain.results import RealtimeUpdate
from coachstore.errors import ErrorCode, PermissionDeniedError


class Recorder:
    def __init__(self) -> None:
        self.updates: List[RealtimeUpdate] = []

    def __call__(self, update: RealtimeUpdate) -> None:
        self.updates.append(update)

    @property
    def types(self) -> List[str]:
        return [update.type for update in self.updates]


@pytest.mark.asyncio
async def test_document_subscription_delivers_snapshot_then_changes(client: DocumentStoreClient) -> None:
    recorder = Recorder()
    subscription = (await client.subscribe_to_document("sports", "hockey", recorder)).data
    await subscription.wait_idle()

    await client.create_with_id("sports", "hockey", {"name": "Hockey"})
    await subscription.wait_idle()
    await client.update("sports", "hockey", {"name": "Ice Hockey"})
    await subscription.wait_idle()
    await client.delete("sports", "hockey")
    await subscription.wait_idle()

    assert recorder.types == ["removed", "added", "modified", "removed"]
    assert recorder.updates[0].data is None
    assert recorder.updates[1].data["name"] == "Hockey"
    assert recorder.updates[2].data["name"] == "Ice Hockey"
    assert recorder.updates[2].data["id"] == "hockey"
    assert recorder.updates[3].data is None
    subscription.unsubscribe()


@pytest.mark.asyncio
async def test_document_subscription_ignores_other_documents(client: DocumentStoreClient) -> None:
    await client.create_with_id("sports", "hockey", {"name": "Hockey"})
    recorder = Recorder()
    subscription = (await client.subscribe_to_document("sports", "hockey", recorder)).data

    await client.create("sports", {"name": "Curling"})
    await subscription.wait_idle()

    assert recorder.types == ["added"]
    subscription.unsubscribe()


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent_and_stops_delivery(client: DocumentStoreClient) -> None:
    await client.create_with_id("sports", "hockey", {"name": "Hockey"})
    recorder = Recorder()
    subscription = (await client.subscribe_to_document("sports", "hockey", recorder)).data
    await subscription.wait_idle()

    subscription.unsubscribe()
    subscription.unsubscribe()
    await client.update("sports", "hockey", {"name": "Ice Hockey"})
    await subscription.wait_idle()

    assert subscription.active is False
    assert recorder.types == ["added"]


@pytest.mark.asyncio
async def test_collection_subscription_requeries_on_change(client: DocumentStoreClient) -> None:
    await client.create("sports", {"name": "Hockey", "isActive": True})
    recorder = Recorder()
    subscription = (
        await client.subscribe_to_collection(
            "sports",
            {"where": [("isActive", "==", True)], "order_by": ["name"]},
            recorder,
        )
    ).data
    await subscription.wait_idle()

    await client.create("sports", {"name": "Curling", "isActive": True})
    await client.create("sports", {"name": "Archery", "isActive": False})
    await subscription.wait_idle()

    assert [item["name"] for item in recorder.updates[0].data] == ["Hockey"]
    assert recorder.types[0] == "added"
    assert [item["name"] for item in recorder.updates[-1].data] == ["Curling", "Hockey"]
    subscription.unsubscribe()


@pytest.mark.asyncio
async def test_subscriptions_do_not_populate_the_cache(client: DocumentStoreClient) -> None:
    await client.create_with_id("sports", "hockey", {"name": "Hockey"})
    subscription = (await client.subscribe_to_document("sports", "hockey", Recorder())).data
    await subscription.wait_idle()

    assert client.get_cache_stats().size == 0
    subscription.unsubscribe()


@pytest.mark.asyncio
async def test_failing_callback_does_not_end_subscription(client: DocumentStoreClient) -> None:
    seen: List[str] = []

    async def callback(update: RealtimeUpdate) -> None:
        seen.append(update.type)
        if len(seen) == 1:
            raise RuntimeError("callback bug")

    subscription = (await client.subscribe_to_document("sports", "hockey", callback)).data
    await subscription.wait_idle()
    await client.create_with_id("sports", "hockey", {"name": "Hockey"})
    await subscription.wait_idle()

    assert seen == ["removed", "added"]
    assert subscription.active
    subscription.unsubscribe()


@pytest.mark.asyncio
async def test_subscribe_failure_is_reported(client: DocumentStoreClient, backend) -> None:
    backend.fail("watch", PermissionDeniedError("no listen permission"))

    result = await client.subscribe_to_collection("sports", None, Recorder())

    assert not result.success
    assert result.error.code == ErrorCode.SUBSCRIPTION_FAILED
    assert result.error.message == "no listen permission"


@pytest.mark.asyncio
async def test_unsubscribed_handles_are_released_by_the_client(client: DocumentStoreClient) -> None:
    first = (await client.subscribe_to_document("sports", "hockey", Recorder())).data
    second = (await client.subscribe_to_collection("sports", None, Recorder())).data
    assert client.subscriptions == [first, second]

    first.unsubscribe()
    first.unsubscribe()

    assert client.subscriptions == [second]
    second.unsubscribe()
    assert client.subscriptions == []


@pytest.mark.asyncio
async def test_failed_subscribe_leaves_nothing_behind(client: DocumentStoreClient, backend) -> None:
    backend.fail("watch", PermissionDeniedError("no listen permission"))

    await client.subscribe_to_document("sports", "hockey", Recorder())

    assert client.subscriptions == []


@pytest.mark.asyncio
async def test_close_cancels_live_subscriptions(client: DocumentStoreClient) -> None:
    recorder = Recorder()
    subscription = (await client.subscribe_to_collection("sports", None, recorder)).data
    await subscription.wait_idle()

    await client.close()

    assert subscription.active is False
    assert client.subscriptions == []

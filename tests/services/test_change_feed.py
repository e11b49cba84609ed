"""Tests for the in-process change feed."""

import asyncio

import pytest

from huddle_chat.services.change_feed import ChangeEvent, ChangeFeed, ChangeType


def _event(change_type: ChangeType = ChangeType.INSERT, **values) -> ChangeEvent:
    return ChangeEvent("messages", change_type, {"conversation_id": "c1", **values})


@pytest.mark.asyncio
async def test_events_are_delivered_in_publish_order() -> None:
    feed = ChangeFeed()
    received: list[str] = []
    subscription = feed.subscribe("messages", lambda event: received.append(event.new["id"]))

    for message_id in ("m1", "m2", "m3"):
        feed.publish(_event(id=message_id))
    await feed.drain()

    assert received == ["m1", "m2", "m3"]
    subscription.release()


@pytest.mark.asyncio
async def test_filters_on_table_columns_and_event_type() -> None:
    feed = ChangeFeed()
    received: list[ChangeEvent] = []

    async def on_event(event: ChangeEvent) -> None:
        received.append(event)

    subscription = feed.subscribe(
        "messages", on_event, where={"conversation_id": "c1"}, events=(ChangeType.INSERT,)
    )
    feed.publish(_event(id="m1"))
    feed.publish(ChangeEvent("messages", ChangeType.INSERT, {"conversation_id": "c2", "id": "m2"}))
    feed.publish(_event(ChangeType.UPDATE, id="m1"))
    feed.publish(ChangeEvent("conversations", ChangeType.INSERT, {"conversation_id": "c1"}))
    await feed.drain()

    assert [event.new["id"] for event in received] == ["m1"]
    subscription.release()


@pytest.mark.asyncio
async def test_release_is_idempotent_and_stops_delivery() -> None:
    feed = ChangeFeed()
    received: list[ChangeEvent] = []
    subscription = feed.subscribe("messages", received.append)
    assert feed.subscription_count == 1

    subscription.release()
    subscription.release()
    feed.publish(_event(id="m1"))
    await feed.drain()

    assert subscription.released
    assert feed.subscription_count == 0
    assert received == []


@pytest.mark.asyncio
async def test_publish_from_worker_thread() -> None:
    feed = ChangeFeed()
    received: list[str] = []
    subscription = feed.subscribe("messages", lambda event: received.append(event.new["id"]))

    await asyncio.to_thread(feed.publish, _event(id="m1"))
    await feed.drain()

    assert received == ["m1"]
    subscription.release()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_the_channel() -> None:
    feed = ChangeFeed()
    received: list[str] = []

    def on_event(event: ChangeEvent) -> None:
        if event.new["id"] == "bad":
            raise RuntimeError("handler exploded")
        received.append(event.new["id"])

    subscription = feed.subscribe("messages", on_event)
    feed.publish(_event(id="bad"))
    feed.publish(_event(id="good"))
    await feed.drain()

    assert received == ["good"]
    subscription.release()


@pytest.mark.asyncio
async def test_drain_waits_for_events_published_by_other_callbacks() -> None:
    feed = ChangeFeed()
    downstream: list[str] = []

    async def relay(event: ChangeEvent) -> None:
        await asyncio.to_thread(
            feed.publish, ChangeEvent("receipts", ChangeType.INSERT, {"id": event.new["id"]})
        )

    first = feed.subscribe("receipts", lambda event: downstream.append(event.new["id"]))
    second = feed.subscribe("messages", relay)
    feed.publish(_event(id="m1"))
    await feed.drain()

    assert downstream == ["m1"]
    first.release()
    second.release()


@pytest.mark.asyncio
async def test_close_releases_every_subscription() -> None:
    feed = ChangeFeed()
    first = feed.subscribe("messages", lambda event: None)
    second = feed.subscribe("messages", lambda event: None)

    feed.close()

    assert first.released and second.released
    assert feed.subscription_count == 0


def test_subscribe_requires_running_loop() -> None:
    with pytest.raises(RuntimeError):
        ChangeFeed().subscribe("messages", lambda event: None)

"""Tests for the event bus."""

import pytest

from schemaledger.events.bus import Event, EventBus, MigrationTopic


@pytest.mark.asyncio
async def test_emit_and_subscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("migration.applied", handler)
    await bus.emit("migration.applied", {"sequence": 1})

    assert len(received) == 1
    assert received[0].topic == "migration.applied"
    assert received[0].data["sequence"] == 1


@pytest.mark.asyncio
async def test_wildcard_subscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("migration.*", handler)
    await bus.emit("migration.applied")
    await bus.emit("migration.failed")
    await bus.emit("lock.acquired")  # should NOT match

    assert len(received) == 2


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("*", handler)
    bus.unsubscribe("*", handler)
    await bus.emit("migration.applied")

    assert received == []
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_handler_errors_are_contained():
    bus = EventBus()

    async def broken(event: Event):
        raise ValueError("nope")

    bus.subscribe("*", broken)
    event = await bus.emit("migration.applied")
    assert event.topic == "migration.applied"


@pytest.mark.asyncio
async def test_history_limit_and_filter():
    bus = EventBus(history_limit=3)
    for i in range(5):
        await bus.emit("migration.applied", {"sequence": i})
    await bus.emit("migration.run_completed")

    history = bus.history()
    assert len(history) == 3
    assert history[0].topic == "migration.run_completed"
    assert [e.data["sequence"] for e in bus.history("migration.applied")] == [4, 3]


@pytest.mark.asyncio
async def test_handlers_run_in_subscription_order():
    bus = EventBus()
    calls = []

    async def first(event: Event):
        calls.append("first")

    async def second(event: Event):
        calls.append("second")

    bus.subscribe(MigrationTopic.APPLIED, first)
    bus.subscribe("migration.*", second)
    await bus.emit(MigrationTopic.APPLIED, {"run_id": "r1"})

    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_last_event_by_topic():
    bus = EventBus()
    assert bus.last(MigrationTopic.RUN_COMPLETED) is None

    await bus.emit(MigrationTopic.RUN_STARTED, {"run_id": "r1"})
    await bus.emit(MigrationTopic.RUN_COMPLETED, {"run_id": "r1", "applied": [1]})

    last = bus.last(MigrationTopic.RUN_COMPLETED)
    assert last.topic == "migration.run_completed"
    assert last.run_id == "r1"

import asyncio
import logging

import pytest

from core.errors import InvalidInput
from tracking.broadcast import Broadcaster, EventKind
from .support import ACTIVITY, OTHER_ACTIVITY, Recorder


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def broadcaster(recorder):
    return Broadcaster(recorder, delivery_timeout=0.05)


async def test_publish_reaches_only_its_topic(broadcaster, recorder):
    broadcaster.subscribe("c1", ACTIVITY)

    assert broadcaster.publish(ACTIVITY, EventKind.TELEMETRY_UPDATE, {"n": 1}) == 1
    assert broadcaster.publish(OTHER_ACTIVITY, EventKind.TELEMETRY_UPDATE, {"n": 2}) == 0
    await broadcaster.drain()

    assert recorder.sent_to("c1") == [
        {"kind": "telemetry-update", "activityId": ACTIVITY, "payload": {"n": 1}},
    ]


async def test_kind_may_be_given_as_string(broadcaster, recorder):
    broadcaster.subscribe("c1", ACTIVITY)
    broadcaster.publish(ACTIVITY, "message-created", {})
    await broadcaster.drain()

    assert recorder.kinds("c1") == ["message-created"]


async def test_unknown_kind_is_rejected(broadcaster):
    broadcaster.subscribe("c1", ACTIVITY)
    with pytest.raises(ValueError):
        broadcaster.publish(ACTIVITY, "weather-report", {})


def test_subscribing_elsewhere_leaves_the_old_topic(broadcaster):
    assert broadcaster.subscribe("c1", ACTIVITY) is None
    assert broadcaster.subscribe("c1", OTHER_ACTIVITY) == ACTIVITY

    assert broadcaster.subscribers(ACTIVITY) == frozenset()
    assert broadcaster.subscribers(OTHER_ACTIVITY) == {"c1"}
    assert broadcaster.topic_of("c1") == OTHER_ACTIVITY


def test_resubscribing_to_the_same_topic_is_harmless(broadcaster):
    broadcaster.subscribe("c1", ACTIVITY)
    assert broadcaster.subscribe("c1", ACTIVITY) is None
    assert broadcaster.subscribers(ACTIVITY) == {"c1"}


def test_unsubscribe_only_from_the_current_topic(broadcaster):
    broadcaster.subscribe("c1", ACTIVITY)

    assert broadcaster.unsubscribe("c1", OTHER_ACTIVITY) is False
    assert broadcaster.subscribers(ACTIVITY) == {"c1"}
    assert broadcaster.unsubscribe("c1", ACTIVITY) is True
    assert broadcaster.topic_of("c1") is None


def test_disconnect_forgets_the_connection(broadcaster):
    broadcaster.subscribe("c1", ACTIVITY)

    assert broadcaster.disconnect("c1") == ACTIVITY
    assert broadcaster.disconnect("c1") is None
    assert broadcaster.subscribers(ACTIVITY) == frozenset()


def test_legacy_ids_name_the_same_topic(broadcaster):
    broadcaster.subscribe("c1", "test0001")
    assert broadcaster.subscribers(ACTIVITY) == {"c1"}


def test_malformed_topic_is_rejected(broadcaster):
    with pytest.raises(InvalidInput):
        broadcaster.subscribe("c1", "not-an-id")


async def test_publish_uses_the_subscribers_at_call_time(broadcaster, recorder):
    broadcaster.subscribe("early", ACTIVITY)
    broadcaster.publish(ACTIVITY, EventKind.MESSAGE_CREATED, {})
    broadcaster.subscribe("late", ACTIVITY)
    broadcaster.unsubscribe("early", ACTIVITY)
    await broadcaster.drain()

    assert len(recorder.sent_to("early")) == 1
    assert recorder.sent_to("late") == []


async def test_slow_subscriber_does_not_hold_up_others(caplog):
    delivered = []
    stuck = asyncio.Event()

    async def deliver(connection_id, event):
        if connection_id == "slow":
            await stuck.wait()
        delivered.append(connection_id)

    broadcaster = Broadcaster(deliver, delivery_timeout=0.05)
    broadcaster.subscribe("slow", ACTIVITY)
    broadcaster.subscribe("fast", ACTIVITY)

    assert broadcaster.publish(ACTIVITY, EventKind.TELEMETRY_UPDATE, {}) == 2
    assert delivered == []  # publish returned without delivering anything itself

    with caplog.at_level(logging.WARNING, logger="tracking.broadcast"):
        await broadcaster.drain()

    assert delivered == ["fast"]
    assert "delivery timed out" in caplog.text


async def test_failing_subscriber_is_logged_and_isolated(caplog):
    delivered = []

    async def deliver(connection_id, event):
        if connection_id == "broken":
            raise ConnectionResetError("socket closed")
        delivered.append(connection_id)

    broadcaster = Broadcaster(deliver)
    broadcaster.subscribe("broken", ACTIVITY)
    broadcaster.subscribe("ok", ACTIVITY)

    with caplog.at_level(logging.ERROR, logger="tracking.broadcast"):
        broadcaster.publish(ACTIVITY, EventKind.TELEMETRY_UPDATE, {})
        await broadcaster.drain()

    assert delivered == ["ok"]
    assert "delivery failed" in caplog.text

import pytest
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator

from tracking.consumers import ActivityTrackerConsumer
from tracking.engine import LiveEngine
from tracking.routing import websocket_urlpatterns
from .support import ACTIVITY, OTHER_ACTIVITY, RUNNER

# Channels closes stale DB connections on every consumer dispatch, so these
# tests need DB access once another test has opened a connection.
pytestmark = pytest.mark.django_db(transaction=True)

application = URLRouter(websocket_urlpatterns)


@pytest.fixture
def live_engine(settings, monkeypatch, store):
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}
    engine = LiveEngine(store=store, config={"STORE_BACKOFF_SECONDS": 0})
    monkeypatch.setattr(ActivityTrackerConsumer, "engine", engine)
    return engine


async def connect(activity_id=ACTIVITY):
    communicator = WebsocketCommunicator(application, f"/ws/activity/{activity_id}/")
    connected, _ = await communicator.connect()
    assert connected
    hello = await communicator.receive_json_from()
    assert hello["type"] == "info"
    return communicator


async def test_spectator_receives_events_for_its_activity(live_engine):
    communicator = await connect()
    assert len(live_engine.broadcaster.subscribers(ACTIVITY)) == 1

    await live_engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    await live_engine.broadcaster.drain()

    event = await communicator.receive_json_from(timeout=1)
    assert event["kind"] == "activity-started"
    assert event["activityId"] == ACTIVITY

    await live_engine.start({"activityId": OTHER_ACTIVITY, "runnerId": RUNNER})
    await live_engine.broadcaster.drain()
    assert await communicator.receive_nothing(timeout=0.1)

    await communicator.disconnect()
    assert live_engine.broadcaster.subscribers(ACTIVITY) == frozenset()


async def test_malformed_activity_id_is_refused(live_engine):
    communicator = WebsocketCommunicator(application, "/ws/activity/bogus/")
    connected, code = await communicator.connect()

    assert not connected
    assert code == 4400


async def test_switch_topic_and_fetch_snapshot(live_engine):
    await live_engine.start({"activityId": OTHER_ACTIVITY, "runnerId": RUNNER})
    communicator = await connect()

    await communicator.send_json_to({"cmd": "subscribe", "activityId": OTHER_ACTIVITY})
    reply = await communicator.receive_json_from()
    assert reply["type"] == "info"
    assert live_engine.broadcaster.subscribers(ACTIVITY) == frozenset()
    assert len(live_engine.broadcaster.subscribers(OTHER_ACTIVITY)) == 1

    await communicator.send_json_to({"cmd": "get_last"})
    snapshot = await communicator.receive_json_from()
    assert snapshot["type"] == "snapshot"
    assert snapshot["activity"]["activityId"] == OTHER_ACTIVITY

    await communicator.send_json_to({"cmd": "dance"})
    error = await communicator.receive_json_from()
    assert error["type"] == "error"

    await communicator.disconnect()


async def test_get_last_for_unknown_activity_reports_error(live_engine):
    communicator = await connect()

    await communicator.send_json_to({"cmd": "get_last"})
    reply = await communicator.receive_json_from()

    assert reply["type"] == "error"
    await communicator.disconnect()


async def test_share_link_subscribes_to_its_activity(live_engine):
    started = await live_engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    token = started["activity"]["shareToken"]

    communicator = WebsocketCommunicator(application, f"/ws/track/{token}/")
    connected, _ = await communicator.connect()
    assert connected
    hello = await communicator.receive_json_from()
    assert hello["type"] == "info"
    assert len(live_engine.broadcaster.subscribers(ACTIVITY)) == 1

    await live_engine.cancel({"activityId": ACTIVITY})
    await live_engine.broadcaster.drain()
    event = await communicator.receive_json_from(timeout=1)
    assert event["kind"] == "activity-cancelled"

    await communicator.disconnect()


async def test_unknown_share_link_is_refused(live_engine):
    communicator = WebsocketCommunicator(application, "/ws/track/sh_0000000000000000/")
    connected, code = await communicator.connect()

    assert not connected
    assert code == 4404

import pytest
from asgiref.sync import sync_to_async
from django.db import OperationalError

from core.errors import ServiceUnavailable
from core.models import Event
from notifications.models import CheerMessage
from registration.models import Runner
from tracking.geo import segment_meters
from tracking.models import Activity, LocationSample
from tracking.orm_store import DjangoStore
from tracking.state import Position, Sample
from .support import ACTIVITY, BRANDENBURG_GATE, RUNNER

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture
def engine(make_engine):
    return make_engine(DjangoStore())


def ping(lat, lng):
    return {"activityId": ACTIVITY, "runnerId": RUNNER, "lat": lat, "lng": lng}


@sync_to_async
def count(model, **filters):
    return model.objects.filter(**filters).count()


@sync_to_async
def fetch(model, **filters):
    return model.objects.get(**filters)


async def test_start_writes_runner_event_and_activity(engine):
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})

    assert await count(Runner) == 1
    assert await count(Event) == 1
    activity = await fetch(Activity, pk=ACTIVITY)
    assert activity.status == "active"
    assert activity.runner_id == RUNNER
    assert activity.event_id == "evt_berlin25"
    assert activity.started_at is not None


async def test_samples_and_aggregate_are_persisted(engine):
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER, "startLocation": BRANDENBURG_GATE})
    result = await engine.ingest(ping(52.5173, 13.3787))

    assert await count(LocationSample, activity_id=ACTIVITY) == 2
    activity = await fetch(Activity, pk=ACTIVITY)
    assert activity.distance_m == pytest.approx(result["distanceMeters"])
    assert (activity.last_lat, activity.last_lng) == (52.5173, 13.3787)


async def test_restarted_engine_continues_from_stored_state(make_engine):
    first = make_engine(DjangoStore())
    await first.start({"activityId": ACTIVITY, "runnerId": RUNNER, "startLocation": BRANDENBURG_GATE})
    before = await first.ingest(ping(52.5173, 13.3787))

    second = make_engine(DjangoStore())
    after = await second.ingest(ping(52.5183, 13.3797))

    step = segment_meters(Position(52.5173, 13.3787), Position(52.5183, 13.3797))
    assert after["distanceMeters"] == pytest.approx(before["distanceMeters"] + step)


async def test_cheer_lifecycle(engine, clock):
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    first = await engine.send_message({"activityId": ACTIVITY, "sender": "Dad", "text": "<b>Go</b>"})
    clock.advance(1)
    second = await engine.send_message({"activityId": ACTIVITY, "sender": "Mum", "text": "Keep going"})

    row = await fetch(CheerMessage, pk=first["messageId"])
    assert row.text == "&lt;b&gt;Go&lt;/b&gt;"

    listed = await engine.list_messages({"activityId": ACTIVITY})
    assert [m["messageId"] for m in listed] == [second["messageId"], first["messageId"]]

    pending = await engine.unannounced_messages({"activityId": ACTIVITY})
    assert [m["messageId"] for m in pending] == [first["messageId"], second["messageId"]]

    clock.advance(1)
    announced = await engine.announce({"activityId": ACTIVITY, "messageId": first["messageId"]})
    clock.advance(1)
    again = await engine.announce({"activityId": ACTIVITY, "messageId": first["messageId"]})
    assert again["deliveredAt"] == announced["deliveredAt"]

    pending = await engine.unannounced_messages({"activityId": ACTIVITY})
    assert [m["messageId"] for m in pending] == [second["messageId"]]

    spoken = await engine.mark_spoken({"activityId": ACTIVITY, "messageId": first["messageId"]})
    row = await fetch(CheerMessage, pk=first["messageId"])
    assert row.delivered_at.isoformat() == announced["deliveredAt"]
    assert row.spoken_at.isoformat() == spoken["spokenAt"]


async def test_conditional_delivery_write_keeps_first_timestamp(engine, clock):
    store = engine.store
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    sent = await engine.send_message({"activityId": ACTIVITY, "sender": "Dad", "text": "Go"})

    first = await store.mark_delivered(sent["messageId"], clock.now)
    second = await store.mark_delivered(sent["messageId"], clock.advance(60))

    assert second.delivered_at == first.delivered_at


async def test_database_errors_become_service_unavailable(make_engine, monkeypatch):
    engine = make_engine(DjangoStore(), STORE_MAX_ATTEMPTS=2)
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})

    def locked(**kwargs):
        raise OperationalError("database is locked")

    monkeypatch.setattr(LocationSample.objects, "get_or_create", locked)
    with pytest.raises(ServiceUnavailable):
        await engine.ingest(ping(52.5163, 13.3777))

    activity = await fetch(Activity, pk=ACTIVITY)
    assert activity.last_ping_at is None
    assert await count(LocationSample) == 0


async def test_repeated_sample_write_is_stored_once(engine, clock):
    await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    await engine.ingest(ping(52.5173, 13.3787))
    state = await engine.registry.load(ACTIVITY)

    # a retry of a write that already committed
    sample = Sample(activity_id=ACTIVITY, runner_id=RUNNER, timestamp=clock.now,
                    position=Position(52.5173, 13.3787))
    await engine.store.append_sample(sample, state)

    assert await count(LocationSample, activity_id=ACTIVITY) == 1


async def test_lookup_by_share_token(engine):
    started = await engine.start({"activityId": ACTIVITY, "runnerId": RUNNER})
    token = started["activity"]["shareToken"]

    found = await DjangoStore().get_activity_by_share_token(token)

    assert found.activity_id == ACTIVITY
    assert await DjangoStore().get_activity_by_share_token("sh_0000000000000000") is None

# tracking/orm_store.py
import functools

from asgiref.sync import sync_to_async
from django.db import InterfaceError, OperationalError, transaction
from django.utils import timezone

from core.errors import TransientStoreFailure
from core.models import Event, EventType
from notifications.models import CheerMessage
from registration.models import Runner
from .models import Activity, ActivityStatus, LocationSample
from .state import ActivityState, Bounds, Cheer, EventInfo, Position, RunnerProfile
from .store import TrackingStore


def _db(fn):
    """Run an ORM method in the sync thread; report connection trouble as transient."""
    call = sync_to_async(fn)

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await call(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            raise TransientStoreFailure(str(exc)) from exc
    return wrapper


def _runner(row: Runner) -> RunnerProfile:
    return RunnerProfile(
        runner_id=row.id,
        display_name=row.display_name,
        email=row.email,
        voice=row.voice,
        cheers_volume=row.cheers_volume,
    )


def _bounds(row: Event):
    values = (row.min_lat, row.max_lat, row.min_lng, row.max_lng)
    if any(v is None for v in values):
        return None
    return Bounds(*values)


def _event(row: Event) -> EventInfo:
    return EventInfo(
        event_id=row.id,
        name=row.name,
        event_type=EventType(row.event_type),
        date=row.date,
        distance_m=row.distance_m,
        city=row.city,
        country=row.country,
        bounds=_bounds(row),
    )


def _activity(row: Activity) -> ActivityState:
    last = None
    if row.last_lat is not None and row.last_lng is not None:
        last = Position(row.last_lat, row.last_lng)
    return ActivityState(
        activity_id=row.id,
        runner_id=row.runner_id,
        event_id=row.event_id,
        share_token=row.share_token,
        course_distance_m=row.event.distance_m,
        course_bounds=_bounds(row.event),
        created_at=row.created_at,
        status=ActivityStatus(row.status),
        started_at=row.started_at,
        ended_at=row.ended_at,
        distance_m=row.distance_m,
        pace_sec_per_km=row.pace_sec_per_km,
        last_position=last,
        last_ping_at=row.last_ping_at,
    )


def _cheer(row: CheerMessage) -> Cheer:
    return Cheer(
        message_id=row.pk,
        activity_id=row.activity_id,
        sender=row.sender,
        text=row.text,
        created_at=row.created_at,
        delivered_at=row.delivered_at,
        spoken_at=row.spoken_at,
    )


class DjangoStore(TrackingStore):

    @_db
    def get_runner(self, runner_id):
        row = Runner.objects.filter(pk=runner_id).first()
        return _runner(row) if row else None

    @_db
    def ensure_runner(self, profile):
        row, _ = Runner.objects.get_or_create(
            id=profile.runner_id,
            defaults={
                "display_name": profile.display_name,
                "email": profile.email,
                "voice": profile.voice,
                "cheers_volume": profile.cheers_volume,
            },
        )
        return _runner(row)

    @_db
    def get_event(self, event_id):
        row = Event.objects.filter(pk=event_id).first()
        return _event(row) if row else None

    @_db
    def ensure_event(self, event):
        bounds = event.bounds
        row, _ = Event.objects.get_or_create(
            id=event.event_id,
            defaults={
                "name": event.name,
                "event_type": event.event_type.value,
                "date": event.date,
                "distance_m": event.distance_m,
                "city": event.city,
                "country": event.country,
                "min_lat": bounds.min_lat if bounds else None,
                "max_lat": bounds.max_lat if bounds else None,
                "min_lng": bounds.min_lng if bounds else None,
                "max_lng": bounds.max_lng if bounds else None,
            },
        )
        return _event(row)

    @_db
    def get_activity(self, activity_id):
        row = Activity.objects.select_related("event").filter(pk=activity_id).first()
        return _activity(row) if row else None

    @_db
    def get_activity_by_share_token(self, share_token):
        row = Activity.objects.select_related("event").filter(share_token=share_token).first()
        return _activity(row) if row else None

    @_db
    def create_activity(self, state):
        # get_or_create: a retried call after a timeout must not insert twice
        Activity.objects.get_or_create(
            id=state.activity_id,
            defaults={
                "runner_id": state.runner_id,
                "event_id": state.event_id,
                "status": state.status.value,
                "started_at": state.started_at,
                "ended_at": state.ended_at,
                "share_token": state.share_token,
                "created_at": state.created_at,
            },
        )

    @_db
    def save_activity(self, state):
        Activity.objects.filter(pk=state.activity_id).update(
            status=state.status.value,
            started_at=state.started_at,
            ended_at=state.ended_at,
            updated_at=timezone.now(),
        )

    @_db
    def append_sample(self, sample, state):
        with transaction.atomic():
            # a timed-out attempt may have committed already; the retry must not insert twice
            LocationSample.objects.get_or_create(
                activity_id=sample.activity_id,
                timestamp=sample.timestamp,
                lat=sample.position.lat,
                lng=sample.position.lng,
                defaults={
                    "runner_id": sample.runner_id,
                    "accuracy": sample.accuracy,
                    "altitude": sample.altitude,
                    "speed_mps": sample.speed_mps,
                    "heading": sample.heading,
                    "heart_rate": sample.heart_rate,
                    "cadence": sample.cadence,
                    "battery": sample.battery,
                },
            )
            # update() skips auto_now, so updated_at is set by hand
            Activity.objects.filter(pk=state.activity_id).update(
                distance_m=state.distance_m,
                pace_sec_per_km=state.pace_sec_per_km,
                last_lat=state.last_position.lat,
                last_lng=state.last_position.lng,
                last_ping_at=state.last_ping_at,
                updated_at=timezone.now(),
            )

    @_db
    def create_message(self, cheer):
        row = CheerMessage.objects.create(
            activity_id=cheer.activity_id,
            sender=cheer.sender,
            text=cheer.text,
            created_at=cheer.created_at,
        )
        return _cheer(row)

    @_db
    def get_message(self, message_id):
        row = CheerMessage.objects.filter(pk=message_id).first()
        return _cheer(row) if row else None

    @_db
    def list_messages(self, activity_id, limit, offset):
        qs = CheerMessage.objects.filter(activity_id=activity_id).order_by("-created_at", "-pk")
        return [_cheer(row) for row in qs[offset:offset + limit]]

    @_db
    def undelivered_messages(self, activity_id, limit):
        qs = (
            CheerMessage.objects.filter(activity_id=activity_id, delivered_at__isnull=True)
            .order_by("created_at", "pk")
        )
        return [_cheer(row) for row in qs[:limit]]

    @_db
    def mark_delivered(self, message_id, when):
        # conditional update: a concurrent announce cannot overwrite the first timestamp
        CheerMessage.objects.filter(pk=message_id, delivered_at__isnull=True).update(delivered_at=when)
        row = CheerMessage.objects.filter(pk=message_id).first()
        return _cheer(row) if row else None

    @_db
    def mark_spoken(self, message_id, when):
        with transaction.atomic():
            CheerMessage.objects.filter(pk=message_id, delivered_at__isnull=True).update(delivered_at=when)
            CheerMessage.objects.filter(pk=message_id, spoken_at__isnull=True).update(spoken_at=when)
        row = CheerMessage.objects.filter(pk=message_id).first()
        return _cheer(row) if row else None

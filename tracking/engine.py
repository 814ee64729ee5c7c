# tracking/engine.py
"""
Transport-agnostic entry points.

Callers (the websocket consumer, a future HTTP layer, the device app) hand in
plain dicts with camelCase keys and get plain dicts back. ``get_engine()``
returns the process-wide instance built from ``settings.LIVE_TRACKING``.
"""
import logging

from django.conf import settings
from django.utils import timezone

from core.errors import InvalidInput
from core.models import EventType
from notifications.mailbox import MessageMailbox
from notifications.tasks import enqueue_finish_notification, finish_summary
from .broadcast import Broadcaster, channel_layer_delivery
from .persistence import RetryPolicy, call_store
from .registry import ActivityRegistry, parse_event_date
from .state import Bounds, EventInfo
from .store import InMemoryStore
from .telemetry import TelemetryProcessor

logger = logging.getLogger(__name__)

DEFAULTS = {
    "STORE_BACKEND": "django",
    "STORE_TIMEOUT_SECONDS": 5.0,
    "STORE_MAX_ATTEMPTS": 3,
    "STORE_BACKOFF_SECONDS": 0.2,
    "STORE_BACKOFF_CAP_SECONDS": 2.0,
    "DELIVERY_TIMEOUT_SECONDS": 5.0,
    "UNANNOUNCED_LIMIT": 10,
    "PAGE_MAX": 100,
    "SENDER_MAX_LENGTH": 50,
    "TEXT_MAX_LENGTH": 500,
    "DEFAULT_EVENT": {
        "id": "evt_berlin25",
        "name": "Berlin Marathon 2025",
        "type": "marathon",
        "date": "2025-09-21T07:59:00+00:00",
        "city": "Berlin",
        "country": "Germany",
        "bounds": {"min_lat": 52.48, "max_lat": 52.55, "min_lng": 13.25, "max_lng": 13.45},
    },
    "RUNNER_DEFAULTS": {
        "display_name": "Runner {token}",
        "email_domain": "runners.invalid",
        "voice": "en-US",
        "cheers_volume": 0.8,
    },
}


def tracking_config(overrides=None) -> dict:
    config = dict(DEFAULTS)
    config.update(getattr(settings, "LIVE_TRACKING", {}))
    config.update(overrides or {})
    return config


def event_from_config(data) -> EventInfo:
    event_type = EventType.parse(data.get("type", EventType.MARATHON))
    bounds = data.get("bounds")
    return EventInfo(
        event_id=data["id"],
        name=data["name"],
        event_type=event_type,
        date=parse_event_date(data.get("date")),
        distance_m=float(data.get("distance_m") or event_type.course_distance_m),
        city=data.get("city", ""),
        country=data.get("country", ""),
        bounds=Bounds(**bounds) if bounds else None,
    )


def build_store(backend):
    if backend == "memory":
        return InMemoryStore()
    if backend == "django":
        from .orm_store import DjangoStore
        return DjangoStore()
    raise ValueError(f"unknown LIVE_TRACKING STORE_BACKEND: {backend!r}")


def _required(request, key):
    value = request.get(key)
    if value is None:
        raise InvalidInput(f"{key} is required")
    return value


class LiveEngine:
    def __init__(self, store=None, deliver=channel_layer_delivery, clock=timezone.now, config=None):
        config = tracking_config(config)
        self.config = config
        self.store = store if store is not None else build_store(config["STORE_BACKEND"])
        self.policy = RetryPolicy(
            timeout=config["STORE_TIMEOUT_SECONDS"],
            attempts=config["STORE_MAX_ATTEMPTS"],
            backoff=config["STORE_BACKOFF_SECONDS"],
            backoff_cap=config["STORE_BACKOFF_CAP_SECONDS"],
        )
        self.broadcaster = Broadcaster(deliver, delivery_timeout=config["DELIVERY_TIMEOUT_SECONDS"])
        self.registry = ActivityRegistry(
            self.store,
            self.broadcaster,
            default_event=event_from_config(config["DEFAULT_EVENT"]),
            policy=self.policy,
            runner_defaults=config["RUNNER_DEFAULTS"],
            clock=clock,
            on_finish=self._notify_finished,
        )
        self.telemetry = TelemetryProcessor(self.store, self.registry, self.broadcaster, clock=clock)
        self.registry.telemetry = self.telemetry
        self.mailbox = MessageMailbox(
            self.store,
            self.registry,
            self.broadcaster,
            policy=self.policy,
            clock=clock,
            sender_max_length=config["SENDER_MAX_LENGTH"],
            text_max_length=config["TEXT_MAX_LENGTH"],
            unannounced_limit=config["UNANNOUNCED_LIMIT"],
            page_max=config["PAGE_MAX"],
        )

    async def _notify_finished(self, state):
        runner = await call_store(self.policy, "get_runner", self.store.get_runner, state.runner_id)
        event = await call_store(self.policy, "get_event", self.store.get_event, state.event_id)
        if runner is None:
            logger.warning("No runner profile for %s, skipping finish notification", state.activity_id)
            return
        await enqueue_finish_notification(finish_summary(state, runner, event))

    # activities

    async def start(self, request: dict) -> dict:
        event = None
        if any(request.get(k) for k in ("eventName", "eventType", "eventDate")):
            event = {
                "name": request.get("eventName"),
                "type": request.get("eventType"),
                "date": request.get("eventDate"),
            }
        result = await self.registry.start(
            _required(request, "activityId"),
            _required(request, "runnerId"),
            start_location=request.get("startLocation"),
            event=event,
        )
        return result.as_dict()

    async def ingest(self, request: dict) -> dict:
        return await self.telemetry.ingest(
            _required(request, "activityId"),
            _required(request, "runnerId"),
            request,
            metrics=request,
            timestamp=request.get("timestamp"),
        )

    async def get_activity(self, request: dict) -> dict:
        state = await self.registry.get(_required(request, "activityId"))
        return state.as_dict()

    async def track(self, request: dict) -> dict:
        """Resolve a spectator share link to the activity it points at."""
        state = await self.registry.by_share_token(_required(request, "shareToken"))
        return state.as_dict()

    async def finish(self, request: dict) -> dict:
        state = await self.registry.finish(_required(request, "activityId"))
        return state.as_dict()

    async def cancel(self, request: dict) -> dict:
        state = await self.registry.cancel(_required(request, "activityId"))
        return state.as_dict()

    # cheers

    async def send_message(self, request: dict) -> dict:
        cheer = await self.mailbox.send(
            _required(request, "activityId"), request.get("sender"), request.get("text")
        )
        return {
            "messageId": cheer.message_id,
            "sender": cheer.sender,
            "text": cheer.text,
            "createdAt": cheer.created_at.isoformat(),
        }

    async def list_messages(self, request: dict) -> list:
        cheers = await self.mailbox.list(
            _required(request, "activityId"),
            limit=request.get("limit", 50),
            offset=request.get("offset", 0),
        )
        return [c.as_dict() for c in cheers]

    async def unannounced_messages(self, request: dict) -> list:
        cheers = await self.mailbox.unannounced(_required(request, "activityId"))
        return [c.as_dict() for c in cheers]

    async def announce(self, request: dict) -> dict:
        cheer, already = await self.mailbox.announce(
            _required(request, "activityId"), _required(request, "messageId")
        )
        return {
            "success": True,
            "messageId": cheer.message_id,
            "deliveredAt": cheer.delivered_at.isoformat(),
            "alreadyDelivered": already,
        }

    async def mark_spoken(self, request: dict) -> dict:
        cheer, already = await self.mailbox.mark_spoken(
            _required(request, "activityId"), _required(request, "messageId")
        )
        return {
            "success": True,
            "messageId": cheer.message_id,
            "spokenAt": cheer.spoken_at.isoformat(),
            "alreadySpoken": already,
        }

    # subscriptions

    def subscribe(self, request: dict):
        return self.broadcaster.subscribe(_required(request, "connectionId"), _required(request, "activityId"))

    def unsubscribe(self, request: dict):
        return self.broadcaster.unsubscribe(_required(request, "connectionId"), _required(request, "activityId"))


_engine = None


def get_engine() -> LiveEngine:
    global _engine
    if _engine is None:
        _engine = LiveEngine()
    return _engine


def reset_engine():
    global _engine
    _engine = None

# tracking/registry.py
"""
Activity lifecycle and the per-activity aggregate.

Each activity has one ``asyncio.Lock``; every read-modify-write of its state
(lifecycle transitions here, samples in telemetry.py) happens under it.
Locks are held weakly, so an activity nobody is touching costs nothing.
``start`` provisions missing runners, events and activities; the read
accessors raise ``NotFound`` instead.
"""
import asyncio
import logging
import weakref
from datetime import datetime, time, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_date

from core.errors import InvalidInput, NotFound, TrackingError, TransientStoreFailure
from core.ids import IdKind, generate_id, generate_share_token, normalize_id, parse_share_token
from core.models import EventType
from .broadcast import EventKind
from .models import ActivityStatus
from .persistence import RetryPolicy, call_store
from .state import ActivityState, EventInfo, Provisioned, RunnerProfile
from .telemetry import parse_position, parse_timestamp

logger = logging.getLogger(__name__)


def placeholder_runner(runner_id, defaults=None) -> RunnerProfile:
    defaults = defaults or {}
    token = runner_id.token
    return RunnerProfile(
        runner_id=str(runner_id),
        display_name=defaults.get("display_name", "Runner {token}").format(token=token),
        email=f"{runner_id}@{defaults.get('email_domain', 'runners.invalid')}",
        voice=defaults.get("voice", "en-US"),
        cheers_volume=defaults.get("cheers_volume", 0.8),
    )


def parse_event_date(value, clock=timezone.now):
    if value in (None, ""):
        return clock()
    if isinstance(value, str):
        day = parse_date(value)
        if day is not None:
            return datetime.combine(day, time.min, tzinfo=dt_timezone.utc)
    return parse_timestamp(value)


def custom_event(descriptor: dict, clock=timezone.now) -> EventInfo:
    """Build a new event from ``{name, type, date}`` supplied by the runner."""
    name = str(descriptor.get("name") or "").strip()
    if not name:
        raise InvalidInput("a custom event needs a name")
    event_type = EventType.parse(descriptor.get("type") or EventType.CUSTOM)
    return EventInfo(
        event_id=str(generate_id(IdKind.EVENT)),
        name=name[:200],
        event_type=event_type,
        date=parse_event_date(descriptor.get("date"), clock),
        distance_m=event_type.course_distance_m,
    )


class ActivityRegistry:
    def __init__(self, store, broadcaster, default_event: EventInfo, policy=None,
                 runner_defaults=None, clock=timezone.now, on_finish=None):
        self.store = store
        self.broadcaster = broadcaster
        self.default_event = default_event
        self.policy = policy or RetryPolicy()
        self.runner_defaults = runner_defaults or {}
        self.clock = clock
        self.on_finish = on_finish
        self.telemetry = None  # set by the engine; start() forwards start locations to it
        self._locks = weakref.WeakValueDictionary()
        self._states = {}

    def lock_for(self, activity_id) -> asyncio.Lock:
        key = str(activity_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def load(self, activity_id):
        """Cached aggregate, falling back to the store's last-known state."""
        key = str(activity_id)
        state = self._states.get(key)
        if state is None:
            state = await call_store(self.policy, "get_activity", self.store.get_activity, key)
            # closed activities are read back from the store, not cached
            if state is not None and not state.is_closed:
                self._states.setdefault(key, state)
                state = self._states[key]
        return state

    def commit(self, state: ActivityState):
        # caller holds lock_for(state.activity_id) and the store has acknowledged state
        if state.is_closed:
            self._states.pop(state.activity_id, None)
        else:
            self._states[state.activity_id] = state

    def forget(self, activity_id):
        self._states.pop(str(activity_id), None)

    async def write(self, activity_id, op, call, *args):
        """
        ``call_store`` for writes that move an activity's aggregate.

        A write that timed out may still land after we gave up on it, so on
        failure the cached aggregate is dropped and the next ``load`` re-reads
        whatever the store ended up with.
        """
        try:
            return await call_store(self.policy, op, call, *args)
        except TransientStoreFailure:
            self.forget(activity_id)
            raise

    @property
    def cached(self) -> int:
        return len(self._states)

    async def get(self, activity_id) -> ActivityState:
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        state = await self.load(aid)
        if state is None:
            raise NotFound(f"activity {aid} does not exist")
        return state

    async def by_share_token(self, share_token) -> ActivityState:
        token = parse_share_token(share_token)
        found = await call_store(self.policy, "get_activity_by_share_token",
                                 self.store.get_activity_by_share_token, token)
        if found is None:
            raise NotFound("no activity for this share link")
        # the cached aggregate, when there is one, is the newest
        return self._states.get(found.activity_id, found)

    async def start(self, activity_id, runner_id, start_location=None, event=None) -> Provisioned:
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        rid = normalize_id(runner_id, IdKind.RUNNER)
        position = parse_position(start_location) if start_location is not None else None
        requested_event = custom_event(event, self.clock) if event else None

        async with self.lock_for(aid):
            state = await self.load(aid)
            if state is None:
                result = await self._provision(aid, rid, requested_event)
            else:
                result = await self._resume(state, rid)

        if result.started:
            logger.info("Activity %s started for runner %s", aid, rid)
            self.broadcaster.publish(aid, EventKind.ACTIVITY_STARTED, result.public_dict())
        # a repeated start leaves a running activity exactly as it was
        if position is not None and result.started:
            await self.telemetry.ingest(aid, rid, position)
            result.activity = await self.load(aid)
        return result

    async def _provision(self, aid, rid, requested_event):
        runner = await call_store(self.policy, "ensure_runner", self.store.ensure_runner,
                                  placeholder_runner(rid, self.runner_defaults))
        event = await call_store(self.policy, "ensure_event", self.store.ensure_event,
                                 requested_event or self.default_event)
        now = self.clock()
        state = ActivityState(
            activity_id=str(aid),
            runner_id=runner.runner_id,
            event_id=event.event_id,
            share_token=generate_share_token(),
            course_distance_m=event.distance_m,
            course_bounds=event.bounds,
            created_at=now,
        ).transition(ActivityStatus.ACTIVE, now)
        await self.write(aid, "create_activity", self.store.create_activity, state)
        self.commit(state)
        logger.info("Provisioned activity %s (runner %s, event %s)", aid, rid, event.event_id)
        return Provisioned(runner, event, state, started=True)

    async def _resume(self, state, rid):
        if state.runner_id != str(rid):
            raise InvalidInput(f"activity {state.activity_id} belongs to another runner")
        started = None
        if state.status != ActivityStatus.ACTIVE:
            started = state.transition(ActivityStatus.ACTIVE, self.clock())
        runner = await call_store(self.policy, "ensure_runner", self.store.ensure_runner,
                                  placeholder_runner(rid, self.runner_defaults))
        event = await call_store(self.policy, "get_event", self.store.get_event, state.event_id)
        if started is None:
            return Provisioned(runner, event, state)
        await self.write(state.activity_id, "save_activity", self.store.save_activity, started)
        self.commit(started)
        return Provisioned(runner, event, started, started=True)

    async def finish(self, activity_id) -> ActivityState:
        state, changed = await self._close(activity_id, ActivityStatus.FINISHED)
        if changed:
            self.broadcaster.publish(state.activity_id, EventKind.ACTIVITY_FINISHED, state.as_dict())
            if self.on_finish is not None:
                try:
                    await self.on_finish(state)
                except TrackingError:
                    logger.exception("Finish notification for %s failed", state.activity_id)
        return state

    async def cancel(self, activity_id) -> ActivityState:
        state, changed = await self._close(activity_id, ActivityStatus.CANCELLED)
        if changed:
            self.broadcaster.publish(state.activity_id, EventKind.ACTIVITY_CANCELLED, state.as_dict())
        return state

    async def _close(self, activity_id, status):
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        async with self.lock_for(aid):
            state = await self.load(aid)
            if state is None:
                raise NotFound(f"activity {aid} does not exist")
            if state.status == status:
                return state, False
            closed = state.transition(status, self.clock())
            await self.write(aid, "save_activity", self.store.save_activity, closed)
            self.commit(closed)
        logger.info("Activity %s %s", aid, status.value)
        return closed, True

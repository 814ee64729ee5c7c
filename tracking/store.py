# tracking/store.py
"""
Persistence boundary for the engine.

Every method is a coroutine and either returns once the write is durable or
raises ``TransientStoreFailure``. ``DjangoStore`` (tracking/orm_store.py) is
the production backend; ``InMemoryStore`` keeps everything in dicts for local
development and tests, the way Channels' InMemoryChannelLayer stands in for
Redis.
"""
import abc
import dataclasses
import itertools
from typing import List, Optional

from .state import ActivityState, Cheer, EventInfo, RunnerProfile, Sample


class TrackingStore(abc.ABC):

    # runners / events

    @abc.abstractmethod
    async def get_runner(self, runner_id: str) -> Optional[RunnerProfile]:
        ...

    @abc.abstractmethod
    async def ensure_runner(self, profile: RunnerProfile) -> RunnerProfile:
        """Create ``profile`` unless the runner exists; return the stored one."""

    @abc.abstractmethod
    async def get_event(self, event_id: str) -> Optional[EventInfo]:
        ...

    @abc.abstractmethod
    async def ensure_event(self, event: EventInfo) -> EventInfo:
        ...

    # activities

    @abc.abstractmethod
    async def get_activity(self, activity_id: str) -> Optional[ActivityState]:
        ...

    @abc.abstractmethod
    async def get_activity_by_share_token(self, share_token: str) -> Optional[ActivityState]:
        ...

    @abc.abstractmethod
    async def create_activity(self, state: ActivityState) -> None:
        ...

    @abc.abstractmethod
    async def save_activity(self, state: ActivityState) -> None:
        """Persist status and lifecycle timestamps."""

    @abc.abstractmethod
    async def append_sample(self, sample: Sample, state: ActivityState) -> None:
        """
        Store ``sample`` and the aggregate it produced in one write.

        Must be idempotent: a retry after a timeout can repeat a write that
        already landed. A sample is identified by activity, timestamp and
        position.
        """

    # cheers

    @abc.abstractmethod
    async def create_message(self, cheer: Cheer) -> Cheer:
        """Insert and return the message with its assigned id."""

    @abc.abstractmethod
    async def get_message(self, message_id: int) -> Optional[Cheer]:
        ...

    @abc.abstractmethod
    async def list_messages(self, activity_id: str, limit: int, offset: int) -> List[Cheer]:
        """Newest first."""

    @abc.abstractmethod
    async def undelivered_messages(self, activity_id: str, limit: int) -> List[Cheer]:
        """Oldest first."""

    @abc.abstractmethod
    async def mark_delivered(self, message_id: int, when) -> Optional[Cheer]:
        """Set ``delivered_at`` only if unset; return the stored message."""

    @abc.abstractmethod
    async def mark_spoken(self, message_id: int, when) -> Optional[Cheer]:
        """Set ``spoken_at`` (and ``delivered_at``) only where unset."""


class InMemoryStore(TrackingStore):

    def __init__(self):
        self.runners = {}
        self.events = {}
        self.activities = {}
        self.samples = []
        self.messages = {}
        self._message_ids = itertools.count(1)

    async def get_runner(self, runner_id):
        return self.runners.get(runner_id)

    async def ensure_runner(self, profile):
        return self.runners.setdefault(profile.runner_id, profile)

    async def get_event(self, event_id):
        return self.events.get(event_id)

    async def ensure_event(self, event):
        return self.events.setdefault(event.event_id, event)

    async def get_activity(self, activity_id):
        return self.activities.get(activity_id)

    async def get_activity_by_share_token(self, share_token):
        for state in self.activities.values():
            if state.share_token == share_token:
                return state
        return None

    async def create_activity(self, state):
        self.activities[state.activity_id] = state

    async def save_activity(self, state):
        self.activities[state.activity_id] = state

    async def append_sample(self, sample, state):
        key = (sample.activity_id, sample.timestamp, sample.position)
        if not any((s.activity_id, s.timestamp, s.position) == key for s in self.samples):
            self.samples.append(sample)
        self.activities[state.activity_id] = state

    def samples_for(self, activity_id):
        return [s for s in self.samples if s.activity_id == activity_id]

    async def create_message(self, cheer):
        stored = dataclasses.replace(cheer, message_id=next(self._message_ids))
        self.messages[stored.message_id] = stored
        return stored

    async def get_message(self, message_id):
        return self.messages.get(message_id)

    def _for_activity(self, activity_id):
        return [m for m in self.messages.values() if m.activity_id == activity_id]

    async def list_messages(self, activity_id, limit, offset):
        ordered = sorted(
            self._for_activity(activity_id),
            key=lambda m: (m.created_at, m.message_id),
            reverse=True,
        )
        return ordered[offset:offset + limit]

    async def undelivered_messages(self, activity_id, limit):
        pending = [m for m in self._for_activity(activity_id) if m.delivered_at is None]
        pending.sort(key=lambda m: (m.created_at, m.message_id))
        return pending[:limit]

    async def mark_delivered(self, message_id, when):
        cheer = self.messages.get(message_id)
        if cheer is None:
            return None
        if cheer.delivered_at is None:
            cheer = dataclasses.replace(cheer, delivered_at=when)
            self.messages[message_id] = cheer
        return cheer

    async def mark_spoken(self, message_id, when):
        cheer = self.messages.get(message_id)
        if cheer is None:
            return None
        cheer = dataclasses.replace(
            cheer,
            delivered_at=cheer.delivered_at or when,
            spoken_at=cheer.spoken_at or when,
        )
        self.messages[message_id] = cheer
        return cheer

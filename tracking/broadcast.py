# tracking/broadcast.py
"""
In-process fan-out.

activity id -> set of connection ids. A connection sits in at most one topic.
``publish`` snapshots the topic and schedules one delivery task per
subscriber; it never waits for them, so a stuck socket only costs its own
task. Delivery defaults to the Channels layer, where the connection id is the
consumer's channel name.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from enum import Enum
from typing import Optional

from channels.layers import get_channel_layer

from core.ids import IdKind, normalize_id

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    TELEMETRY_UPDATE = "telemetry-update"
    MESSAGE_CREATED = "message-created"
    ACTIVITY_STARTED = "activity-started"
    ACTIVITY_FINISHED = "activity-finished"
    ACTIVITY_CANCELLED = "activity-cancelled"


async def channel_layer_delivery(connection_id: str, event: dict):
    # Channels maps "type": "activity.event" -> consumer method "activity_event"
    layer = get_channel_layer()
    await layer.send(connection_id, {"type": "activity.event", "message": event})


def _topic(activity_id) -> str:
    return str(normalize_id(activity_id, IdKind.ACTIVITY))


class Broadcaster:
    def __init__(self, deliver=channel_layer_delivery, delivery_timeout: float = 5.0):
        self._deliver = deliver
        self._delivery_timeout = delivery_timeout
        self._lock = threading.Lock()
        self._topics = defaultdict(set)
        self._membership = {}
        self._pending = set()

    def subscribe(self, connection_id: str, activity_id) -> Optional[str]:
        """Join ``activity_id``'s topic. Returns the topic left to do so, if any."""
        topic = _topic(activity_id)
        with self._lock:
            previous = self._membership.get(connection_id)
            if previous == topic:
                return None
            if previous is not None:
                self._leave(connection_id, previous)
            self._topics[topic].add(connection_id)
            self._membership[connection_id] = topic
        logger.debug("Connection %s joined %s (left %s)", connection_id, topic, previous)
        return previous

    def unsubscribe(self, connection_id: str, activity_id) -> bool:
        topic = _topic(activity_id)
        with self._lock:
            if self._membership.get(connection_id) != topic:
                return False
            self._leave(connection_id, topic)
        logger.debug("Connection %s left %s", connection_id, topic)
        return True

    def disconnect(self, connection_id: str) -> Optional[str]:
        with self._lock:
            topic = self._membership.get(connection_id)
            if topic is not None:
                self._leave(connection_id, topic)
        return topic

    def _leave(self, connection_id, topic):
        # caller holds self._lock
        members = self._topics.get(topic)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._topics[topic]
        self._membership.pop(connection_id, None)

    def subscribers(self, activity_id) -> frozenset:
        topic = _topic(activity_id)
        with self._lock:
            return frozenset(self._topics.get(topic, ()))

    def topic_of(self, connection_id: str) -> Optional[str]:
        with self._lock:
            return self._membership.get(connection_id)

    def publish(self, activity_id, kind, payload) -> int:
        """Schedule delivery to the current subscribers; returns how many."""
        topic = _topic(activity_id)
        kind = EventKind(kind)
        with self._lock:
            targets = tuple(self._topics.get(topic, ()))
        if not targets:
            return 0
        event = {"kind": kind.value, "activityId": topic, "payload": payload}
        loop = asyncio.get_running_loop()
        for connection_id in targets:
            task = loop.create_task(self._send(connection_id, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return len(targets)

    async def _send(self, connection_id, event):
        try:
            await asyncio.wait_for(self._deliver(connection_id, event), timeout=self._delivery_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropped %s for %s: delivery timed out", event["kind"], connection_id)
        except Exception:
            logger.exception("Dropped %s for %s: delivery failed", event["kind"], connection_id)

    async def drain(self):
        """Wait for in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

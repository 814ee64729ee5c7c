# notifications/mailbox.py
"""
Cheer messages for one activity.

Created -> Delivered (the runner's device fetched it) -> Spoken (text to
speech finished). Timestamps are only ever set where unset; the store does
that with a conditional write so concurrent announces keep the first value.
"""
import logging

from django.utils import timezone

from core.errors import InvalidInput, NotFound
from core.ids import IdKind, normalize_id
from tracking.broadcast import EventKind
from tracking.persistence import RetryPolicy, call_store
from tracking.state import Cheer
from .sanitize import clean_text

logger = logging.getLogger(__name__)


def _message_id(value) -> int:
    if isinstance(value, bool):
        raise InvalidInput("messageId must be an integer")
    try:
        message_id = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"malformed messageId: {value!r}") from None
    if message_id <= 0:
        raise InvalidInput(f"malformed messageId: {value!r}")
    return message_id


def _bounded_int(value, name, low, high=None):
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be an integer") from None
    if number < low or (high is not None and number > high):
        raise InvalidInput(f"{name} out of range: {number}")
    return number


class MessageMailbox:
    def __init__(self, store, registry, broadcaster, policy=None, clock=timezone.now,
                 sender_max_length=50, text_max_length=500, unannounced_limit=10, page_max=100):
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster
        self.policy = policy or RetryPolicy()
        self.clock = clock
        self.sender_max_length = sender_max_length
        self.text_max_length = text_max_length
        self.unannounced_limit = unannounced_limit
        self.page_max = page_max

    async def send(self, activity_id, sender, text) -> Cheer:
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        sender = clean_text(sender, self.sender_max_length)
        text = clean_text(text, self.text_max_length)
        if not sender:
            raise InvalidInput("sender is required")
        if not text:
            raise InvalidInput("text is required")
        await self.registry.get(aid)

        cheer = Cheer(message_id=None, activity_id=str(aid), sender=sender, text=text,
                      created_at=self.clock())
        stored = await call_store(self.policy, "create_message", self.store.create_message, cheer)
        logger.info("Cheer %s for %s from %s", stored.message_id, aid, sender)
        self.broadcaster.publish(aid, EventKind.MESSAGE_CREATED, stored.as_dict())
        return stored

    async def list(self, activity_id, limit=50, offset=0):
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        limit = _bounded_int(limit, "limit", 1, self.page_max)
        offset = _bounded_int(offset, "offset", 0)
        await self.registry.get(aid)
        return await call_store(self.policy, "list_messages", self.store.list_messages,
                                str(aid), limit, offset)

    async def unannounced(self, activity_id):
        """Undelivered messages, oldest first: the order the device speaks them."""
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        await self.registry.get(aid)
        return await call_store(self.policy, "undelivered_messages", self.store.undelivered_messages,
                                str(aid), self.unannounced_limit)

    async def _owned(self, aid, message_id) -> Cheer:
        cheer = await call_store(self.policy, "get_message", self.store.get_message, message_id)
        if cheer is None or cheer.activity_id != str(aid):
            raise NotFound(f"message {message_id} not found for activity {aid}")
        return cheer

    async def announce(self, activity_id, message_id):
        """Mark delivered. Returns ``(cheer, already_delivered)``; repeats are no-ops."""
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        message_id = _message_id(message_id)
        cheer = await self._owned(aid, message_id)
        if cheer.delivered_at is not None:
            return cheer, True
        cheer = await call_store(self.policy, "mark_delivered", self.store.mark_delivered,
                                 message_id, self.clock())
        return cheer, False

    async def mark_spoken(self, activity_id, message_id):
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        message_id = _message_id(message_id)
        cheer = await self._owned(aid, message_id)
        if cheer.spoken_at is not None:
            return cheer, True
        cheer = await call_store(self.policy, "mark_spoken", self.store.mark_spoken,
                                 message_id, self.clock())
        return cheer, False

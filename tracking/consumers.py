# tracking/consumers.py
import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from core.errors import NotFound, TrackingError
from .engine import get_engine

logger = logging.getLogger(__name__)


class ActivityTrackerConsumer(AsyncJsonWebsocketConsumer):
    """Spectator socket. The channel name is the connection id in the topic registry."""

    engine = None  # tests inject their own; otherwise the process-wide engine

    def get_engine(self):
        return self.engine or get_engine()

    async def connect(self):
        kwargs = self.scope['url_route']['kwargs']
        target = kwargs.get('activity_id') or kwargs.get('share_token')
        engine = self.get_engine()
        try:
            if 'share_token' in kwargs:
                activity = await engine.track({"shareToken": kwargs['share_token']})
                activity_id = activity["activityId"]
            else:
                activity_id = kwargs['activity_id']
            engine.subscribe({"connectionId": self.channel_name, "activityId": activity_id})
        except NotFound as exc:
            logger.info("Rejected socket for %r: %s", target, exc)
            await self.close(code=4404)
            return
        except TrackingError as exc:
            logger.info("Rejected socket for %r: %s", target, exc)
            await self.close(code=4400)
            return
        await self.accept()
        await self.send_json({"type": "info", "message": f"Connected to activity {activity_id}"})

    async def disconnect(self, close_code):
        self.get_engine().broadcaster.disconnect(self.channel_name)

    # Channels maps "type": "activity.event" -> method name "activity_event"
    async def activity_event(self, event):
        await self.send_json(event["message"])

    async def receive_json(self, content):
        cmd = content.get("cmd")
        engine = self.get_engine()
        try:
            if cmd == "subscribe":
                engine.subscribe({"connectionId": self.channel_name, "activityId": content.get("activityId")})
                await self.send_json({"type": "info", "message": f"Subscribed to {content.get('activityId')}"})
            elif cmd == "unsubscribe":
                engine.broadcaster.disconnect(self.channel_name)
                await self.send_json({"type": "info", "message": "Unsubscribed"})
            elif cmd == "get_last":
                topic = engine.broadcaster.topic_of(self.channel_name)
                if topic is None:
                    await self.send_json({"type": "error", "message": "not subscribed"})
                    return
                state = await engine.get_activity({"activityId": topic})
                await self.send_json({"type": "snapshot", "activity": state})
            else:
                await self.send_json({"type": "error", "message": f"unknown cmd: {cmd!r}"})
        except TrackingError as exc:
            await self.send_json({"type": "error", "message": str(exc)})

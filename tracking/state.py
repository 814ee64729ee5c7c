# tracking/state.py
"""
Plain records passed between the engine and the store.

``ActivityState`` is the per-activity aggregate. The registry holds one per
activity and only replaces it while holding that activity's lock, after the
store has acknowledged the write.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.errors import InvalidTransition
from core.models import EventType
from .models import ActivityStatus


# status -> statuses reachable from it
TRANSITIONS = {
    ActivityStatus.PLANNED: {ActivityStatus.ACTIVE, ActivityStatus.CANCELLED},
    ActivityStatus.ACTIVE: {ActivityStatus.FINISHED, ActivityStatus.CANCELLED},
    ActivityStatus.FINISHED: set(),
    ActivityStatus.CANCELLED: set(),
}


def _iso(value: Optional[datetime]):
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    def as_tuple(self):
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Bounds:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, position: Position) -> bool:
        return (self.min_lat <= position.lat <= self.max_lat
                and self.min_lng <= position.lng <= self.max_lng)


@dataclass(frozen=True)
class RunnerProfile:
    runner_id: str
    display_name: str
    email: str
    voice: str = "en-US"
    cheers_volume: float = 0.8

    def as_dict(self):
        return {
            "runnerId": self.runner_id,
            "displayName": self.display_name,
            "email": self.email,
            "voice": self.voice,
            "cheersVolume": self.cheers_volume,
        }


@dataclass(frozen=True)
class EventInfo:
    event_id: str
    name: str
    event_type: EventType
    date: datetime
    distance_m: float
    city: str = ""
    country: str = ""
    bounds: Optional[Bounds] = None

    def as_dict(self):
        return {
            "eventId": self.event_id,
            "name": self.name,
            "type": self.event_type.value,
            "date": _iso(self.date),
            "distanceMeters": self.distance_m,
            "city": self.city,
            "country": self.country,
        }


@dataclass(frozen=True)
class Sample:
    activity_id: str
    runner_id: str
    timestamp: datetime
    position: Position
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    speed_mps: Optional[float] = None
    heading: Optional[float] = None
    heart_rate: Optional[float] = None
    cadence: Optional[float] = None
    battery: Optional[float] = None


@dataclass(frozen=True)
class ActivityState:
    activity_id: str
    runner_id: str
    event_id: str
    share_token: str
    course_distance_m: float
    created_at: datetime
    course_bounds: Optional[Bounds] = None
    status: ActivityStatus = ActivityStatus.PLANNED
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    distance_m: float = 0.0
    pace_sec_per_km: float = 0.0
    last_position: Optional[Position] = None
    last_ping_at: Optional[datetime] = None

    @property
    def is_closed(self):
        return self.status in (ActivityStatus.FINISHED, ActivityStatus.CANCELLED)

    def transition(self, status: ActivityStatus, now: datetime) -> ActivityState:
        if status not in TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"activity {self.activity_id} cannot go from {self.status.value} to {status.value}"
            )
        changes = {"status": status}
        if status == ActivityStatus.ACTIVE:
            changes["started_at"] = now
        else:
            changes["ended_at"] = now
        return dataclasses.replace(self, **changes)

    def advanced(self, sample: Sample, distance_m: float, pace_sec_per_km: float) -> ActivityState:
        return dataclasses.replace(
            self,
            distance_m=distance_m,
            pace_sec_per_km=pace_sec_per_km,
            last_position=sample.position,
            last_ping_at=sample.timestamp,
        )

    @property
    def remaining_m(self) -> float:
        return max(0.0, self.course_distance_m - self.distance_m)

    def as_dict(self):
        last = self.last_position
        return {
            "activityId": self.activity_id,
            "runnerId": self.runner_id,
            "eventId": self.event_id,
            "status": self.status.value,
            "startedAt": _iso(self.started_at),
            "endedAt": _iso(self.ended_at),
            "distanceMeters": round(self.distance_m, 2),
            "paceSecPerKm": round(self.pace_sec_per_km, 1),
            "remainingMeters": round(self.remaining_m, 2),
            "lastPing": {
                "lat": last.lat,
                "lng": last.lng,
                "timestamp": _iso(self.last_ping_at),
            } if last else None,
            "shareToken": self.share_token,
        }


@dataclass(frozen=True)
class Cheer:
    message_id: Optional[int]
    activity_id: str
    sender: str
    text: str
    created_at: datetime
    delivered_at: Optional[datetime] = None
    spoken_at: Optional[datetime] = None

    def as_dict(self):
        return {
            "messageId": self.message_id,
            "activityId": self.activity_id,
            "sender": self.sender,
            "text": self.text,
            "createdAt": _iso(self.created_at),
            "deliveredAt": _iso(self.delivered_at),
            "spokenAt": _iso(self.spoken_at),
        }


@dataclass
class Provisioned:
    """Result of ``start()``: what the activity ended up attached to."""
    runner: RunnerProfile
    event: EventInfo
    activity: ActivityState
    started: bool = False

    def as_dict(self):
        return {
            "runner": self.runner.as_dict(),
            "event": self.event.as_dict(),
            "activity": self.activity.as_dict(),
        }

    def public_dict(self):
        """What spectators may see: no contact details or voice settings."""
        return {
            "runner": {"runnerId": self.runner.runner_id, "displayName": self.runner.display_name},
            "event": self.event.as_dict(),
            "activity": self.activity.as_dict(),
        }

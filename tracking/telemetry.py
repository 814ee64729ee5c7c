# tracking/telemetry.py
import logging
import math
from datetime import datetime, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.errors import InvalidInput, InvalidTransition
from core.ids import IdKind, normalize_id
from .broadcast import EventKind
from .geo import estimated_finish, pace_sec_per_km, segment_meters, within
from .models import ActivityStatus
from .state import Position, Sample

logger = logging.getLogger(__name__)

# request key -> Sample field
METRIC_FIELDS = {
    "accuracy": "accuracy",
    "altitude": "altitude",
    "speedMps": "speed_mps",
    "heading": "heading",
    "heartRate": "heart_rate",
    "cadence": "cadence",
    "battery": "battery",
}


def _number(value, name):
    # bool is an int subclass; "true" is not a coordinate
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number") from None
    if not math.isfinite(number):
        raise InvalidInput(f"{name} must be finite")
    return number


def parse_position(data) -> Position:
    """Accepts a Position or a mapping with lat/lng (or latitude/longitude)."""
    if isinstance(data, Position):
        return data
    if not isinstance(data, dict):
        raise InvalidInput("position must be an object with lat and lng")
    lat = data.get("lat", data.get("latitude"))
    lng = data.get("lng", data.get("longitude"))
    if lat is None or lng is None:
        raise InvalidInput("lat and lng are required")
    lat, lng = _number(lat, "lat"), _number(lng, "lng")
    if not -90.0 <= lat <= 90.0:
        raise InvalidInput(f"lat out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise InvalidInput(f"lng out of range: {lng}")
    return Position(lat, lng)


def parse_metrics(data) -> dict:
    metrics = {}
    for key, attr in METRIC_FIELDS.items():
        value = (data or {}).get(key)
        if value is not None:
            metrics[attr] = _number(value, key)
    return metrics


def parse_timestamp(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            raise InvalidInput(f"malformed timestamp: {value!r}")
    else:
        raise InvalidInput("timestamp must be an ISO-8601 string")
    if timezone.is_naive(parsed):
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed


class TelemetryProcessor:
    def __init__(self, store, registry, broadcaster, clock=timezone.now):
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster
        self.clock = clock

    async def ingest(self, activity_id, runner_id, position, metrics=None, timestamp=None) -> dict:
        aid = normalize_id(activity_id, IdKind.ACTIVITY)
        rid = normalize_id(runner_id, IdKind.RUNNER)
        pos = parse_position(position)
        fields = parse_metrics(metrics)
        ts = parse_timestamp(timestamp) or self.clock()

        state = await self.registry.load(aid)
        if state is None or state.status == ActivityStatus.PLANNED:
            await self.registry.start(aid, rid)

        async with self.registry.lock_for(aid):
            state = await self.registry.load(aid)
            if state.runner_id != str(rid):
                raise InvalidInput(f"activity {aid} belongs to another runner")
            if state.status != ActivityStatus.ACTIVE:
                raise InvalidTransition(f"activity {aid} is {state.status.value}, not accepting samples")

            reason = self._reject_reason(state, pos, ts)
            if reason:
                logger.info("Dropped %s sample for %s at %s", reason, aid, ts.isoformat())
                return self._result(state, ts, accepted=False, reason=reason)

            increment = segment_meters(state.last_position, pos) if state.last_position else 0.0
            distance = state.distance_m + increment
            elapsed = (ts - state.started_at).total_seconds()
            sample = Sample(
                activity_id=str(aid),
                runner_id=str(rid),
                timestamp=ts,
                position=pos,
                **fields,
            )
            advanced = state.advanced(sample, distance, pace_sec_per_km(elapsed, distance))

            # the aggregate only moves once the store has the sample
            await self.registry.write(aid, "append_sample", self.store.append_sample, sample, advanced)
            self.registry.commit(advanced)

            off_course = not within(advanced.course_bounds, pos)
            if off_course:
                logger.warning("Sample for %s outside course bounds: %.5f, %.5f", aid, pos.lat, pos.lng)
            self.broadcaster.publish(aid, EventKind.TELEMETRY_UPDATE,
                                     self.snapshot(advanced, sample, elapsed, off_course))
        return self._result(advanced, ts, accepted=True)

    @staticmethod
    def _reject_reason(state, pos, ts):
        last = state.last_ping_at
        if last is None:
            return None
        if ts < last:
            return "stale"
        if ts == last and state.last_position == pos:
            return "duplicate"
        return None

    @staticmethod
    def snapshot(state, sample, elapsed, off_course=False) -> dict:
        finish_at = estimated_finish(sample.timestamp, state.pace_sec_per_km, state.remaining_m)
        return {
            "activityId": state.activity_id,
            "runnerId": state.runner_id,
            "lat": sample.position.lat,
            "lng": sample.position.lng,
            "timestamp": sample.timestamp.isoformat(),
            "distanceMeters": round(state.distance_m, 2),
            "paceSecPerKm": round(state.pace_sec_per_km, 1),
            "remainingMeters": round(state.remaining_m, 2),
            "elapsedSec": round(max(0.0, elapsed), 1),
            "estimatedFinishAt": finish_at.isoformat() if finish_at else None,
            "speedMps": sample.speed_mps,
            "heartRate": sample.heart_rate,
            "cadence": sample.cadence,
            "altitude": sample.altitude,
            "offCourse": off_course,
        }

    @staticmethod
    def _result(state, ts, accepted, reason=None) -> dict:
        result = {
            "accepted": accepted,
            "distanceMeters": state.distance_m,
            "timestamp": ts.isoformat(),
            "paceSecPerKm": state.pace_sec_per_km,
            "remainingMeters": state.remaining_m,
        }
        if reason:
            result["reason"] = reason
        return result

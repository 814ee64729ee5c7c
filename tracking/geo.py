# tracking/geo.py
"""Distance and pace helpers. Spherical earth, via geopy's great-circle."""
from datetime import timedelta

from geopy.distance import great_circle

from .state import Bounds, Position


def segment_meters(start: Position, end: Position) -> float:
    return great_circle(start.as_tuple(), end.as_tuple()).meters


def pace_sec_per_km(elapsed_seconds: float, distance_m: float) -> float:
    """Seconds per km, or 0 while no distance has been covered."""
    if distance_m <= 0:
        return 0.0
    return max(0.0, elapsed_seconds) / (distance_m / 1000.0)


def estimated_finish(at, pace: float, remaining_m: float):
    """When the runner reaches the finish holding ``pace`` from ``at``; None without a pace yet."""
    if pace <= 0:
        return None
    return at + timedelta(seconds=pace * remaining_m / 1000.0)


def within(bounds: Bounds, position: Position) -> bool:
    # no declared course means nothing is off course
    if bounds is None:
        return True
    return bounds.contains(position)

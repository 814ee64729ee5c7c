from django.db import models

from .errors import InvalidInput


class EventType(models.TextChoices):
    MARATHON = "marathon", "Marathon"
    HALF_MARATHON = "half-marathon", "Half Marathon"
    TEN_K = "10k", "10K"
    FIVE_K = "5k", "5K"
    ULTRA = "ultra", "Ultra"
    CUSTOM = "custom", "Custom"
    OTHER = "other", "Other"

    @classmethod
    def parse(cls, raw):
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            raise InvalidInput(f"unknown event type: {raw!r}") from None

    @property
    def course_distance_m(self) -> float:
        return COURSE_DISTANCE_M[self]


# Custom and other events have no declared length; treat them as marathons.
COURSE_DISTANCE_M = {
    EventType.MARATHON: 42195.0,
    EventType.HALF_MARATHON: 21097.5,
    EventType.TEN_K: 10000.0,
    EventType.FIVE_K: 5000.0,
    EventType.ULTRA: 50000.0,
    EventType.CUSTOM: 42195.0,
    EventType.OTHER: 42195.0,
}


class Event(models.Model):
    id = models.CharField(primary_key=True, max_length=12)  # evt_XXXXXXXX
    name = models.CharField(max_length=200)
    event_type = models.CharField(max_length=20, choices=EventType.choices, default=EventType.MARATHON)
    date = models.DateTimeField()
    distance_m = models.FloatField()
    city = models.CharField(max_length=100, blank=True)
    country = models.CharField(max_length=100, blank=True)

    # optional course bounding box, used to flag off-course samples
    min_lat = models.FloatField(null=True, blank=True)
    max_lat = models.FloatField(null=True, blank=True)
    min_lng = models.FloatField(null=True, blank=True)
    max_lng = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.get_event_type_display()})"

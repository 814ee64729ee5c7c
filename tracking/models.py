# tracking/models.py
from django.db import models
from django.utils import timezone

from registration.models import Runner
from core.models import Event


class ActivityStatus(models.TextChoices):
    PLANNED = "planned", "Planned"
    ACTIVE = "active", "Active"
    FINISHED = "finished", "Finished"
    CANCELLED = "cancelled", "Cancelled"


class Activity(models.Model):
    id = models.CharField(primary_key=True, max_length=12)  # act_XXXXXXXX
    runner = models.ForeignKey(Runner, on_delete=models.CASCADE, related_name="activities")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="activities")
    status = models.CharField(
        max_length=10, choices=ActivityStatus.choices, default=ActivityStatus.PLANNED, db_index=True
    )
    started_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    share_token = models.CharField(max_length=19, unique=True)  # sh_ + 16

    # aggregate stats, written together with each accepted sample
    distance_m = models.FloatField(default=0.0)
    pace_sec_per_km = models.FloatField(default=0.0)
    last_lat = models.FloatField(null=True, blank=True)
    last_lng = models.FloatField(null=True, blank=True)
    last_ping_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "activities"

    def __str__(self):
        return f"{self.id} ({self.status})"


class LocationSample(models.Model):
    activity = models.ForeignKey(Activity, on_delete=models.CASCADE, related_name="samples")
    runner = models.ForeignKey(Runner, on_delete=models.CASCADE)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    lat = models.FloatField()
    lng = models.FloatField()
    accuracy = models.FloatField(null=True, blank=True)
    altitude = models.FloatField(null=True, blank=True)
    speed_mps = models.FloatField(null=True, blank=True)
    heading = models.FloatField(null=True, blank=True)
    heart_rate = models.FloatField(null=True, blank=True)
    cadence = models.FloatField(null=True, blank=True)
    battery = models.FloatField(null=True, blank=True)

    class Meta:
        ordering = ['timestamp']
        indexes = [
            models.Index(fields=['runner', '-timestamp'], name='sample_runner_ts_idx'),
            models.Index(fields=['activity', 'timestamp'], name='sample_activity_ts_idx'),
        ]
        constraints = [
            models.UniqueConstraint(fields=['activity', 'timestamp', 'lat', 'lng'], name='sample_activity_ts_pos_uniq'),
        ]

    def __str__(self):
        return f"{self.activity_id} @ {self.timestamp}"

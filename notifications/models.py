from django.db import models
from django.utils import timezone

from tracking.models import Activity


class CheerMessage(models.Model):
    activity = models.ForeignKey(Activity, on_delete=models.CASCADE, related_name="cheers")
    sender = models.CharField(max_length=300)  # escaped, so longer than the 50 char input bound
    text = models.TextField()
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    delivered_at = models.DateTimeField(null=True, blank=True)  # fetched by the runner's device
    spoken_at = models.DateTimeField(null=True, blank=True)  # after text-to-speech on device

    class Meta:
        indexes = [
            models.Index(fields=['activity', '-created_at'], name='cheer_activity_created_idx'),
            models.Index(fields=['activity', 'delivered_at'], name='cheer_activity_delivered_idx'),
        ]

    def __str__(self):
        return f"Cheer from {self.sender}: {self.text[:50]}"

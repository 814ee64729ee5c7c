from django.db import models


class Runner(models.Model):
    VOICES = [(v, v) for v in ("en-GB", "en-US", "de-DE", "fr-FR", "es-ES")]

    id = models.CharField(primary_key=True, max_length=12)  # usr_XXXXXXXX
    display_name = models.CharField(max_length=100)
    email = models.EmailField(unique=True)
    voice = models.CharField(max_length=5, choices=VOICES, default="en-US")
    cheers_volume = models.FloatField(default=0.8)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.id} - {self.display_name}"

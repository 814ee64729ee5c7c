# runlive/celery.py
"""Celery app for out-of-band work (finish notification emails)."""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'runlive.settings')

app = Celery('runlive')
# every CELERY_* setting in runlive/settings.py lands here
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks(['notifications'])

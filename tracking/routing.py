# tracking/routing.py
from django.urls import re_path
from . import consumers

websocket_urlpatterns = [
    re_path(r"ws/activity/(?P<activity_id>[A-Za-z0-9_]+)/$", consumers.ActivityTrackerConsumer.as_asgi()),
    # spectator share links: /track/<share token>
    re_path(r"ws/track/(?P<share_token>[A-Za-z0-9_]+)/$", consumers.ActivityTrackerConsumer.as_asgi()),
]

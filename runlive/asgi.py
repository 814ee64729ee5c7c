# runlive/asgi.py
"""ASGI entry point: Django over HTTP, the spectator socket over websocket."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "runlive.settings")

# django.setup() has to run before the consumers import any models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from tracking.routing import websocket_urlpatterns  # noqa: E402

# spectators are anonymous, so no auth middleware on the socket
application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(URLRouter(websocket_urlpatterns)),
})

import os

# Configure Django before any django.* imports
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

from django.core.asgi import get_asgi_application

django_asgi_app = get_asgi_application()

from channels.routing import ChannelNameRouter, ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.conf import settings

from notifications.consumers import PushDeliveryConsumer
from realtime.middleware import JwtAuthMiddleware
from realtime.routing import websocket_urlpatterns

# ===== ASGI application =====
application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(
        JwtAuthMiddleware(
            URLRouter(websocket_urlpatterns)
        )
    ),
    "channel": ChannelNameRouter({
        settings.PUSH_DELIVERY_CHANNEL or "push-delivery": PushDeliveryConsumer.as_asgi(),
    }),
})

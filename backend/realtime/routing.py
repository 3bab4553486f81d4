# realtime/routing.py
from django.urls import re_path

from .consumers import RealtimeConsumer

websocket_urlpatterns = [
    # ws://<host>/ws/?token=<JWT>
    re_path(r"^ws/?$", RealtimeConsumer.as_asgi()),
]

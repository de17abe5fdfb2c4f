"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.location_consumer import LocationStreamConsumer

websocket_urlpatterns = [
    # Live proximity stream
    # URL: ws://localhost:8000/ws/locations/stream/
    re_path(
        r"ws/locations/stream/$",
        LocationStreamConsumer.as_asgi(),
        name="location-stream-ws"
    ),
]

# realtime/hub.py
"""
Fan-out hub: the one interface services use to push events to live connections.

Targets are channel-layer group names:
  - user_<id>  personal group, joined by every connection of that user
  - room_<id>  joined explicitly by a client after ``join_room``

Emits are fire-and-forget. A failed group_send is logged and swallowed; clients
restore state from the REST API.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

# channel-layer message type, dispatched to RealtimeConsumer.realtime_event
EVENT_MESSAGE_TYPE = "realtime.event"


def user_group(user_id) -> str:
    return f"user_{int(user_id)}"


def room_group(room_id) -> str:
    return f"room_{int(room_id)}"


def is_room_group(name) -> bool:
    return isinstance(name, str) and name.startswith("room_")


def build_message(event: str, payload: Optional[dict], exclude: Optional[str] = None,
                  group: Optional[str] = None) -> dict:
    return {
        "type": EVENT_MESSAGE_TYPE,
        "event": event,
        "data": payload,
        "exclude": exclude,
        "group": group,
    }


class Hub:
    """Publisher interface. ``exclude`` is a channel name that must not receive the event."""

    def publish(self, event: str, target: str, payload: Optional[dict] = None,
                exclude: Optional[str] = None) -> None:
        raise NotImplementedError

    async def apublish(self, event: str, target: str, payload: Optional[dict] = None,
                       exclude: Optional[str] = None) -> None:
        raise NotImplementedError

    def publish_many(self, event: str, targets: Iterable[str], payload: Optional[dict] = None) -> None:
        for target in targets:
            self.publish(event, target, payload)


class ChannelLayerHub(Hub):
    def __init__(self, channel_layer=None):
        self._layer = channel_layer

    @property
    def layer(self):
        if self._layer is None:
            self._layer = get_channel_layer()
        return self._layer

    def publish(self, event, target, payload=None, exclude=None):
        layer = self.layer
        if layer is None:
            return
        try:
            async_to_sync(layer.group_send)(target, build_message(event, payload, exclude, target))
        except Exception:
            logger.warning("Fan-out %s -> %s failed", event, target, exc_info=True)

    async def apublish(self, event, target, payload=None, exclude=None):
        layer = self.layer
        if layer is None:
            return
        try:
            await layer.group_send(target, build_message(event, payload, exclude, target))
        except Exception:
            logger.warning("Fan-out %s -> %s failed", event, target, exc_info=True)

    async def apublish_many(self, event: str, targets: Iterable[str], payload: Optional[dict] = None) -> None:
        await asyncio.gather(*[self.apublish(event, t, payload) for t in targets])


_default_hub: Optional[Hub] = None


def get_hub() -> Hub:
    """Process-wide hub over the configured channel layer."""
    global _default_hub
    if _default_hub is None:
        _default_hub = ChannelLayerHub()
    return _default_hub


def set_hub(hub: Optional[Hub]) -> None:
    """Replace the process hub (entry points and tests); ``None`` resets to the default."""
    global _default_hub
    _default_hub = hub

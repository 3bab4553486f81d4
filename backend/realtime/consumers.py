# realtime/consumers.py
from __future__ import annotations

import logging
from typing import Any, Optional

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from chat.models import UserRoom
from notifications.services import dispatch_push

from .hub import ChannelLayerHub, is_room_group, room_group, user_group

logger = logging.getLogger(__name__)
User = get_user_model()

# Live connections per user in this process (user_id -> channel names)
CONNECTIONS: dict[int, set[str]] = {}

CLIENT_EVENTS = (
    "join_room",
    "leave_room",
    "send_message",
    "typing",
    "call_user",
    "answer_call",
    "ice_candidate",
    "end_call",
    "ping",
)


@database_sync_to_async
def is_room_member(room_id: int, user_id: int) -> bool:
    return UserRoom.objects.filter(room_id=room_id, user_id=user_id).exists()


@database_sync_to_async
def set_presence(user_id: int, online: bool):
    now = timezone.now()
    update = {"is_online": online}
    if not online:
        update["last_seen"] = now
    User.objects.filter(pk=user_id).update(**update)
    return now


@database_sync_to_async
def push_to_user(user_id: int, payload: dict) -> None:
    dispatch_push([user_id], payload)


def _safe_int(value, default=None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _room_id_of(data: Any) -> Optional[int]:
    # clients send either a bare id or {"roomId": id}
    if isinstance(data, dict):
        return _safe_int(data.get("roomId"))
    return _safe_int(data)


class RealtimeConsumer(AsyncJsonWebsocketConsumer):
    """
    /ws/?token=<JWT>

    Every connection joins its user's personal group and the presence group;
    room groups are joined on request after a membership check.

    Client -> server: {"event": name, "data": ...}
    Server -> client: {"event": name, "data": payload}
    """

    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated or not user.is_active:
            await self.close(code=4401)
            return

        self.user_id: int = int(user.pk)
        self.user_name = user.display_name
        self.personal_group = user_group(self.user_id)
        self.presence_group = getattr(settings, "REALTIME_PRESENCE_GROUP", "presence")
        self.joined_rooms: set[int] = set()
        self.hub = ChannelLayerHub(self.channel_layer)

        await self.channel_layer.group_add(self.personal_group, self.channel_name)
        await self.channel_layer.group_add(self.presence_group, self.channel_name)
        await self.accept()
        logger.info("[WS][CONNECT] user_id=%s channel=%s", self.user_id, self.channel_name)

        channels = CONNECTIONS.setdefault(self.user_id, set())
        first = not channels
        channels.add(self.channel_name)
        if first:
            await set_presence(self.user_id, True)
            await self.hub.apublish(
                "user_status_change", self.presence_group,
                {"userId": self.user_id, "isOnline": True},
                exclude=self.channel_name,
            )

    async def disconnect(self, code):
        if not hasattr(self, "user_id"):
            return
        try:
            for room_id in list(self.joined_rooms):
                await self.channel_layer.group_discard(room_group(room_id), self.channel_name)
            self.joined_rooms.clear()
            await self.channel_layer.group_discard(self.personal_group, self.channel_name)
            await self.channel_layer.group_discard(self.presence_group, self.channel_name)

            channels = CONNECTIONS.get(self.user_id)
            if channels is not None:
                channels.discard(self.channel_name)
                if not channels:
                    CONNECTIONS.pop(self.user_id, None)
                    last_seen = await set_presence(self.user_id, False)
                    await self.hub.apublish(
                        "user_status_change", self.presence_group,
                        {"userId": self.user_id, "isOnline": False, "lastSeen": last_seen.isoformat()},
                    )
        except Exception as e:
            logger.warning("Disconnect cleanup error user_id=%s: %s", self.user_id, e)
        finally:
            logger.info("[WS][DISCONNECT] user_id=%s code=%s", self.user_id, code)
            await super().disconnect(code)

    # ---- client -> server ----

    async def receive_json(self, content, **kwargs):
        if not isinstance(content, dict):
            return
        event = content.get("event")
        if event not in CLIENT_EVENTS:
            logger.debug("[WS] unknown event %r from user %s", event, self.user_id)
            return
        data = content.get("data")
        await getattr(self, f"on_{event}")(data if data is not None else {})

    async def send_event(self, event: str, data: Optional[dict] = None):
        await self.send_json({"event": event, "data": data})

    async def on_ping(self, data):
        await self.send_event("pong", {"ts": timezone.now().isoformat()})

    async def on_join_room(self, data):
        room_id = _room_id_of(data)
        if room_id is None:
            return
        if not await is_room_member(room_id, self.user_id):
            logger.warning("[WS] user %s refused join of room %s (not a member)", self.user_id, room_id)
            return
        await self.channel_layer.group_add(room_group(room_id), self.channel_name)
        self.joined_rooms.add(room_id)
        await self.send_event("room_joined", {"roomId": room_id})

    async def on_leave_room(self, data):
        await self.drop_room(_room_id_of(data))

    async def drop_room(self, room_id: Optional[int]) -> None:
        if room_id is None or room_id not in self.joined_rooms:
            return
        await self.channel_layer.group_discard(room_group(room_id), self.channel_name)
        self.joined_rooms.discard(room_id)

    async def on_send_message(self, data):
        room_id = _room_id_of(data)
        if room_id not in self.joined_rooms:
            return
        message = data.get("messageData") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            return
        await self.hub.apublish(
            "receive_message", room_group(room_id),
            dict(message, roomId=room_id),
            exclude=self.channel_name,
        )

    async def on_typing(self, data):
        room_id = _room_id_of(data)
        if room_id not in self.joined_rooms:
            return
        await self.hub.apublish(
            "typing", room_group(room_id),
            {"roomId": room_id, "userId": self.user_id,
             "value": bool(data.get("value")) if isinstance(data, dict) else False},
            exclude=self.channel_name,
        )

    # ---- call signaling (pure relay between personal groups) ----

    async def on_call_user(self, data):
        target = _safe_int(data.get("userToCall")) if isinstance(data, dict) else None
        if target is None or target == self.user_id:
            return
        payload = dict(data, fromUser=self.user_id)
        await self.hub.apublish("call_incoming", user_group(target), payload)
        await push_to_user(target, {
            "title": f"Video call from {data.get('name') or self.user_name}",
            "body": "Tap to answer",
            "url": "/",
            "type": "call_incoming",
            "fromUser": self.user_id,
        })

    async def on_answer_call(self, data):
        target = _safe_int(data.get("to")) if isinstance(data, dict) else None
        if target is None:
            return
        await self.hub.apublish("call_accepted", user_group(target), {
            "signal": data.get("signal"),
            "name": data.get("name"),
            "avatar": data.get("avatar"),
            "fromUser": self.user_id,
        })

    async def on_ice_candidate(self, data):
        target = _safe_int(data.get("to")) if isinstance(data, dict) else None
        if target is None:
            return
        await self.hub.apublish("ice_candidate_received", user_group(target), data.get("candidate"))

    async def on_end_call(self, data):
        target = _safe_int(data.get("to")) if isinstance(data, dict) else None
        if target is None:
            return
        await self.hub.apublish("call_ended", user_group(target), {"fromUser": self.user_id})
        await push_to_user(target, {"title": "Call ended", "body": "", "type": "call_ended"})

    # ---- group -> client ----

    async def realtime_event(self, message):
        if message.get("exclude") and message["exclude"] == self.channel_name:
            return
        group = message.get("group")
        # room events queued before this socket left the room
        if is_room_group(group) and group not in {room_group(r) for r in self.joined_rooms}:
            return
        if message["event"] == "conversation_deleted":
            # removed, left or deleted: stop receiving the room's traffic
            await self.drop_room(_room_id_of(message.get("data")))
        await self.send_event(message["event"], message.get("data"))

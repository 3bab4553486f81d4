from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from config.errors import BusinessRuleViolation, DoesNotExist, InvalidInput, NotAllowed
from notifications.push import WebPushAdapter
from notifications.services import dispatch_push
from realtime.hub import Hub, room_group, user_group

from .media import MediaUploader, MediaUploadError  # noqa: F401  (re-exported)
from .models import Message, MessageDeletion, Room, UserRoom

logger = logging.getLogger(__name__)

User = get_user_model()

EPOCH = datetime(1970, 1, 1, tzinfo=dt_timezone.utc)
DELETE_MODES = ("recall", "me")


# ------------------ Errors ------------------

class SelfConversationError(InvalidInput):
    default_message = "You cannot start a conversation with yourself."


class NotRoomMember(NotAllowed):
    default_message = "You are not a member of this conversation."


class NotMessageSender(NotAllowed):
    default_message = "Only the sender can change this message."


class NotGroupOwner(NotAllowed):
    default_message = "Only the group owner can do this."


class NotGroupRoom(InvalidInput):
    default_message = "This conversation is not a group."


class RecallWindowExpired(BusinessRuleViolation):
    default_message = "Messages can only be recalled within an hour of sending."


# ------------------ Helpers ------------------

def build_private_key(u1_id: int, u2_id: int) -> str:
    a, b = sorted([int(u1_id), int(u2_id)])
    return f"{a}:{b}"


def require_membership(user, room_or_id) -> Room:
    """
    The one membership guard: unknown room -> 404, not a member -> 403.
    """
    if isinstance(room_or_id, Room):
        room = room_or_id
    else:
        room = Room.objects.filter(pk=room_or_id).first()
        if room is None:
            raise DoesNotExist("Conversation not found.")
    if not UserRoom.objects.filter(room=room, user=user).exists():
        raise NotRoomMember()
    return room


def visible_messages(user):
    """Messages not deleted "for me" by ``user``."""
    return Message.objects.exclude(deletions__user=user)


def member_ids(room) -> List[int]:
    return list(
        UserRoom.objects.filter(room=room).order_by("joined_at", "id").values_list("user_id", flat=True)
    )


def serialize_message(message: Message, context: Optional[dict] = None) -> dict:
    """Hub payload of a message; with a request in ``context`` media and avatar URLs are absolute."""
    # late import: serializers pull in the users app
    from .serializers import MessageSerializer
    return dict(MessageSerializer(message, context=context or {}).data)


# ======================= CONVERSATIONS =======================

class ConversationService:
    def __init__(self, hub: Hub, media: Optional[MediaUploader] = None):
        self.hub = hub
        self.media = media or MediaUploader(prefix="rooms")

    def _publish_to_users(self, event: str, user_ids: Iterable[int], payload: Optional[dict]) -> None:
        self.hub.publish_many(event, [user_group(uid) for uid in user_ids], payload)

    # ---- 1:1 ----

    def _find_direct(self, me, target, key: str) -> Optional[Room]:
        room = Room.objects.filter(is_group=False, private_key=key).first()
        if room is not None:
            return room
        # rooms created without a key (imported data) are found by membership
        return (
            Room.objects.filter(is_group=False, member_links__user=me)
            .filter(member_links__user=target)
            .order_by("id")
            .first()
        )

    def start_conversation(self, me, target_id) -> Tuple[Room, bool]:
        """
        Existing 1:1 room of the pair, or a new one. Returns ``(room, created)``.
        A unique-key collision means a concurrent request created the room first.
        """
        if int(target_id) == me.pk:
            raise SelfConversationError()
        target = User.objects.filter(pk=target_id, is_active=True).first()
        if target is None:
            raise DoesNotExist("User not found.")

        key = build_private_key(me.pk, target.pk)
        existing = self._find_direct(me, target, key)
        if existing is not None:
            return existing, False

        try:
            with transaction.atomic():
                room = Room.objects.create(is_group=False, private_key=key)
                UserRoom.objects.bulk_create([
                    UserRoom(user=me, room=room),
                    UserRoom(user=target, room=room),
                ])
        except IntegrityError:
            existing = self._find_direct(me, target, key)
            if existing is None:
                raise
            return existing, False

        logger.info("Direct room %s created for %s", room.pk, key)
        return room, True

    # ---- listing ----

    def list_conversations(self, me) -> List[Room]:
        """
        Rooms of ``me`` annotated with ``last_message``, ``unread_count``,
        ``is_muted`` and ``member_list``, most recent activity first.
        """
        rooms = list(
            Room.objects.filter(member_links__user=me)
            .select_related("created_by")
            .prefetch_related("member_links__user")
            .distinct()
        )
        if not rooms:
            return []
        self._annotate(me, rooms)
        rooms.sort(
            key=lambda r: (r.last_message.created_at if r.last_message else EPOCH, r.pk),
            reverse=True,
        )
        return rooms

    def conversation_for(self, me, room: Room) -> Room:
        """``room`` annotated the same way as the entries of ``list_conversations``."""
        self._annotate(me, [room])
        return room

    def _annotate(self, me, rooms: List[Room]) -> None:
        visible = visible_messages(me)
        unread = dict(
            visible.filter(room__in=rooms, is_read=False)
            .exclude(sender=me)
            .order_by()
            .values("room_id")
            .annotate(n=Count("id"))
            .values_list("room_id", "n")
        )
        mutes = dict(UserRoom.objects.filter(user=me).values_list("room_id", "is_muted"))

        for room in rooms:
            room.last_message = (
                visible.filter(room=room)
                .select_related("sender")
                .order_by("-created_at", "-id")
                .first()
            )
            room.unread_count = unread.get(room.pk, 0)
            room.is_muted = mutes.get(room.pk, False)
            links = sorted(room.member_links.all(), key=lambda link: (link.joined_at, link.pk))
            room.member_list = [link.user for link in links]

    def unread_count(self, me, room_or_id) -> int:
        room = require_membership(me, room_or_id)
        return visible_messages(me).filter(room=room, is_read=False).exclude(sender=me).count()

    # ---- deletion ----

    def delete_conversation(self, me, room_id) -> None:
        room = require_membership(me, room_id)
        room_id = room.pk
        former = member_ids(room)

        with transaction.atomic():
            Message.objects.filter(room=room).delete()
            UserRoom.objects.filter(room=room).delete()
            room.delete()

        logger.info("Room %s deleted by user %s", room_id, me.pk)
        self._publish_to_users("conversation_deleted", former, {"roomId": room_id})

    # ---- groups ----

    def _require_group(self, me, room_id) -> Room:
        room = require_membership(me, room_id)
        if not room.is_group:
            raise NotGroupRoom()
        return room

    def _emit_group_updated(self, room: Room) -> None:
        payload = {"roomId": room.pk, "name": room.name, "avatar": room.avatar or None}
        self.hub.publish("group_updated", room_group(room.pk), payload)
        self._publish_to_users("group_updated", member_ids(room), payload)

    def create_group(self, me, name: str, user_ids: Iterable[int]) -> Room:
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Group name is required.")
        wanted = {int(uid) for uid in (user_ids or [])} - {me.pk}
        others = list(User.objects.filter(pk__in=wanted, is_active=True).order_by("id"))
        if not others:
            raise InvalidInput("A group needs at least one other member.")

        with transaction.atomic():
            room = Room.objects.create(is_group=True, name=name[:120], created_by=me)
            UserRoom.objects.bulk_create(
                [UserRoom(user=me, room=room)] + [UserRoom(user=u, room=room) for u in others]
            )

        logger.info("Group %s created by %s with %d members", room.pk, me.pk, len(others) + 1)
        self._publish_to_users("group_created", [me.pk] + [u.pk for u in others], {"roomId": room.pk})
        return room

    def update_group(self, me, room_id, name: Optional[str] = None, avatar: Optional[str] = None,
                     avatar_file=None) -> Room:
        room = self._require_group(me, room_id)
        fields = []
        if name is not None:
            name = name.strip()
            if not name:
                raise InvalidInput("Group name cannot be empty.")
            room.name = name[:120]
            fields.append("name")
        if avatar_file is not None:
            avatar, _ = self.media.upload(avatar_file, room.pk)
        if avatar is not None:
            room.avatar = avatar.strip()[:500]
            fields.append("avatar")
        if fields:
            room.save(update_fields=fields)
        self._emit_group_updated(room)
        return room

    def add_members(self, me, room_id, user_ids: Iterable[int]) -> List[int]:
        """Adds users that are not yet members; existing members are left alone."""
        room = self._require_group(me, room_id)
        wanted = {int(uid) for uid in (user_ids or [])}
        if not wanted:
            raise InvalidInput("No users to add.")
        existing = set(
            UserRoom.objects.filter(room=room, user_id__in=wanted).values_list("user_id", flat=True)
        )

        added = []
        for user in User.objects.filter(pk__in=wanted - existing, is_active=True).order_by("id"):
            try:
                with transaction.atomic():
                    UserRoom.objects.create(user=user, room=room)
            except IntegrityError:
                continue
            added.append(user.pk)

        if added:
            self._publish_to_users("group_created", added, {"roomId": room.pk})
            self._emit_group_updated(room)
        return added

    def remove_member(self, me, room_id, user_id) -> None:
        room = self._require_group(me, room_id)
        user_id = int(user_id)
        if user_id == me.pk:
            self.leave_group(me, room)
            return
        if room.created_by_id != me.pk:
            raise NotGroupOwner()

        deleted, _ = UserRoom.objects.filter(room=room, user_id=user_id).delete()
        if not deleted:
            raise DoesNotExist("User is not a member of this group.")

        self.hub.publish("conversation_deleted", user_group(user_id), {"roomId": room.pk})
        self._emit_group_updated(room)

    def leave_group(self, me, room_id) -> None:
        """
        Drop ``me`` from the group. Ownership passes to the earliest remaining
        member; an empty group is deleted.
        """
        room = self._require_group(me, room_id)
        room_id = room.pk

        with transaction.atomic():
            UserRoom.objects.filter(room=room, user=me).delete()
            heir = UserRoom.objects.filter(room=room).order_by("joined_at", "id").first()
            if heir is None:
                room.delete()
            elif room.created_by_id in (None, me.pk):
                room.created_by_id = heir.user_id
                room.save(update_fields=["created_by"])

        self.hub.publish("conversation_deleted", user_group(me.pk), {"roomId": room_id})
        if heir is not None:
            self._emit_group_updated(room)

    def set_muted(self, me, room_id, muted: bool) -> bool:
        room = require_membership(me, room_id)
        UserRoom.objects.filter(room=room, user=me).update(is_muted=bool(muted))
        return bool(muted)


# ======================= MESSAGES =======================

class MessageService:
    def __init__(self, hub: Hub, push: Optional[WebPushAdapter] = None,
                 media: Optional[MediaUploader] = None, context: Optional[dict] = None):
        self.hub = hub
        self.context = context or {}
        self.push = push or WebPushAdapter()
        self.media = media or MediaUploader()

    @property
    def recall_window(self) -> timedelta:
        return timedelta(seconds=getattr(settings, "CHAT_RECALL_WINDOW_SECONDS", 3600))

    def _get_message(self, message_id) -> Message:
        message = Message.objects.select_related("room", "sender").filter(pk=message_id).first()
        if message is None:
            raise DoesNotExist("Message not found.")
        return message

    def _push_alert(self, room: Room, message: Message, user_ids: Iterable[int]) -> None:
        title = room.name if room.is_group and room.name else message.sender.display_name
        if message.content:
            body = message.content[:120]
        else:
            body = f"[{message.media_type or 'attachment'}]"
        if room.is_group:
            body = f"{message.sender.display_name}: {body}"
        payload = {"title": title, "body": body, "type": "message",
                   "roomId": room.pk, "url": f"/chat?roomId={room.pk}"}
        dispatch_push(user_ids, payload, adapter=self.push)

    # ---- send ----

    def send_message(self, me, room_id, content: str = "", media=None) -> Message:
        room = require_membership(me, room_id)
        content = (content or "").strip()
        if not content and media is None:
            raise InvalidInput("A message needs text or an attachment.")

        media_url, media_type = "", ""
        if media is not None:
            media_url, media_type = self.media.upload(media, room.pk)

        message = Message.objects.create(
            room=room, sender=me, content=content, media_url=media_url, media_type=media_type,
        )

        self.hub.publish("receive_message", room_group(room.pk), serialize_message(message, self.context))

        others = list(
            UserRoom.objects.filter(room=room).exclude(user=me).values_list("user_id", "is_muted")
        )
        for uid, _ in others:
            self.hub.publish("new_message_alert", user_group(uid), {"roomId": room.pk})
        self._push_alert(room, message, [uid for uid, muted in others if not muted])
        return message

    # ---- history ----

    def get_messages(self, me, room_id, cursor=None, limit=None) -> List[Message]:
        """
        One page of history older than ``cursor`` (a message id, exclusive),
        returned oldest-first. A page shorter than ``limit`` is the last one.
        """
        room = require_membership(me, room_id)
        limit = self.clamp_limit(limit)

        qs = (
            visible_messages(me).filter(room=room)
            .select_related("sender")
            .prefetch_related("deletions")
        )
        if cursor not in (None, ""):
            try:
                cursor_id = int(cursor)
            except (TypeError, ValueError):
                raise InvalidInput("Invalid cursor.")
            anchor = Message.objects.filter(pk=cursor_id, room=room).values("id", "created_at").first()
            if anchor is not None:
                qs = qs.filter(
                    Q(created_at__lt=anchor["created_at"])
                    | Q(created_at=anchor["created_at"], id__lt=anchor["id"])
                )
            else:
                # the anchor was recalled meanwhile; ids still follow insertion order
                qs = qs.filter(id__lt=cursor_id)

        page = list(qs.order_by("-created_at", "-id")[:limit])
        page.reverse()
        return page

    @staticmethod
    def clamp_limit(limit) -> int:
        default = getattr(settings, "CHAT_PAGE_SIZE", 20)
        maximum = getattr(settings, "CHAT_MAX_PAGE_SIZE", 100)
        try:
            value = int(limit) if limit not in (None, "") else default
        except (TypeError, ValueError):
            raise InvalidInput("Invalid limit.")
        return max(1, min(value, maximum))

    # ---- edit / delete ----

    def update_message(self, me, message_id, content: str) -> Message:
        message = self._get_message(message_id)
        require_membership(me, message.room)
        if message.sender_id != me.pk:
            raise NotMessageSender()
        content = (content or "").strip()
        if not content:
            raise InvalidInput("Message content cannot be empty.")

        message.content = content
        message.is_edited = True
        message.save(update_fields=["content", "is_edited", "updated_at"])

        self.hub.publish("message_updated", room_group(message.room_id), serialize_message(message, self.context))
        return message

    def delete_message(self, me, message_id, mode: Optional[str] = "recall") -> str:
        """
        ``me``: hide for the caller only. ``recall``: sender-only hard delete
        inside the recall window. Returns the applied mode.
        """
        mode = (mode or "recall").strip().lower()
        if mode not in DELETE_MODES:
            raise InvalidInput("Delete type must be 'recall' or 'me'.")

        message = self._get_message(message_id)
        require_membership(me, message.room)

        if mode == "me":
            MessageDeletion.objects.get_or_create(user=me, message=message)
            return mode

        if message.sender_id != me.pk:
            raise NotMessageSender()
        if timezone.now() - message.created_at > self.recall_window:
            raise RecallWindowExpired()

        payload = {"messageId": message.pk, "roomId": message.room_id}
        message.delete()
        self.hub.publish("message_deleted", room_group(payload["roomId"]), payload)
        return mode

    # ---- read state ----

    def mark_read(self, me, room_id) -> int:
        room = require_membership(me, room_id)
        updated = (
            Message.objects.filter(room=room, is_read=False)
            .exclude(sender=me)
            .update(is_read=True)
        )
        self.hub.publish("messages_read", room_group(room.pk), {"roomId": room.pk, "readerId": me.pk})
        self.hub.publish("refresh_unread", user_group(me.pk))
        return updated

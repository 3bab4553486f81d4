from __future__ import annotations

from typing import Any, Optional

from rest_framework import serializers

from users.serializers import UserSummarySerializer, avatar_url_for

from .models import Message, Room


# ===== Messages =====

class MessageSerializer(serializers.ModelSerializer):
    roomId = serializers.IntegerField(source="room_id", read_only=True)
    senderId = serializers.IntegerField(source="sender_id", read_only=True)
    sender = UserSummarySerializer(read_only=True)
    mediaUrl = serializers.SerializerMethodField()
    mediaType = serializers.SerializerMethodField()
    isRead = serializers.BooleanField(source="is_read", read_only=True)
    isEdited = serializers.BooleanField(source="is_edited", read_only=True)
    deletedBy = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "roomId",
            "senderId",
            "sender",
            "content",
            "mediaUrl",
            "mediaType",
            "isRead",
            "isEdited",
            "deletedBy",
            "createdAt",
            "updatedAt",
        ]

    def get_mediaUrl(self, obj: Message) -> Optional[str]:
        url = obj.media_url or None
        request = self.context.get("request")
        if url and request is not None and url.startswith("/"):
            return request.build_absolute_uri(url)
        return url

    def get_mediaType(self, obj: Message) -> Optional[str]:
        return obj.media_type or None

    def get_deletedBy(self, obj: Message) -> list[int]:
        return [d.user_id for d in obj.deletions.all()]


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(required=False, allow_blank=True, default="", max_length=5000)
    file = serializers.FileField(required=False, allow_null=True)

    def validate(self, attrs):
        if not (attrs.get("content") or "").strip() and not attrs.get("file"):
            raise serializers.ValidationError("A message needs text or an attachment.")
        return attrs


class MessageUpdateSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=5000)


# ===== Conversations =====

class ConversationSerializer(serializers.ModelSerializer):
    """
    Expects rooms annotated by ConversationService.list_conversations
    (``last_message``, ``unread_count``, ``is_muted``, ``member_list``).
    """
    isGroup = serializers.BooleanField(source="is_group")
    name = serializers.SerializerMethodField()
    avatar = serializers.SerializerMethodField()
    createdBy = serializers.IntegerField(source="created_by_id", allow_null=True)
    members = serializers.SerializerMethodField()
    memberCount = serializers.SerializerMethodField()
    otherMember = serializers.SerializerMethodField()
    lastMessage = serializers.SerializerMethodField()
    unreadCount = serializers.SerializerMethodField()
    isMuted = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="created_at")

    class Meta:
        model = Room
        fields = [
            "id",
            "isGroup",
            "name",
            "avatar",
            "createdBy",
            "members",
            "memberCount",
            "otherMember",
            "lastMessage",
            "unreadCount",
            "isMuted",
            "createdAt",
        ]

    def _viewer_id(self) -> Optional[int]:
        request = self.context.get("request")
        user = getattr(request, "user", None)
        return user.pk if user is not None and user.is_authenticated else None

    def _members(self, obj: Room) -> list:
        members = getattr(obj, "member_list", None)
        if members is None:
            members = [link.user for link in obj.member_links.select_related("user").order_by("joined_at", "id")]
            obj.member_list = members
        return members

    def _other(self, obj: Room):
        viewer_id = self._viewer_id()
        for user in self._members(obj):
            if user.pk != viewer_id:
                return user
        return None

    def get_name(self, obj: Room) -> str:
        if obj.is_group:
            return obj.name
        other = self._other(obj)
        return other.display_name if other else obj.name

    def get_avatar(self, obj: Room) -> Optional[str]:
        if obj.is_group:
            return obj.avatar or None
        return avatar_url_for(self._other(obj), self.context.get("request"))

    def get_members(self, obj: Room) -> list[dict[str, Any]]:
        if not obj.is_group:
            return []
        return UserSummarySerializer(self._members(obj), many=True, context=self.context).data

    def get_memberCount(self, obj: Room) -> int:
        return len(self._members(obj))

    def get_otherMember(self, obj: Room) -> Optional[dict]:
        if obj.is_group:
            return None
        other = self._other(obj)
        return UserSummarySerializer(other, context=self.context).data if other else None

    def get_lastMessage(self, obj: Room) -> Optional[dict]:
        last = getattr(obj, "last_message", None)
        return MessageSerializer(last, context=self.context).data if last else None

    def get_unreadCount(self, obj: Room) -> int:
        return getattr(obj, "unread_count", 0)

    def get_isMuted(self, obj: Room) -> bool:
        return bool(getattr(obj, "is_muted", False))


class ConversationStartSerializer(serializers.Serializer):
    targetUserId = serializers.IntegerField()


class MuteSerializer(serializers.Serializer):
    muted = serializers.BooleanField()


class GroupCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    memberIds = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class GroupUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120, required=False)
    avatar = serializers.CharField(max_length=500, required=False, allow_blank=True)


class MemberAddSerializer(serializers.Serializer):
    userIds = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class MemberRemoveSerializer(serializers.Serializer):
    userId = serializers.IntegerField()

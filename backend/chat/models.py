from __future__ import annotations

from django.conf import settings
from django.db import models


# -----------------------------
# Rooms and membership
# -----------------------------

class Room(models.Model):
    """
    A 1:1 or group conversation.
    For 1:1 rooms ``private_key`` is "minUserId:maxUserId"; it is filled by the
    service layer and its uniqueness is what keeps a pair down to one room.
    """
    is_group = models.BooleanField(default=False, db_index=True)
    name = models.CharField(max_length=120, blank=True, default="")
    avatar = models.CharField(max_length=500, blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="owned_rooms",
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through="UserRoom",
        related_name="rooms",
        blank=True,
    )

    private_key = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        unique=True,
        help_text="Unique member pair of a 1:1 room",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        if self.is_group:
            return f"{self.name or 'Group'} (#{self.pk})"
        return f"Direct #{self.pk} ({self.private_key})"


class UserRoom(models.Model):
    """Membership row with per-member settings."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="room_links")
    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="member_links")

    is_muted = models.BooleanField(default=False)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "room")
        indexes = [
            models.Index(fields=["room", "user"], name="chat_userroom_room_user_idx"),
        ]

    def __str__(self) -> str:
        return f"user={self.user_id} in room={self.room_id}"


# -----------------------------
# Messages
# -----------------------------

class Message(models.Model):
    MEDIA_IMAGE = "image"
    MEDIA_VIDEO = "video"
    MEDIA_AUDIO = "audio"
    MEDIA_FILE = "file"
    MEDIA_TYPES = (
        (MEDIA_IMAGE, "Image"),
        (MEDIA_VIDEO, "Video"),
        (MEDIA_AUDIO, "Audio"),
        (MEDIA_FILE, "File"),
    )

    room = models.ForeignKey(Room, related_name="messages", on_delete=models.CASCADE)
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="messages", on_delete=models.CASCADE)

    content = models.TextField(blank=True, default="")
    media_url = models.CharField(max_length=500, blank=True, default="")
    media_type = models.CharField(max_length=16, blank=True, default="", choices=MEDIA_TYPES)

    is_read = models.BooleanField(default=False)
    is_edited = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["room", "created_at", "id"], name="chat_message_room_created_idx"),
            models.Index(fields=["room", "is_read"], name="chat_message_room_read_idx"),
        ]

    def __str__(self) -> str:
        text = self.content[:30] if self.content else (self.media_type or "…")
        return f"[{self.room_id}] {self.sender_id}: {text}"


class MessageDeletion(models.Model):
    """
    "Delete for me": the message stays in the room and is hidden only for ``user``.
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="message_deletions"
    )
    message = models.ForeignKey(
        Message, on_delete=models.CASCADE, related_name="deletions"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "message")

    def __str__(self) -> str:
        return f"MessageDeletion user={self.user_id} message={self.message_id}"

# backend/chat/admin.py
from __future__ import annotations

from django.contrib import admin

from .models import Message, MessageDeletion, Room, UserRoom


class UserRoomInline(admin.TabularInline):
    model = UserRoom
    extra = 0
    raw_id_fields = ("user",)
    readonly_fields = ("joined_at",)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "is_group", "created_by", "member_count", "created_at")
    search_fields = ("name", "private_key")
    list_filter = ("is_group", "created_at")
    raw_id_fields = ("created_by",)
    inlines = [UserRoomInline]

    @admin.display(description="Title")
    def title(self, obj: Room):
        if obj.is_group:
            return obj.name or "-"
        return obj.private_key or "-"

    @admin.display(description="Members")
    def member_count(self, obj: Room):
        return obj.member_links.count()


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "room",
        "sender",
        "short_content",
        "media_type",
        "is_read",
        "is_edited",
        "created_at",
    )
    search_fields = ("content",)
    list_filter = ("media_type", "is_read", "is_edited", "created_at")
    raw_id_fields = ("room", "sender")

    @admin.display(description="Content")
    def short_content(self, obj: Message):
        text = obj.content or ""
        if not text and obj.media_url:
            text = f"[{obj.media_type or 'file'}] {obj.media_url}"
        return (text[:60] + "…") if len(text) > 60 else text


@admin.register(MessageDeletion)
class MessageDeletionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "message", "created_at")
    raw_id_fields = ("user", "message")

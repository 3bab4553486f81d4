from django.contrib import admin
from .models import Notification, PushSubscription


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "type", "sender", "is_read", "created_at")
    list_filter = ("type", "is_read", "created_at")
    search_fields = ("user__email", "user__username", "content")
    raw_id_fields = ("user", "sender", "post", "comment")
    date_hierarchy = "created_at"


@admin.register(PushSubscription)
class PushSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "endpoint", "created_at", "updated_at")
    search_fields = ("user__email", "user__username", "endpoint")
    raw_id_fields = ("user",)
    date_hierarchy = "created_at"

from django.conf import settings
from django.db import models


class Notification(models.Model):
    """
    Persisted notification for like/comment/follow activity.
    """

    class Types:
        LIKE = "like"
        COMMENT = "comment"
        FOLLOW = "follow"

        CHOICES = [
            (LIKE, "Like"),
            (COMMENT, "Comment"),
            (FOLLOW, "Follow"),
        ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    type = models.CharField(max_length=16, choices=Types.CHOICES)
    content = models.CharField(max_length=255)
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="sent_notifications",
    )
    post = models.ForeignKey("posts.Post", null=True, blank=True, on_delete=models.CASCADE, related_name="+")
    comment = models.ForeignKey("posts.Comment", null=True, blank=True, on_delete=models.CASCADE, related_name="+")
    is_read = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "is_read", "created_at"], name="notif_user_read_created_idx"),
            models.Index(fields=["user", "created_at"], name="notif_user_created_idx"),
        ]

    def __str__(self):
        return f"Notification(id={self.id}, user={self.user_id}, type={self.type}, read={self.is_read})"


class PushSubscription(models.Model):
    """
    Browser push subscription. One row per endpoint; the owner is whoever
    subscribed that endpoint last.
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="push_subscriptions",
    )
    endpoint = models.TextField(unique=True)
    keys = models.JSONField(default=dict)  # {"p256dh": "...", "auth": "..."}

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["user"], name="pushsub_user_idx"),
        ]

    def __str__(self):
        return f"PushSubscription(user={self.user_id}, endpoint={self.endpoint[:40]}…)"

from rest_framework import serializers

from users.serializers import UserSummarySerializer

from .models import Notification, PushSubscription


class NotificationSerializer(serializers.ModelSerializer):
    read = serializers.BooleanField(source="is_read")
    userId = serializers.IntegerField(source="user_id")
    senderId = serializers.IntegerField(source="sender_id", allow_null=True)
    sender = UserSummarySerializer(read_only=True, allow_null=True)
    postId = serializers.IntegerField(source="post_id", allow_null=True)
    commentId = serializers.IntegerField(source="comment_id", allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")

    class Meta:
        model = Notification
        fields = ("id", "type", "content", "read", "userId", "senderId", "sender",
                  "postId", "commentId", "createdAt")
        read_only_fields = fields


class SubscriptionKeysSerializer(serializers.Serializer):
    p256dh = serializers.CharField()
    auth = serializers.CharField()


class PushSubscriptionSerializer(serializers.ModelSerializer):
    keys = SubscriptionKeysSerializer()

    class Meta:
        model = PushSubscription
        fields = ("id", "endpoint", "keys")

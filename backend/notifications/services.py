from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction

from config.errors import DoesNotExist, InvalidInput
from realtime.hub import Hub, user_group

from .models import Notification, PushSubscription
from .push import PushResult, WebPushAdapter

logger = logging.getLogger(__name__)


def send_push(user_id: int, payload: Dict[str, Any], adapter: Optional[WebPushAdapter] = None) -> Dict[str, int]:
    """
    Best-effort delivery to every subscription of ``user_id``.
    Endpoints reported gone are deleted; other failures are only logged.
    """
    adapter = adapter or WebPushAdapter()
    counts = {"sent": 0, "failed": 0, "expired": 0}
    if not adapter.is_configured():
        return counts

    for subscription in PushSubscription.objects.filter(user_id=user_id):
        result = adapter.send(subscription, payload)
        if result == PushResult.SENT:
            counts["sent"] += 1
        elif result == PushResult.GONE:
            counts["expired"] += 1
            logger.info("Push subscription gone; deleting endpoint=%s user_id=%s",
                        subscription.endpoint[:40], user_id)
            PushSubscription.objects.filter(pk=subscription.pk).delete()
        elif result == PushResult.FAILED:
            counts["failed"] += 1
    return counts


# channel-layer message type, handled by PushDeliveryConsumer.push_deliver
PUSH_MESSAGE_TYPE = "push.deliver"


def deliver_push(user_ids: Iterable[int], payload: Dict[str, Any], adapter: Optional[WebPushAdapter] = None) -> None:
    for user_id in user_ids:
        try:
            send_push(user_id, payload, adapter=adapter)
        except Exception:
            logger.exception("Push delivery to user %s failed", user_id)


def dispatch_push(user_ids: Iterable[int], payload: Dict[str, Any], adapter: Optional[WebPushAdapter] = None) -> None:
    """
    Schedule push delivery for after the current transaction commits.

    With ``PUSH_DELIVERY_CHANNEL`` set the job is handed to the channel worker
    (``manage.py runworker <channel>``) and the caller never waits on the push
    service. Without it delivery runs in this process once the commit is done.
    """
    user_ids = [int(uid) for uid in user_ids]
    if not user_ids:
        return
    channel = getattr(settings, "PUSH_DELIVERY_CHANNEL", "")
    if channel:
        transaction.on_commit(lambda: enqueue_push(channel, user_ids, payload))
    else:
        transaction.on_commit(lambda: deliver_push(user_ids, payload, adapter=adapter))


def enqueue_push(channel: str, user_ids: Iterable[int], payload: Dict[str, Any]) -> None:
    layer = get_channel_layer()
    if layer is None:
        logger.warning("No channel layer; push to %s dropped", list(user_ids))
        return
    try:
        async_to_sync(layer.send)(channel, {
            "type": PUSH_MESSAGE_TYPE,
            "user_ids": list(user_ids),
            "payload": payload,
        })
    except Exception:
        logger.warning("Push hand-off to %s failed", channel, exc_info=True)


class NotificationService:
    def __init__(self, hub: Hub, push: Optional[WebPushAdapter] = None, context: Optional[dict] = None):
        self.hub = hub
        self.context = context or {}
        self.push = push or WebPushAdapter()

    # ---- creation ----

    def notify(self, recipient, type: str, content: str, sender=None, post=None, comment=None) -> Optional[Notification]:
        """
        Persist a notification, emit ``new_notification`` to the recipient and
        try push. Self-actions never produce a row.
        """
        recipient_id = getattr(recipient, "pk", recipient)
        sender_id = getattr(sender, "pk", sender)
        if sender_id is not None and int(sender_id) == int(recipient_id):
            return None

        notification = Notification.objects.create(
            user_id=recipient_id,
            type=type,
            content=content[:255],
            sender_id=sender_id,
            post=post,
            comment=comment,
        )

        # late import: serializers pull in the users app
        from .serializers import NotificationSerializer
        payload = dict(NotificationSerializer(notification, context=self.context).data)
        self.hub.publish("new_notification", user_group(recipient_id), payload)

        dispatch_push([recipient_id], {
            "title": "New notification",
            "body": notification.content,
            "type": type,
            "url": "/notifications",
        }, adapter=self.push)
        return notification

    # ---- reading ----

    def list_for(self, user, limit: Optional[int] = None):
        limit = limit or getattr(settings, "NOTIFICATIONS_LIST_LIMIT", 50)
        return list(
            Notification.objects.filter(user=user)
            .select_related("sender")
            .order_by("-created_at", "-id")[:limit]
        )

    def unread_count(self, user) -> int:
        return Notification.objects.filter(user=user, is_read=False).count()

    def mark_read(self, user, notification_id: int) -> Notification:
        notification = Notification.objects.filter(pk=notification_id, user=user).first()
        if notification is None:
            raise DoesNotExist("Notification not found.")
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read"])
        self.hub.publish("refresh_unread", user_group(user.pk))
        return notification

    def mark_all_read(self, user) -> int:
        updated = Notification.objects.filter(user=user, is_read=False).update(is_read=True)
        self.hub.publish("refresh_unread", user_group(user.pk))
        return updated

    # ---- push subscriptions ----

    @transaction.atomic
    def subscribe(self, user, endpoint: str, keys: Dict[str, str]) -> PushSubscription:
        endpoint = (endpoint or "").strip()
        if not endpoint:
            raise InvalidInput("Subscription endpoint is required.")
        if not isinstance(keys, dict) or not keys.get("p256dh") or not keys.get("auth"):
            raise InvalidInput("Subscription keys must contain p256dh and auth.")

        subscription, created = PushSubscription.objects.select_for_update().update_or_create(
            endpoint=endpoint,
            defaults={"user": user, "keys": {"p256dh": keys["p256dh"], "auth": keys["auth"]}},
        )
        logger.info("Push subscription %s user=%s", "created" if created else "re-associated", user.pk)
        return subscription

    def unsubscribe(self, user, endpoint: str) -> bool:
        deleted, _ = PushSubscription.objects.filter(user=user, endpoint=(endpoint or "").strip()).delete()
        return bool(deleted)

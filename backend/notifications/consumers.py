import logging

from channels.consumer import SyncConsumer

from .services import deliver_push

logger = logging.getLogger(__name__)


class PushDeliveryConsumer(SyncConsumer):
    """
    Background push worker, bound to ``PUSH_DELIVERY_CHANNEL``:

        python manage.py runworker push-delivery
    """

    def push_deliver(self, message):
        user_ids = message.get("user_ids") or []
        logger.info("[PUSH] delivering to %d user(s)", len(user_ids))
        deliver_push(user_ids, message.get("payload") or {})

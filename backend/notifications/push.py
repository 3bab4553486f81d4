# notifications/push.py
"""
Push Delivery Adapter: sends Web Push payloads to subscribed endpoints.

Only the consumed interface matters to the rest of the code:
``send(subscription, payload) -> PushResult``. The adapter never raises for
delivery problems; it reports ``GONE`` for endpoints the push service no
longer knows (HTTP 404/410) and ``FAILED`` for everything else.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from django.conf import settings
from pywebpush import WebPushException, webpush

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)


class PushResult:
    SENT = "sent"
    GONE = "gone"
    FAILED = "failed"
    SKIPPED = "skipped"


class WebPushAdapter:
    def __init__(self, public_key: str | None = None, private_key: str | None = None,
                 subject: str | None = None, ttl: int = 60 * 60):
        self.public_key = (public_key if public_key is not None else settings.VAPID_PUBLIC_KEY) or ""
        self.private_key = (private_key if private_key is not None else settings.VAPID_PRIVATE_KEY) or ""
        self.subject = subject or settings.VAPID_SUBJECT
        self.ttl = ttl

    def is_configured(self) -> bool:
        return bool(self.public_key and self.private_key.strip())

    def send(self, subscription, payload: Dict[str, Any]) -> str:
        if not self.is_configured():
            logger.debug("Web push not configured; skipping endpoint=%s", subscription.endpoint[:40])
            return PushResult.SKIPPED

        try:
            webpush(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": dict(subscription.keys or {}),
                },
                data=json.dumps(payload, default=str),
                vapid_private_key=self.private_key.strip(),
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
            )
            return PushResult.SENT
        except WebPushException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            if status_code in GONE_STATUS_CODES:
                return PushResult.GONE
            logger.error("Web push failed endpoint=%s status=%s: %s",
                         subscription.endpoint[:40], status_code, exc)
            return PushResult.FAILED
        except Exception as exc:
            logger.error("Web push failed endpoint=%s: %s", subscription.endpoint[:40], exc)
            return PushResult.FAILED

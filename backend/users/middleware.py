# users/middleware.py
from __future__ import annotations

import logging

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

logger = logging.getLogger(__name__)

UPDATE_INTERVAL = getattr(settings, "LAST_ACTIVITY_UPDATE_INTERVAL", 30)  # seconds


class LastActivityMiddleware:
    """
    Touches user.last_seen at most once every UPDATE_INTERVAL seconds.
    Must come AFTER AuthenticationMiddleware in settings.MIDDLEWARE.

    JWT-authenticated API requests resolve the user inside DRF, so here only
    session users (admin) are visible; the realtime consumer covers the rest.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        self._maybe_touch_last_seen(request)
        return self.get_response(request)

    def _maybe_touch_last_seen(self, request):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return

        # throttle DB writes through the cache
        cache_key = f"last_seen_update:{user.pk}"
        if cache.get(cache_key):
            return

        try:
            type(user).objects.filter(pk=user.pk).update(last_seen=timezone.now())
            cache.set(cache_key, True, UPDATE_INTERVAL)
        except Exception:
            # never fail a request over activity bookkeeping
            logger.warning("Could not update last_seen for user %s", user.pk, exc_info=True)

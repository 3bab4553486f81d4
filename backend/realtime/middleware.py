# realtime/middleware.py
from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError

logger = logging.getLogger(__name__)


def token_from_scope(scope) -> str | None:
    """
    JWT from
      - the Authorization: Bearer <token> header
      - or the ?token=<token> query parameter
    """
    headers = dict(scope.get("headers") or [])
    auth = headers.get(b"authorization")
    if auth:
        auth_str = auth.decode("latin1")
        if auth_str.lower().startswith("bearer "):
            token = auth_str.split(" ", 1)[1].strip()
            if token:
                return token

    raw_qs = (scope.get("query_string") or b"").decode()
    return (parse_qs(raw_qs).get("token") or [None])[0]


@database_sync_to_async
def get_user_from_token(token: str):
    """Validated, active user for ``token`` or AnonymousUser."""
    jwt_auth = JWTAuthentication()
    try:
        validated = jwt_auth.get_validated_token(token)
        return jwt_auth.get_user(validated)
    except (InvalidToken, TokenError, AuthenticationFailed) as exc:
        logger.info("[WS][JWT] rejected token: %s", exc)
        return AnonymousUser()


class JwtAuthMiddleware:
    """
    Resolves the JWT of a WebSocket handshake into scope['user'].
    Missing or invalid token -> AnonymousUser; the consumer decides what to do with it.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        token = token_from_scope(scope)
        user = await get_user_from_token(token) if token else AnonymousUser()
        return await self.app(dict(scope, user=user), receive, send)

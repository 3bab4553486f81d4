"""
Service-level error taxonomy and its mapping onto HTTP.

Services raise ``ServiceError`` subclasses carrying a ``kind`` and a readable
message; the DRF exception handler below turns the kind into a status code.
Plain DRF exceptions (``ValidationError``, ``NotFound`` ...) keep DRF's default
rendering.
"""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ErrorKind:
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"


KIND_TO_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UPSTREAM: status.HTTP_502_BAD_GATEWAY,
}


class ServiceError(Exception):
    kind = ErrorKind.VALIDATION
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ServiceError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid input."


class NotAllowed(ServiceError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have permission to perform this action."


class DoesNotExist(ServiceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found."


class BusinessRuleViolation(ServiceError):
    kind = ErrorKind.CONFLICT
    default_message = "Operation is not allowed in the current state."


class UpstreamError(ServiceError):
    kind = ErrorKind.UPSTREAM
    default_message = "Upstream service failed."


def exception_handler(exc, context):
    if isinstance(exc, ServiceError):
        if exc.kind == ErrorKind.UPSTREAM:
            view = context.get("view")
            logger.error(
                "Upstream failure in %s: %s",
                type(view).__name__ if view else "?", exc.message,
                exc_info=exc,
            )
        return Response(
            {"detail": exc.message, "code": exc.kind},
            status=KIND_TO_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST),
        )
    return drf_exception_handler(exc, context)

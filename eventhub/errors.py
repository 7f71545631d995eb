"""
Error Taxonomy
Domain errors raised by services and stores, and their HTTP mapping
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EventHubError(Exception):
    """Base class for errors that map to an HTTP response"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(EventHubError):
    """Entity absent"""

    status_code = status.HTTP_404_NOT_FOUND


class RejectedError(EventHubError):
    """Business rule or precondition failure; message is the stable reason"""

    status_code = status.HTTP_400_BAD_REQUEST


class ConfigurationError(EventHubError):
    """A server-held secret or setting is missing"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class TransientStoreError(EventHubError):
    """Persistence I/O failed; safe for the caller to retry"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UpstreamTimeoutError(EventHubError):
    """An external collaborator did not answer in time; safe to retry"""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class UpstreamError(EventHubError):
    """An external collaborator answered with a failure"""

    status_code = status.HTTP_502_BAD_GATEWAY


class BannedError(EventHubError):
    """The caller has an unexpired ban"""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, ban: dict):
        self.ban = ban
        super().__init__("You are banned")


class DecryptError(Exception):
    """Ciphertext could not be decrypted with the server key.

    Never rendered directly; callers turn it into "Invalid QR Code".
    """


# Reason strings shared between services, stores and tests
EVENT_NOT_FOUND = "Event not found"
EVENT_DEACTIVATED = "Event has been deactivated"
EVENT_ALREADY_DEACTIVATED = "Event has already been deactivated"
EVENT_NOT_ACTIVE = "Event is not active"
EVENT_FULL = "Event is full"
ALREADY_JOINED = "User already joined this event"
NOT_JOINED = "User hasn't joined this event"
ALREADY_CONFIRMED = "User has already confirmed participation"
INVALID_QR_CODE = "Invalid QR Code"
QR_CODE_NOT_FOUND = "Event QR Code not found"
QR_KEY_MISSING = "QR Code Encryption Key not found"
NO_EVENT_TYPES = "no event types found"
USER_NOT_FOUND = "User not found"


async def eventhub_error_handler(request: Request, exc: EventHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)

    headers = None
    if isinstance(exc, (TransientStoreError, UpstreamTimeoutError)):
        headers = {"Retry-After": "1"}

    content = {"error": exc.message}
    if isinstance(exc, BannedError):
        content["ban"] = exc.ban

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=headers,
    )


REQUEST_LOCATIONS = ("body", "query", "path", "header")


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are rejections like any other"""
    errors = exc.errors()
    logger.warning("%s %s invalid request: %s", request.method, request.url.path, errors)

    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first["loc"] if part not in REQUEST_LOCATIONS)
        message = f"{field}: {first['msg']}" if field else first["msg"]

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message},
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register the domain error handlers on the app"""
    app.add_exception_handler(EventHubError, eventhub_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

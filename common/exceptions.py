"""DRF exception handler translating domain errors into API responses."""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import CommerceError, IntegrityError

logger = logging.getLogger("bazaar.api")


def error_body(exc: CommerceError) -> dict:
    """`{"detail", "code"}` plus the item list or saved order reference an error carries."""

    detail = exc.message if exc.expose_message else exc.default_message
    body = {"detail": detail, "code": exc.code}
    if not exc.expose_message:
        return body
    items = getattr(exc, "items", None)
    if items:
        body["items"] = items
    if getattr(exc, "order_id", None) is not None:
        body["order_id"] = exc.order_id
        body["order_number"] = exc.order_number
    return body


def api_exception_handler(exc, context):
    """Render `CommerceError`s with `error_body`; defer the rest to DRF."""

    if not isinstance(exc, CommerceError):
        return exception_handler(exc, context)

    view = context.get("view")
    if isinstance(exc, IntegrityError):
        logger.critical(
            "integrity_violation",
            extra={"event": "integrity_violation", "view": type(view).__name__, "error": str(exc)},
        )
    return Response(error_body(exc), status=exc.status_code)

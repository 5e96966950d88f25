import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.inventory.errors import LedgerError

logger = logging.getLogger(__name__)

STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: "authentication_failed",
    status.HTTP_403_FORBIDDEN: "permission_denied",
    status.HTTP_404_NOT_FOUND: "not_found",
}


def error_body(code: str, detail: str, field_errors=None) -> dict:
    return {"code": code, "detail": detail, "field_errors": field_errors or {}}


def stockroom_exception_handler(exc, context):
    """Render every failure as ``{"code", "detail", "field_errors"}``.

    Ledger errors carry their own code and HTTP status; anything DRF knows
    about is mapped onto the same envelope.
    """
    if isinstance(exc, LedgerError):
        logger.warning("Rejected %s: %s", exc.code, exc.detail)
        return Response(error_body(exc.code, exc.detail, exc.field_errors), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        response.data = error_body("validation_error", "Request validation failed.", response.data)
        return response

    if response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        code = "internal_error"
    else:
        code = STATUS_CODES.get(response.status_code, getattr(exc, "default_code", "api_error"))
    detail = response.data.get("detail") if isinstance(response.data, dict) else response.data
    response.data = error_body(code, str(detail))
    return response

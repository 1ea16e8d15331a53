import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core import errors

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """DRF handler that also understands the service layer's errors."""
    if isinstance(exc, errors.ValidationError):
        return Response({"detail": exc.message, "errors": exc.errors}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, errors.NotFoundError):
        return Response({"detail": exc.message}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, errors.StateConflictError):
        return Response({"detail": exc.message}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, errors.PersistenceError):
        return Response({"detail": exc.message}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    if isinstance(exc, PermissionError):
        return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)

    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.error("Unhandled API error in %s", view.__class__.__name__ if view else "unknown view", exc_info=exc)
    return response

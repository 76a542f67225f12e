"""
Common utility functions shared across the routers.
"""
import logging

from fastapi import HTTPException
from starlette import status

from clinic_api.common.schemas import JSendResponse

logger = logging.getLogger(__name__)


def error_response(exc: Exception) -> JSendResponse:
    """
    Wrap an exception raised by a service into a JSend error.

    HTTPException keeps its status code and detail; anything else is reported as 500.

    Args:
        exc: The exception caught by the router

    Returns:
        JSendResponse with status "error"
    """
    if isinstance(exc, HTTPException):
        return JSendResponse.error(message=str(exc.detail), code=exc.status_code)
    logger.exception("Unhandled error while serving request")
    return JSendResponse.error(message=str(exc), code=status.HTTP_500_INTERNAL_SERVER_ERROR)

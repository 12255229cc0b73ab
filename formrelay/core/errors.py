"""
=============================================================================
FORMRELAY - ERROR HANDLING MODULE
=============================================================================
Error taxonomy and the global exception boundary.

Every response leaving the API has the shape ``{"success": bool,
"message": str}``. Expected failures (validation, upload, transport) are
turned into that shape by the submission pipeline; everything else is
converted here:

- HTTPException      -> its status code, message derived from the status
- RequestValidation  -> 400 with a generic message
- any other error    -> 500 with a generic message, traceback logged only

Usage:
    # In main.py
    from formrelay.core.errors import register_exception_handlers
    register_exception_handlers(app)
=============================================================================
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "A server error occurred. Please try again later."
BAD_REQUEST_MESSAGE = "Invalid form submission."

_STATUS_MESSAGES = {
    400: BAD_REQUEST_MESSAGE,
    404: "Not found",
    405: "Method not allowed",
}


class FormRelayError(Exception):
    """Base error for the submission pipeline."""

    pass


class UploadError(FormRelayError, OSError):
    """An upload could not be copied to the durable upload directory."""

    pass


class TransportError(FormRelayError):
    """The mail transport refused or failed to accept a message."""

    pass


def error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = _STATUS_MESSAGES.get(exc.status_code)
        if message is None:
            message = exc.detail if isinstance(exc.detail, str) else SERVER_ERROR_MESSAGE
        if exc.status_code >= 500:
            logger.error(
                f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}"
            )
        return error_response(exc.status_code, message, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(
            f"Rejected malformed request on {request.method} {request.url.path}: "
            f"{len(exc.errors())} error(s)"
        )
        return error_response(400, BAD_REQUEST_MESSAGE)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all handler for unhandled exceptions.

        - Logs the full traceback for debugging
        - Returns a generic error message to prevent info leakage

        Starlette runs this handler outside the user middleware stack, so the
        request-id and CORS middlewares never see the response. The request
        id is read back from ``request.state`` for the log line and the
        header; CORS headers are not added, so cross-origin callers only see
        a failed request.
        """
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path} "
            f"request_id={request_id}:\n"
            f"{traceback.format_exc()}"
        )
        headers = {"X-Request-ID": request_id} if request_id else None
        return error_response(500, SERVER_ERROR_MESSAGE, headers=headers)

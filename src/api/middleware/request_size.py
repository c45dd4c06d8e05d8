"""Request body size limiting middleware."""

import logging
from typing import Callable

from fastapi import Request, Response, status

from src.api.middleware.error_handler import create_error_response
from src.core.config import get_settings

logger = logging.getLogger(__name__)


async def request_size_limit_middleware(
    request: Request,
    call_next: Callable[[Request], Response],
) -> Response:
    """Reject requests whose declared body exceeds the configured maximum.

    Checkout, address and webhook bodies are all small JSON documents, so
    anything large is refused before it is read.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: The handler's response, or a 413/400 error.
    """
    max_size = get_settings().max_request_body_size
    content_length = request.headers.get("content-length")
    if not content_length:
        return await call_next(request)

    try:
        length = int(content_length)
    except ValueError:
        return create_error_response(
            error_type="invalid_request",
            message="Invalid Content-Length header",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if length > max_size:
        logger.warning("Request body too large: %d bytes (max: %d)", length, max_size)
        return create_error_response(
            error_type="request_too_large",
            message=f"Request body exceeds maximum size of {max_size} bytes",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )

    return await call_next(request)

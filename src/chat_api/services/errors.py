"""
Chat route error taxonomy and plain-text error responses.

Every user-visible failure is a short human-readable plain-text body;
no structured error codes are exposed.

Error Types:
    - AuthError: No or invalid session (401)
    - ValidationError: Malformed request or missing user message (400)
    - NotFoundError: Missing chat id or unknown chat (404)
    - OwnershipError: Requester does not own the chat (401)
    - ProviderError: Provider failure while streaming (reported in-stream)
    - PersistenceError: Database write failed (500)

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
from typing import Optional

from fastapi.responses import PlainTextResponse

UNAUTHORIZED_MESSAGE: str = "Unauthorized"
NOT_FOUND_MESSAGE: str = "Not Found"
NO_USER_MESSAGE: str = "No user message found"
INTERNAL_ERROR_MESSAGE: str = "An error occurred while processing your request"
STREAM_FALLBACK_MESSAGE: str = "Service temporarily unavailable, please retry."


# ============================================================================
# Exceptions
# ============================================================================

class ChatAPIError(Exception):
    """
    Base error carrying the HTTP status and body for a direct response.

    Attributes:
        status_code: HTTP status returned to the client
        message: Plain-text response body
    """
    status_code: int = 500
    default_message: str = INTERNAL_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(ChatAPIError):
    status_code = 401
    default_message = UNAUTHORIZED_MESSAGE


class ValidationError(ChatAPIError):
    status_code = 400
    default_message = "Invalid request body"


class NotFoundError(ChatAPIError):
    status_code = 404
    default_message = NOT_FOUND_MESSAGE


class OwnershipError(ChatAPIError):
    """Requester is authenticated but does not own the chat."""
    status_code = 401
    default_message = UNAUTHORIZED_MESSAGE


class PersistenceError(ChatAPIError):
    status_code = 500
    default_message = INTERNAL_ERROR_MESSAGE

    def __init__(self, detail: Optional[str] = None):
        # detail is for logs only; clients always get the generic message
        super().__init__(INTERNAL_ERROR_MESSAGE)
        self.detail = detail


class ProviderError(Exception):
    """
    Provider call failed or the stream exceeded its time limit.

    Never turned into a response status: the relay logs it and writes
    STREAM_FALLBACK_MESSAGE into the already-started stream.
    """


# ============================================================================
# Error Response Factory
# ============================================================================

def create_error_response(message: str, status_code: int = 400) -> PlainTextResponse:
    """
    Create a plain-text error response.

    Args:
        message: Human-readable error description
        status_code: HTTP status code

    Returns:
        PlainTextResponse with the message as body
    """
    return PlainTextResponse(message, status_code=status_code)


def error_response(exc: ChatAPIError) -> PlainTextResponse:
    return create_error_response(exc.message, exc.status_code)


def internal_error() -> PlainTextResponse:
    """Generic 500 that does not leak internal details."""
    return create_error_response(INTERNAL_ERROR_MESSAGE, status_code=500)

"""Classify users API exceptions into user-facing error codes."""

from user_admin.utils.exceptions import (
    ApiError,
    ConflictError,
    NotFoundError,
    ServerError,
    ServerValidationError,
    TransportError,
)


# Error codes surfaced to the screen
ERROR_CONFLICT = "conflict"
ERROR_INVALID = "invalid"
ERROR_NOT_FOUND = "not_found"
ERROR_TIMEOUT = "timeout"
ERROR_NETWORK = "network"
ERROR_SERVER = "server_error"
ERROR_UNKNOWN = "unknown"

MSG_ALREADY_IN_USE = "Already in use"

# Codes whose failure can be retried without changing the draft
RETRYABLE_CODES = frozenset({ERROR_TIMEOUT, ERROR_NETWORK, ERROR_SERVER})

_DUPLICATE_PATTERNS = ("already", "duplicate", "taken", "exists", "in use")


def classify_error(exc: Exception) -> tuple[str, str]:
    """Map an exception to (error_code, user_friendly_message).

    Returns:
        Tuple of (error_code, message) where error_code is one of the
        ERROR_* constants and message is a short human-readable explanation.
    """
    if isinstance(exc, TransportError):
        if exc.timeout:
            return ERROR_TIMEOUT, (
                "The server took too long to respond. "
                "Your changes are kept; please try again."
            )
        return ERROR_NETWORK, (
            "Could not reach the server. "
            "Your changes are kept; please try again."
        )

    if isinstance(exc, ConflictError):
        return ERROR_CONFLICT, "Some values are already in use by another user."

    if isinstance(exc, ServerValidationError):
        return ERROR_INVALID, "The server rejected some values. Please review the highlighted fields."

    if isinstance(exc, NotFoundError):
        return ERROR_NOT_FOUND, (
            "This user no longer exists. It may have been removed by someone else. "
            "Copy anything you need, then discard your changes."
        )

    if isinstance(exc, ServerError):
        return ERROR_SERVER, (
            "The server failed to process the request. "
            "Your changes are kept; please try again."
        )

    if isinstance(exc, ApiError):
        msg_lower = exc.message.lower()
        if exc.status_code == 409 or any(p in msg_lower for p in _DUPLICATE_PATTERNS):
            return ERROR_CONFLICT, "Some values are already in use by another user."
        if 400 <= exc.status_code < 500:
            return ERROR_INVALID, f"The request was rejected: {exc.message}"

    return ERROR_UNKNOWN, (
        "Something went wrong while talking to the server. "
        "Your changes are kept; please try again."
    )


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_CODES

"""Custom exceptions for the user administration core."""

from typing import Any


class UserAdminError(Exception):
    """Base exception for the user administration core."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ReadOnlyFieldError(UserAdminError):
    """Attempt to edit a field that is not part of the editable draft."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Field is not editable: {field}", {"field": field})
        self.field = field


class SaveInProgressError(UserAdminError):
    """Draft edit attempted while a save is in flight."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Cannot edit {field} while saving", {"field": field})
        self.field = field


class ApiError(UserAdminError):
    """Error response from the users API."""

    status_code: int = 400
    code: str = "error"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        field_details: list[dict[str, str]] | None = None,
    ) -> None:
        super().__init__(message, {"fields": list(field_details or [])})
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.field_details = list(field_details or [])


class ConflictError(ApiError):
    """Duplicate constraint violated (username or email already taken)."""

    status_code = 409
    code = "duplicate"


class ServerValidationError(ApiError):
    """Record shape rejected by the server."""

    status_code = 422
    code = "validation_error"


class NotFoundError(ApiError):
    """Record does not exist (or was removed concurrently)."""

    status_code = 404
    code = "not_found"


class ServerError(ApiError):
    """Unexpected server-side failure."""

    status_code = 500
    code = "internal_error"
    retryable = True


class TransportError(UserAdminError):
    """Network failure or timeout talking to the users API."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        timeout: bool = False,
    ) -> None:
        super().__init__(message, details)
        self.timeout = timeout
        self.retryable = True


class PreferenceError(UserAdminError):
    """Error reading or writing persisted preferences."""

    pass

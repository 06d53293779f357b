"""Custom exceptions for the calendar client."""

from typing import Any, Optional

from pydantic import BaseModel


class ValidationDetail(BaseModel):
    """Field-level validation error reported by the server."""

    field: str
    message: str


class CalendarClientError(Exception):
    """Base exception for calendar client errors."""


class NetworkFailure(CalendarClientError):
    """Raised when the server could not be reached or answered garbage."""


class ApiError(CalendarClientError):
    """Raised when the server answers with a non-success status."""

    def __init__(
        self,
        status: int,
        message: str,
        error: Optional[str] = None,
        details: Optional[list[ValidationDetail]] = None,
    ):
        super().__init__(message)
        self.status = status
        self.error = error or "error"
        self.message = message
        self.details = details or []

    @classmethod
    def from_envelope(cls, status: int, body: Any) -> "ApiError":
        """Build the matching subclass from an error envelope."""
        error = None
        message = f"HTTP {status}"
        details: list[ValidationDetail] = []
        if isinstance(body, dict):
            error = body.get("error") or body.get("status")
            message = body.get("message") or body.get("error") or message
            for item in body.get("details") or []:
                if isinstance(item, dict) and "field" in item:
                    details.append(
                        ValidationDetail(
                            field=str(item["field"]),
                            message=str(item.get("message", "")),
                        )
                    )
        elif isinstance(body, str) and body.strip():
            message = body.strip()

        if status == 401:
            exc_type: type[ApiError] = Unauthorized
        elif status >= 500:
            exc_type = ServerFault
        elif 400 <= status < 500:
            exc_type = ValidationFailure
        else:
            exc_type = ApiError
        return exc_type(status, message, error=error, details=details)

    def __str__(self) -> str:
        return f"{self.status} {self.error}: {self.message}"


class Unauthorized(ApiError):
    """Raised on a 401 response."""


class ValidationFailure(ApiError):
    """Raised on any 4xx response other than 401 (400, 403, 404, 409, 422, ...).

    ``details`` is only filled when the server reports field errors, which in
    practice means 400 and 422; for the other statuses it is empty.
    """


class ServerFault(ApiError):
    """Raised on a 5xx response."""


class AuthenticationError(CalendarClientError):
    """Raised when login fails or the server returns a malformed token."""


class SessionExpired(Unauthorized):
    """Raised when a 401 could not be recovered by refreshing the session."""

    def __init__(self, message: str = "Session expired, please log in again"):
        super().__init__(401, message, error="session_expired")


class CalendarReadError(CalendarClientError):
    """Raised when reading calendar data fails."""


class CalendarWriteError(CalendarClientError):
    """Raised when writing calendar data fails."""


class TokenCacheError(CalendarClientError):
    """Raised when refresh token persistence fails."""


class ConfigurationError(CalendarClientError):
    """Raised when configuration is invalid."""

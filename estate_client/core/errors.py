"""Error types shared by every layer of the client."""

from typing import Any

# User-facing transport messages
CONNECTION_ERROR_MESSAGE = "Unable to connect to server. Please check your internet connection."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
TIMEOUT_ERROR_MESSAGE = "Request timeout. Please check your connection and try again."
INVALID_FORMAT_MESSAGE = "Server returned an invalid response format. Please try again."


class EstateError(Exception):
    """Base error class for client errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result: dict[str, Any] = {"error": self.message}
        if self.details:
            result["details"] = self.details
        return result


class APIError(EstateError):
    """API error with status code, message and the decoded response body."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        details: dict | None = None,
        response_body: Any = None,
    ):
        super().__init__(message, details)
        self.status = status
        self.response_body = response_body

    @property
    def is_transport_error(self) -> bool:
        """True when the request never produced an HTTP response."""
        return self.status is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result = super().to_dict()
        if self.status:
            result["status"] = self.status
        return result


class ValidationError(EstateError):
    """Validation error for local input/data issues (not API errors)."""

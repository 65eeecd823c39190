"""
Response decoding for the marketplace API.

Turns a raw HTTP response into a parsed JSON value, ``None`` for empty
bodies, or a ``NonJsonBody`` marker. Parsing never raises; only
``handle_api_response`` raises, and only when the HTTP status failed.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from estate_client.core.errors import APIError

logger = logging.getLogger(__name__)

JSON_PARSE_ERROR = "JSON_PARSE_ERROR"
INVALID_JSON_MESSAGE = "Invalid JSON response from server"
LOG_PREVIEW_CHARS = 200


@dataclass
class RawResponse:
    """Transport-neutral view of an HTTP response."""

    status: int
    reason: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value or ""
        return ""

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass
class NonJsonBody:
    """Marker for a body that is not JSON or could not be parsed."""

    status: int
    content_type: str = ""
    text: str | None = None
    error: str | None = None
    message: str | None = None

    @property
    def is_json(self) -> bool:
        return False

    @property
    def is_parse_error(self) -> bool:
        return self.error == JSON_PARSE_ERROR

    def to_dict(self) -> dict[str, Any]:
        """Render the marker in its wire form."""
        result: dict[str, Any] = {
            "_isJson": False,
            "_status": self.status,
            "_contentType": self.content_type,
        }
        if self.text is not None:
            result["_text"] = self.text
        if self.error is not None:
            result["_error"] = self.error
            result["_message"] = self.message
        return result


def safe_json_parse(raw: RawResponse) -> Any:
    """
    Parse a response body without raising.

    Returns:
        ``None`` for 204 or empty bodies, a ``NonJsonBody`` for non-JSON or
        malformed JSON bodies, otherwise the parsed value unchanged.

    """
    if raw.status == 204 or not raw.body:
        return None

    content_type = raw.content_type
    if "application/json" not in content_type.lower():
        text = raw.text()
        logger.warning(
            "Non-JSON response received: status=%s content_type=%r body=%r",
            raw.status,
            content_type,
            text[:LOG_PREVIEW_CHARS],
        )
        return NonJsonBody(status=raw.status, content_type=content_type, text=text)

    text = raw.text()
    if not text.strip():
        return None

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.error("JSON parsing failed (status=%s): %s", raw.status, e)
        return NonJsonBody(
            status=raw.status,
            content_type=content_type,
            error=JSON_PARSE_ERROR,
            message=INVALID_JSON_MESSAGE,
        )


def error_message_from_body(data: Any) -> str | None:
    """Extract a server-supplied error message from a decoded body."""
    if not isinstance(data, dict):
        return None
    # Handle both {"error": "message"} and {"error": {"message": "..."}}
    error_field = data.get("error")
    if isinstance(error_field, str) and error_field:
        return error_field
    if isinstance(error_field, dict) and error_field.get("message"):
        return str(error_field["message"])
    message = data.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def handle_api_response(raw: RawResponse) -> Any:
    """
    Decode a response and raise on a failed HTTP status.

    Raises:
        APIError: When ``raw.ok`` is false. The message prefers the server's
            ``error`` field, then ``message``, then ``HTTP <status>: <reason>``.

    """
    data = safe_json_parse(raw)

    if not raw.ok:
        message = error_message_from_body(data) or f"HTTP {raw.status}: {raw.reason}"
        details = data if isinstance(data, dict) else {}
        raise APIError(message, status=raw.status, details=details, response_body=data)

    return data

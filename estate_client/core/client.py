"""
Core HTTP client for the marketplace API.

Handles authentication, request/response decoding, and error translation.
"""

import asyncio
import http.client
import json
import logging
import mimetypes
import os
import urllib.error
import urllib.parse
import urllib.request
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from estate_client.core.decoder import NonJsonBody, RawResponse, handle_api_response
from estate_client.core.errors import (
    CONNECTION_ERROR_MESSAGE,
    INVALID_FORMAT_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    TIMEOUT_ERROR_MESSAGE,
    APIError,
    EstateError,
    ValidationError,
)
from estate_client.core.tokens import MemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)

# Configuration
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 30

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

# Filter values meaning "no filter"
EMPTY_FILTER_VALUES = ("", "all")

AUTH_FAILURE_STATUSES = (401, 403)

AuthFailureListener = Callable[[str, int], None]
FileField = tuple[str, str, bytes, str | None]

__all__ = [
    "APIClient",
    "APIError",
    "EstateError",
    "MultipartForm",
    "ValidationError",
    "clean_params",
]


def clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop query/filter entries whose value is None, '' or 'all'."""
    if not params:
        return {}
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, str) and value in EMPTY_FILTER_VALUES:
            continue
        cleaned[key] = value
    return cleaned


class MultipartForm:
    """A multipart/form-data body built from plain fields and file parts."""

    def __init__(
        self,
        fields: Mapping[str, Any] | None = None,
        files: Iterable[FileField] | None = None,
    ):
        self.fields = dict(fields or {})
        self.files = list(files or [])
        self.boundary = f"----EstateFormBoundary{uuid.uuid4().hex}"

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def encode(self) -> bytes:
        """Serialize all parts."""
        dash_boundary = f"--{self.boundary}".encode()
        parts: list[bytes] = []

        for name, value in self.fields.items():
            parts.append(dash_boundary)
            parts.append(f'Content-Disposition: form-data; name="{name}"'.encode())
            parts.append(b"")
            parts.append(str(value).encode("utf-8"))

        for field_name, filename, content, content_type in self.files:
            mime = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
            parts.append(dash_boundary)
            parts.append(f'Content-Disposition: form-data; name="{field_name}"; filename="{filename}"'.encode())
            parts.append(f"Content-Type: {mime}".encode())
            parts.append(b"")
            parts.append(content)

        parts.append(dash_boundary + b"--")
        parts.append(b"")
        return b"\r\n".join(parts)


def _transport_error(error: BaseException) -> APIError:
    """Map a transport-level failure to a user-facing APIError."""
    details = {"reason": str(error)}

    if isinstance(error, TimeoutError):
        return APIError(TIMEOUT_ERROR_MESSAGE, details=details)

    if isinstance(error, urllib.error.URLError):
        if isinstance(error.reason, TimeoutError):
            return APIError(TIMEOUT_ERROR_MESSAGE, details=details)
        # Refused connections, DNS failures, unreachable hosts
        if isinstance(error.reason, OSError):
            return APIError(CONNECTION_ERROR_MESSAGE, details=details)
        return APIError(NETWORK_ERROR_MESSAGE, details=details)

    return APIError(NETWORK_ERROR_MESSAGE, details=details)


def _checked_base_url(base_url: str) -> str:
    """Strip the trailing slash; reject URLs urllib cannot open."""
    parts = urllib.parse.urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError(
            f"Invalid API base URL: {base_url!r} (expected http:// or https://)",
            details={"base_url": base_url},
        )
    return base_url.rstrip("/")


class APIClient:
    """
    Low-level HTTP client for the marketplace API.

    Handles:
    - Bearer token injection from the token store
    - HTTP methods (GET, POST, PUT, PATCH, DELETE)
    - Defensive response decoding and error translation
    - Notifying listeners when an authenticated call is rejected
    """

    def __init__(
        self,
        base_url: str | None = None,
        token_store: TokenStore | None = None,
        timeout: int | None = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: API base URL (or ESTATE_API_BASE_URL env var)
            token_store: Where the bearer token is read from
            timeout: Request timeout in seconds (or ESTATE_API_TIMEOUT env var)

        """
        env_base_url = os.environ.get("ESTATE_API_BASE_URL") or DEFAULT_BASE_URL
        self.base_url = _checked_base_url(base_url or env_base_url)
        self.token_store = token_store if token_store is not None else MemoryTokenStore()
        self.timeout = timeout or int(os.environ.get("ESTATE_API_TIMEOUT", DEFAULT_TIMEOUT))
        self._auth_failure_listeners: list[AuthFailureListener] = []

    # =========================================================================
    # Auth failure notification
    # =========================================================================

    def add_auth_failure_listener(self, listener: AuthFailureListener) -> None:
        """Call ``listener(token, status)`` when a request carrying a token gets 401/403."""
        self._auth_failure_listeners.append(listener)

    def remove_auth_failure_listener(self, listener: AuthFailureListener) -> None:
        if listener in self._auth_failure_listeners:
            self._auth_failure_listeners.remove(listener)

    def _notify_auth_failure(self, token: str, status: int) -> None:
        for listener in list(self._auth_failure_listeners):
            listener(token, status)

    # =========================================================================
    # Request building
    # =========================================================================

    def _build_url(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        """Build full URL from path and query parameters."""
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        filtered_params = clean_params(params)
        if filtered_params:
            query_string = urllib.parse.urlencode(filtered_params)
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{query_string}"
        return url

    def _build_headers(self, headers: Mapping[str, str] | None, token: str | None) -> dict[str, str]:
        """Defaults, then caller overrides, then the bearer token."""
        merged = dict(DEFAULT_HEADERS)
        for name, value in (headers or {}).items():
            # Header names are case-insensitive; the caller's spelling wins
            for existing in [k for k in merged if k.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
        if token:
            merged["Authorization"] = f"Bearer {token}"
        return merged

    def _send(self, req: urllib.request.Request) -> RawResponse:
        """Perform the blocking HTTP call. HTTP error statuses come back as responses."""
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return RawResponse(
                    status=response.status,
                    reason=response.reason or "",
                    headers=dict(response.headers.items()),
                    body=response.read(),
                    url=req.full_url,
                )
        except urllib.error.HTTPError as e:
            try:
                body = e.read()
            finally:
                e.close()
            return RawResponse(
                status=e.code,
                reason=str(e.reason or ""),
                headers=dict(e.headers.items()) if e.headers else {},
                body=body or b"",
                url=req.full_url,
            )

    # =========================================================================
    # Requests
    # =========================================================================

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
        data: Any = None,
        params: Mapping[str, Any] | None = None,
        files: Iterable[FileField] | None = None,
        fields: Mapping[str, Any] | None = None,
        authenticate: bool = True,
    ) -> Any:
        """
        Make an HTTP request to the API.

        Args:
            endpoint: API path (e.g., /api/properties/42)
            method: HTTP method, GET by default
            headers: Extra headers, merged over the defaults
            body: Raw request body, sent unchanged
            data: JSON-serializable request body
            params: Query parameters ('', 'all' and None are dropped)
            files: File parts for a multipart upload
            fields: Plain fields for a multipart upload
            authenticate: Send the bearer token when one is stored

        Returns:
            Decoded response: parsed JSON, None, or a NonJsonBody marker

        Raises:
            APIError: On HTTP, transport or response-format errors

        """
        token = self.token_store.get() if authenticate else None
        url = self._build_url(endpoint, params)
        request_headers = self._build_headers(headers, token)

        payload: bytes | None
        if files or fields:
            form = MultipartForm(fields, files)
            payload = form.encode()
            for existing in [k for k in request_headers if k.lower() == "content-type"]:
                del request_headers[existing]
            request_headers["Content-Type"] = form.content_type
        elif data is not None:
            payload = json.dumps(data).encode("utf-8")
        elif isinstance(body, str):
            payload = body.encode("utf-8")
        else:
            payload = body

        method = method.upper()
        logger.debug("%s %s", method, url)

        try:
            req = urllib.request.Request(url, data=payload, headers=request_headers, method=method)
            raw = await asyncio.to_thread(self._send, req)
        except (OSError, ValueError, http.client.HTTPException) as e:
            logger.error("API request failed: %s %s: %s", method, url, e)
            raise _transport_error(e) from e

        logger.debug("%s %s -> %s", method, url, raw.status)

        try:
            return handle_api_response(raw)
        except APIError as e:
            if token and e.status in AUTH_FAILURE_STATUSES:
                self._notify_auth_failure(token, e.status)
            body_marker = e.response_body
            if isinstance(body_marker, NonJsonBody) and body_marker.is_parse_error:
                raise APIError(
                    INVALID_FORMAT_MESSAGE,
                    status=e.status,
                    details={**e.details, "http_error": e.message},
                    response_body=body_marker,
                ) from e
            raise

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """Make a GET request."""
        return await self.request(path, params=params)

    async def post(self, path: str, data: Any = None) -> Any:
        """Make a POST request."""
        return await self.request(path, method="POST", data=data)

    async def put(self, path: str, data: Any = None) -> Any:
        """Make a PUT request."""
        return await self.request(path, method="PUT", data=data)

    async def patch(self, path: str, data: Any = None) -> Any:
        """Make a PATCH request."""
        return await self.request(path, method="PATCH", data=data)

    async def delete(self, path: str) -> Any:
        """Make a DELETE request."""
        return await self.request(path, method="DELETE")

"""
Session store - owns the bearer token and the current user.

States:
- anonymous: no token
- validating: token present, profile fetch in flight
- authenticated: token and user present
- error: the last login/register/profile operation failed

The persisted token (a TokenStore) is the durable copy; ``user`` is a
cache refreshed by re-validation. Every token change bumps a generation
counter so that a validation started for an older token can never
overwrite a newer login or logout.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Protocol

from estate_client.core.decoder import NonJsonBody
from estate_client.core.errors import APIError
from estate_client.core.tokens import TokenStore
from estate_client.core.types import AuthResult, UserProfile

logger = logging.getLogger(__name__)

# Error message constants
ERROR_MESSAGES = {
    "SERVER_ERROR": "Server error occurred. Please try again later.",
    "INVALID_CREDENTIALS": "Invalid email or password. Please check your credentials and try again.",
    "ACCOUNT_LOCKED": "Your account has been locked due to multiple failed login attempts. Please contact support.",
    "ACCOUNT_DISABLED": "Your account has been disabled. Please contact support for assistance.",
    "EMAIL_NOT_VERIFIED": "Please verify your email address before logging in.",
    "VALIDATION_ERROR": "Please check your input and try again.",
    "TOKEN_EXPIRED": "Your session has expired. Please log in again.",
    "UNAUTHORIZED": "You are not authorized to access this resource.",
    "USER_NOT_FOUND": "User account not found. Please check your email or register a new account.",
    "PASSWORD_TOO_WEAK": "Password is too weak. Please use a stronger password.",
    "EMAIL_ALREADY_EXISTS": (
        "An account with this email already exists. Please use a different email or try logging in."
    ),
    "RATE_LIMIT_EXCEEDED": "Too many login attempts. Please try again later.",
    "UNKNOWN_ERROR": "An unexpected error occurred. Please try again.",
    "MISSING_CREDENTIALS": "Please enter both email and password.",
    "MISSING_FIELDS": "Please fill in all required fields.",
    "INVALID_EMAIL": "Please enter a valid email address.",
}

STATUS_MESSAGES = {
    400: ERROR_MESSAGES["VALIDATION_ERROR"],
    401: ERROR_MESSAGES["INVALID_CREDENTIALS"],
    403: ERROR_MESSAGES["UNAUTHORIZED"],
    404: ERROR_MESSAGES["USER_NOT_FOUND"],
    409: ERROR_MESSAGES["EMAIL_ALREADY_EXISTS"],
    422: ERROR_MESSAGES["VALIDATION_ERROR"],
    429: ERROR_MESSAGES["RATE_LIMIT_EXCEEDED"],
}

# (keyword in server text, message), first match wins
LOGIN_REFINEMENTS = (
    ("invalid credentials", ERROR_MESSAGES["INVALID_CREDENTIALS"]),
    ("account locked", ERROR_MESSAGES["ACCOUNT_LOCKED"]),
    ("account disabled", ERROR_MESSAGES["ACCOUNT_DISABLED"]),
    ("email not verified", ERROR_MESSAGES["EMAIL_NOT_VERIFIED"]),
    ("user not found", ERROR_MESSAGES["USER_NOT_FOUND"]),
)

REGISTER_REFINEMENTS = (
    ("email already exists", ERROR_MESSAGES["EMAIL_ALREADY_EXISTS"]),
    ("password", ERROR_MESSAGES["PASSWORD_TOO_WEAK"]),
)

MIN_PASSWORD_LENGTH = 6

SessionListener = Callable[["SessionStore"], None]


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    VALIDATING = "validating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


class AuthBackend(Protocol):
    """The authentication endpoints the session store needs."""

    async def login(self, email: str, password: str) -> Any: ...

    async def register(self, user_data: Mapping[str, Any]) -> Any: ...

    async def me(self) -> UserProfile: ...

    async def update_profile(self, updates: Mapping[str, Any]) -> UserProfile: ...


def _server_error_text(body: Any) -> str | None:
    """The server's ``error`` text, if the body is a JSON object carrying one."""
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    return error if isinstance(error, str) and error else None


def status_message(status: int | None) -> str | None:
    """Category message for an HTTP status."""
    if status is None:
        return None
    if status in STATUS_MESSAGES:
        return STATUS_MESSAGES[status]
    if 500 <= status < 600:
        return ERROR_MESSAGES["SERVER_ERROR"]
    return None


def credential_failure_message(error: APIError, refinements: tuple[tuple[str, str], ...]) -> str:
    """
    Pick the most specific user-facing message for a failed login/register.

    Order: transport message, keyword match on the server's error text, the
    server's own text, the status category, the server's ``message`` field,
    then a generic message.
    """
    if error.is_transport_error:
        return error.message

    body = error.response_body
    if isinstance(body, NonJsonBody):
        return ERROR_MESSAGES["SERVER_ERROR"]

    server_text = _server_error_text(body)
    if server_text:
        lowered = server_text.lower()
        for keyword, message in refinements:
            if keyword in lowered:
                return message
        return server_text

    mapped = status_message(error.status)
    if mapped:
        return mapped
    if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    return ERROR_MESSAGES["UNKNOWN_ERROR"]


def validation_failure_message(error: APIError) -> str:
    """Message for a failed token validation."""
    if error.status == 401:
        return ERROR_MESSAGES["TOKEN_EXPIRED"]
    if error.status == 403:
        return ERROR_MESSAGES["UNAUTHORIZED"]
    if error.is_transport_error:
        return error.message
    return (
        _server_error_text(error.response_body)
        or status_message(error.status)
        or error.message
        or ERROR_MESSAGES["UNKNOWN_ERROR"]
    )


class SessionStore:
    """
    Authentication state for one client.

    Attributes:
        token: Current bearer token, or None
        user: Profile of the token's owner once validated, or None
        loading: True while a login/register/validation is in flight
        error: User-facing message from the last failure, or None

    """

    def __init__(self, auth: AuthBackend, token_store: TokenStore):
        self._auth = auth
        self._token_store = token_store
        self._listeners: list[SessionListener] = []
        self._generation = 0
        self._validation: asyncio.Future[bool] | None = None
        self._validation_token: str | None = None

        self.token: str | None = token_store.get()
        self.user: UserProfile | None = None
        self.error: str | None = None
        # A persisted token has not been validated yet
        self.loading = self.token is not None
        self._state = SessionState.ANONYMOUS

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.token is not None

    def has_role(self, *roles: str) -> bool:
        """True if authenticated and, when roles are given, the user holds one of them."""
        if not self.is_authenticated:
            return False
        return not roles or self.user.role in roles

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: SessionListener) -> None:
        """Call ``listener(store)`` after every token change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # =========================================================================
    # Transitions
    # =========================================================================

    def _apply_session(self, token: str, user: UserProfile) -> None:
        self._generation += 1
        self.token = token
        self.user = user
        self.error = None
        self._token_store.set(token)
        self._state = SessionState.AUTHENTICATED
        self._notify()

    def _clear_session(self, error: str | None = None) -> None:
        self._generation += 1
        self.token = None
        self.user = None
        self.error = error
        self.loading = False
        self._token_store.clear()
        self._state = SessionState.ANONYMOUS
        self._notify()

    def _fail(self, message: str) -> AuthResult:
        self.error = message
        self._state = SessionState.ERROR
        return AuthResult(success=False, error=message)

    # =========================================================================
    # Validation
    # =========================================================================

    async def start(self) -> bool:
        """Validate the persisted token, if any. Call once at startup."""
        return await self.validate()

    async def refresh_user(self) -> bool:
        """Re-fetch the current user's profile."""
        return await self.validate()

    async def validate(self) -> bool:
        """
        Validate the current token by fetching the user's profile.

        Only one validation per token value is in flight; concurrent callers
        share its outcome.

        Returns:
            True if the session is authenticated afterwards

        """
        token = self.token
        if not token:
            self.loading = False
            if self._state is SessionState.VALIDATING:
                self._state = SessionState.ANONYMOUS
            return False

        task = self._validation
        if task is None or self._validation_token != token:
            self._state = SessionState.VALIDATING
            self.loading = True
            task = asyncio.ensure_future(self._run_validation(token, self._generation))
            self._validation = task
            self._validation_token = token
            task.add_done_callback(self._validation_done)
        return await task

    def _validation_done(self, task: "asyncio.Future[bool]") -> None:
        if self._validation is task:
            self._validation = None
            self._validation_token = None

    async def _run_validation(self, token: str, generation: int) -> bool:
        try:
            user = await self._auth.me()
        except APIError as e:
            if generation != self._generation:
                logger.debug("Discarding validation failure for a superseded token")
                return self.is_authenticated
            message = validation_failure_message(e)
            logger.warning("Session validation failed (status=%s): %s", e.status, e.message)
            self._clear_session(error=message)
            return False

        if generation != self._generation:
            logger.debug("Discarding validation result for a superseded token")
            return self.is_authenticated

        self.user = user
        self.error = None
        self.loading = False
        self._state = SessionState.AUTHENTICATED
        logger.debug("Session validated for user %s", user.id)
        return True

    def expire(self, token: str, status: int) -> None:
        """
        React to the server rejecting ``token`` (401/403 on any call).

        Ignored when ``token`` is no longer the current token.
        """
        if not token or token != self.token:
            return
        logger.info("Session token rejected with status %s; logging out", status)
        message = ERROR_MESSAGES["TOKEN_EXPIRED"] if status == 401 else ERROR_MESSAGES["UNAUTHORIZED"]
        self._clear_session(error=message)

    # =========================================================================
    # Login / register / logout
    # =========================================================================

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Log in with email and password.

        Invalid input fails without a network call. Never raises for API or
        transport failures; the outcome is in the returned AuthResult.
        """
        self.error = None
        if not email or not password:
            return self._fail(ERROR_MESSAGES["MISSING_CREDENTIALS"])
        if "@" not in email:
            return self._fail(ERROR_MESSAGES["INVALID_EMAIL"])

        self.loading = True
        try:
            data = await self._auth.login(email, password)
        except APIError as e:
            message = credential_failure_message(e, LOGIN_REFINEMENTS)
            logger.info("Login failed (status=%s)", e.status)
            return self._fail(message)
        finally:
            self.loading = False

        return self._accept(data, "Login")

    async def register(self, user_data: Mapping[str, Any]) -> AuthResult:
        """
        Create an account and log in.

        Requires email and password; the password must be at least six
        characters. Never raises for API or transport failures.
        """
        self.error = None
        email = user_data.get("email")
        password = user_data.get("password")
        if not email or not password:
            return self._fail(ERROR_MESSAGES["MISSING_FIELDS"])
        if "@" not in email:
            return self._fail(ERROR_MESSAGES["INVALID_EMAIL"])
        if len(password) < MIN_PASSWORD_LENGTH:
            return self._fail(ERROR_MESSAGES["PASSWORD_TOO_WEAK"])

        self.loading = True
        try:
            data = await self._auth.register(user_data)
        except APIError as e:
            message = credential_failure_message(e, REGISTER_REFINEMENTS)
            logger.info("Registration failed (status=%s)", e.status)
            return self._fail(message)
        finally:
            self.loading = False

        return self._accept(data, "Registration")

    def _accept(self, data: Any, action: str) -> AuthResult:
        """Install the session from a 2xx auth response, which must carry token and user."""
        if isinstance(data, dict) and data.get("token") and isinstance(data.get("user"), dict):
            user = UserProfile.from_dict(data["user"])
            self._apply_session(str(data["token"]), user)
            logger.info("%s succeeded for user %s", action, user.id)
            return AuthResult(success=True, user=user)

        logger.warning("%s response missing token or user", action)
        return self._fail(_server_error_text(data) or ERROR_MESSAGES["SERVER_ERROR"])

    def logout(self) -> None:
        """Clear the session and the persisted token. Idempotent."""
        self._clear_session()

    def clear_error(self) -> None:
        self.error = None
        if self._state is SessionState.ERROR:
            self._state = SessionState.AUTHENTICATED if self.is_authenticated else SessionState.ANONYMOUS

    # =========================================================================
    # Profile
    # =========================================================================

    async def update_profile(self, updates: Mapping[str, Any]) -> AuthResult:
        """Update the current user's profile and refresh the cached user."""
        if not self.is_authenticated:
            return self._fail(ERROR_MESSAGES["UNAUTHORIZED"])

        generation = self._generation
        try:
            user = await self._auth.update_profile(updates)
        except APIError as e:
            if generation != self._generation:
                return AuthResult(success=False, error=e.message)
            message = e.message if e.is_transport_error else (
                _server_error_text(e.response_body) or status_message(e.status) or ERROR_MESSAGES["UNKNOWN_ERROR"]
            )
            return self._fail(message)

        if generation != self._generation:
            return AuthResult(success=False, error=ERROR_MESSAGES["TOKEN_EXPIRED"])
        self.user = user
        return AuthResult(success=True, user=user)

"""Pytest configuration - loads .env and provides an in-process fake API."""

import io
import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from estate_client.core.tokens import MemoryTokenStore
from estate_client.core.types import UserProfile
from estate_client.sdk import EstateClient
from estate_client.session import SessionStore

# Load .env from project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

TEST_BASE_URL = "http://api.test"

USER = {
    "id": "u-1",
    "email": "jane@example.com",
    "firstName": "Jane",
    "lastName": "Doe",
    "role": "user",
}


# =============================================================================
# Fake HTTP server (patched in place of urlopen)
# =============================================================================


@dataclass
class Route:
    status: int = 200
    body: bytes = b""
    content_type: str = "application/json"
    reason: str = "OK"
    error: BaseException | None = None


class FakeResponse:
    def __init__(self, route: Route):
        self.status = route.status
        self.reason = route.reason
        self.headers = {"Content-Type": route.content_type} if route.content_type else {}
        self._body = route.body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@dataclass
class FakeServer:
    """Answers requests from a route table keyed by (method, path)."""

    routes: dict[tuple[str, str], Route] = field(default_factory=dict)
    # Answers served once each, in order, before the route table
    queued: dict[tuple[str, str], list[Route]] = field(default_factory=dict)
    requests: list[urllib.request.Request] = field(default_factory=list)

    def add(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        status: int = 200,
        body: bytes | None = None,
        content_type: str = "application/json",
        reason: str = "OK",
        error: BaseException | None = None,
    ) -> None:
        if body is None:
            body = b"" if json_body is None else json.dumps(json_body).encode()
        self.routes[(method, path)] = Route(status, body, content_type, reason, error)

    def add_sequence(self, method: str, path: str, *json_bodies: Any) -> None:
        """Answer successive requests with each body in turn; the last one repeats."""
        *first, last = json_bodies
        self.queued[(method, path)] = [Route(body=json.dumps(b).encode()) for b in first]
        self.add(method, path, last)

    @property
    def last(self) -> urllib.request.Request:
        return self.requests[-1]

    def query(self, req: urllib.request.Request | None = None) -> dict[str, list[str]]:
        req = req or self.last
        return urllib.parse.parse_qs(urllib.parse.urlsplit(req.full_url).query)

    def __call__(self, req: urllib.request.Request, timeout: float | None = None):
        self.requests.append(req)
        path = urllib.parse.urlsplit(req.full_url).path
        key = (req.get_method(), path)
        route = self.queued[key].pop(0) if self.queued.get(key) else self.routes.get(key)
        if route is None:
            route = Route(404, b'{"error": "not found"}', reason="Not Found")
        if route.error is not None:
            raise route.error
        if route.status >= 400:
            headers: Mapping[str, str] = {"Content-Type": route.content_type} if route.content_type else {}
            raise urllib.error.HTTPError(req.full_url, route.status, route.reason, headers, io.BytesIO(route.body))
        return FakeResponse(route)


@pytest.fixture
def server(monkeypatch):
    fake = FakeServer()
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    return fake


@pytest.fixture
def token_store():
    return MemoryTokenStore()


@pytest.fixture
def client(server, token_store):
    return EstateClient(base_url=TEST_BASE_URL, token_store=token_store)


# =============================================================================
# Fake auth backend for the session store
# =============================================================================


class FakeAuth:
    """Scriptable stand-in for AuthOperations."""

    def __init__(self):
        self.calls: list[tuple[Any, ...]] = []
        self.login_result: Any = {"token": "tok-1", "user": USER}
        self.register_result: Any = {"token": "tok-new", "user": {**USER, "id": "u-2"}}
        self.me_result: Any = UserProfile.from_dict(USER)
        self.update_result: Any = UserProfile.from_dict({**USER, "firstName": "Janet"})
        self.me_gate = None

    async def login(self, email: str, password: str) -> Any:
        self.calls.append(("login", email))
        if isinstance(self.login_result, BaseException):
            raise self.login_result
        return self.login_result

    async def register(self, user_data: Mapping[str, Any]) -> Any:
        self.calls.append(("register", user_data.get("email")))
        if isinstance(self.register_result, BaseException):
            raise self.register_result
        return self.register_result

    async def me(self) -> UserProfile:
        self.calls.append(("me",))
        if self.me_gate is not None:
            await self.me_gate.wait()
        if isinstance(self.me_result, BaseException):
            raise self.me_result
        return self.me_result

    async def update_profile(self, updates: Mapping[str, Any]) -> UserProfile:
        self.calls.append(("update_profile", dict(updates)))
        if isinstance(self.update_result, BaseException):
            raise self.update_result
        return self.update_result


@pytest.fixture
def auth():
    return FakeAuth()


@pytest.fixture
def make_session(auth):
    """Build a SessionStore, optionally with a persisted token."""

    def make(token: str | None = None) -> SessionStore:
        return SessionStore(auth, MemoryTokenStore(token))

    return make

"""
Marketplace SDK - High-level client with typed resource operations.

This layer provides a convenient interface for the marketplace API:
- Typed return values (Property, Agent, Review, ...)
- Response-shape normalization in one place per resource
- A session store wired to the HTTP client

Example:
    >>> client = EstateClient()
    >>> result = await client.session.login("jane@example.com", "secret")
    >>> listing = await client.properties.list({"city": "Lagos", "status": "all"})

"""

import builtins
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from estate_client.core.client import APIClient, FileField
from estate_client.core.decoder import error_message_from_body
from estate_client.core.errors import INVALID_FORMAT_MESSAGE, APIError
from estate_client.core.tokens import FileTokenStore, TokenStore
from estate_client.core.types import (
    Agent,
    Contact,
    Property,
    PropertyPage,
    Review,
    UserProfile,
    unwrap,
    unwrap_list,
    unwrap_records,
)
from estate_client.session import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12


def _item(result: Any, key: str) -> dict[str, Any]:
    """Unwrap a single resource object, rejecting anything that isn't one."""
    item = unwrap(result, key)
    if not isinstance(item, dict):
        logger.warning("Expected a %s object, got %s", key, type(item).__name__)
        raise APIError(INVALID_FORMAT_MESSAGE, response_body=result)
    return item


class EstateClient:
    """
    High-level client for the marketplace API.

    Provides typed access to all resource families, plus the session store
    that owns the bearer token.

    Attributes:
        session: Login/register/logout and the current user
        auth: Raw authentication endpoints
        properties: Property listing operations
        favorites: Per-user favorites
        agents: Agent directory and agent self-service
        reviews: Reviews and review reactions
        contacts: Contact-form submissions
        admin: Admin back-office operations
        uploads: Image uploads

    """

    def __init__(
        self,
        base_url: str | None = None,
        token_store: TokenStore | None = None,
        timeout: int | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API base URL (or ESTATE_API_BASE_URL env var)
            token_store: Persisted token location (default: FileTokenStore)
            timeout: Request timeout in seconds

        """
        self.token_store = token_store if token_store is not None else FileTokenStore()
        self._client = APIClient(base_url=base_url, token_store=self.token_store, timeout=timeout)

        # Sub-clients for different resource families
        self.auth = AuthOperations(self._client)
        self.properties = PropertyOperations(self._client)
        self.favorites = FavoriteOperations(self._client)
        self.agents = AgentOperations(self._client)
        self.reviews = ReviewOperations(self._client)
        self.contacts = ContactOperations(self._client)
        self.admin = AdminOperations(self._client)
        self.uploads = UploadOperations(self._client)

        self.session = SessionStore(self.auth, self.token_store)
        self._client.add_auth_failure_listener(self.session.expire)

    @property
    def api(self) -> APIClient:
        """The underlying HTTP client."""
        return self._client


# =============================================================================
# Auth Operations
# =============================================================================


class AuthOperations:
    """Raw authentication endpoints. The session store interprets the results."""

    def __init__(self, client: APIClient):
        self._client = client

    async def login(self, email: str, password: str) -> Any:
        """Exchange credentials for ``{token, user}``."""
        return await self._client.request(
            "/api/auth/login",
            method="POST",
            data={"email": email, "password": password},
            authenticate=False,
        )

    async def register(self, user_data: Mapping[str, Any]) -> Any:
        """Create an account; returns ``{token, user}``."""
        return await self._client.request("/api/auth/register", method="POST", data=dict(user_data), authenticate=False)

    async def me(self) -> UserProfile:
        """
        Fetch the profile of the token's owner.

        Raises:
            APIError: 401/403 when the token is no longer valid

        """
        result = await self._client.get("/api/auth/me")
        return UserProfile.from_dict(_item(result, "user"))

    async def update_profile(self, updates: Mapping[str, Any]) -> UserProfile:
        """Update the current user's profile."""
        result = await self._client.put("/api/auth/profile", dict(updates))
        return UserProfile.from_dict(_item(result, "user"))


# =============================================================================
# Property Operations
# =============================================================================


def _number(value: Any) -> float | int:
    """Coerce form input to a number, 0 when blank or invalid."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number


def normalise_property_payload(property_data: Mapping[str, Any]) -> dict[str, Any]:
    """Shape form data the way the backend expects a new listing."""
    payload = dict(property_data)
    payload["city"] = property_data.get("city") or property_data.get("area") or ""
    payload["squareFootage"] = _number(property_data.get("squareFootage") or property_data.get("size") or 0)
    payload["zipCode"] = property_data.get("zipCode") or ""
    payload["price"] = _number(property_data.get("price"))
    payload["bedrooms"] = _number(property_data.get("bedrooms"))
    payload["bathrooms"] = _number(property_data.get("bathrooms"))
    property_type = property_data.get("propertyType")
    payload["propertyType"] = str(property_type).upper() if property_type else "HOUSE"
    status = property_data.get("status")
    payload["status"] = str(status).upper() if status else "PENDING"
    return payload


def _count(value: Any) -> int | None:
    """A pagination counter as an int, None when missing or not numeric."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _has_more(pagination: Any, page: int, limit: int) -> tuple[bool, int | None]:
    """Read ``(has_more, total)`` from a pagination block."""
    if not isinstance(pagination, dict):
        return False, None
    total = _count(pagination.get("total"))
    if pagination.get("hasMore") is not None:
        return bool(pagination["hasMore"]), total
    total_pages = _count(pagination.get("totalPages"))
    if total_pages is not None:
        return page < total_pages, total
    if total is not None:
        return page * limit < total, total
    if pagination:
        logger.warning("Unreadable pagination block: %r", pagination)
    return False, total


class PropertyOperations:
    """Operations for property listings."""

    def __init__(self, client: APIClient):
        self._client = client

    async def list(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Property]:
        """
        List properties.

        Args:
            filters: Query filters; '' and 'all' values are dropped

        Returns:
            List of Properties

        """
        result = await self._client.get("/api/properties", filters)
        return [Property.from_dict(p) for p in unwrap_records(result, "properties")]

    async def list_page(
        self,
        filters: Mapping[str, Any] | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> PropertyPage:
        """
        Fetch one page of properties.

        Args:
            filters: Query filters; '' and 'all' values are dropped
            page: 1-based page number
            limit: Page size

        Returns:
            PropertyPage; ``has_more`` is False unless the server says otherwise

        """
        params = dict(filters or {})
        params.update({"page": page, "limit": limit})
        result = await self._client.get("/api/properties", params)
        if result is None:
            raise APIError("No response received from server")

        items = [Property.from_dict(p) for p in unwrap_records(result, "properties")]
        pagination = result.get("pagination") if isinstance(result, dict) else None
        has_more, total = _has_more(pagination, page, limit)
        return PropertyPage(items=items, page=page, limit=limit, has_more=has_more, total_count=total)

    async def search(self, query: str, filters: Mapping[str, Any] | None = None) -> builtins.list[Property]:
        """Full-text property search."""
        params = {"q": query, **(filters or {})}
        result = await self._client.get("/api/properties/search", params)
        return [Property.from_dict(p) for p in unwrap_records(result, "properties")]

    async def get(self, property_id: str) -> Property:
        """Get a property by ID."""
        result = await self._client.get(f"/api/properties/{property_id}")
        return Property.from_dict(_item(result, "property"))

    async def create(self, property_data: Mapping[str, Any]) -> Property:
        """Create a listing from form data."""
        result = await self._client.post("/api/properties", normalise_property_payload(property_data))
        return Property.from_dict(_item(result, "property"))

    async def update(self, property_id: str, property_data: Mapping[str, Any]) -> Property:
        """Update a listing."""
        result = await self._client.put(f"/api/properties/{property_id}", dict(property_data))
        return Property.from_dict(_item(result, "property"))

    async def delete(self, property_id: str) -> bool:
        """Delete a listing."""
        await self._client.delete(f"/api/properties/{property_id}")
        return True


# =============================================================================
# Favorite Operations
# =============================================================================


def _favorite_property_id(item: Any) -> str | None:
    if isinstance(item, (str, int)):
        return str(item)
    if not isinstance(item, dict):
        return None
    nested = item.get("property")
    for value in (
        item.get("propertyId"),
        item.get("property_id"),
        nested.get("id") if isinstance(nested, dict) else None,
        item.get("id"),
    ):
        if value is not None:
            return str(value)
    return None


class FavoriteOperations:
    """Per-user favorites. Requires a session token."""

    def __init__(self, client: APIClient):
        self._client = client

    async def list(self) -> set[str]:
        """Return the IDs of the user's favorite properties."""
        result = await self._client.get("/api/favorites")
        ids = (_favorite_property_id(item) for item in unwrap_list(result, "favorites"))
        return {property_id for property_id in ids if property_id is not None}

    async def add(self, property_id: str) -> Any:
        """Add a property to favorites."""
        return await self._client.post("/api/favorites", {"propertyId": property_id})

    async def remove(self, property_id: str) -> Any:
        """Remove a property from favorites."""
        return await self._client.delete(f"/api/favorites/{property_id}")


# =============================================================================
# Agent Operations
# =============================================================================


class AgentOperations:
    """Agent directory and agent self-service."""

    def __init__(self, client: APIClient):
        self._client = client

    async def list(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Agent]:
        """List agents; '' and 'all' filter values are dropped."""
        result = await self._client.get("/api/agents", filters)
        return [Agent.from_dict(a) for a in unwrap_records(result, "agents")]

    async def profile(self) -> Agent:
        """The current agent's own profile."""
        result = await self._client.get("/api/agents/profile")
        return Agent.from_dict(_item(result, "agent"))

    async def update_profile(self, profile_data: Mapping[str, Any]) -> Agent:
        result = await self._client.put("/api/agents/profile", dict(profile_data))
        return Agent.from_dict(_item(result, "agent"))

    async def analytics(self, period: str = "30d") -> dict[str, Any]:
        result = await self._client.get("/api/agents/analytics", {"period": period})
        return unwrap(result, "analytics")

    async def properties(self, agent_id: str) -> builtins.list[Property]:
        result = await self._client.get(f"/api/agents/{agent_id}/properties")
        return [Property.from_dict(p) for p in unwrap_records(result, "properties")]

    async def stats(self, agent_id: str) -> dict[str, Any]:
        result = await self._client.get(f"/api/agents/{agent_id}/stats")
        return unwrap(result, "stats")


# =============================================================================
# Review Operations
# =============================================================================


def _failed(action: str, error: APIError) -> APIError:
    """Rewrap an error with an action-specific message."""
    if error.is_transport_error:
        return error
    message = error_message_from_body(error.response_body) or f"Failed to {action}"
    return APIError(message, status=error.status, details=error.details, response_body=error.response_body)


class ReviewOperations:
    """Reviews and review reactions."""

    def __init__(self, client: APIClient):
        self._client = client

    async def _list(self, path: str, filters: Mapping[str, Any] | None = None) -> builtins.list[Review]:
        result = await self._client.get(path, filters)
        return [Review.from_dict(r) for r in unwrap_records(result, "reviews")]

    async def list(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Review]:
        """List published reviews."""
        return await self._list("/api/reviews", filters)

    async def for_property(self, property_id: str) -> builtins.list[Review]:
        return await self._list(f"/api/reviews/property/{property_id}")

    async def for_agent(self, agent_id: str) -> builtins.list[Review]:
        return await self._list(f"/api/reviews/agent/{agent_id}")

    async def for_user(self, user_id: str) -> builtins.list[Review]:
        return await self._list(f"/api/reviews/user/{user_id}")

    async def stats(self) -> dict[str, Any]:
        """Aggregate review statistics."""
        try:
            return await self._client.get("/api/reviews/stats")
        except APIError as e:
            raise _failed("fetch review statistics", e) from e

    async def create(self, review_data: Mapping[str, Any]) -> Review:
        """
        Submit a review.

        Raises:
            APIError: "Failed to create review" unless the server said more

        """
        try:
            result = await self._client.post("/api/reviews", dict(review_data))
        except APIError as e:
            raise _failed("create review", e) from e
        # Some deployments answer 201 with an empty body
        review = unwrap(result, "review")
        return Review.from_dict(review if isinstance(review, dict) else {})

    async def like(self, review_id: str) -> Any:
        try:
            return await self._client.post(f"/api/reviews/{review_id}/like")
        except APIError as e:
            raise _failed("like review", e) from e

    async def dislike(self, review_id: str) -> Any:
        try:
            return await self._client.post(f"/api/reviews/{review_id}/dislike")
        except APIError as e:
            raise _failed("dislike review", e) from e


# =============================================================================
# Contact Operations
# =============================================================================


class ContactOperations:
    """Public contact form."""

    def __init__(self, client: APIClient):
        self._client = client

    async def submit(self, contact_data: Mapping[str, Any]) -> Any:
        """Send a contact-form message to an agent or the agency."""
        return await self._client.post("/api/contact", dict(contact_data))

    async def submissions(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Contact]:
        result = await self._client.get("/api/contact/submissions", filters)
        return [Contact.from_dict(c) for c in unwrap_records(result, "submissions")]


# =============================================================================
# Admin Operations
# =============================================================================


class AdminOperations:
    """Back-office operations; requires an admin session."""

    def __init__(self, client: APIClient):
        self._client = client

    async def dashboard_stats(self) -> dict[str, Any]:
        return await self._client.get("/api/admin/dashboard/stats")

    async def analytics(self, period: str = "30d") -> dict[str, Any]:
        result = await self._client.get("/api/admin/analytics", {"period": period})
        return unwrap(result, "analytics")

    # ---- agents ----

    async def agents(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Agent]:
        result = await self._client.get("/api/admin/agents", filters)
        return [Agent.from_dict(a) for a in unwrap_records(result, "agents")]

    async def agent(self, agent_id: str) -> Agent:
        result = await self._client.get(f"/api/admin/agents/{agent_id}")
        return Agent.from_dict(_item(result, "agent"))

    async def create_agent(self, agent_data: Mapping[str, Any]) -> Agent:
        result = await self._client.post("/api/admin/agents", dict(agent_data))
        return Agent.from_dict(_item(result, "agent"))

    async def approve_agent(self, agent_id: str) -> Any:
        return await self._client.post(f"/api/admin/agents/{agent_id}/approve")

    async def reject_agent(self, agent_id: str) -> Any:
        return await self._client.post(f"/api/admin/agents/{agent_id}/reject")

    # ---- properties ----

    async def properties(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Property]:
        result = await self._client.get("/api/admin/properties", filters)
        return [Property.from_dict(p) for p in unwrap_records(result, "properties")]

    async def create_property(self, property_data: Mapping[str, Any]) -> Property:
        result = await self._client.post("/api/admin/properties", dict(property_data))
        return Property.from_dict(_item(result, "property"))

    async def approve_property(self, property_id: str) -> Any:
        return await self._client.post(f"/api/admin/properties/{property_id}/approve")

    async def reject_property(self, property_id: str) -> Any:
        return await self._client.post(f"/api/admin/properties/{property_id}/reject")

    # ---- leads / contacts ----

    async def leads(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Contact]:
        result = await self._client.get("/api/admin/leads", filters)
        return [Contact.from_dict(c) for c in unwrap_records(result, "leads")]

    async def contacts(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Contact]:
        result = await self._client.get("/api/admin/contacts", filters)
        return [Contact.from_dict(c) for c in unwrap_records(result, "contacts")]

    async def contact(self, contact_id: str) -> Contact:
        result = await self._client.get(f"/api/admin/contacts/{contact_id}")
        return Contact.from_dict(_item(result, "contact"))

    async def update_contact_status(self, contact_id: str, status: str) -> Any:
        return await self._client.put(f"/api/admin/contacts/{contact_id}/status", {"status": status})

    # ---- reviews ----

    async def pending_reviews(self, filters: Mapping[str, Any] | None = None) -> builtins.list[Review]:
        result = await self._client.get("/api/admin/reviews/pending", filters)
        return [Review.from_dict(r) for r in unwrap_records(result, "reviews")]

    async def approve_review(self, review_id: str) -> Any:
        try:
            return await self._client.post(f"/api/admin/reviews/{review_id}/approve")
        except APIError as e:
            raise _failed("approve review", e) from e

    async def reject_review(self, review_id: str) -> Any:
        try:
            return await self._client.post(f"/api/admin/reviews/{review_id}/reject")
        except APIError as e:
            raise _failed("reject review", e) from e


# =============================================================================
# Upload Operations
# =============================================================================


class UploadOperations:
    """Multipart image uploads."""

    def __init__(self, client: APIClient):
        self._client = client

    async def property_images(self, files: Iterable[tuple[str, bytes]]) -> builtins.list[str]:
        """
        Upload listing photos.

        Args:
            files: ``(filename, content)`` pairs

        Returns:
            URLs of the stored images

        """
        parts: builtins.list[FileField] = [("images", name, content, None) for name, content in files]
        result = await self._client.request("/api/upload/properties/images", method="POST", files=parts)
        if isinstance(result, dict):
            return result.get("imageUrls") or result.get("urls") or []
        return []

    async def agent_avatar(self, filename: str, content: bytes) -> str | None:
        """Upload an agent's avatar; returns its URL."""
        result = await self._client.request(
            "/api/upload/agents/avatar",
            method="POST",
            files=[("avatar", filename, content, None)],
        )
        if isinstance(result, dict):
            return result.get("imageUrl") or result.get("url")
        return None

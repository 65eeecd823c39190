"""
Core types for the marketplace API.

These dataclasses provide type safety and IDE support for API responses.
The backend speaks camelCase; constructors accept both spellings.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _as_id(value: Any) -> str:
    return "" if value is None else str(value)


# =============================================================================
# Response normalization
# =============================================================================


def unwrap(response: Any, key: str) -> Any:
    """
    Unwrap a resource from a response.

    Precedence: namespaced key (``{"property": {...}}``), then ``data``,
    then the bare response.
    """
    if isinstance(response, dict):
        if response.get(key) is not None:
            return response[key]
        if response.get("data") is not None:
            return response["data"]
    return response


def unwrap_list(response: Any, key: str) -> list[Any]:
    """Unwrap a list resource; unexpected shapes yield an empty list."""
    items = unwrap(response, key)
    if isinstance(items, list):
        return items
    if items is not None:
        logger.warning("Unexpected response format for %s: %r", key, type(items).__name__)
    return []


def unwrap_records(response: Any, key: str) -> list[dict[str, Any]]:
    """Like ``unwrap_list``, keeping only JSON objects; other items are skipped."""
    items = unwrap_list(response, key)
    records = [item for item in items if isinstance(item, dict)]
    if len(records) != len(items):
        logger.warning("Skipped %d malformed %s item(s)", len(items) - len(records), key)
    return records


# =============================================================================
# Users
# =============================================================================


@dataclass
class UserProfile:
    """An authenticated user."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str = "user"
    business_name: str | None = None
    profile_picture: str | None = None
    last_login: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        """Create from API response dict."""
        return cls(
            id=_as_id(_pick(data, "id", "_id")),
            email=data.get("email") or "",
            first_name=_pick(data, "firstName", "first_name", default=""),
            last_name=_pick(data, "lastName", "last_name", default=""),
            role=str(data.get("role") or "user"),
            business_name=_pick(data, "businessName", "business_name"),
            profile_picture=_pick(data, "profilePicture", "profile_picture"),
            last_login=_pick(data, "lastLogin", "last_login"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        return asdict(self)


@dataclass
class AuthResult:
    """Outcome of an authentication flow. Auth flows report, never raise."""

    success: bool
    user: UserProfile | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.user is not None:
            result["user"] = self.user.to_dict()
        if self.error is not None:
            result["error"] = self.error
        return result


# =============================================================================
# Properties
# =============================================================================


@dataclass
class Property:
    """A property listing."""

    id: str
    title: str = ""
    price: float | None = None
    property_type: str | None = None
    status: str | None = None
    city: str | None = None
    address: str | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    square_footage: float | None = None
    images: list[str] = field(default_factory=list)
    agent_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Property":
        """Create from API response dict."""
        agent = data.get("agent")
        images = data.get("images")
        agent_id = _pick(data, "agentId", "agent_id")
        if agent_id is None and isinstance(agent, dict):
            agent_id = agent.get("id")
        return cls(
            id=_as_id(_pick(data, "id", "_id")),
            title=data.get("title") or "",
            price=data.get("price"),
            property_type=_pick(data, "propertyType", "property_type", "type"),
            status=data.get("status"),
            city=data.get("city"),
            address=data.get("address"),
            bedrooms=data.get("bedrooms"),
            bathrooms=data.get("bathrooms"),
            square_footage=_pick(data, "squareFootage", "square_footage"),
            images=[str(i) for i in images if i] if isinstance(images, list) else [],
            agent_id=None if agent_id is None else str(agent_id),
            raw=data,
        )


@dataclass
class PropertyFilters:
    """Filter set for the property listing."""

    price_range: str = "all"
    property_type: str = "all"
    search_query: str = ""

    def to_params(self) -> dict[str, Any]:
        """Query parameters; 'all' and '' are dropped by the client."""
        return {
            "priceRange": self.price_range,
            "propertyType": self.property_type,
            "search": self.search_query,
        }


@dataclass
class PropertyPage:
    """One page of property results."""

    items: list[Property]
    page: int = 1
    limit: int = 12
    has_more: bool = False
    total_count: int | None = None


# =============================================================================
# Agents
# =============================================================================


@dataclass
class Agent:
    """A listing agent."""

    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    business_name: str | None = None
    status: str | None = None
    phone: str | None = None
    profile_picture: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Agent":
        """Create from API response dict."""
        # Agent records are sometimes nested under a user object
        user = data.get("user") if isinstance(data.get("user"), dict) else {}
        return cls(
            id=_as_id(_pick(data, "id", "_id")),
            email=_pick(data, "email", default=user.get("email", "")),
            first_name=_pick(data, "firstName", "first_name", default=user.get("firstName", "")),
            last_name=_pick(data, "lastName", "last_name", default=user.get("lastName", "")),
            business_name=_pick(data, "businessName", "business_name"),
            status=data.get("status"),
            phone=data.get("phone"),
            profile_picture=_pick(data, "profilePicture", "profile_picture", "avatar"),
            raw=data,
        )


# =============================================================================
# Reviews
# =============================================================================


@dataclass
class Review:
    """A review of a property or an agent."""

    id: str
    rating: int | None = None
    comment: str = ""
    status: str | None = None
    property_id: str | None = None
    agent_id: str | None = None
    user_id: str | None = None
    likes: int = 0
    dislikes: int = 0
    created_at: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Review":
        """Create from API response dict."""
        return cls(
            id=_as_id(_pick(data, "id", "_id")),
            rating=data.get("rating"),
            comment=_pick(data, "comment", "content", default=""),
            status=data.get("status"),
            property_id=_pick(data, "propertyId", "property_id"),
            agent_id=_pick(data, "agentId", "agent_id"),
            user_id=_pick(data, "userId", "user_id"),
            likes=_pick(data, "likes", "likeCount", default=0),
            dislikes=_pick(data, "dislikes", "dislikeCount", default=0),
            created_at=_pick(data, "createdAt", "created_at"),
            raw=data,
        )


# =============================================================================
# Contacts / Leads
# =============================================================================


@dataclass
class Contact:
    """A contact-form submission (lead)."""

    id: str
    name: str = ""
    email: str = ""
    phone: str | None = None
    message: str = ""
    status: str = "NEW"
    property_id: str | None = None
    created_at: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contact":
        """Create from API response dict."""
        name = data.get("name")
        if not name:
            name = " ".join(p for p in (data.get("firstName"), data.get("lastName")) if p)
        return cls(
            id=_as_id(_pick(data, "id", "_id")),
            name=name or "",
            email=data.get("email") or "",
            phone=data.get("phone"),
            message=data.get("message") or "",
            status=str(data.get("status") or "NEW"),
            property_id=_pick(data, "propertyId", "property_id"),
            created_at=_pick(data, "createdAt", "created_at"),
            raw=data,
        )

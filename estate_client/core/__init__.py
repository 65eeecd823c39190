"""
Core layer - Raw types, response decoding and HTTP client.

This layer provides:
- Typed dataclasses for marketplace resources
- A response decoder that never raises while parsing
- Token stores holding the persisted bearer token
- Low-level HTTP client with auth injection and error translation
"""

from estate_client.core.client import APIClient, MultipartForm, clean_params
from estate_client.core.decoder import JSON_PARSE_ERROR, NonJsonBody, RawResponse, handle_api_response, safe_json_parse
from estate_client.core.errors import APIError, EstateError, ValidationError
from estate_client.core.tokens import FileTokenStore, MemoryTokenStore, TokenStore
from estate_client.core.types import (
    Agent,
    AuthResult,
    Contact,
    Property,
    PropertyFilters,
    PropertyPage,
    Review,
    UserProfile,
    unwrap,
    unwrap_list,
)

__all__ = [
    "JSON_PARSE_ERROR",
    "APIClient",
    "APIError",
    "Agent",
    "AuthResult",
    "Contact",
    "EstateError",
    "FileTokenStore",
    "MemoryTokenStore",
    "MultipartForm",
    "NonJsonBody",
    "Property",
    "PropertyFilters",
    "PropertyPage",
    "RawResponse",
    "Review",
    "TokenStore",
    "UserProfile",
    "ValidationError",
    "clean_params",
    "handle_api_response",
    "safe_json_parse",
    "unwrap",
    "unwrap_list",
]

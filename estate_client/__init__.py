"""
Estate Client - Layered client for the real-estate marketplace API.

Layers:
- core: Types, response decoding, token stores and the HTTP client
- sdk: High-level EstateClient with typed resource operations
- session / hooks: Auth session state and UI-ready data views
- cli: Opinionated command-line interface
"""

from estate_client.hooks import ContactBoard, Favorites, PropertyListing, optimistic
from estate_client.sdk import EstateClient
from estate_client.session import SessionState, SessionStore

__version__ = "0.1.0"
__all__ = [
    "ContactBoard",
    "EstateClient",
    "Favorites",
    "PropertyListing",
    "SessionState",
    "SessionStore",
    "optimistic",
]

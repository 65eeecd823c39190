"""
Data hooks - stateful, UI-ready views over the resource clients.

Each hook keeps plain attributes (``items``, ``loading``, ``error``, ...)
that a front end reads after awaiting an operation. State is only ever
mutated on the event loop between awaits, so every update is atomic.
A hook that has been ``close()``d stops applying results; requests already
in flight are left to finish.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TypeVar

from estate_client.core.errors import EstateError
from estate_client.core.types import Contact, Property, PropertyFilters
from estate_client.sdk import DEFAULT_PAGE_SIZE, AdminOperations, FavoriteOperations, PropertyOperations
from estate_client.session import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOGIN_REQUIRED_MESSAGE = "Please log in to save favorites"
FAVORITES_UPDATE_FAILED = "Failed to update favorites"
CONTACT_UPDATE_FAILED = "Failed to update contact status"


async def optimistic(
    apply: Callable[[], None],
    revert: Callable[[], None],
    remote: Callable[[], Awaitable[T]],
) -> T:
    """
    Apply a local mutation before the server confirms it.

    Calls ``apply()``, then awaits ``remote()``. If the remote call fails,
    ``revert()`` undoes the local mutation and the error is re-raised.
    ``revert`` must be the inverse of ``apply`` for the affected item only,
    so that unrelated updates made meanwhile survive.
    """
    apply()
    try:
        return await remote()
    except EstateError:
        revert()
        raise


# =============================================================================
# Favorites
# =============================================================================


class Favorites:
    """
    The current user's favorite property IDs.

    Follows the session: cleared when the token goes away, re-fetched when a
    new token arrives. Toggles are optimistic; a toggle for an ID whose
    previous toggle is still in flight is ignored.
    """

    def __init__(self, operations: FavoriteOperations, session: SessionStore):
        self._operations = operations
        self._session = session
        self._generation = 0
        self._alive = True
        # property_id -> membership the in-flight toggle is writing
        self._pending: dict[str, bool] = {}
        # property_id -> (write sequence, membership) of completed toggles
        self._settled: dict[str, tuple[int, bool]] = {}
        self._write_seq = 0
        self._refresh_task: asyncio.Task | None = None

        self.ids: set[str] = set()
        self.loading = False
        self.error: str | None = None

        session.add_listener(self._on_session_change)

    def is_favorite(self, property_id: str) -> bool:
        return str(property_id) in self.ids

    def is_pending(self, property_id: str) -> bool:
        return str(property_id) in self._pending

    def _on_session_change(self, session: SessionStore) -> None:
        if not session.token:
            self._generation += 1
            self._settled.clear()
            self.ids = set()
            self.loading = False
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop the owner calls refresh() explicitly
            return
        self._refresh_task = loop.create_task(self.refresh())

    async def refresh(self) -> set[str]:
        """
        Re-fetch favorites from the server.

        Without a session token the set is emptied and nothing is fetched.
        """
        self._generation += 1
        generation = self._generation
        seq_at_start = self._write_seq

        if not self._session.token:
            self._settled.clear()
            self.ids = set()
            self.loading = False
            return self.ids

        self.loading = True
        try:
            ids = await self._operations.list()
        except EstateError as e:
            if self._alive and generation == self._generation:
                logger.error("Failed to fetch favorites: %s", e.message)
                self.ids = set()
                self.error = e.message
                self.loading = False
            return self.ids

        if self._alive and generation == self._generation:
            fetched = set(ids)
            # Toggles that finished after this fetch started, and toggles still
            # in flight, are not in the server's answer yet
            overlay = {pid: wanted for pid, (seq, wanted) in self._settled.items() if seq > seq_at_start}
            overlay.update(self._pending)
            for property_id, wanted in overlay.items():
                if wanted:
                    fetched.add(property_id)
                else:
                    fetched.discard(property_id)
            self._settled = {pid: entry for pid, entry in self._settled.items() if entry[0] > seq_at_start}
            self.ids = fetched
            self.error = None
            self.loading = False
        return self.ids

    async def toggle(self, property_id: str) -> bool:
        """
        Flip membership of ``property_id`` now, then tell the server.

        Returns:
            True if the server accepted the change. False when logged out,
            when a toggle for the same ID is still in flight, or when the
            server call failed (the local flip is rolled back).

        """
        property_id = str(property_id)
        token = self._session.token
        if not token:
            self.error = LOGIN_REQUIRED_MESSAGE
            return False
        if property_id in self._pending:
            logger.debug("Ignoring toggle of %s while the previous one is in flight", property_id)
            return False

        was_favorite = property_id in self.ids
        self._pending[property_id] = not was_favorite
        self.error = None

        def apply() -> None:
            if was_favorite:
                self.ids.discard(property_id)
            else:
                self.ids.add(property_id)

        def revert() -> None:
            # A logout or re-login in the meantime already replaced the set
            if not self._alive or self._session.token != token:
                return
            if was_favorite:
                self.ids.add(property_id)
            else:
                self.ids.discard(property_id)

        def remote() -> Awaitable[object]:
            if was_favorite:
                return self._operations.remove(property_id)
            return self._operations.add(property_id)

        try:
            await optimistic(apply, revert, remote)
        except EstateError as e:
            logger.warning("Favorite toggle for %s failed: %s", property_id, e.message)
            if self._alive and self._session.token == token:
                self.error = FAVORITES_UPDATE_FAILED
            return False
        finally:
            wanted = self._pending.pop(property_id, None)
        if self._session.token == token:
            self._write_seq += 1
            self._settled[property_id] = (self._write_seq, bool(wanted))
        return True

    def close(self) -> None:
        """Stop following the session and applying results."""
        self._alive = False
        self._session.remove_listener(self._on_session_change)


# =============================================================================
# Paginated property listing
# =============================================================================


class PropertyListing:
    """
    Paginated property listing driven by a filter set.

    ``items`` is append-only across ``load_more()`` calls for one filter set;
    changing a filter resets ``page`` to 1 and replaces ``items``. ``page`` is
    0 until the first refresh.
    """

    def __init__(
        self,
        properties: PropertyOperations,
        favorites: Favorites | None = None,
        filters: PropertyFilters | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._properties = properties
        self.favorites = favorites
        self.filters = filters or PropertyFilters()
        self.page_size = page_size
        self._generation = 0
        self._alive = True

        self.items: list[Property] = []
        self.page = 0
        self.has_more = True
        self.loading = False
        self.error: EstateError | None = None

    async def _fetch(self, page: int, append: bool) -> None:
        generation = self._generation
        self.loading = True
        self.error = None
        try:
            result = await self._properties.list_page(self.filters.to_params(), page=page, limit=self.page_size)
        except EstateError as e:
            if self._alive and generation == self._generation:
                logger.error("Error fetching properties (page %s): %s", page, e.message)
                self.error = e
                # Stop further automatic attempts until a refresh
                self.has_more = False
            return
        finally:
            if self._alive and generation == self._generation:
                self.loading = False

        if not self._alive or generation != self._generation:
            logger.debug("Discarding properties page %s for superseded filters", page)
            return
        self.items = self.items + result.items if append else list(result.items)
        self.page = page
        self.has_more = result.has_more

    async def refresh(self) -> None:
        """Fetch page 1 for the current filters, replacing ``items``."""
        self._generation += 1
        self.page = 1
        await self._fetch(1, append=False)

    async def retry(self) -> None:
        await self.refresh()

    async def set_filters(
        self,
        price_range: str | None = None,
        property_type: str | None = None,
        search_query: str | None = None,
    ) -> bool:
        """
        Change filters; any actual change restarts from page 1.

        Returns:
            True if the filters changed and a new first page was fetched

        """
        changes = {
            name: value
            for name, value in (
                ("price_range", price_range),
                ("property_type", property_type),
                ("search_query", search_query),
            )
            if value is not None
        }
        updated = replace(self.filters, **changes)
        if updated == self.filters:
            return False
        self.filters = updated
        await self.refresh()
        return True

    async def load_more(self) -> bool:
        """
        Fetch and append the next page.

        No-op (returns False) while a fetch is in flight or when the last
        page has been reached. Before the first refresh this performs one.
        """
        if self.loading or not self.has_more:
            return False
        if self.page == 0:
            await self.refresh()
            return True
        await self._fetch(self.page + 1, append=True)
        return True

    async def toggle_favorite(self, property_id: str) -> bool:
        if self.favorites is None:
            return False
        return await self.favorites.toggle(property_id)

    def close(self) -> None:
        self._alive = False
        if self.favorites is not None:
            self.favorites.close()


# =============================================================================
# Leads board
# =============================================================================


class ContactBoard:
    """Admin view of contact-form leads with optimistic status changes."""

    def __init__(self, admin: AdminOperations, status_filter: str = "all"):
        self._admin = admin
        self.status_filter = status_filter
        self.contacts: list[Contact] = []
        self.loading = False
        self.error: str | None = None

    async def refresh(self) -> list[Contact]:
        self.loading = True
        try:
            self.contacts = await self._admin.leads()
            self.error = None
        except EstateError as e:
            logger.error("Failed to load leads: %s", e.message)
            self.error = e.message
        finally:
            self.loading = False
        return self.contacts

    def visible(self) -> list[Contact]:
        """Contacts matching ``status_filter`` (case-insensitive; 'all' matches everything)."""
        if self.status_filter.lower() == "all":
            return list(self.contacts)
        wanted = self.status_filter.lower()
        return [c for c in self.contacts if c.status.lower() == wanted]

    async def update_status(self, contact_id: str, status: str) -> bool:
        """Set a lead's status now; roll back if the server refuses."""
        contact = next((c for c in self.contacts if c.id == str(contact_id)), None)
        if contact is None:
            return False
        previous = contact.status

        def apply() -> None:
            contact.status = status

        def revert() -> None:
            contact.status = previous

        try:
            await optimistic(apply, revert, lambda: self._admin.update_contact_status(contact.id, status))
        except EstateError as e:
            logger.warning("Failed to update contact %s: %s", contact.id, e.message)
            self.error = CONTACT_UPDATE_FAILED
            return False
        self.error = None
        return True

"""
Viewer sessions.

A ``ViewerSession`` is everything one viewer has open: their identity,
their view state over the catalogue, the review editor and the book
editor. The two editors share one mutation gate so that the viewer can
only have one change in flight at a time.

``SessionRegistry`` keeps one session per signed-in user (and one per
anonymous client) for the HTTP layer. Sessions are in memory and are
lost on restart.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from . import config
from .catalog.editor import BookEditor
from .catalog.schemas import BookDetails, PaginatedBooks, SortKey, ViewState
from .catalog.service import CatalogService
from .errors import NotFound
from .identity import SessionIdentityProvider
from .models import Identity
from .reviews.controller import MutationGate, ReviewController
from .storage import InMemoryStore, Tables


logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


class ViewerSession:
    def __init__(self, tables: Tables, identity: Optional[Identity] = None,
                 page_size: int = config.PAGE_SIZE):
        self.identities = SessionIdentityProvider(identity)
        self.store = InMemoryStore(tables, self.identities)
        self.catalog = CatalogService(self.store, page_size=page_size)
        self.gate = MutationGate()
        self.reviews = ReviewController(self.store, self.identities, self.catalog, self.gate)
        self.books = BookEditor(self.store, self.identities, self.catalog, self.gate)
        self.view = ViewState()

    async def ensure_loaded(self) -> None:
        if not self.catalog.loaded:
            await self.catalog.refresh()

    # View state. Changing a filter or the sort key goes back to page 1.

    def set_search(self, term: str) -> ViewState:
        self.view = self.view.with_search(term)
        return self.view

    def set_genre(self, genre: str) -> ViewState:
        self.view = self.view.with_genre(genre)
        return self.view

    def set_sort(self, sort_key: SortKey) -> ViewState:
        self.view = self.view.with_sort(sort_key)
        return self.view

    def go_to_page(self, page: int) -> ViewState:
        self.view = self.view.with_page(page)
        return self.view

    def reset_view(self) -> ViewState:
        self.view = ViewState()
        return self.view

    async def current_page(self) -> PaginatedBooks:
        await self.ensure_loaded()
        return self.catalog.get_page(self.view)

    async def genre_options(self) -> List[str]:
        await self.ensure_loaded()
        return self.catalog.get_genre_options()

    async def open_book(self, book_id: str) -> BookDetails:
        """Book details; a vanished book sends the viewer back to the default view."""
        try:
            return await self.catalog.get_book_details(book_id)
        except NotFound:
            logger.info("Book %s no longer exists, returning to the catalogue", book_id)
            self.reset_view()
            await self.catalog.refresh()
            raise

    def close(self) -> None:
        self.reviews.close()


class SessionRegistry:
    """One ``ViewerSession`` per user id or anonymous client, created on first use.

    FastAPI resolves sync dependencies in its threadpool, so lookups are
    serialised with a lock.
    """

    def __init__(self, tables: Tables):
        self.tables = tables
        self.sessions: Dict[str, ViewerSession] = {}
        self.lock = threading.Lock()

    def get(self, identity: Optional[Identity], client_id: Optional[str] = None) -> ViewerSession:
        """The session for a signed-in user, or for one anonymous client.

        Anonymous sessions are keyed by ``client_id`` so that each browser
        keeps its own view state.
        """
        if identity is not None:
            key = identity.id
        else:
            key = f"{ANONYMOUS}:{client_id}" if client_id else ANONYMOUS
        with self.lock:
            return self._get_or_open(key, identity)

    def _get_or_open(self, key: str, identity: Optional[Identity]) -> ViewerSession:
        session = self.sessions.get(key)
        if session is None:
            if identity is not None:
                self.tables.register_profile(identity)
            session = ViewerSession(self.tables, identity)
            self.sessions[key] = session
            logger.debug("Opened session for %s", key)
        return session

    def close_all(self) -> None:
        with self.lock:
            for session in self.sessions.values():
                session.close()
            self.sessions.clear()

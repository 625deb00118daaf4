"""
Adding, editing and deleting books.

Any signed-in viewer may add a book and becomes its owner. Only the
owner may edit or delete it; seeded books have no owner and cannot be
changed by anyone. Each change goes through the viewer's mutation gate
and is followed by a full catalogue refresh.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..errors import AuthenticationRequired, AuthorizationDenied
from ..identity import SessionIdentityProvider
from ..models import Book, BookFields, Identity, parse_fields
from ..reviews.controller import MutationGate
from ..storage import DataStore
from .service import CatalogService


logger = logging.getLogger(__name__)


class BookEditor:
    def __init__(
        self,
        store: DataStore,
        identities: SessionIdentityProvider,
        catalog: CatalogService,
        gate: MutationGate,
    ):
        self.store = store
        self.identities = identities
        self.catalog = catalog
        self.gate = gate

    def _require_identity(self) -> Identity:
        identity = self.identities.current_identity()
        if identity is None:
            raise AuthenticationRequired("Please log in to add books")
        return identity

    async def _require_owned(self, book_id: str, identity: Identity) -> Book:
        book = await self.store.get_book(book_id)
        if book.owner_id != identity.id:
            raise AuthorizationDenied("You can only edit books you added")
        return book

    async def load_for_edit(self, book_id: str) -> Book:
        """Fetch a book to pre-fill the edit form, checking ownership first."""
        identity = self._require_identity()
        return await self._require_owned(book_id, identity)

    async def create_book(self, data: Dict[str, Any]) -> Book:
        identity = self._require_identity()
        self.gate.check()
        fields = parse_fields(BookFields, data)
        async with self.gate.hold("book"):
            book = await self.store.create_book(fields)
        logger.info("Book %s added by %s", book.id, identity.id)
        await self.catalog.refresh_after_change()
        return book

    async def update_book(self, book_id: str, data: Dict[str, Any]) -> Book:
        identity = self._require_identity()
        self.gate.check()
        fields = parse_fields(BookFields, data)
        async with self.gate.hold("book"):
            await self._require_owned(book_id, identity)
            book = await self.store.update_book(book_id, fields)
        logger.info("Book %s updated by %s", book_id, identity.id)
        await self.catalog.refresh_after_change()
        return book

    async def delete_book(self, book_id: str) -> None:
        identity = self._require_identity()
        async with self.gate.hold("book delete"):
            await self._require_owned(book_id, identity)
            await self.store.delete_book(book_id)
        logger.info("Book %s deleted by %s", book_id, identity.id)
        await self.catalog.refresh_after_change()

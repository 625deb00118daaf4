"""
Catalogue service for one viewer session.

Fetches books and reviews from the data store, keeps the aggregated
collection for the lifetime of the view session and answers page and
genre queries from it. After any change the affected rows are fetched
again and the aggregates recomputed from scratch.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from .. import config
from ..errors import CatalogError, NotFound
from ..models import Book, Identity, Review
from ..storage import DataStore
from .aggregation import aggregate_ratings, attach_aggregates
from .pipeline import genre_options, get_page
from .schemas import (
    BookDetails,
    BookWithAggregate,
    PaginatedBooks,
    ProfileSummary,
    ReviewedBook,
    ReviewEntry,
    ViewState,
)


logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, store: DataStore, page_size: int = config.PAGE_SIZE):
        self.store = store
        self.page_size = page_size
        self._books: List[Book] = []
        self._reviews: Dict[str, List[Review]] = defaultdict(list)
        self._collection: List[BookWithAggregate] = []
        self.loaded = False

    @property
    def collection(self) -> List[BookWithAggregate]:
        return list(self._collection)

    async def refresh(self) -> None:
        """Refetch every book and review and re-aggregate."""
        books = await self.store.list_books()
        reviews = await self.store.list_reviews()
        self._books = books
        self._reviews = defaultdict(list)
        for review in reviews:
            self._reviews[review.book_id].append(review)
        self._reaggregate()
        self.loaded = True
        logger.info("Loaded %d books and %d reviews", len(books), len(reviews))

    async def refresh_book(self, book_id: str) -> None:
        """Refetch one book and its reviews and re-aggregate."""
        if not self.loaded:
            await self.refresh()
            return
        try:
            book = await self.store.get_book(book_id)
        except NotFound:
            self._books = [b for b in self._books if b.id != book_id]
            self._reviews.pop(book_id, None)
        else:
            self._reviews[book_id] = await self.store.list_reviews(book_id=book_id)
            self._books = [book if b.id == book_id else b for b in self._books]
            if all(b.id != book_id for b in self._books):
                self._books.insert(0, book)
        self._reaggregate()
        logger.info("Refreshed book %s", book_id)

    async def refresh_after_change(self, book_id: Optional[str] = None) -> None:
        """Refetch after a saved change: one book, or everything.

        The change is already stored, so a failed refetch is logged and the
        cache is marked stale instead of being reported to the caller. The
        next read through the session reloads it.
        """
        try:
            if book_id is None:
                await self.refresh()
            else:
                await self.refresh_book(book_id)
        except CatalogError as exc:
            self.loaded = False
            logger.warning("Catalogue refresh after change failed: %s", exc.message)

    def _reaggregate(self) -> None:
        reviews = [r for rows in self._reviews.values() for r in rows]
        self._collection = attach_aggregates(self._books, reviews)

    def get_page(self, view: ViewState) -> PaginatedBooks:
        return get_page(self._collection, view, self.page_size)

    def get_genre_options(self) -> List[str]:
        return genre_options(self._collection)

    async def get_book_details(self, book_id: str) -> BookDetails:
        """Load a book with its reviews, newest first.

        Raises ``NotFound`` when the book has been deleted.
        """
        book = await self.store.get_book(book_id)
        reviews = await self.store.list_reviews(book_id=book_id)
        aggregate = aggregate_ratings([book], reviews)[book.id]

        names: Dict[str, str] = {}
        for user_id in {r.author_id for r in reviews} | ({book.owner_id} - {None}):
            profile = await self.store.get_profile(user_id)
            if profile is not None:
                names[user_id] = profile.name

        entries = [
            ReviewEntry(
                review=r, reviewer_name=names.get(r.author_id, config.ANONYMOUS_REVIEWER)
            )
            for r in reviews
        ]
        return BookDetails(
            book=book,
            aggregate=aggregate,
            reviews=entries,
            owner_name=names.get(book.owner_id) if book.owner_id else None,
        )

    async def get_profile_summary(self, identity: Identity) -> ProfileSummary:
        """The viewer's profile, the books they added and the reviews they wrote."""
        profile = await self.store.get_profile(identity.id)
        if profile is None:
            raise NotFound("Profile not found")

        books = await self.store.list_books()
        all_reviews = await self.store.list_reviews()
        own_books = [b for b in books if b.owner_id == identity.id]

        titles = {b.id: b for b in books}
        own_reviews = [
            ReviewedBook(
                review=r,
                book_title=titles[r.book_id].title,
                book_author=titles[r.book_id].author,
            )
            for r in all_reviews
            if r.author_id == identity.id and r.book_id in titles
        ]
        return ProfileSummary(
            profile=profile,
            books=attach_aggregates(own_books, all_reviews),
            reviews=own_reviews,
        )

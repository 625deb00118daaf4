"""
Data store collaborator.

``DataStore`` is the interface the catalogue core consumes. The managed
platform behind it owns persistence and row-level ownership policies;
``InMemoryStore`` emulates that platform so the core can run and be
tested without it:

* anyone may read profiles, books and reviews;
* creating a row requires a signed-in caller, who becomes its owner;
* only the owner may update or delete a row;
* deleting a book deletes its reviews.

Rows live in a shared ``Tables`` object. Each viewer session gets its own
``InMemoryStore`` bound to that session's identity provider, the same way
a platform client carries the caller's session. Optionally the tables
are mirrored to a JSON file after every change.
"""

from __future__ import annotations

import abc
import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import pydantic
from fastapi.concurrency import run_in_threadpool

from . import config
from .errors import (
    AuthorizationDenied,
    ConstraintViolation,
    NotFound,
    StoreUnavailable,
)
from .identity import SessionIdentityProvider
from .models import Book, BookFields, Identity, Profile, Review, utcnow


logger = logging.getLogger(__name__)


class DataStore(abc.ABC):
    """Operations the catalogue core needs from the data platform.

    Every method may raise a ``StoreError`` subclass: ``AuthorizationDenied``,
    ``NotFound``, ``ConstraintViolation`` or ``StoreUnavailable``.
    """

    @abc.abstractmethod
    async def list_books(self) -> List[Book]:
        ...

    @abc.abstractmethod
    async def get_book(self, book_id: str) -> Book:
        ...

    @abc.abstractmethod
    async def create_book(self, fields: BookFields) -> Book:
        ...

    @abc.abstractmethod
    async def update_book(self, book_id: str, fields: BookFields) -> Book:
        ...

    @abc.abstractmethod
    async def delete_book(self, book_id: str) -> None:
        ...

    @abc.abstractmethod
    async def list_reviews(
        self, book_id: Optional[str] = None, author_id: Optional[str] = None
    ) -> List[Review]:
        ...

    @abc.abstractmethod
    async def create_review(
        self, *, book_id: str, author_id: str, rating: int, text: str
    ) -> Review:
        ...

    @abc.abstractmethod
    async def update_review(self, review_id: str, *, rating: int, text: str) -> Review:
        ...

    @abc.abstractmethod
    async def delete_review(self, review_id: str) -> None:
        ...

    @abc.abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        ...


def _load_seed_books(path: Path) -> List[Book]:
    """Load the system-seeded books. They have no owner.

    Parameters
    ----------
    path : Path
        JSON file holding a list of book entries.

    Returns
    -------
    List[Book]
        The seeded books, or an empty list when the file is missing.
    """
    if not path.exists():
        logger.warning("Seed file %s not found, starting with an empty catalogue", path)
        return []
    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)
    seeded_at = utcnow()
    books: List[Book] = []
    for index, entry in enumerate(raw, start=1):
        books.append(
            Book(
                id=entry.get("id") or f"seed-{index:03d}",
                title=entry["title"],
                author=entry["author"],
                description=entry.get("description") or "",
                genre=entry["genre"],
                published_year=int(entry["published_year"]),
                owner_id=None,
                created_at=seeded_at,
                updated_at=seeded_at,
            )
        )
    return books


class Tables:
    """Rows shared by every session, guarded by one lock.

    With a snapshot file configured, ``save`` records the current rows
    while the lock is held and ``flush`` writes the newest recorded
    snapshot to disk. Store methods run ``flush`` in the threadpool so the
    event loop is not blocked on file I/O.
    """

    def __init__(self, data_file: Optional[Path] = None, seed: bool = False):
        self.data_file = data_file
        self.profiles: Dict[str, Profile] = {}
        self.books: Dict[str, Book] = {}
        self.reviews: Dict[str, Review] = {}
        self.lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: Optional[Dict[str, List[dict]]] = None

        if data_file is not None and data_file.exists():
            self._load_snapshot()
        elif seed:
            for book in _load_seed_books(config.SEED_FILE):
                self.books[book.id] = book
        logger.info(
            "Initialized tables with %d books and %d reviews",
            len(self.books),
            len(self.reviews),
        )

    @classmethod
    def from_config(cls) -> "Tables":
        return cls(data_file=config.DATA_FILE, seed=config.LOAD_SEED_BOOKS)

    def register_profile(self, identity: Identity) -> Profile:
        """Create the profile row for a newly signed-up identity."""
        with self.lock:
            profile = self.profiles.get(identity.id)
            if profile is not None:
                return profile
            profile = Profile(
                id=identity.id,
                name=identity.name or config.DEFAULT_PROFILE_NAME,
                email=identity.email,
            )
            self.profiles[identity.id] = profile
            self.save()
        self.flush()
        return profile

    def save(self) -> None:
        """Record a snapshot for the next ``flush``. Caller holds the lock."""
        if self.data_file is None:
            return
        self._pending = {
            "profiles": [p.model_dump(mode="json") for p in self.profiles.values()],
            "books": [b.model_dump(mode="json") for b in self.books.values()],
            "reviews": [r.model_dump(mode="json") for r in self.reviews.values()],
        }

    def flush(self) -> None:
        """Write the newest recorded snapshot, if any, to the data file."""
        with self._write_lock:
            with self.lock:
                snapshot, self._pending = self._pending, None
            if snapshot is None:
                return
            try:
                self.data_file.parent.mkdir(parents=True, exist_ok=True)
                with self.data_file.open("w", encoding="utf-8") as f:
                    json.dump(snapshot, f, ensure_ascii=False, indent=2)
            except OSError as exc:
                logger.error("Failed to write snapshot %s: %s", self.data_file, exc)
                raise StoreUnavailable() from exc

    def _load_snapshot(self) -> None:
        with self.data_file.open("r", encoding="utf-8") as f:
            snapshot = json.load(f)
        for row in snapshot.get("profiles", []):
            profile = Profile.model_validate(row)
            self.profiles[profile.id] = profile
        for row in snapshot.get("books", []):
            book = Book.model_validate(row)
            self.books[book.id] = book
        for row in snapshot.get("reviews", []):
            review = Review.model_validate(row)
            self.reviews[review.id] = review


def _newest_first(rows):
    return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)


class InMemoryStore(DataStore):
    """``DataStore`` over shared ``Tables``, acting as one session's caller."""

    def __init__(self, tables: Tables, identities: SessionIdentityProvider):
        self.tables = tables
        self.identities = identities

    def _caller(self) -> Identity:
        identity = self.identities.current_identity()
        if identity is None:
            raise AuthorizationDenied("Sign in to make changes")
        return identity

    def _require_owner(self, owner_id: Optional[str], what: str) -> Identity:
        caller = self._caller()
        if owner_id is None or owner_id != caller.id:
            logger.warning("Denied %s change by %s", what, caller.id)
            raise AuthorizationDenied(f"You can only change {what}s you created")
        return caller

    async def list_books(self) -> List[Book]:
        with self.tables.lock:
            return _newest_first(self.tables.books.values())

    async def get_book(self, book_id: str) -> Book:
        with self.tables.lock:
            book = self.tables.books.get(book_id)
        if book is None:
            raise NotFound("Book not found")
        return book

    async def create_book(self, fields: BookFields) -> Book:
        caller = self._caller()
        with self.tables.lock:
            book = Book(id=str(uuid.uuid4()), owner_id=caller.id, **fields.model_dump())
            self.tables.books[book.id] = book
            self.tables.save()
        await run_in_threadpool(self.tables.flush)
        logger.info("Book %s created by %s", book.id, caller.id)
        return book

    async def update_book(self, book_id: str, fields: BookFields) -> Book:
        with self.tables.lock:
            current = self.tables.books.get(book_id)
            if current is None:
                raise NotFound("Book not found")
            self._require_owner(current.owner_id, "book")
            book = current.model_copy(update={**fields.model_dump(), "updated_at": utcnow()})
            self.tables.books[book_id] = book
            self.tables.save()
        await run_in_threadpool(self.tables.flush)
        logger.info("Book %s updated", book_id)
        return book

    async def delete_book(self, book_id: str) -> None:
        with self.tables.lock:
            current = self.tables.books.get(book_id)
            if current is None:
                raise NotFound("Book not found")
            self._require_owner(current.owner_id, "book")
            del self.tables.books[book_id]
            orphaned = [r.id for r in self.tables.reviews.values() if r.book_id == book_id]
            for review_id in orphaned:
                del self.tables.reviews[review_id]
            self.tables.save()
        await run_in_threadpool(self.tables.flush)
        logger.info("Book %s deleted along with %d reviews", book_id, len(orphaned))

    async def list_reviews(
        self, book_id: Optional[str] = None, author_id: Optional[str] = None
    ) -> List[Review]:
        with self.tables.lock:
            rows = [
                r
                for r in self.tables.reviews.values()
                if (book_id is None or r.book_id == book_id)
                and (author_id is None or r.author_id == author_id)
            ]
        return _newest_first(rows)

    async def create_review(
        self, *, book_id: str, author_id: str, rating: int, text: str
    ) -> Review:
        caller = self._caller()
        if caller.id != author_id:
            raise AuthorizationDenied("Reviews can only be posted as yourself")
        with self.tables.lock:
            if book_id not in self.tables.books:
                raise ConstraintViolation("Review refers to an unknown book")
            try:
                review = Review(
                    id=str(uuid.uuid4()),
                    book_id=book_id,
                    author_id=author_id,
                    rating=rating,
                    text=text,
                )
            except pydantic.ValidationError as exc:
                raise ConstraintViolation(str(exc.errors()[0]["msg"])) from exc
            self.tables.reviews[review.id] = review
            self.tables.save()
        await run_in_threadpool(self.tables.flush)
        logger.info("Review %s created on book %s", review.id, book_id)
        return review

    async def update_review(self, review_id: str, *, rating: int, text: str) -> Review:
        with self.tables.lock:
            current = self.tables.reviews.get(review_id)
            if current is None:
                raise NotFound("Review not found")
            self._require_owner(current.author_id, "review")
            try:
                review = Review.model_validate(
                    {
                        **current.model_dump(),
                        "rating": rating,
                        "text": text,
                        "updated_at": utcnow(),
                    }
                )
            except pydantic.ValidationError as exc:
                raise ConstraintViolation(str(exc.errors()[0]["msg"])) from exc
            self.tables.reviews[review_id] = review
            self.tables.save()
        await run_in_threadpool(self.tables.flush)
        logger.info("Review %s updated", review_id)
        return review

    async def delete_review(self, review_id: str) -> None:
        with self.tables.lock:
            current = self.tables.reviews.get(review_id)
            if current is None:
                raise NotFound("Review not found")
            self._require_owner(current.author_id, "review")
            del self.tables.reviews[review_id]
            self.tables.save()
        await run_in_threadpool(self.tables.flush)
        logger.info("Review %s deleted", review_id)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        with self.tables.lock:
            return self.tables.profiles.get(user_id)

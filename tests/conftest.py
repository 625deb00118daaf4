"""Shared fixtures for the BookHaven tests."""

from datetime import datetime, timedelta, timezone

import pytest

from bookhaven.catalog.aggregation import attach_aggregates
from bookhaven.models import Book, Identity, Review
from bookhaven.storage import Tables


BASE_TIME = datetime(2025, 10, 4, 12, 0, tzinfo=timezone.utc)


def make_book(book_id, title="Untitled", author="Someone", genre="Fiction",
              year=2020, minutes=0, owner_id=None):
    created = BASE_TIME + timedelta(minutes=minutes)
    return Book(
        id=book_id,
        title=title,
        author=author,
        description="A book used in tests.",
        genre=genre,
        published_year=year,
        owner_id=owner_id,
        created_at=created,
        updated_at=created,
    )


def make_review(review_id, book_id, rating, author_id="reader", text="A perfectly fine book."):
    return Review(
        id=review_id,
        book_id=book_id,
        author_id=author_id,
        rating=rating,
        text=text,
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )


def catalog_of(books, reviews=()):
    return attach_aggregates(books, list(reviews))


@pytest.fixture
def alice():
    return Identity(id="alice", name="Alice", email="alice@example.com")


@pytest.fixture
def bob():
    return Identity(id="bob", name="Bob", email="bob@example.com")


@pytest.fixture
def tables(alice, bob):
    """Empty tables with profiles for Alice and Bob."""
    t = Tables(seed=False)
    t.register_profile(alice)
    t.register_profile(bob)
    return t

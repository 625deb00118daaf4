"""
Pydantic schema definitions for the catalog package.

``RatingAggregate`` is derived from review rows and never stored.
``BookWithAggregate`` is what a catalogue card renders: the book plus its
aggregate. ``ViewState`` is the viewer's current search, genre, sort and
page selection; it is an immutable value and the ``with_*`` helpers
return a new one, resetting the page to 1 whenever a filter or the sort
key changes. ``PaginatedBooks`` bundles one page of results with the
metadata needed to draw pagination controls.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Literal

from .. import config
from ..models import Book, Profile, Review


SortKey = Literal["recent", "rating", "year", "title"]


class RatingAggregate(BaseModel):
    """Average rating and review count for one book.

    ``average_rating`` is the exact mean of the ratings, or 0 when the
    book has no reviews. Use ``display_rating`` for the one-decimal value
    shown to readers.
    """

    book_id: str
    average_rating: float = 0.0
    review_count: int = 0

    @property
    def display_rating(self) -> float:
        return round(self.average_rating, 1)


class BookWithAggregate(BaseModel):
    book: Book
    aggregate: RatingAggregate

    @property
    def id(self) -> str:
        return self.book.id


class ViewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    search_term: str = ""
    selected_genre: str = config.ALL_GENRES
    sort_key: SortKey = config.DEFAULT_SORT
    current_page: int = Field(default=1, ge=1)

    def with_search(self, term: str) -> "ViewState":
        return self.model_copy(update={"search_term": term, "current_page": 1})

    def with_genre(self, genre: str) -> "ViewState":
        return self.model_copy(update={"selected_genre": genre, "current_page": 1})

    def with_sort(self, sort_key: SortKey) -> "ViewState":
        # model_copy skips validation, so check the key here
        if sort_key not in config.SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort_key}")
        return self.model_copy(update={"sort_key": sort_key, "current_page": 1})

    def with_page(self, page: int) -> "ViewState":
        if page < 1:
            raise ValueError("Pages are numbered from 1")
        return self.model_copy(update={"current_page": page})


class PaginatedBooks(BaseModel):
    """One page of the filtered, sorted catalogue."""

    items: List[BookWithAggregate]
    current_page: int
    total_pages: int
    total: int
    page_size: int

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages


class ReviewEntry(BaseModel):
    """A review as listed under a book, with the reviewer's display name."""

    review: Review
    reviewer_name: str


class BookDetails(BaseModel):
    book: Book
    aggregate: RatingAggregate
    reviews: List[ReviewEntry] = Field(default_factory=list)
    owner_name: Optional[str] = None


class ReviewedBook(BaseModel):
    """One of a viewer's reviews, with the reviewed book's title and author."""

    review: Review
    book_title: str
    book_author: str


class ProfileSummary(BaseModel):
    profile: Profile
    books: List[BookWithAggregate] = Field(default_factory=list)
    reviews: List[ReviewedBook] = Field(default_factory=list)

"""
Rating aggregation for the catalogue.

Review rows are grouped by book and reduced to an average rating and a
review count. The functions here are pure: the same books and reviews
always produce the same aggregates. They are re-run after every change
to a book's reviews rather than patched incrementally.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

from ..models import Book, Review
from .schemas import BookWithAggregate, RatingAggregate


logger = logging.getLogger(__name__)

NO_RATINGS = "No ratings"


def aggregate_ratings(
    books: Sequence[Book], reviews: Iterable[Review]
) -> Dict[str, RatingAggregate]:
    """Compute one ``RatingAggregate`` per book.

    Parameters
    ----------
    books : Sequence[Book]
        Every book that should receive an aggregate.
    reviews : Iterable[Review]
        Review rows. Rows pointing at a book not in ``books`` are ignored.

    Returns
    -------
    Dict[str, RatingAggregate]
        Aggregates keyed by book id. Books without reviews get an
        average of 0 and a count of 0.
    """
    known = {book.id for book in books}
    ratings: Dict[str, List[int]] = defaultdict(list)
    ignored = 0
    for review in reviews:
        if review.book_id not in known:
            ignored += 1
            continue
        ratings[review.book_id].append(review.rating)
    if ignored:
        logger.warning("Ignored %d reviews for unknown books", ignored)

    aggregates: Dict[str, RatingAggregate] = {}
    for book in books:
        values = ratings.get(book.id, [])
        average = sum(values) / len(values) if values else 0.0
        aggregates[book.id] = RatingAggregate(
            book_id=book.id, average_rating=average, review_count=len(values)
        )
    return aggregates


def attach_aggregates(
    books: Sequence[Book], reviews: Iterable[Review]
) -> List[BookWithAggregate]:
    """Pair each book with its aggregate, keeping the order of ``books``."""
    aggregates = aggregate_ratings(books, reviews)
    return [BookWithAggregate(book=book, aggregate=aggregates[book.id]) for book in books]


def format_average(aggregate: RatingAggregate) -> str:
    """Render an average for a catalogue card, e.g. ``"4.5"`` or ``"No ratings"``."""
    if aggregate.review_count == 0:
        return NO_RATINGS
    return f"{aggregate.average_rating:.1f}"


def format_review_count(count: int) -> str:
    return f"{count} {'review' if count == 1 else 'reviews'}"

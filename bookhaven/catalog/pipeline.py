"""
Filter, sort and paginate the aggregated catalogue.

Everything here is a pure function of its arguments. The viewer's
selection arrives as a ``ViewState`` value; nothing is remembered
between calls.

Sorting is made deterministic by breaking ties on the book id
(ascending), so the same collection and view state always yield the
same page.
"""

from __future__ import annotations

import logging
import math
import unicodedata
from typing import Callable, Dict, List, Sequence, Tuple

from .. import config
from .schemas import BookWithAggregate, PaginatedBooks, ViewState


logger = logging.getLogger(__name__)


def collation_key(s: str) -> str:
    """Approximate a locale-aware collation key.

    Accents are stripped and case is folded, so ``"émile"`` sorts next to
    ``"Emile"`` rather than after ``"Zola"``.
    """
    decomposed = unicodedata.normalize("NFKD", s)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.casefold()


def filter_books(
    books: Sequence[BookWithAggregate], search_term: str = "", genre: str = config.ALL_GENRES
) -> List[BookWithAggregate]:
    """Apply the search and genre filters.

    Parameters
    ----------
    books : Sequence[BookWithAggregate]
        The aggregated catalogue.
    search_term : str
        Case-insensitive substring matched against title or author. An
        empty term matches every book.
    genre : str
        Exact genre to keep, or ``config.ALL_GENRES`` to keep all.

    Returns
    -------
    List[BookWithAggregate]
        Matching books in their original order.
    """
    items = list(books)
    term = search_term.casefold()
    if term:
        items = [
            b for b in items
            if term in b.book.title.casefold() or term in b.book.author.casefold()
        ]
    if genre != config.ALL_GENRES:
        items = [b for b in items if b.book.genre == genre]
    return items


# (key function, descending?)
_SORTS: Dict[str, Tuple[Callable[[BookWithAggregate], object], bool]] = {
    "recent": (lambda b: b.book.created_at, True),
    "rating": (lambda b: b.aggregate.average_rating, True),
    "year": (lambda b: b.book.published_year, True),
    "title": (lambda b: (collation_key(b.book.title), b.book.title), False),
}


def sort_books(books: Sequence[BookWithAggregate], sort_key: str) -> List[BookWithAggregate]:
    """Order books by ``sort_key``, breaking ties by ascending id.

    ``recent``, ``rating`` and ``year`` sort newest/highest first;
    ``title`` sorts A to Z.
    """
    if sort_key not in _SORTS:
        raise ValueError(f"Unknown sort key: {sort_key}")
    key, descending = _SORTS[sort_key]
    # Python's sort is stable even with reverse=True, so sorting by id
    # first leaves ties in ascending id order.
    items = sorted(books, key=lambda b: b.id)
    items.sort(key=key, reverse=descending)
    return items


def paginate(
    items: Sequence[BookWithAggregate], page: int, page_size: int = config.PAGE_SIZE
) -> PaginatedBooks:
    """Slice one page out of ``items``.

    ``page`` is 1-indexed and is not clamped: a page past the end yields
    an empty slice. Keeping the viewer inside ``1..total_pages`` is the
    job of whoever draws the pagination controls.
    """
    if page < 1:
        raise ValueError("Pages are numbered from 1")
    total = len(items)
    total_pages = math.ceil(total / page_size)
    start = (page - 1) * page_size
    return PaginatedBooks(
        items=list(items[start:start + page_size]),
        current_page=page,
        total_pages=total_pages,
        total=total,
        page_size=page_size,
    )


def get_page(
    books: Sequence[BookWithAggregate], view: ViewState, page_size: int = config.PAGE_SIZE
) -> PaginatedBooks:
    """Run the full pipeline for one view state."""
    filtered = filter_books(books, view.search_term, view.selected_genre)
    ordered = sort_books(filtered, view.sort_key)
    page = paginate(ordered, view.current_page, page_size)
    logger.debug(
        "Page %d/%d for %r (genre=%s, sort=%s): %d of %d books",
        page.current_page,
        page.total_pages,
        view.search_term,
        view.selected_genre,
        view.sort_key,
        len(page.items),
        page.total,
    )
    return page


def genre_options(books: Sequence[BookWithAggregate]) -> List[str]:
    """Distinct genres in first-seen order, prefixed with the "all" sentinel."""
    seen = dict.fromkeys(b.book.genre for b in books)
    return [config.ALL_GENRES] + [g for g in seen if g != config.ALL_GENRES]

"""
Route definitions for the catalogue API.

Endpoints under /api/catalog:
- GET    /books            : the viewer's current page of books
- GET    /genres           : genre options for the filter selector
- GET    /books/{book_id}  : one book with its reviews
- POST   /books            : add a book
- PUT    /books/{book_id}  : edit a book you added
- DELETE /books/{book_id}  : delete a book you added (and its reviews)
- GET    /profile          : your profile, books and reviews
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from ..dependencies import get_session
from ..errors import AuthenticationRequired
from ..models import Book
from ..session import ViewerSession
from .schemas import BookDetails, PaginatedBooks, ProfileSummary, SortKey


router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("/books", response_model=PaginatedBooks)
async def list_books(
    q: Optional[str] = Query(default=None, description="Search title or author"),
    genre: Optional[str] = Query(default=None, description="Exact genre, or 'all'"),
    sort: Optional[SortKey] = Query(default=None, description="recent, rating, year or title"),
    page: Optional[int] = Query(default=None, ge=1, description="Page (1-indexed)"),
    session: ViewerSession = Depends(get_session),
) -> PaginatedBooks:
    """
    Returns a page of the catalogue for this viewer.

    Only the controls that changed need to be sent; the rest are taken
    from the viewer's session. Changing the search, genre or sort goes
    back to page 1 unless a page is given in the same request.
    """
    if q is not None and q != session.view.search_term:
        session.set_search(q)
    if genre is not None and genre != session.view.selected_genre:
        session.set_genre(genre)
    if sort is not None and sort != session.view.sort_key:
        session.set_sort(sort)
    if page is not None:
        session.go_to_page(page)
    # Other viewers may have changed reviews since the last request.
    await session.catalog.refresh()
    return await session.current_page()


@router.get("/genres", response_model=List[str])
async def list_genres(session: ViewerSession = Depends(get_session)) -> List[str]:
    await session.catalog.refresh()
    return await session.genre_options()


@router.get("/books/{book_id}", response_model=BookDetails)
async def get_book(book_id: str, session: ViewerSession = Depends(get_session)) -> BookDetails:
    return await session.open_book(book_id)


@router.post("/books", response_model=Book, status_code=201)
async def add_book(
    data: Dict[str, Any] = Body(...), session: ViewerSession = Depends(get_session)
) -> Book:
    return await session.books.create_book(data)


@router.put("/books/{book_id}", response_model=Book)
async def edit_book(
    book_id: str,
    data: Dict[str, Any] = Body(...),
    session: ViewerSession = Depends(get_session),
) -> Book:
    return await session.books.update_book(book_id, data)


@router.delete("/books/{book_id}")
async def delete_book(book_id: str, session: ViewerSession = Depends(get_session)):
    await session.books.delete_book(book_id)
    return {"status": "ok"}


@router.get("/profile", response_model=ProfileSummary)
async def profile(session: ViewerSession = Depends(get_session)) -> ProfileSummary:
    identity = session.identities.current_identity()
    if identity is None:
        raise AuthenticationRequired("Please log in to view your profile")
    return await session.catalog.get_profile_summary(identity)

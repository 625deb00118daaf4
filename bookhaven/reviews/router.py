"""
Route definitions for the review editor.

Endpoints under /api/reviews:
- GET    /editor         : editor state and current draft
- POST   /editor         : start writing (or editing, with ``review_id``)
- PATCH  /editor         : change the draft's rating or text
- POST   /editor/submit  : save the draft
- DELETE /editor         : discard the draft
- DELETE /{review_id}    : delete one of your reviews
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..dependencies import get_session
from ..models import Review
from ..session import ViewerSession
from .controller import ReviewDraft, ReviewState


router = APIRouter(prefix="/api/reviews", tags=["reviews"])


class EditorStatus(BaseModel):
    state: ReviewState
    draft: Optional[ReviewDraft] = None


class ComposeRequest(BaseModel):
    book_id: str
    review_id: Optional[str] = None


class DraftChange(BaseModel):
    rating: Optional[int] = None
    text: Optional[str] = None


def _status(session: ViewerSession) -> EditorStatus:
    return EditorStatus(state=session.reviews.state, draft=session.reviews.draft)


@router.get("/editor", response_model=EditorStatus)
async def editor_status(session: ViewerSession = Depends(get_session)) -> EditorStatus:
    return _status(session)


@router.post("/editor", response_model=EditorStatus)
async def start_compose(
    req: ComposeRequest, session: ViewerSession = Depends(get_session)
) -> EditorStatus:
    existing = None
    if req.review_id:
        existing = await session.reviews.find_review(req.review_id)
    session.reviews.start_compose(req.book_id, existing)
    return _status(session)


@router.patch("/editor", response_model=EditorStatus)
async def change_draft(
    change: DraftChange, session: ViewerSession = Depends(get_session)
) -> EditorStatus:
    session.reviews.update_draft(rating=change.rating, text=change.text)
    return _status(session)


@router.post("/editor/submit", response_model=Review)
async def submit(
    change: Optional[DraftChange] = None, session: ViewerSession = Depends(get_session)
) -> Review:
    if change is not None and (change.rating is not None or change.text is not None):
        session.reviews.update_draft(rating=change.rating, text=change.text)
    return await session.reviews.submit()


@router.delete("/editor", response_model=EditorStatus)
async def cancel_compose(session: ViewerSession = Depends(get_session)) -> EditorStatus:
    session.reviews.cancel_compose()
    return _status(session)


@router.delete("/{review_id}")
async def delete_review(review_id: str, session: ViewerSession = Depends(get_session)):
    await session.reviews.delete(review_id)
    return {"status": "ok"}

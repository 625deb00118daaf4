"""
Review editor state machine.

A viewer has at most one review draft at a time. The controller moves
between three states:

* ``IDLE``: no draft;
* ``COMPOSING``: a draft (rating and text) is held locally, either blank
  (create mode) or copied from one of the viewer's reviews (edit mode);
* ``SUBMITTING``: a change is being saved.

A failed submit returns to ``COMPOSING`` with the draft intact so the
viewer can retry; a successful one returns to ``IDLE``. While a change is
in flight every other change from the same viewer is refused with
``OperationInProgress``. The gate that enforces this is shared with the
book editor, so a review submit and a book delete cannot overlap either.

After every successful create, update or delete the reviewed book is
fetched again and its aggregate recomputed.
"""

from __future__ import annotations

import enum
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional

from pydantic import BaseModel

from .. import config
from ..catalog.service import CatalogService
from ..errors import (
    AuthenticationRequired,
    AuthorizationDenied,
    DuplicateReview,
    InvalidTransition,
    NotFound,
    OperationInProgress,
)
from ..identity import SessionIdentityProvider
from ..models import Identity, Review, ReviewFields, parse_fields
from ..storage import DataStore


logger = logging.getLogger(__name__)


class ReviewState(str, enum.Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    SUBMITTING = "submitting"


class ReviewDraft(BaseModel):
    """Unsaved rating and text. ``review_id`` is set in edit mode."""

    book_id: str
    rating: int = config.DEFAULT_RATING
    text: str = ""
    review_id: Optional[str] = None

    @property
    def is_edit(self) -> bool:
        return self.review_id is not None


class MutationGate:
    """Allows one change at a time per viewer session.

    The flag is tested and set with no ``await`` in between, which makes
    the check atomic under a single event loop.
    """

    def __init__(self):
        self.operation: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.operation is not None

    def check(self) -> None:
        if self.operation is not None:
            raise OperationInProgress(f"Still saving ({self.operation})")

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        self.check()
        self.operation = operation
        try:
            yield
        finally:
            self.operation = None


class ReviewController:
    def __init__(
        self,
        store: DataStore,
        identities: SessionIdentityProvider,
        catalog: CatalogService,
        gate: Optional[MutationGate] = None,
    ):
        self.store = store
        self.identities = identities
        self.catalog = catalog
        self.gate = gate or MutationGate()
        self.state = ReviewState.IDLE
        self.draft: Optional[ReviewDraft] = None
        self._unsubscribe: Callable[[], None] = identities.on_identity_change(
            self._identity_changed
        )

    def close(self) -> None:
        self._unsubscribe()

    def _identity_changed(self, identity: Optional[Identity]) -> None:
        # A draft belongs to whoever started it.
        if self.state is ReviewState.COMPOSING:
            logger.info("Identity changed, discarding review draft")
            self.cancel_compose()

    def _require_identity(self) -> Identity:
        identity = self.identities.current_identity()
        if identity is None:
            raise AuthenticationRequired("Please log in to submit a review")
        return identity

    def start_compose(self, book_id: str, existing: Optional[Review] = None) -> ReviewDraft:
        """Open the editor, blank or pre-filled from ``existing``.

        Any draft already open is replaced.
        """
        if self.state is ReviewState.SUBMITTING:
            raise OperationInProgress()
        if existing is not None:
            identity = self._require_identity()
            if existing.author_id != identity.id:
                raise AuthorizationDenied("You can only edit your own reviews")
            self.draft = ReviewDraft(
                book_id=existing.book_id,
                rating=existing.rating,
                text=existing.text,
                review_id=existing.id,
            )
        else:
            self.draft = ReviewDraft(book_id=book_id)
        self.state = ReviewState.COMPOSING
        return self.draft

    def update_draft(self, rating: Optional[int] = None, text: Optional[str] = None) -> ReviewDraft:
        if self.state is not ReviewState.COMPOSING or self.draft is None:
            raise InvalidTransition("No review is being written")
        changes: Dict[str, Any] = {}
        if rating is not None:
            changes["rating"] = rating
        if text is not None:
            changes["text"] = text
        self.draft = self.draft.model_copy(update=changes)
        return self.draft

    def cancel_compose(self) -> None:
        """Drop the draft and return to ``IDLE``. Safe to call from any state.

        A change already sent to the store is not recalled; only the local
        draft is discarded.
        """
        self.draft = None
        if self.state is not ReviewState.SUBMITTING:
            self.state = ReviewState.IDLE

    async def submit(self, draft: Optional[ReviewDraft] = None) -> Review:
        """Save the current draft (or ``draft``, which replaces it).

        Validation and sign-in problems leave the controller in
        ``COMPOSING`` without touching the store. Store failures also
        return to ``COMPOSING`` with the draft kept for a retry.
        """
        if self.state is ReviewState.SUBMITTING or self.gate.busy:
            raise OperationInProgress()
        if self.state is not ReviewState.COMPOSING:
            raise InvalidTransition("Start a review before submitting it")
        if draft is not None:
            self.draft = draft

        identity = self._require_identity()
        fields = parse_fields(
            ReviewFields, {"rating": self.draft.rating, "text": self.draft.text}
        )
        current = self.draft

        async with self.gate.hold("review"):
            self.state = ReviewState.SUBMITTING
            try:
                if current.is_edit:
                    review = await self.store.update_review(
                        current.review_id, rating=fields.rating, text=fields.text
                    )
                else:
                    await self._check_not_reviewed(current.book_id, identity)
                    review = await self.store.create_review(
                        book_id=current.book_id,
                        author_id=identity.id,
                        rating=fields.rating,
                        text=fields.text,
                    )
            except Exception:
                # The draft survives unless it was cancelled mid-flight.
                self.state = ReviewState.COMPOSING if self.draft else ReviewState.IDLE
                logger.warning("Review submit for book %s failed", current.book_id)
                raise
            self.state = ReviewState.IDLE
            if self.draft is current:
                self.draft = None

        logger.info(
            "Review %s %s by %s",
            review.id,
            "updated" if current.is_edit else "created",
            identity.id,
        )
        await self.catalog.refresh_after_change(review.book_id)
        return review

    async def _check_not_reviewed(self, book_id: str, identity: Identity) -> None:
        existing = await self.store.list_reviews(book_id=book_id, author_id=identity.id)
        if existing:
            raise DuplicateReview(
                "You have already reviewed this book; edit your review instead"
            )

    async def delete(self, review_id: str) -> None:
        """Delete one of the viewer's reviews.

        Ownership is checked here before the store is asked, even though
        the store checks it again.
        """
        if self.state is ReviewState.SUBMITTING:
            raise OperationInProgress()
        identity = self._require_identity()

        async with self.gate.hold("review delete"):
            previous = self.state
            self.state = ReviewState.SUBMITTING
            try:
                review = await self.find_review(review_id)
                if review.author_id != identity.id:
                    logger.warning(
                        "%s tried to delete review %s by %s",
                        identity.id,
                        review_id,
                        review.author_id,
                    )
                    raise AuthorizationDenied("You can only delete your own reviews")
                await self.store.delete_review(review_id)
            finally:
                self.state = previous

        if self.draft is not None and self.draft.review_id == review_id:
            self.cancel_compose()
        logger.info("Review %s deleted by %s", review_id, identity.id)
        await self.catalog.refresh_after_change(review.book_id)

    async def find_review(self, review_id: str) -> Review:
        for review in await self.store.list_reviews():
            if review.id == review_id:
                return review
        raise NotFound("Review not found")

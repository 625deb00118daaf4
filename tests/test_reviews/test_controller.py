"""
Unit tests for the review editor state machine.

Most tests run against the in-memory store. Tests that must prove the
store was never called use a mocked ``DataStore`` instead.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from bookhaven.catalog.service import CatalogService
from bookhaven.errors import (
    AuthenticationRequired,
    AuthorizationDenied,
    DuplicateReview,
    InvalidTransition,
    NotFound,
    OperationInProgress,
    StoreUnavailable,
    ValidationError,
)
from bookhaven.identity import SessionIdentityProvider
from bookhaven.reviews.controller import (
    MutationGate,
    ReviewController,
    ReviewDraft,
    ReviewState,
)
from bookhaven.storage import DataStore, InMemoryStore
from conftest import make_book, make_review


GOOD_TEXT = "Loved every page of this one."


@pytest.fixture
def seeded(tables):
    tables.books["b1"] = make_book("b1", "Circe", "Madeline Miller", "Fantasy", 2018)
    tables.books["b2"] = make_book("b2", "Educated", "Tara Westover", "Memoir", 2018)
    return tables


def make_controller(tables, identity=None):
    identities = SessionIdentityProvider(identity)
    store = InMemoryStore(tables, identities)
    catalog = CatalogService(store)
    asyncio.run(catalog.refresh())
    return ReviewController(store, identities, catalog), identities


def mocked_controller(identity):
    store = MagicMock(spec=DataStore)
    identities = SessionIdentityProvider(identity)
    catalog = MagicMock(spec=CatalogService)
    return ReviewController(store, identities, catalog), store


def aggregate_for(controller, book_id):
    for item in controller.catalog.collection:
        if item.id == book_id:
            return item.aggregate
    raise AssertionError(f"{book_id} not in catalogue")


def test_starts_idle(seeded, alice):
    controller, _ = make_controller(seeded, alice)

    assert controller.state is ReviewState.IDLE
    assert controller.draft is None


def test_blank_draft_defaults(seeded, alice):
    controller, _ = make_controller(seeded, alice)

    draft = controller.start_compose("b1")

    assert controller.state is ReviewState.COMPOSING
    assert draft == ReviewDraft(book_id="b1", rating=5, text="", review_id=None)
    assert not draft.is_edit


def test_create_review_reaggregates_book(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b1")
    controller.update_draft(rating=4, text=GOOD_TEXT)

    review = asyncio.run(controller.submit())

    assert review.author_id == "alice"
    assert review.book_id == "b1"
    assert controller.state is ReviewState.IDLE
    assert controller.draft is None
    aggregate = aggregate_for(controller, "b1")
    assert (aggregate.average_rating, aggregate.review_count) == (4, 1)


def test_text_is_trimmed_before_saving(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b1")

    review = asyncio.run(controller.submit(ReviewDraft(book_id="b1", rating=3, text=f"  {GOOD_TEXT}  ")))

    assert review.text == GOOD_TEXT


def test_short_review_is_rejected_without_store_call(alice):
    """A 5 character review fails validation and the store is not touched."""
    controller, store = mocked_controller(alice)
    controller.start_compose("b1")
    controller.update_draft(text="short")

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(controller.submit())

    assert excinfo.value.field == "text"
    assert controller.state is ReviewState.COMPOSING
    assert controller.draft.text == "short"
    store.create_review.assert_not_called()
    store.update_review.assert_not_called()
    store.list_reviews.assert_not_called()


@pytest.mark.parametrize("text, ok", [
    ("x" * 9, False),
    ("x" * 10, True),
    ("x" * 1000, True),
    ("x" * 1001, False),
    ("   " + "x" * 9 + "   ", False),
])
def test_review_text_bounds(seeded, alice, text, ok):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b1")
    controller.update_draft(text=text)

    if ok:
        asyncio.run(controller.submit())
        assert controller.state is ReviewState.IDLE
    else:
        with pytest.raises(ValidationError):
            asyncio.run(controller.submit())
        assert controller.state is ReviewState.COMPOSING


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_rating_out_of_range(alice, rating):
    controller, store = mocked_controller(alice)
    controller.start_compose("b1")
    controller.update_draft(rating=rating, text=GOOD_TEXT)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(controller.submit())

    assert excinfo.value.field == "rating"
    store.create_review.assert_not_called()


def test_anonymous_submit_requires_sign_in():
    controller, store = mocked_controller(None)
    controller.start_compose("b1")
    controller.update_draft(text=GOOD_TEXT)

    with pytest.raises(AuthenticationRequired):
        asyncio.run(controller.submit())

    assert controller.state is ReviewState.COMPOSING
    store.create_review.assert_not_called()


def test_submit_while_idle_is_invalid(alice):
    controller, _ = mocked_controller(alice)

    with pytest.raises(InvalidTransition):
        asyncio.run(controller.submit())


def test_edit_then_cancel_makes_no_store_call(alice):
    controller, store = mocked_controller(alice)

    existing = make_review("r1", "b1", 2, author_id="alice")

    draft = controller.start_compose("b1", existing)
    assert draft.is_edit and draft.rating == 2 and draft.text == existing.text

    controller.cancel_compose()

    assert controller.state is ReviewState.IDLE
    assert controller.draft is None
    assert store.method_calls == []


def test_cannot_edit_someone_elses_review(alice):
    controller, _ = mocked_controller(alice)

    with pytest.raises(AuthorizationDenied):
        controller.start_compose("b1", make_review("r1", "b1", 2, author_id="bob"))
    assert controller.state is ReviewState.IDLE


def test_edit_updates_only_rating_and_text(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b1")
    controller.update_draft(rating=2, text=GOOD_TEXT)
    original = asyncio.run(controller.submit())

    controller.start_compose("b1", original)
    controller.update_draft(rating=5, text="Better on a second reading.")
    updated = asyncio.run(controller.submit())

    assert updated.id == original.id
    assert updated.rating == 5
    assert updated.text == "Better on a second reading."
    assert updated.author_id == original.author_id
    assert updated.created_at == original.created_at
    assert aggregate_for(controller, "b1").average_rating == 5


def test_second_review_for_same_book_is_refused(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b1")
    asyncio.run(controller.submit(ReviewDraft(book_id="b1", rating=4, text=GOOD_TEXT)))

    controller.start_compose("b1")
    with pytest.raises(DuplicateReview):
        asyncio.run(controller.submit(ReviewDraft(book_id="b1", rating=1, text=GOOD_TEXT)))

    assert controller.state is ReviewState.COMPOSING
    assert aggregate_for(controller, "b1").review_count == 1


def test_store_failure_keeps_draft_for_retry(alice):
    controller, store = mocked_controller(alice)
    store.list_reviews.return_value = []
    store.create_review.side_effect = StoreUnavailable()
    controller.start_compose("b1")
    controller.update_draft(rating=3, text=GOOD_TEXT)

    with pytest.raises(StoreUnavailable):
        asyncio.run(controller.submit())

    assert controller.state is ReviewState.COMPOSING
    assert controller.draft.text == GOOD_TEXT
    assert not controller.gate.busy
    controller.catalog.refresh_after_change.assert_not_called()


def test_delete_someone_elses_review_is_denied(seeded, alice, bob):
    """Alice cannot delete Bob's review, and it stays listed."""
    bobs, _ = make_controller(seeded, bob)
    bobs.start_compose("b1")
    review = asyncio.run(bobs.submit(ReviewDraft(book_id="b1", rating=5, text=GOOD_TEXT)))

    alices, _ = make_controller(seeded, alice)
    with pytest.raises(AuthorizationDenied):
        asyncio.run(alices.delete(review.id))

    remaining = asyncio.run(alices.store.list_reviews(book_id="b1"))
    assert [r.id for r in remaining] == [review.id]
    assert alices.state is ReviewState.IDLE


def test_delete_denied_before_reaching_store(alice):

    controller, store = mocked_controller(alice)
    store.list_reviews.return_value = [make_review("r1", "b1", 4, author_id="bob")]

    with pytest.raises(AuthorizationDenied):
        asyncio.run(controller.delete("r1"))

    store.delete_review.assert_not_called()


def test_delete_own_review_reaggregates(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b2")
    review = asyncio.run(controller.submit(ReviewDraft(book_id="b2", rating=1, text=GOOD_TEXT)))
    assert aggregate_for(controller, "b2").review_count == 1

    asyncio.run(controller.delete(review.id))

    assert aggregate_for(controller, "b2").review_count == 0
    assert asyncio.run(controller.store.list_reviews(book_id="b2")) == []


def test_deleting_the_review_being_edited_closes_the_editor(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b1")
    review = asyncio.run(controller.submit(ReviewDraft(book_id="b1", rating=4, text=GOOD_TEXT)))
    controller.start_compose("b1", review)

    asyncio.run(controller.delete(review.id))

    assert controller.state is ReviewState.IDLE
    assert controller.draft is None


def test_delete_missing_review(seeded, alice):
    controller, _ = make_controller(seeded, alice)

    with pytest.raises(NotFound):
        asyncio.run(controller.delete("nope"))
    assert controller.state is ReviewState.IDLE


def test_anonymous_delete_requires_sign_in():
    controller, store = mocked_controller(None)

    with pytest.raises(AuthenticationRequired):
        asyncio.run(controller.delete("r1"))
    assert store.method_calls == []


def test_second_submit_while_first_in_flight_is_rejected(alice):
    controller, store = mocked_controller(alice)
    store.list_reviews.return_value = []

    async def scenario():
        release = asyncio.Event()
        entered = asyncio.Event()

        async def slow_create(**kwargs):
            entered.set()
            await release.wait()
            return make_review("r1", kwargs["book_id"], kwargs["rating"], author_id="alice")

        store.create_review.side_effect = slow_create
        controller.start_compose("b1")
        controller.update_draft(text=GOOD_TEXT)

        first = asyncio.ensure_future(controller.submit())
        await entered.wait()
        assert controller.state is ReviewState.SUBMITTING

        with pytest.raises(OperationInProgress):
            await controller.submit()
        with pytest.raises(OperationInProgress):
            await controller.delete("r1")
        with pytest.raises(OperationInProgress):
            controller.start_compose("b2")

        release.set()
        return await first

    review = asyncio.run(scenario())

    assert review.id == "r1"
    assert controller.state is ReviewState.IDLE
    assert store.create_review.call_count == 1


def test_gate_is_shared_with_other_mutations(alice):
    gate = MutationGate()
    store = MagicMock(spec=DataStore)
    controller = ReviewController(
        store, SessionIdentityProvider(alice), MagicMock(spec=CatalogService), gate
    )
    controller.start_compose("b1")
    controller.update_draft(text=GOOD_TEXT)

    async def scenario():
        async with gate.hold("book delete"):
            with pytest.raises(OperationInProgress):
                await controller.submit()

    asyncio.run(scenario())

    assert controller.state is ReviewState.COMPOSING
    store.create_review.assert_not_called()


def test_cancel_from_any_state(alice):
    controller, _ = mocked_controller(alice)

    controller.cancel_compose()
    assert controller.state is ReviewState.IDLE

    controller.start_compose("b1")
    controller.cancel_compose()
    assert controller.state is ReviewState.IDLE


def test_update_draft_requires_composing(alice):
    controller, _ = mocked_controller(alice)

    with pytest.raises(InvalidTransition):
        controller.update_draft(text=GOOD_TEXT)


def test_identity_change_discards_draft(alice, bob):
    controller, _ = mocked_controller(alice)
    controller.start_compose("b1")
    controller.update_draft(text=GOOD_TEXT)

    controller.identities.sign_in(bob)

    assert controller.state is ReviewState.IDLE
    assert controller.draft is None


def test_closed_controller_stops_listening(alice):
    controller, _ = mocked_controller(alice)
    controller.close()
    controller.start_compose("b1")

    controller.identities.sign_out()

    assert controller.state is ReviewState.COMPOSING


def test_failed_refresh_after_save_still_reports_success(seeded, alice):
    """The review is stored, so a refetch failure must not look like a failed submit."""
    controller, _ = make_controller(seeded, alice)
    controller.catalog.refresh_book = AsyncMock(side_effect=StoreUnavailable())
    controller.start_compose("b1")
    controller.update_draft(rating=4, text=GOOD_TEXT)

    review = asyncio.run(controller.submit())

    assert review.rating == 4
    assert controller.state is ReviewState.IDLE
    assert controller.draft is None
    assert not controller.catalog.loaded
    assert [r.id for r in seeded.reviews.values()] == [review.id]


def test_failed_refresh_after_delete_still_reports_success(seeded, alice):
    controller, _ = make_controller(seeded, alice)
    controller.start_compose("b2")
    review = asyncio.run(controller.submit(ReviewDraft(book_id="b2", rating=2, text=GOOD_TEXT)))
    controller.catalog.refresh_book = AsyncMock(side_effect=StoreUnavailable())

    asyncio.run(controller.delete(review.id))

    assert seeded.reviews == {}
    assert controller.state is ReviewState.IDLE
    assert not controller.catalog.loaded

import pytest

from app.core.errors import InvalidTransitionError, ValidationError
from app.models.domain import BookingDraft, BookingStatus, BookingStep, transition_status

from conftest import make_form


@pytest.mark.parametrize("target", [BookingStatus.paid, BookingStatus.test_mode])
def test_pending_moves_forward(target):
    assert transition_status(BookingStatus.pending, target) == target


@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.paid, BookingStatus.pending),
        (BookingStatus.test_mode, BookingStatus.pending),
        (BookingStatus.paid, BookingStatus.test_mode),
    ],
)
def test_status_never_moves_backward(current, target):
    with pytest.raises(ValidationError):
        transition_status(current, target)


def test_same_status_is_a_no_op():
    assert transition_status("paid", "paid") == BookingStatus.paid


def test_draft_transitions_return_new_states():
    draft = BookingDraft(form=make_form(), idempotency_key="k1")
    edited = draft.with_changes(user_name="John Driver")

    assert draft.form.user_name == "Jane Driver"
    assert edited.form.user_name == "John Driver"

    validating = edited.advance(BookingStep.validating)
    assert edited.step == BookingStep.editing
    assert validating.step == BookingStep.validating

    with pytest.raises(InvalidTransitionError):
        validating.with_changes(user_name="Late Edit")
    with pytest.raises(InvalidTransitionError):
        validating.advance(BookingStep.persisting)


def test_failed_is_reachable_but_terminal():
    draft = BookingDraft(form=make_form(), idempotency_key="k1").advance(BookingStep.validating)
    failed = draft.fail("card declined")

    assert failed.step == BookingStep.failed
    assert failed.failure_reason == "card declined"
    with pytest.raises(InvalidTransitionError):
        failed.fail("again")
    with pytest.raises(InvalidTransitionError):
        failed.advance(BookingStep.validating)

from datetime import date

import pytest

from src.core.exceptions import IncompleteConfirmation, InvalidTransition, ValidationFailed
from src.modules.bookings import lifecycle
from src.modules.bookings.schemas import ConfirmedOptionIn, ProposedOption
from src.shared.enums import BookingStatus

MORNING_OPTION = ProposedOption(date=date(2025, 6, 3), time_slot="Morning", price=500000)


def test_every_status_has_a_transition_row():
    assert set(lifecycle.ALLOWED_TRANSITIONS) == set(BookingStatus)


def test_terminal_statuses_have_no_exits():
    assert lifecycle.TERMINAL_STATUSES == {BookingStatus.CANCELLED, BookingStatus.NO_AVAILABILITY}
    for status in lifecycle.TERMINAL_STATUSES:
        assert lifecycle.allowed_transitions(status) == []


def test_confirmed_can_only_be_cancelled():
    assert lifecycle.allowed_transitions(BookingStatus.CONFIRMED) == [BookingStatus.CANCELLED]


def test_received_cannot_jump_to_confirmed():
    with pytest.raises(InvalidTransition):
        lifecycle.check_transition(BookingStatus.RECEIVED, BookingStatus.CONFIRMED)


def test_self_transition_is_rejected():
    with pytest.raises(InvalidTransition) as excinfo:
        lifecycle.check_transition(BookingStatus.CONTACTING_HOSPITAL, BookingStatus.CONTACTING_HOSPITAL)
    assert "already" in excinfo.value.detail


def test_legal_edge_does_not_need_force():
    assert lifecycle.check_transition(BookingStatus.RECEIVED, BookingStatus.CONTACTING_HOSPITAL) is False
    assert lifecycle.check_transition(BookingStatus.RECEIVED, BookingStatus.CONTACTING_HOSPITAL, force=True) is False


def test_force_overrides_illegal_edge():
    assert lifecycle.check_transition(BookingStatus.CANCELLED, BookingStatus.RECEIVED, force=True) is True


def test_needs_more_info_returns_to_contacting_hospital():
    assert lifecycle.is_allowed(BookingStatus.NEEDS_MORE_INFO, BookingStatus.CONTACTING_HOSPITAL)
    assert not lifecycle.is_allowed(BookingStatus.NEEDS_MORE_INFO, BookingStatus.PROPOSED_OPTIONS)


def test_proposed_options_require_at_least_one_option():
    with pytest.raises(ValidationFailed):
        lifecycle.check_transition_payload(BookingStatus.PROPOSED_OPTIONS, [], None)
    lifecycle.check_transition_payload(BookingStatus.PROPOSED_OPTIONS, [MORNING_OPTION], None)


def test_options_on_wrong_target_are_rejected():
    with pytest.raises(ValidationFailed):
        lifecycle.check_transition_payload(BookingStatus.CANCELLED, [MORNING_OPTION], None)
    with pytest.raises(ValidationFailed):
        lifecycle.check_transition_payload(
            BookingStatus.CANCELLED,
            None,
            ConfirmedOptionIn(date=date(2025, 6, 3), time_slot="Morning", price=500000),
        )


@pytest.mark.parametrize(
    ("option", "missing"),
    [
        (None, ["date", "timeSlot", "price"]),
        (ConfirmedOptionIn(time_slot="Morning", price=500000), ["date"]),
        (ConfirmedOptionIn(date=date(2025, 6, 3), time_slot="  ", price=500000), ["timeSlot"]),
        (ConfirmedOptionIn(date=date(2025, 6, 3), time_slot="Morning", price=0), ["price"]),
    ],
)
def test_confirmation_must_be_complete(option, missing):
    assert lifecycle.missing_confirmation_fields(option) == missing
    with pytest.raises(IncompleteConfirmation):
        lifecycle.check_transition_payload(BookingStatus.CONFIRMED, None, option)


def test_forced_note_is_prefixed():
    assert lifecycle.history_note("clinic called back", forced=True) == "[forced] clinic called back"
    assert lifecycle.history_note(None, forced=True) == "[forced]"
    assert lifecycle.history_note("clinic called back", forced=False) == "clinic called back"

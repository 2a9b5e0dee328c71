"""Booking status state machine.

Operators move a booking through the table below. Anything outside it is an
``InvalidTransition`` unless an administrator forces it, in which case the
history entry is flagged.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from src.core.exceptions import IncompleteConfirmation, InvalidTransition, ValidationFailed
from src.shared.enums import BookingStatus

FORCED_NOTE_PREFIX = "[forced]"

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.RECEIVED: frozenset(
        {
            BookingStatus.CONTACTING_HOSPITAL,
            BookingStatus.NEEDS_MORE_INFO,
            BookingStatus.CANCELLED,
            BookingStatus.NO_AVAILABILITY,
        }
    ),
    BookingStatus.CONTACTING_HOSPITAL: frozenset(
        {
            BookingStatus.PROPOSED_OPTIONS,
            BookingStatus.NEEDS_MORE_INFO,
            BookingStatus.CANCELLED,
            BookingStatus.NO_AVAILABILITY,
        }
    ),
    BookingStatus.PROPOSED_OPTIONS: frozenset(
        {
            BookingStatus.CONFIRMED,
            BookingStatus.NEEDS_MORE_INFO,
            BookingStatus.CANCELLED,
            BookingStatus.NO_AVAILABILITY,
        }
    ),
    BookingStatus.NEEDS_MORE_INFO: frozenset({BookingStatus.CONTACTING_HOSPITAL, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_AVAILABILITY: frozenset(),
}

INITIAL_STATUS = BookingStatus.RECEIVED
TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


class SlotLike(Protocol):
    date: Any
    time_slot: Any
    price: Any


def is_allowed(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def allowed_transitions(current: BookingStatus) -> list[BookingStatus]:
    """Legal targets in declaration order of the enum."""
    targets = ALLOWED_TRANSITIONS[current]
    return [status for status in BookingStatus if status in targets]


def check_transition(current: BookingStatus, target: BookingStatus, force: bool = False) -> bool:
    """Validate an edge and return whether the force override was needed."""
    if is_allowed(current, target):
        return False
    if force:
        return True
    if current == target:
        raise InvalidTransition(f"Booking is already {current.value}")
    raise InvalidTransition(f"Cannot move a booking from {current.value} to {target.value}")


def check_transition_payload(
    target: BookingStatus,
    proposed_options: Sequence[SlotLike] | None,
    confirmed_option: SlotLike | None,
) -> None:
    """Enforce which side data each target status carries."""
    if target == BookingStatus.PROPOSED_OPTIONS:
        if not proposed_options:
            raise ValidationFailed("proposedOptions must contain at least one option")
    elif proposed_options:
        raise ValidationFailed("proposedOptions can only be sent when moving to proposedOptions")

    if target == BookingStatus.CONFIRMED:
        missing = missing_confirmation_fields(confirmed_option)
        if missing:
            raise IncompleteConfirmation(f"confirmedOption is missing: {', '.join(missing)}")
    elif confirmed_option is not None:
        raise ValidationFailed("confirmedOption can only be sent when moving to confirmed")


def missing_confirmation_fields(option: SlotLike | None) -> list[str]:
    if option is None:
        return ["date", "timeSlot", "price"]
    missing = []
    if option.date is None:
        missing.append("date")
    if option.time_slot is None or not str(option.time_slot).strip():
        missing.append("timeSlot")
    if option.price is None or option.price <= 0:
        missing.append("price")
    return missing


def history_note(note: str | None, forced: bool) -> str | None:
    if not forced:
        return note
    return f"{FORCED_NOTE_PREFIX} {note}" if note else FORCED_NOTE_PREFIX

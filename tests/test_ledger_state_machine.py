"""Tests for ledger entry status transitions."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from revsplit.core.exceptions import ConflictError
from revsplit.models import LedgerEntry, LedgerEntryStatus
from revsplit.services.ledger_state_machine import (
    can_transition,
    get_allowed_transitions,
    get_transition_action,
    is_terminal,
    transition_entry,
    validate_transition,
)

RESERVED = LedgerEntryStatus.RESERVED.value
CLEARED = LedgerEntryStatus.CLEARED.value
PAID = LedgerEntryStatus.PAID.value
CANCELLED = LedgerEntryStatus.CANCELLED.value

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def make_entry(status: str) -> LedgerEntry:
    return LedgerEntry(
        id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        order_id=uuid.uuid4(),
        entry_type="COMMISSION",
        amount=Decimal("10.00"),
        currency="USD",
        status=status,
        entry_metadata={"calculation_id": "calc_test"},
        created_at=NOW,
    )


@pytest.mark.parametrize("current,new,allowed", [
    (RESERVED, CLEARED, True),
    (RESERVED, CANCELLED, True),
    (RESERVED, PAID, False),
    (CLEARED, PAID, True),
    (CLEARED, CANCELLED, True),
    (CLEARED, RESERVED, False),
    (CLEARED, CLEARED, False),
    (PAID, CANCELLED, False),
    (PAID, CLEARED, False),
    (CANCELLED, RESERVED, False),
    (CANCELLED, CLEARED, False),
])
def test_transition_table(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_terminal_states():
    assert is_terminal(PAID)
    assert is_terminal(CANCELLED)
    assert not is_terminal(RESERVED)
    assert get_allowed_transitions(PAID) == []
    assert get_transition_action(CLEARED, PAID) == "Mark Paid"


def test_clear_stamps_cleared_at():
    entry = make_entry(RESERVED)

    transition_entry(entry, CLEARED, NOW)

    assert entry.status == CLEARED
    assert entry.cleared_at == NOW


def test_mark_paid_stamps_paid_at():
    entry = make_entry(CLEARED)

    transition_entry(entry, PAID, NOW)

    assert entry.status == PAID
    assert entry.paid_at == NOW


def test_cancel_keeps_metadata():
    entry = make_entry(CLEARED)

    transition_entry(entry, CANCELLED, NOW)

    assert entry.status == CANCELLED
    assert entry.entry_metadata["calculation_id"] == "calc_test"
    assert entry.entry_metadata["cancelled_at"] == NOW.isoformat()


def test_terminal_entry_cannot_move():
    entry = make_entry(PAID)

    with pytest.raises(ConflictError) as exc_info:
        validate_transition(entry, CANCELLED)

    assert exc_info.value.error_code == "INVALID_LEDGER_TRANSITION"
    assert "terminal" in exc_info.value.message
    assert entry.status == PAID


def test_rejected_transition_leaves_entry_untouched():
    entry = make_entry(RESERVED)

    with pytest.raises(ConflictError):
        transition_entry(entry, PAID, NOW)

    assert entry.status == RESERVED
    assert entry.paid_at is None

"""
Ledger Entry State Machine

This module is the SINGLE SOURCE OF TRUTH for ledger entry status transitions.
Every status change on a LedgerEntry goes through transition_entry().

    RESERVED --clear--> CLEARED --mark paid--> PAID
        |                  |
        +----cancel--------+----cancel--> CANCELLED

PAID and CANCELLED are terminal. Nothing re-enters RESERVED.
"""

from datetime import datetime
from typing import Dict, List

from revsplit.core.exceptions import ConflictError
from revsplit.models.ledger import LedgerEntry, LedgerEntryStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
LEDGER_TRANSITIONS: Dict[str, List[str]] = {
    LedgerEntryStatus.RESERVED.value: [
        LedgerEntryStatus.CLEARED.value,    # Order payment confirmed
        LedgerEntryStatus.CANCELLED.value,  # Refund/void before payment
    ],
    LedgerEntryStatus.CLEARED.value: [
        LedgerEntryStatus.PAID.value,       # Payout settlement confirmed
        LedgerEntryStatus.CANCELLED.value,  # Refund/void after payment
    ],
    LedgerEntryStatus.PAID.value: [],       # Terminal state
    LedgerEntryStatus.CANCELLED.value: [],  # Terminal state
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (LedgerEntryStatus.RESERVED.value, LedgerEntryStatus.CLEARED.value): "Clear",
    (LedgerEntryStatus.RESERVED.value, LedgerEntryStatus.CANCELLED.value): "Cancel",
    (LedgerEntryStatus.CLEARED.value, LedgerEntryStatus.PAID.value): "Mark Paid",
    (LedgerEntryStatus.CLEARED.value, LedgerEntryStatus.CANCELLED.value): "Cancel",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in LEDGER_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return LEDGER_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for a transition."""
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str) -> bool:
    return status in (LedgerEntryStatus.PAID.value, LedgerEntryStatus.CANCELLED.value)


def validate_transition(entry: LedgerEntry, new_status: str) -> None:
    """
    Validate a status transition for an entry. Raises ConflictError if invalid.

    Same-status moves are rejected too: clearing a CLEARED entry or paying a
    PAID entry is a conflict, not a no-op.
    """
    current_status = entry.status
    if can_transition(current_status, new_status):
        return

    details = {
        "entry_id": entry.id,
        "order_id": entry.order_id,
        "current_status": current_status,
        "requested_status": new_status,
    }
    if is_terminal(current_status):
        raise ConflictError(
            f"Ledger entry in '{current_status}' status cannot be modified. This is a terminal state.",
            "INVALID_LEDGER_TRANSITION",
            details,
        )
    allowed = get_allowed_transitions(current_status)
    raise ConflictError(
        f"Cannot change ledger entry from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        "INVALID_LEDGER_TRANSITION",
        details,
    )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_entry(entry: LedgerEntry, new_status: str, at: datetime) -> None:
    """
    Transition an entry to a new status and stamp the matching timestamp.

    `at` is passed in so that every entry of one logical operation carries the
    same clock reading.
    """
    validate_transition(entry, new_status)

    entry.status = new_status

    if new_status == LedgerEntryStatus.CLEARED.value:
        entry.cleared_at = at

    elif new_status == LedgerEntryStatus.PAID.value:
        entry.paid_at = at

    elif new_status == LedgerEntryStatus.CANCELLED.value:
        entry.entry_metadata = {
            **(entry.entry_metadata or {}),
            "cancelled_at": at.isoformat(),
        }

"""RMA state machine transitions, status groups, and event types."""

from __future__ import annotations

from rms.models.enums import RmaStatus

# Valid transitions: from_status -> [allowed to_statuses]
ALLOWED_TRANSITIONS: dict[RmaStatus, list[RmaStatus]] = {
    RmaStatus.DRAFT: [RmaStatus.SUBMITTED, RmaStatus.CANCELLED],
    RmaStatus.SUBMITTED: [
        RmaStatus.APPROVED,
        RmaStatus.REJECTED,
        RmaStatus.INFO_REQUIRED,
        RmaStatus.CANCELLED,
    ],
    RmaStatus.INFO_REQUIRED: [RmaStatus.SUBMITTED, RmaStatus.CANCELLED],
    RmaStatus.APPROVED: [RmaStatus.RECEIVED, RmaStatus.CANCELLED],
    RmaStatus.RECEIVED: [RmaStatus.QC_COMPLETE],
    RmaStatus.QC_COMPLETE: [RmaStatus.RESOLVED],
    RmaStatus.RESOLVED: [RmaStatus.CLOSED],
    # Overturn -> APPROVED, uphold -> CLOSED
    RmaStatus.CONTESTED: [RmaStatus.APPROVED, RmaStatus.CLOSED],
    # REJECTED -> CONTESTED goes through the contest guard, not this table
    RmaStatus.REJECTED: [],
    RmaStatus.CANCELLED: [],
    RmaStatus.CLOSED: [],
}

_missing = set(RmaStatus) - set(ALLOWED_TRANSITIONS)
if _missing:
    raise RuntimeError(
        f"ALLOWED_TRANSITIONS is missing statuses: {sorted(s.value for s in _missing)}"
    )
del _missing

# Terminal statuses (no further transitions possible)
TERMINAL_STATUSES: frozenset[RmaStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Lines may be added, edited, split, or removed only in these statuses
LINE_EDITABLE_STATUSES: frozenset[RmaStatus] = frozenset(
    {RmaStatus.DRAFT, RmaStatus.INFO_REQUIRED}
)

# Warehouse receipts are accepted in these statuses
RECEIPT_STATUSES: frozenset[RmaStatus] = frozenset({RmaStatus.APPROVED, RmaStatus.RECEIVED})

# Statuses waiting on a branch manager
APPROVAL_QUEUE_STATUSES: tuple[RmaStatus, ...] = (RmaStatus.SUBMITTED, RmaStatus.CONTESTED)

# Event type strings for the outbox
EVENT_RMA_RESOLVED = "rma.resolved"

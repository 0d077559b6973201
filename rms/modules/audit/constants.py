"""Audit action names.

Actions are stored as plain strings so new ones can be introduced without a
schema migration. Add the constant here and to ``KNOWN_AUDIT_ACTIONS``.
"""

from __future__ import annotations


class AuditAction:
    # RMA lifecycle
    RMA_CREATED = "RMA_CREATED"
    RMA_SUBMITTED = "RMA_SUBMITTED"
    RMA_APPROVED = "RMA_APPROVED"
    RMA_REJECTED = "RMA_REJECTED"
    RMA_INFO_REQUIRED = "RMA_INFO_REQUIRED"
    RMA_CONTESTED = "RMA_CONTESTED"
    RMA_CANCELLED = "RMA_CANCELLED"
    RMA_RECEIVED = "RMA_RECEIVED"
    RMA_RESOLVED = "RMA_RESOLVED"
    RMA_CLOSED = "RMA_CLOSED"
    STATUS_CHANGED = "STATUS_CHANGED"

    # Line item operations
    LINE_ADDED = "LINE_ADDED"
    LINE_UPDATED = "LINE_UPDATED"
    LINE_SPLIT = "LINE_SPLIT"
    DISPOSITION_SET = "DISPOSITION_SET"
    FINANCE_APPROVED = "FINANCE_APPROVED"

    # Fulfillment integration
    FULFILLMENT_CREDIT_TRIGGERED = "FULFILLMENT_CREDIT_TRIGGERED"
    FULFILLMENT_REPLACEMENT_TRIGGERED = "FULFILLMENT_REPLACEMENT_TRIGGERED"


KNOWN_AUDIT_ACTIONS: frozenset[str] = frozenset(
    value
    for name, value in vars(AuditAction).items()
    if not name.startswith("_") and isinstance(value, str)
)

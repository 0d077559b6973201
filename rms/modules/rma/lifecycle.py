"""Transition guard shared by every status-changing lifecycle operation."""

from __future__ import annotations

from rms.exceptions import InvalidTransitionException
from rms.models.enums import RmaStatus
from rms.modules.rma.constants import ALLOWED_TRANSITIONS


def allowed_transitions(from_status: RmaStatus) -> list[RmaStatus]:
    return list(ALLOWED_TRANSITIONS[RmaStatus(from_status)])


def assert_valid_transition(from_status: RmaStatus, to_status: RmaStatus) -> None:
    """Raise InvalidTransitionException unless ``from_status -> to_status`` is legal."""
    allowed = allowed_transitions(from_status)
    if RmaStatus(to_status) not in allowed:
        raise InvalidTransitionException(
            RmaStatus(from_status).value,
            RmaStatus(to_status).value,
            [s.value for s in allowed],
        )

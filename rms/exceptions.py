"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class PreconditionFailedException(AppException):
    """A business guard rejected the operation before anything was written."""

    code = "PRECONDITION_FAILED"
    status_code = 400


class InvalidTransitionException(AppException):
    """The requested status change is not in the transition table."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(
        self,
        from_status: str,
        to_status: str,
        allowed_transitions: list[str],
    ) -> None:
        super().__init__(
            f"Cannot transition RMA from {from_status} to {to_status}",
            details=[
                {
                    "fromStatus": from_status,
                    "toStatus": to_status,
                    "allowedTransitions": list(allowed_transitions),
                }
            ],
        )
        self.from_status = from_status
        self.to_status = to_status
        self.allowed_transitions = list(allowed_transitions)

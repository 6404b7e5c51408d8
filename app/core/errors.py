"""
Domain errors for the booking engine.

Each error carries a stable ``code``, a user-safe ``message`` and a
``details`` dict with enough structure (conflicting seats, shortfall,
allowed hours) for the caller to correct the request. The API layer maps
``status_code`` straight onto the HTTP response.
"""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for every error raised by the engine."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(DomainError):
    """Missing or malformed input. Never retried."""

    status_code = 400


class ConflictError(DomainError):
    """The request collides with existing state; pick different parameters."""

    status_code = 409


class DuplicateBookingError(ConflictError):
    pass


class SeatConflictError(ConflictError):
    pass


class SeatSelectionRequiredError(ConflictError):
    """The booking's current seats are taken in the new window; choose new seats."""

    pass


class AlreadyRescheduledError(ConflictError):
    pass


class PaymentAlreadyConfirmedError(ConflictError):
    pass


class NotFoundError(DomainError):
    status_code = 404


class ResourceExhaustedError(DomainError):
    """No pass quantity left (or similar) for this attempt."""

    status_code = 409


class InconsistencyError(DomainError):
    """A downstream write failed after an upstream resource was consumed."""

    status_code = 500


class ExternalServiceError(DomainError):
    """Notification or other collaborator failure. Logged, never fatal to a transition."""

    status_code = 502

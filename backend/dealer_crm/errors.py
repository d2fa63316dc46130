"""Domain error taxonomy.

Services raise these; the API layer turns them into HTTP responses through a
single exception handler registered in ``dealer_crm.main``.
"""

from typing import Any, Dict, Optional


class CRMError(Exception):
    """Base class for business-rule errors surfaced to the caller."""

    status_code: int = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message}
        payload.update(self.extra)
        return payload


class NotFoundError(CRMError):
    """Entity missing, or owned by another dealer. Both look the same."""

    status_code = 404


class ConflictError(CRMError):
    status_code = 409


class InvalidAssigneeError(CRMError):
    status_code = 400


class InvalidRoleError(CRMError):
    status_code = 403


class ValidationError(CRMError):
    status_code = 400


class EmailDeliveryError(Exception):
    """Raised by notification sinks when a message could not be handed off."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

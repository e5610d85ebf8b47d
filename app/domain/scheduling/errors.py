"""
Scheduling errors

Every failed write ends up as exactly one of these, so callers can pick a
remedy: show an overlap message, offer a reload, fix the input or retry.
"""

from typing import Any, Optional

# Conflict taxonomy
DOUBLE_BOOKING = "double_booking"
STALE_OBJECT = "stale_object"
GENERIC_CONFLICT = "generic_conflict"
VALIDATION = "validation"
NETWORK = "network"


class SchedulingError(Exception):
    """Base class for classified scheduling failures"""

    kind = GENERIC_CONFLICT
    status_code = 409
    default_message = "The visit could not be saved because of a conflicting change."

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[Any] = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)

    @property
    def is_conflict(self) -> bool:
        return self.kind in (DOUBLE_BOOKING, STALE_OBJECT, GENERIC_CONFLICT)

    def to_dict(self) -> dict:
        return {"error_type": self.kind, "message": self.message}


class ValidationError(SchedulingError):
    """Missing or malformed input - fix and retry"""

    kind = VALIDATION
    status_code = 422
    default_message = "The request is invalid."


class VisitNotFoundError(ValidationError):
    status_code = 404
    default_message = "Visit not found."


class IneligibleTransitionError(ValidationError):
    """Status change not allowed from the visit's current status"""

    def __init__(self, action: str, status: str):
        self.action = action
        self.current_status = status
        super().__init__(f"Cannot {action} a visit in status '{status}'.")


class ConfirmationRequiredError(ValidationError):
    """Irreversible operation attempted without explicit confirmation"""

    default_message = "Deleting a visit is irreversible and must be confirmed."


class DoubleBookingError(SchedulingError):
    """Staff or patient already has an overlapping visit"""

    kind = DOUBLE_BOOKING
    default_message = "The staff member already has another visit at this time."

    def __init__(
        self,
        message: Optional[str] = None,
        conflict_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        detail: Optional[Any] = None,
    ):
        self.conflict_type = conflict_type or "staff"
        self.resource_id = resource_id
        if message is None and self.conflict_type == "patient":
            message = "The patient already has another visit at this time."
        super().__init__(message, detail=detail)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["conflict_type"] = self.conflict_type
        data["resource_id"] = self.resource_id
        return data


class StaleObjectError(SchedulingError):
    """Write against an outdated lock_version"""

    kind = STALE_OBJECT
    default_message = "This visit was updated by another user. Reload and try again."


class GenericConflictError(SchedulingError):
    kind = GENERIC_CONFLICT


class NetworkError(SchedulingError):
    """Transport failure or unavailable backend - safe to retry unchanged"""

    kind = NETWORK
    status_code = 502
    default_message = "The scheduling backend could not be reached."

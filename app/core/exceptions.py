# app/core/exceptions.py
"""Hard errors raised by the booking core; expected business outcomes use ServiceResult instead"""
from typing import Optional


class BookingCoreError(Exception):
    """Base class for booking core errors"""
    status_code = 400
    code = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidStateTransition(BookingCoreError):
    """A caller asked for a transition the current state does not allow"""
    status_code = 409
    code = "invalid_state_transition"

    def __init__(self, current: str, requested: str, entity: str = "appointment"):
        super().__init__(f"Cannot move {entity} from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested
        self.entity = entity

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "current": self.current,
            "requested": self.requested,
        }


class EntityNotFound(BookingCoreError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, identifier: Optional[object] = None):
        message = f"{entity} not found" if identifier is None else f"{entity} {identifier} not found"
        super().__init__(message)
        self.entity = entity


class AccessDenied(BookingCoreError):
    """Caller is not allowed to act on this company or booking"""
    status_code = 403
    code = "access_denied"


class ApprovalNotAuthorized(AccessDenied):
    code = "approval_not_authorized"


class BookingValidationError(BookingCoreError):
    """Input that is well-formed but breaks a business rule (unknown slot, bad schedule total, ...)"""
    status_code = 422
    code = "validation_error"

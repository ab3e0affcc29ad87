# ============================================================================
# FILE: app/api/dependencies.py
# Caller identity and service dependencies
# ============================================================================
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import Settings, get_settings
from app.services.appointment.appointment_service import AppointmentService
from app.services.booking.booking_service import BookingService
from app.services.booking.conversion_service import ConversionService
from app.services.corporate.approval_engine import CorporateApprovalEngine
from app.services.payment.payment_ledger import PaymentLedger

ACTOR_ROLES = ("customer", "agent", "admin")


# ============================================================================
# Caller identity
# ============================================================================

@dataclass(frozen=True)
class Actor:
    """Caller as asserted by the upstream auth gateway"""
    id: UUID
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in ("agent", "admin")


async def get_current_actor(
        x_actor_id: str = Header(..., alias="X-Actor-Id"),
        x_actor_role: str = Header("customer", alias="X-Actor-Role"),
) -> Actor:
    """
    Read the caller from gateway headers.

    Raises:
        HTTPException 401: If the actor id is missing or malformed
        HTTPException 403: If the role is unknown
    """
    try:
        actor_id = UUID(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Actor-Id header",
        )

    role = x_actor_role.strip().lower()
    if role not in ACTOR_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role '{x_actor_role}'",
        )

    return Actor(id=actor_id, role=role)


def require_role(*roles: str) -> Callable:
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        @router.post("/{id}/confirm")
        async def confirm(actor: Actor = Depends(require_role("agent", "admin"))):
            ...
    """
    async def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return actor

    return role_checker


require_staff = require_role("agent", "admin")


# ============================================================================
# Services (one set per request session)
# ============================================================================

def get_appointment_service(
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings)
) -> AppointmentService:
    return AppointmentService(db, settings=settings)


def get_conversion_service(
        appointments: AppointmentService = Depends(get_appointment_service)
) -> ConversionService:
    return ConversionService(appointments.db, appointments=appointments)


def get_booking_service(
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings)
) -> BookingService:
    return BookingService(db, settings=settings)


def get_payment_ledger(
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings)
) -> PaymentLedger:
    return PaymentLedger(db, settings=settings)


def get_approval_engine(
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings)
) -> CorporateApprovalEngine:
    return CorporateApprovalEngine(db, settings=settings)

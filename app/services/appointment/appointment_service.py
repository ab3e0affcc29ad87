# ============================================================================
# app/services/appointment/appointment_service.py
# ============================================================================
"""Service for managing consultation appointments"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config.settings import Settings, get_settings
from app.core.exceptions import BookingValidationError, EntityNotFound, InvalidStateTransition
from app.core.outcomes import Outcome, ServiceResult
from app.models.appointment import AppointmentStatus, CustomerInterest, TripAppointment
from app.services.appointment.state_machine import ensure_transition
from app.services.audit.audit_service import AuditService
from app.services.availability.availability_service import SlotScheduler
from app.utils.money import to_money
from app.utils.references import appointment_reference
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class AppointmentService:
    """Appointment lifecycle: scheduling, rescheduling, consultation outcome, cancellation"""

    def __init__(
            self,
            db: Session,
            scheduler: Optional[SlotScheduler] = None,
            settings: Optional[Settings] = None
    ):
        self.db = db
        self.scheduler = scheduler or SlotScheduler(db)
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: UUID) -> TripAppointment:
        appointment = self.db.get(TripAppointment, appointment_id)
        if not appointment:
            raise EntityNotFound("Appointment", appointment_id)
        return appointment

    def list_appointments(
            self,
            customer_id: Optional[UUID] = None,
            status: Optional[str] = None,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            skip: int = 0,
            limit: int = 20
    ) -> Dict[str, Any]:
        """Paginated appointments, newest first"""
        query = self.db.query(TripAppointment)

        if customer_id:
            query = query.filter(TripAppointment.customer_id == customer_id)
        if status:
            query = query.filter(TripAppointment.status == status)
        if start_date:
            query = query.filter(TripAppointment.preferred_date >= start_date)
        if end_date:
            query = query.filter(TripAppointment.preferred_date <= end_date)

        total = query.count()
        appointments = (
            query.order_by(TripAppointment.created_at.desc(), TripAppointment.preferred_date.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

        return {
            "total": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "appointments": appointments,
        }

    def quote_is_current(self, appointment: TripAppointment, now: Optional[datetime] = None) -> bool:
        """A quoted price is usable until its validity deadline"""
        if appointment.quoted_price is None or appointment.quote_valid_until is None:
            return False
        return (now or utcnow()) <= as_utc(appointment.quote_valid_until)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_appointment(
            self,
            customer_id: UUID,
            first_name: str,
            last_name: str,
            email: str,
            phone: str,
            trip_id: UUID,
            preferred_date: date,
            time_slot: str,
            travelers: int = 1,
            trip_title: Optional[str] = None,
            destination: Optional[str] = None,
            duration_days: Optional[int] = None,
            duration_nights: Optional[int] = None,
            estimated_price: Optional[Decimal] = None,
            currency: Optional[str] = None,
            special_requests: Optional[str] = None,
            source: str = "website"
    ) -> ServiceResult[TripAppointment]:
        """Create an appointment and claim its slot in one transaction"""
        self.scheduler.validate_slot(time_slot)
        if travelers < 1:
            raise BookingValidationError("At least one traveler is required")

        estimated_total = None
        if estimated_price is not None:
            estimated_total = to_money(estimated_price) * travelers

        appointment = TripAppointment(
            id=uuid4(),
            appointment_reference=appointment_reference(),
            customer_id=customer_id,
            customer_first_name=first_name,
            customer_last_name=last_name,
            customer_email=email,
            customer_phone=phone,
            travelers=travelers,
            trip_id=trip_id,
            trip_title=trip_title,
            destination=destination,
            duration_days=duration_days,
            duration_nights=duration_nights,
            estimated_price=to_money(estimated_price) if estimated_price is not None else None,
            estimated_total=estimated_total,
            currency=currency or self.settings.DEFAULT_CURRENCY,
            preferred_date=preferred_date,
            time_slot=time_slot,
            timezone=self.settings.DEFAULT_TIMEZONE,
            status=AppointmentStatus.SCHEDULED.value,
            special_requests=special_requests,
            customizations=[],
            source=source,
        )

        self.db.add(appointment)
        self.db.flush()

        if not self.scheduler.reserve(preferred_date, time_slot, appointment.id):
            return ServiceResult.failure(
                Outcome.SLOT_UNAVAILABLE,
                "Selected time slot is not available",
                date=preferred_date.isoformat(),
                time_slot=time_slot,
                available_slots=self.scheduler.available_slots(preferred_date),
            )

        AuditService.log(
            self.db,
            action="APPOINTMENT_CREATED",
            resource="appointment",
            resource_id=appointment.id,
            actor_id=customer_id,
            details={
                "trip_id": str(trip_id),
                "reference": appointment.appointment_reference,
                "preferred_date": preferred_date.isoformat(),
                "time_slot": time_slot,
            },
        )
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment.appointment_reference} scheduled for {preferred_date} {time_slot}")
        return ServiceResult.success(appointment)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def confirm(self, appointment_id: UUID, agent_id: Optional[UUID] = None) -> TripAppointment:
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.CONFIRMED)

        appointment.status = AppointmentStatus.CONFIRMED.value
        if agent_id:
            appointment.assigned_agent_id = agent_id

        self._audit(appointment, "APPOINTMENT_CONFIRMED", agent_id)
        return self._commit(appointment, AppointmentStatus.CONFIRMED)

    def start_consultation(self, appointment_id: UUID, agent_id: Optional[UUID] = None) -> TripAppointment:
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.IN_PROGRESS)

        appointment.status = AppointmentStatus.IN_PROGRESS.value
        if agent_id:
            appointment.assigned_agent_id = agent_id

        self._audit(appointment, "CONSULTATION_STARTED", agent_id)
        return self._commit(appointment, AppointmentStatus.IN_PROGRESS)

    def reschedule(
            self,
            appointment_id: UUID,
            new_date: date,
            new_slot: str,
            actor_id: Optional[UUID] = None
    ) -> ServiceResult[TripAppointment]:
        """
        Move an appointment to a new slot.

        The new slot is claimed before the old one is released, so a lost race
        leaves the appointment exactly where it was.
        """
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.RESCHEDULED)
        self.scheduler.validate_slot(new_slot)

        old_date, old_slot = appointment.preferred_date, appointment.time_slot
        if (old_date, old_slot) == (new_date, new_slot):
            raise BookingValidationError("Appointment is already booked in that slot")

        if not self.scheduler.reserve(new_date, new_slot, appointment.id):
            return ServiceResult.failure(
                Outcome.SLOT_UNAVAILABLE,
                "Selected time slot is not available",
                date=new_date.isoformat(),
                time_slot=new_slot,
                available_slots=self.scheduler.available_slots(new_date),
            )

        self.scheduler.release(old_date, old_slot)

        appointment.preferred_date = new_date
        appointment.time_slot = new_slot
        appointment.rescheduled_count = (appointment.rescheduled_count or 0) + 1
        appointment.status = AppointmentStatus.SCHEDULED.value

        self._audit(appointment, "APPOINTMENT_RESCHEDULED", actor_id, {
            "from": {"date": old_date.isoformat(), "time_slot": old_slot},
            "to": {"date": new_date.isoformat(), "time_slot": new_slot},
        })
        return ServiceResult.success(self._commit(appointment, AppointmentStatus.RESCHEDULED))

    def cancel(
            self,
            appointment_id: UUID,
            reason: Optional[str] = None,
            actor_id: Optional[UUID] = None
    ) -> TripAppointment:
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.CANCELLED)

        self.scheduler.release_for_appointment(appointment.id)
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancellation_reason = reason
        appointment.cancelled_at = utcnow()

        self._audit(appointment, "APPOINTMENT_CANCELLED", actor_id, {"reason": reason})
        return self._commit(appointment, AppointmentStatus.CANCELLED)

    def complete_consultation(
            self,
            appointment_id: UUID,
            agent_id: UUID,
            notes: str,
            interest_level: CustomerInterest = CustomerInterest.MEDIUM,
            quoted_price: Optional[Decimal] = None,
            call_duration_minutes: Optional[int] = None,
            follow_up_required: bool = False,
            follow_up_date: Optional[date] = None,
            customizations: Optional[List[Dict[str, Any]]] = None
    ) -> TripAppointment:
        """Record the call outcome; a quote stays valid for QUOTE_VALIDITY_DAYS"""
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.COMPLETED)

        self.scheduler.release_for_appointment(appointment.id)

        appointment.status = AppointmentStatus.COMPLETED.value
        appointment.assigned_agent_id = agent_id
        appointment.call_notes = notes
        appointment.customer_interest = CustomerInterest(interest_level).value
        appointment.call_duration_minutes = call_duration_minutes
        appointment.follow_up_required = follow_up_required
        appointment.follow_up_date = follow_up_date
        if customizations is not None:
            appointment.customizations = customizations

        if quoted_price is not None:
            appointment.quoted_price = to_money(quoted_price)
            appointment.quote_valid_until = utcnow() + timedelta(days=self.settings.QUOTE_VALIDITY_DAYS)

        self._audit(appointment, "CONSULTATION_COMPLETED", agent_id, {
            "interest": appointment.customer_interest,
            "quoted_price": str(appointment.quoted_price) if appointment.quoted_price is not None else None,
        })
        return self._commit(appointment, AppointmentStatus.COMPLETED)

    def mark_no_show(self, appointment_id: UUID, agent_id: Optional[UUID] = None) -> TripAppointment:
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.NO_SHOW)

        self.scheduler.release_for_appointment(appointment.id)
        appointment.status = AppointmentStatus.NO_SHOW.value

        self._audit(appointment, "APPOINTMENT_NO_SHOW", agent_id)
        return self._commit(appointment, AppointmentStatus.NO_SHOW)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _audit(
            self,
            appointment: TripAppointment,
            action: str,
            actor_id: Optional[UUID],
            details: Optional[Dict[str, Any]] = None
    ) -> None:
        AuditService.log(
            self.db,
            action=action,
            resource="appointment",
            resource_id=appointment.id,
            actor_id=actor_id,
            details={"reference": appointment.appointment_reference, **(details or {})},
        )

    def _commit(self, appointment: TripAppointment, requested: AppointmentStatus) -> TripAppointment:
        """Commit; a concurrent writer that got there first turns into InvalidStateTransition"""
        appointment_id = appointment.id
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            current = self.get_appointment(appointment_id)
            logger.warning(f"Concurrent update on appointment {appointment_id}, now {current.status}")
            raise InvalidStateTransition(current.status, requested.value)

        self.db.refresh(appointment)
        return appointment

# ============================================================================
# app/services/booking/conversion_service.py
# ============================================================================
"""Turns a completed consultation into a trip booking, at most once per appointment"""
import copy
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import BookingValidationError, InvalidStateTransition
from app.core.outcomes import Outcome, ServiceResult
from app.models.appointment import AppointmentStatus, TripAppointment
from app.models.booking import Booking, BookingStatus, PaymentStatus, TripBooking
from app.services.appointment.appointment_service import AppointmentService
from app.services.appointment.state_machine import ensure_transition
from app.services.audit.audit_service import AuditService
from app.utils.money import to_money
from app.utils.references import trip_booking_reference
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ConversionService:
    """
    Creates the booking and sets the appointment's conversion pointer in one
    transaction. The pointer is written with a conditional update (only while
    it is still empty) and bookings.appointment_id is unique, so concurrent or
    retried conversions produce a single booking.
    """

    def __init__(self, db: Session, appointments: Optional[AppointmentService] = None):
        self.db = db
        self.appointments = appointments or AppointmentService(db)

    def booking_for_appointment(self, appointment_id: UUID) -> Optional[Booking]:
        return self.db.execute(
            select(Booking).where(Booking.appointment_id == appointment_id)
        ).scalars().first()

    def convert(
            self,
            appointment_id: UUID,
            final_price: Optional[Decimal] = None,
            payment_method: Optional[str] = None,
            customizations: Optional[List[Dict[str, Any]]] = None,
            agent_id: Optional[UUID] = None
    ) -> ServiceResult[TripBooking]:
        """
        Convert a completed appointment.

        Omitting final_price uses the consultation quote, which must still be
        within its validity window.
        """
        appointment = self.appointments.get_appointment(appointment_id)
        existing = self.booking_for_appointment(appointment.id)

        if appointment.booking_id is not None or appointment.status == AppointmentStatus.CONVERTED.value:
            return self._duplicate(appointment, existing)

        ensure_transition(appointment.status, AppointmentStatus.CONVERTED, via_conversion=True)

        if existing is not None:
            # Booking landed but the pointer did not: repair instead of creating a second one
            return self._reconcile(appointment, existing, agent_id)

        if final_price is None:
            if not self.appointments.quote_is_current(appointment):
                return ServiceResult.failure(
                    Outcome.STALE_QUOTE,
                    "No valid quote on this appointment; a final price is required",
                    quote_valid_until=(
                        appointment.quote_valid_until.isoformat() if appointment.quote_valid_until else None
                    ),
                )
            final_price = appointment.quoted_price

        price = to_money(final_price)
        if price <= 0:
            raise BookingValidationError("Final price must be positive")

        booking = self._build_booking(appointment, price, payment_method, customizations)
        self.db.add(booking)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Concurrent conversion detected for appointment {appointment_id}")
            return self._duplicate_after_race(appointment_id)

        result = self.db.execute(
            update(TripAppointment)
            .where(
                TripAppointment.id == appointment.id,
                TripAppointment.booking_id.is_(None),
                TripAppointment.status == AppointmentStatus.COMPLETED.value,
            )
            .values(
                booking_id=booking.id,
                status=AppointmentStatus.CONVERTED.value,
                converted_at=utcnow(),
                conversion_value=price,
                conversion_agent_id=agent_id,
                version=TripAppointment.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return self._duplicate_after_race(appointment_id)

        AuditService.log(
            self.db,
            action="APPOINTMENT_CONVERTED_TO_BOOKING",
            resource="appointment",
            resource_id=appointment.id,
            actor_id=agent_id,
            details={
                "booking_reference": booking.booking_reference,
                "final_price": str(price),
                "payment_method": payment_method,
            },
        )
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Appointment {appointment.appointment_reference} converted to {booking.booking_reference}")
        return ServiceResult.success(booking)

    def _build_booking(
            self,
            appointment: TripAppointment,
            price: Decimal,
            payment_method: Optional[str],
            customizations: Optional[List[Dict[str, Any]]]
    ) -> TripBooking:
        """Snapshot appointment data; later appointment edits must not reach the booking"""
        travelers = appointment.travelers or 1
        return TripBooking(
            id=uuid4(),
            booking_reference=trip_booking_reference(),
            customer_id=appointment.customer_id,
            appointment_id=appointment.id,
            trip_id=appointment.trip_id,
            trip_title=appointment.trip_title,
            destination=appointment.destination,
            duration_days=appointment.duration_days,
            duration_nights=appointment.duration_nights,
            contact_first_name=appointment.customer_first_name,
            contact_last_name=appointment.customer_last_name,
            contact_email=appointment.customer_email,
            contact_phone=appointment.customer_phone,
            traveler_count=travelers,
            travelers=[],
            base_price=price,
            price_per_person=to_money(price / travelers),
            customizations=copy.deepcopy(
                customizations if customizations is not None else (appointment.customizations or [])
            ),
            add_ons=[],
            discounts=[],
            subtotal=price,
            final_amount=price,
            currency=appointment.currency,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=BookingStatus.PENDING_PAYMENT.value,
            source="appointment",
        )

    def _duplicate(
            self,
            appointment: TripAppointment,
            booking: Optional[Booking]
    ) -> ServiceResult[TripBooking]:
        if booking is None and appointment.booking_id is not None:
            booking = self.db.get(Booking, appointment.booking_id)
        return ServiceResult.failure(
            Outcome.DUPLICATE_CONVERSION,
            "Appointment has already been converted",
            value=booking,
            booking_id=str(booking.id) if booking else None,
            booking_reference=booking.booking_reference if booking else None,
        )

    def _duplicate_after_race(self, appointment_id: UUID) -> ServiceResult[TripBooking]:
        self.db.expire_all()
        appointment = self.appointments.get_appointment(appointment_id)
        booking = self.booking_for_appointment(appointment_id)
        if booking is None and appointment.booking_id is None:
            raise InvalidStateTransition(appointment.status, AppointmentStatus.CONVERTED.value)
        return self._duplicate(appointment, booking)

    def _reconcile(
            self,
            appointment: TripAppointment,
            booking: Booking,
            agent_id: Optional[UUID]
    ) -> ServiceResult[TripBooking]:
        result = self.db.execute(
            update(TripAppointment)
            .where(TripAppointment.id == appointment.id, TripAppointment.booking_id.is_(None))
            .values(
                booking_id=booking.id,
                status=AppointmentStatus.CONVERTED.value,
                converted_at=utcnow(),
                conversion_value=booking.final_amount,
                conversion_agent_id=agent_id,
                version=TripAppointment.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return self._duplicate_after_race(appointment.id)

        AuditService.log(
            self.db,
            action="APPOINTMENT_CONVERSION_RECONCILED",
            resource="appointment",
            resource_id=appointment.id,
            actor_id=agent_id,
            details={"booking_reference": booking.booking_reference},
        )
        self.db.commit()
        self.db.refresh(booking)

        logger.warning(f"Reconciled conversion pointer of {appointment.appointment_reference}")
        return ServiceResult.success(booking, reconciled=True)

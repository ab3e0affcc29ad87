# ===== app/services/availability/availability_service.py =====
from datetime import date
from typing import List, Tuple
from uuid import UUID
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.exceptions import BookingValidationError
from app.models.availability import SlotReservation
import logging

logger = logging.getLogger(__name__)

# Consultation windows offered every day; labels must stay byte-identical for existing clients
SLOT_CATALOG: Tuple[str, ...] = (
    "09:00 AM - 10:00 AM",
    "10:30 AM - 11:30 AM",
    "12:00 PM - 01:00 PM",
    "02:00 PM - 03:00 PM",
    "03:30 PM - 04:30 PM",
    "05:00 PM - 06:00 PM",
)


class SlotScheduler:
    """
    Owns the daily slot catalog and the claims on it.

    A claim is a row in slot_reservations; the unique (slot_date, time_slot)
    constraint makes reserve() a single conditional write, so two concurrent
    claims on the same pair resolve to exactly one winner.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def validate_slot(time_slot: str) -> None:
        if time_slot not in SLOT_CATALOG:
            raise BookingValidationError(f"Unknown time slot '{time_slot}'")

    def booked_slots(self, slot_date: date) -> List[str]:
        """Slots currently claimed on a date"""
        rows = self.db.execute(
            select(SlotReservation.time_slot).where(SlotReservation.slot_date == slot_date)
        ).scalars().all()
        return list(rows)

    def available_slots(self, slot_date: date) -> List[str]:
        """Catalog order minus claimed slots"""
        booked = set(self.booked_slots(slot_date))
        return [slot for slot in SLOT_CATALOG if slot not in booked]

    def reserve(self, slot_date: date, time_slot: str, appointment_id: UUID) -> bool:
        """
        Claim (slot_date, time_slot) for an appointment.

        Returns False when the slot is already held. On False the session has
        been rolled back, so call this before any other pending change that
        must survive a lost race.
        """
        self.validate_slot(time_slot)

        self.db.add(SlotReservation(
            slot_date=slot_date,
            time_slot=time_slot,
            appointment_id=appointment_id,
        ))
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Slot {slot_date} {time_slot} already claimed")
            return False

        logger.debug(f"Reserved {slot_date} {time_slot} for appointment {appointment_id}")
        return True

    def release(self, slot_date: date, time_slot: str) -> None:
        """Drop the claim on a slot; releasing a free slot is a no-op"""
        self.db.execute(
            delete(SlotReservation).where(
                SlotReservation.slot_date == slot_date,
                SlotReservation.time_slot == time_slot,
            )
        )

    def release_for_appointment(self, appointment_id: UUID) -> None:
        """Drop whatever claim an appointment holds"""
        self.db.execute(
            delete(SlotReservation).where(SlotReservation.appointment_id == appointment_id)
        )

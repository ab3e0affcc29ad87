"""Tests for slot claims and appointment scheduling."""

import threading
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from app.core.exceptions import BookingValidationError, InvalidStateTransition
from app.core.outcomes import Outcome
from app.models import AppointmentStatus, SlotReservation
from app.services.appointment.appointment_service import AppointmentService
from app.services.availability.availability_service import SLOT_CATALOG, SlotScheduler
from tests.conftest import TEST_DATE, book_appointment

NOON = "12:00 PM - 01:00 PM"


class TestCatalog:
    def test_empty_day_offers_all_six_slots_in_order(self, db):
        scheduler = SlotScheduler(db)
        assert scheduler.available_slots(TEST_DATE) == list(SLOT_CATALOG)
        assert len(SLOT_CATALOG) == 6

    def test_labels_use_spaced_hyphen(self):
        assert SLOT_CATALOG[0] == "09:00 AM - 10:00 AM"
        assert SLOT_CATALOG[-1] == "05:00 PM - 06:00 PM"

    def test_unknown_slot_is_rejected(self, appointment_service):
        with pytest.raises(BookingValidationError):
            book_appointment(appointment_service, time_slot="07:00 AM - 08:00 AM")


class TestReservation:
    def test_booked_slot_disappears_from_availability(self, db, appointment_service):
        book_appointment(appointment_service, time_slot=NOON)
        available = SlotScheduler(db).available_slots(TEST_DATE)
        assert NOON not in available
        assert len(available) == 5

    def test_same_slot_other_day_is_free(self, db, appointment_service):
        book_appointment(appointment_service, time_slot=NOON)
        assert NOON in SlotScheduler(db).available_slots(date(2024, 6, 2))

    def test_second_claim_gets_slot_unavailable(self, appointment_service):
        book_appointment(appointment_service, time_slot=NOON)
        result = appointment_service.create_appointment(
            customer_id=uuid4(),
            first_name="Ada",
            last_name="Park",
            email="ada@example.com",
            phone="+15550101",
            trip_id=uuid4(),
            preferred_date=TEST_DATE,
            time_slot=NOON,
        )
        assert result.outcome == Outcome.SLOT_UNAVAILABLE
        assert NOON not in result.details["available_slots"]
        assert len(result.details["available_slots"]) == 5

    def test_losing_claim_leaves_no_appointment_behind(self, db, appointment_service):
        book_appointment(appointment_service, time_slot=NOON)
        appointment_service.create_appointment(
            customer_id=uuid4(),
            first_name="Ada",
            last_name="Park",
            email="ada@example.com",
            phone="+15550101",
            trip_id=uuid4(),
            preferred_date=TEST_DATE,
            time_slot=NOON,
        )
        total = db.execute(select(func.count()).select_from(SlotReservation)).scalar_one()
        listing = appointment_service.list_appointments()
        assert total == 1
        assert listing["total"] == 1

    def test_reference_has_appointment_prefix(self, appointment_service):
        appointment = book_appointment(appointment_service)
        assert appointment.appointment_reference.startswith("APT-")
        assert appointment.status == AppointmentStatus.SCHEDULED.value


class TestReleasing:
    def test_cancel_frees_the_slot(self, db, appointment_service):
        appointment = book_appointment(appointment_service, time_slot=NOON)
        appointment_service.cancel(appointment.id, reason="Change of plans")
        assert NOON in SlotScheduler(db).available_slots(TEST_DATE)

    def test_completion_frees_the_slot(self, db, appointment_service):
        appointment = book_appointment(appointment_service, time_slot=NOON)
        appointment_service.confirm(appointment.id)
        appointment_service.complete_consultation(appointment.id, agent_id=uuid4(), notes="Done")
        assert NOON in SlotScheduler(db).available_slots(TEST_DATE)

    def test_no_show_frees_the_slot(self, db, appointment_service):
        appointment = book_appointment(appointment_service, time_slot=NOON)
        appointment_service.mark_no_show(appointment.id)
        assert NOON in SlotScheduler(db).available_slots(TEST_DATE)

    def test_release_twice_is_harmless_and_scoped_to_its_date(self, db, appointment_service):
        next_day = date(2024, 6, 2)
        book_appointment(appointment_service, time_slot=NOON)
        book_appointment(appointment_service, preferred_date=next_day, time_slot=NOON)

        scheduler = SlotScheduler(db)
        scheduler.release(TEST_DATE, NOON)
        scheduler.release(TEST_DATE, NOON)
        db.commit()

        assert NOON in scheduler.available_slots(TEST_DATE)
        assert scheduler.booked_slots(next_day) == [NOON]


class TestReschedule:
    def test_moves_claim_to_new_slot(self, db, appointment_service):
        appointment = book_appointment(appointment_service, time_slot=SLOT_CATALOG[0])
        result = appointment_service.reschedule(appointment.id, TEST_DATE, NOON)

        assert result.ok
        moved = result.value
        assert moved.time_slot == NOON
        assert moved.status == AppointmentStatus.SCHEDULED.value
        assert moved.rescheduled_count == 1

        booked = SlotScheduler(db).booked_slots(TEST_DATE)
        assert booked == [NOON]

    def test_taken_target_keeps_original_slot(self, db, appointment_service):
        book_appointment(appointment_service, time_slot=NOON)
        appointment = book_appointment(appointment_service, time_slot=SLOT_CATALOG[0])

        result = appointment_service.reschedule(appointment.id, TEST_DATE, NOON)

        assert result.outcome == Outcome.SLOT_UNAVAILABLE
        reloaded = appointment_service.get_appointment(appointment.id)
        assert reloaded.time_slot == SLOT_CATALOG[0]
        assert sorted(SlotScheduler(db).booked_slots(TEST_DATE)) == sorted([NOON, SLOT_CATALOG[0]])

    def test_same_slot_is_rejected(self, appointment_service):
        appointment = book_appointment(appointment_service, time_slot=NOON)
        with pytest.raises(BookingValidationError):
            appointment_service.reschedule(appointment.id, TEST_DATE, NOON)

    def test_cancelled_appointment_cannot_reschedule(self, appointment_service):
        appointment = book_appointment(appointment_service, time_slot=NOON)
        appointment_service.cancel(appointment.id)
        with pytest.raises(InvalidStateTransition):
            appointment_service.reschedule(appointment.id, TEST_DATE, SLOT_CATALOG[1])


class TestConcurrentClaims:
    def test_exactly_one_of_many_claims_wins(self, file_session_factory, settings):
        workers = 8
        barrier = threading.Barrier(workers)
        outcomes = []
        errors = []
        lock = threading.Lock()

        def claim(index):
            session = file_session_factory()
            try:
                service = AppointmentService(session, settings=settings)
                barrier.wait()
                result = service.create_appointment(
                    customer_id=uuid4(),
                    first_name=f"Caller{index}",
                    last_name="Test",
                    email=f"caller{index}@example.com",
                    phone="+15550199",
                    trip_id=uuid4(),
                    preferred_date=TEST_DATE,
                    time_slot=NOON,
                )
                with lock:
                    outcomes.append(result.outcome)
            except Exception as exc:  # surfaced through the assertion below
                with lock:
                    errors.append(exc)
            finally:
                session.close()

        threads = [threading.Thread(target=claim, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert outcomes.count(Outcome.OK) == 1
        assert outcomes.count(Outcome.SLOT_UNAVAILABLE) == workers - 1

        session = file_session_factory()
        try:
            claims = session.execute(
                select(func.count()).select_from(SlotReservation).where(
                    SlotReservation.slot_date == TEST_DATE,
                    SlotReservation.time_slot == NOON,
                )
            ).scalar_one()
        finally:
            session.close()
        assert claims == 1

"""Tests for payments, refunds, cancellation and installments."""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from app.config.settings import Settings
from app.core.exceptions import BookingValidationError, InvalidStateTransition
from app.core.outcomes import Outcome
from app.models import BookingStatus, InstallmentStatus, PaymentStatus, PaymentTransaction
from app.services.booking.booking_service import BookingService, compute_trip_totals
from app.services.payment.payment_ledger import PaymentLedger


def make_booking(db, settings, price=Decimal("1200"), **kwargs):
    return BookingService(db, settings=settings).create_direct_booking(
        customer_id=kwargs.pop("customer_id", None) or uuid4(),
        first_name="Sam",
        last_name="Rivera",
        email="sam@example.com",
        phone="+15550100",
        price_per_person=price,
        payment_method=kwargs.pop("payment_method", "card"),
        **kwargs,
    )


@pytest.fixture
def ledger(db, settings):
    return PaymentLedger(db, settings=settings)


class TestTotals:
    def test_add_ons_customizations_and_discounts(self):
        totals = compute_trip_totals(
            Decimal("500"),
            2,
            add_ons=[{"name": "Insurance", "price": "40", "quantity": 2}],
            customizations=[{"name": "Sea view", "price": "120"}],
            discounts=[{"percentage": "10"}, {"amount": "20"}],
            taxes=Decimal("50"),
            fees=Decimal("15"),
        )
        assert totals["base_price"] == Decimal("1000.00")
        assert totals["subtotal"] == Decimal("1200.00")
        assert totals["total_discount"] == Decimal("140.00")
        assert totals["final_amount"] == Decimal("1125.00")

    def test_discount_is_clamped_to_subtotal(self):
        totals = compute_trip_totals(Decimal("100"), 1, discounts=[{"amount": "500"}])
        assert totals["total_discount"] == Decimal("100.00")
        assert totals["final_amount"] == Decimal("0.00")


class TestDirectBooking:
    def test_without_payment_method_is_draft(self, db, settings):
        booking = make_booking(db, settings, payment_method=None)
        assert booking.status == BookingStatus.DRAFT.value
        assert booking.booking_reference.startswith("TRV-")

    def test_with_payment_method_awaits_payment(self, db, settings):
        booking = make_booking(db, settings)
        assert booking.status == BookingStatus.PENDING_PAYMENT.value
        assert booking.final_amount == Decimal("1200.00")

    def test_end_before_start_is_rejected(self, db, settings):
        with pytest.raises(BookingValidationError):
            make_booking(db, settings, start_date=date(2024, 7, 10), end_date=date(2024, 7, 1))

    def test_listing_filters_by_customer_status_and_start(self, db, settings):
        customer = uuid4()
        early = make_booking(db, settings, customer_id=customer, start_date=date(2024, 7, 1))
        draft = make_booking(db, settings, customer_id=customer, payment_method=None, start_date=date(2024, 9, 1))
        make_booking(db, settings, start_date=date(2024, 7, 1))
        service = BookingService(db, settings=settings)

        mine = service.list_bookings(customer_id=customer)
        drafts = service.list_bookings(customer_id=customer, status=BookingStatus.DRAFT.value)
        summer = service.list_bookings(customer_id=customer, end_date=date(2024, 8, 1))

        assert mine["total"] == 2
        assert {b.id for b in mine["bookings"]} == {early.id, draft.id}
        assert [b.id for b in drafts["bookings"]] == [draft.id]
        assert [b.id for b in summer["bookings"]] == [early.id]
        assert service.list_bookings(booking_kind="corporate")["total"] == 0
        assert service.list_bookings(limit=2)["page"]["total_pages"] == 2


class TestPayments:
    def test_two_partial_payments_complete_the_booking(self, db, settings, ledger):
        booking = make_booking(db, settings)

        first = ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")
        assert first.ok
        assert first.value.payment_status == PaymentStatus.PARTIAL.value
        assert first.value.status == BookingStatus.PENDING_PAYMENT.value
        assert first.value.total_paid == Decimal("600.00")

        second = ledger.add_payment(booking.id, Decimal("600"), "card", "txn-2")
        assert second.ok
        assert second.value.payment_status == PaymentStatus.COMPLETED.value
        assert second.value.status == BookingStatus.CONFIRMED.value
        assert second.value.total_paid == Decimal("1200.00")
        assert second.value.balance == Decimal("0.00")
        assert len(second.value.transactions) == 2

    def test_overpayment_is_rejected_by_default(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.add_payment(booking.id, Decimal("1000"), "card", "txn-1")

        result = ledger.add_payment(booking.id, Decimal("300"), "card", "txn-2")

        assert result.outcome == Outcome.PAYMENT_OVERPAY
        assert result.details["balance"] == "200.00"
        assert ledger.get_balance(booking.id)["total_paid"] == Decimal("1000.00")
        assert db.query(PaymentTransaction).filter_by(transaction_id="txn-2").first() is None

    def test_credit_policy_keeps_excess_as_credit(self, db):
        credit_settings = Settings(DATABASE_URL="sqlite://", OVERPAYMENT_POLICY="credit", _env_file=None)
        booking = make_booking(db, credit_settings)
        ledger = PaymentLedger(db, settings=credit_settings)

        result = ledger.add_payment(booking.id, Decimal("1300"), "card", "txn-1")

        assert result.ok
        assert result.details["overpaid"] is True
        assert result.value.total_paid == Decimal("1200.00")
        assert result.value.credit_balance == Decimal("100.00")
        assert result.value.status == BookingStatus.CONFIRMED.value

    def test_unknown_overpayment_policy_is_refused_by_settings(self):
        with pytest.raises(ValidationError):
            Settings(DATABASE_URL="sqlite://", OVERPAYMENT_POLICY="bogus", _env_file=None)
        assert Settings(OVERPAYMENT_POLICY=" Credit ", _env_file=None).OVERPAYMENT_POLICY == "credit"

    def test_replayed_transaction_is_a_no_op(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")

        replay = ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")

        assert replay.ok
        assert replay.details["replayed"] is True
        assert replay.value.total_paid == Decimal("600.00")

    def test_transaction_id_from_another_booking(self, db, settings, ledger):
        first = make_booking(db, settings)
        second = make_booking(db, settings)
        ledger.add_payment(first.id, Decimal("100"), "card", "txn-shared")
        with pytest.raises(BookingValidationError):
            ledger.add_payment(second.id, Decimal("100"), "card", "txn-shared")

    def test_partial_confirmation_flag(self, db, settings, ledger):
        booking = make_booking(db, settings, allow_partial_confirmation=True)
        result = ledger.add_payment(booking.id, Decimal("300"), "card", "txn-1")
        assert result.value.status == BookingStatus.CONFIRMED.value
        assert result.value.payment_status == PaymentStatus.PARTIAL.value

    def test_draft_moves_to_pending_payment(self, db, settings, ledger):
        booking = make_booking(db, settings, payment_method=None)
        result = ledger.add_payment(booking.id, Decimal("300"), "bank-transfer", "txn-1")
        assert result.value.status == BookingStatus.PENDING_PAYMENT.value
        assert result.value.payment_method == "bank-transfer"

    def test_non_positive_amount(self, db, settings, ledger):
        booking = make_booking(db, settings)
        with pytest.raises(BookingValidationError):
            ledger.add_payment(booking.id, Decimal("0"), "card", "txn-1")

    def test_cancelled_booking_refuses_payment(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.cancel(booking.id, reason="Changed plans")
        with pytest.raises(InvalidStateTransition):
            ledger.add_payment(booking.id, Decimal("100"), "card", "txn-1")


class TestInstallments:
    def test_schedule_is_marked_paid_in_due_order(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.set_installment_schedule(booking.id, [
            {"due_date": date(2024, 8, 1), "amount": Decimal("600"), "description": "Balance"},
            {"due_date": date(2024, 7, 1), "amount": Decimal("600"), "description": "Deposit"},
        ])

        result = ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")

        installments = result.value.installments
        assert [i.description for i in installments] == ["Deposit", "Balance"]
        assert installments[0].status == InstallmentStatus.PAID.value
        assert installments[0].transaction_id == "txn-1"
        assert installments[1].status == InstallmentStatus.PENDING.value

    def test_schedule_cannot_exceed_booking_total(self, db, settings, ledger):
        booking = make_booking(db, settings)
        with pytest.raises(BookingValidationError):
            ledger.set_installment_schedule(booking.id, [
                {"due_date": date(2024, 7, 1), "amount": Decimal("700")},
                {"due_date": date(2024, 8, 1), "amount": Decimal("700")},
            ])

    def test_replacing_schedule_drops_old_items(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.set_installment_schedule(booking.id, [{"due_date": date(2024, 7, 1), "amount": Decimal("1200")}])
        updated = ledger.set_installment_schedule(booking.id, [
            {"due_date": date(2024, 7, 1), "amount": Decimal("400")},
            {"due_date": date(2024, 8, 1), "amount": Decimal("800")},
        ])
        assert [i.amount for i in updated.installments] == [Decimal("400.00"), Decimal("800.00")]


class TestCancellationAndRefunds:
    def test_confirmed_booking_cannot_be_cancelled(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.add_payment(booking.id, Decimal("1200"), "card", "txn-1")
        with pytest.raises(InvalidStateTransition):
            ledger.cancel(booking.id)

    def test_refund_after_cancellation(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")
        cancelled = ledger.cancel(booking.id, reason="Visa denied")
        assert cancelled.status == BookingStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Visa denied"

        partial = ledger.record_refund(booking.id, Decimal("200"), "rfd-1")
        assert partial.status == BookingStatus.CANCELLED.value
        assert partial.refund_amount == Decimal("200.00")

        full = ledger.record_refund(booking.id, Decimal("400"), "rfd-2")
        assert full.status == BookingStatus.REFUNDED.value
        assert full.payment_status == PaymentStatus.REFUNDED.value

    def test_refund_cannot_exceed_paid_amount(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")
        ledger.cancel(booking.id)
        with pytest.raises(BookingValidationError):
            ledger.record_refund(booking.id, Decimal("700"), "rfd-1")

    def test_refund_requires_cancellation(self, db, settings, ledger):
        booking = make_booking(db, settings)
        ledger.add_payment(booking.id, Decimal("600"), "card", "txn-1")
        with pytest.raises(InvalidStateTransition):
            ledger.record_refund(booking.id, Decimal("100"), "rfd-1")


class TestConcurrentPayments:
    def test_parallel_payments_sum_exactly(self, file_session_factory, settings):
        setup = file_session_factory()
        booking_id = make_booking(setup, settings).id
        setup.close()

        workers = 4
        barrier = threading.Barrier(workers)
        outcomes = []
        errors = []
        lock = threading.Lock()

        def pay(index):
            session = file_session_factory()
            try:
                ledger = PaymentLedger(session, settings=settings)
                barrier.wait()
                result = ledger.add_payment(booking_id, Decimal("300"), "card", f"txn-{index}")
                with lock:
                    outcomes.append(result.outcome)
            except Exception as exc:  # surfaced through the assertion below
                with lock:
                    errors.append(exc)
            finally:
                session.close()

        threads = [threading.Thread(target=pay, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert outcomes.count(Outcome.OK) == workers

        session = file_session_factory()
        try:
            balance = PaymentLedger(session, settings=settings).get_balance(booking_id)
        finally:
            session.close()
        assert balance["total_paid"] == Decimal("1200.00")
        assert balance["payment_status"] == PaymentStatus.COMPLETED.value

    def test_cancel_landing_mid_payment_is_not_overwritten(self, file_session_factory, settings):
        setup = file_session_factory()
        booking_id = make_booking(setup, settings).id
        setup.close()

        class CancelsFirst(PaymentLedger):
            """Cancels the booking from another session right after the first read"""
            cancelled = False

            def _status_after_payment(self, booking, fully_paid):
                if not self.cancelled:
                    self.cancelled = True
                    other = file_session_factory()
                    try:
                        PaymentLedger(other, settings=settings).cancel(booking_id, reason="Called off")
                    finally:
                        other.close()
                return PaymentLedger._status_after_payment(booking, fully_paid)

        session = file_session_factory()
        try:
            with pytest.raises(InvalidStateTransition):
                CancelsFirst(session, settings=settings).add_payment(
                    booking_id, Decimal("1200"), "card", "txn-late"
                )
        finally:
            session.close()

        session = file_session_factory()
        try:
            ledger = PaymentLedger(session, settings=settings)
            booking = ledger.get_booking(booking_id)
            assert booking.status == BookingStatus.CANCELLED.value
            assert booking.total_paid == Decimal("0.00")
            assert ledger.find_transaction("txn-late") is None
        finally:
            session.close()

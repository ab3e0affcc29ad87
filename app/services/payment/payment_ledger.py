# ============================================================================
# app/services/payment/payment_ledger.py
# ============================================================================
"""Payments, refunds, cancellation and installment schedules for bookings"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.settings import Settings, get_settings
from app.core.exceptions import BookingValidationError, EntityNotFound, InvalidStateTransition
from app.core.outcomes import Outcome, ServiceResult
from app.models.booking import (
    CANCELLABLE_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    InstallmentStatus,
    PaymentInstallment,
    PaymentStatus,
    PaymentTransaction,
    TransactionKind,
)
from app.models.corporate_booking import APPROVED_STATUSES, ApprovalStatus, CorporateBooking
from app.services.audit.audit_service import AuditService
from app.services.corporate.budget_service import BudgetService
from app.utils.money import to_money
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

MAX_INCREMENT_ATTEMPTS = 5


class PaymentLedger:
    """
    Append-only transaction log per booking.

    `total_paid` only moves through a conditional UPDATE that re-checks the
    total and status it was computed from, and transaction ids are unique, so
    concurrent or replayed payments cannot double-count or revive a booking
    that was cancelled in between.
    """

    def __init__(
            self,
            db: Session,
            budget: Optional[BudgetService] = None,
            settings: Optional[Settings] = None
    ):
        self.db = db
        self.budget = budget or BudgetService(db)
        self.settings = settings or get_settings()

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if not booking:
            raise EntityNotFound("Booking", booking_id)
        return booking

    def find_transaction(self, transaction_id: str) -> Optional[PaymentTransaction]:
        return self.db.execute(
            select(PaymentTransaction).where(PaymentTransaction.transaction_id == transaction_id)
        ).scalars().first()

    def get_balance(self, booking_id: UUID) -> Dict[str, Any]:
        booking = self.get_booking(booking_id)
        return {
            "booking_id": str(booking.id),
            "final_amount": to_money(booking.final_amount),
            "total_paid": to_money(booking.total_paid),
            "balance": to_money(booking.balance),
            "credit_balance": to_money(booking.credit_balance),
            "refund_amount": to_money(booking.refund_amount),
            "payment_status": booking.payment_status,
        }

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(
            self,
            booking_id: UUID,
            amount: Decimal,
            method: str,
            transaction_id: str,
            processed_by: Optional[UUID] = None,
            notes: Optional[str] = None
    ) -> ServiceResult[Booking]:
        amount = to_money(amount)
        if amount <= 0:
            raise BookingValidationError("Payment amount must be positive")

        replay = self._replayed(booking_id, transaction_id)
        if replay is not None:
            return replay

        for _ in range(MAX_INCREMENT_ATTEMPTS):
            booking = self.get_booking(booking_id)
            self._ensure_payable(booking)

            paid_before = to_money(booking.total_paid)
            final_amount = to_money(booking.final_amount)
            balance = final_amount - paid_before

            credited = Decimal("0")
            if amount > balance:
                if self.settings.OVERPAYMENT_POLICY == "reject":
                    return ServiceResult.failure(
                        Outcome.PAYMENT_OVERPAY,
                        f"Payment of {amount} exceeds outstanding balance {balance}",
                        value=booking,
                        balance=str(balance),
                    )
                credited = amount - balance

            paid_after = paid_before + amount - credited
            fully_paid = paid_after >= final_amount
            status = self._status_after_payment(booking, fully_paid)

            self.db.add(PaymentTransaction(
                id=uuid4(),
                booking_id=booking.id,
                transaction_id=transaction_id,
                kind=TransactionKind.PAYMENT.value,
                amount=amount,
                method=method,
                status="completed",
                processed_at=utcnow(),
                processed_by=processed_by,
                notes=notes,
            ))
            try:
                self.db.flush()
            except IntegrityError:
                self.db.rollback()
                replay = self._replayed(booking_id, transaction_id)
                if replay is not None:
                    return replay
                raise

            values = {
                "total_paid": paid_after,
                "payment_status": (PaymentStatus.COMPLETED if fully_paid else PaymentStatus.PARTIAL).value,
                "status": status,
                "updated_at": utcnow(),
            }
            if credited:
                values["credit_balance"] = Booking.__table__.c.credit_balance + credited
            if method and not booking.payment_method:
                values["payment_method"] = method

            result = self.db.execute(
                update(Booking.__table__)
                .where(
                    Booking.__table__.c.id == booking.id,
                    Booking.__table__.c.total_paid == paid_before,
                    Booking.__table__.c.status == booking.status,
                )
                .values(**values)
            )
            if result.rowcount == 1:
                break

            # Another payment or a cancellation got there first; start over from fresh state
            self.db.rollback()
            logger.debug(f"Retrying payment {transaction_id} on {booking.booking_reference}")
        else:
            raise InvalidStateTransition("contended", "payment", entity="booking")

        self._mark_installments(booking, paid_after, transaction_id)

        AuditService.log(
            self.db,
            action="PAYMENT_RECORDED",
            resource="booking",
            resource_id=booking.id,
            actor_id=processed_by,
            details={
                "transaction_id": transaction_id,
                "amount": str(amount),
                "method": method,
                "credited": str(credited),
            },
        )
        self.db.commit()
        self.db.refresh(booking)

        if credited:
            logger.warning(f"Overpayment of {credited} on {booking.booking_reference} kept as credit")
        logger.info(f"Payment {transaction_id} of {amount} recorded on {booking.booking_reference}")
        return ServiceResult.success(booking, credited=str(credited), overpaid=bool(credited))

    def _replayed(self, booking_id: UUID, transaction_id: str) -> Optional[ServiceResult[Booking]]:
        existing = self.find_transaction(transaction_id)
        if existing is None:
            return None
        if existing.booking_id != booking_id:
            raise BookingValidationError(f"Transaction {transaction_id} belongs to another booking")
        booking = self.get_booking(booking_id)
        logger.info(f"Ignoring replayed transaction {transaction_id}")
        return ServiceResult.success(booking, replayed=True)

    @staticmethod
    def _ensure_payable(booking: Booking) -> None:
        if isinstance(booking, CorporateBooking) and booking.approval_status not in APPROVED_STATUSES:
            raise InvalidStateTransition(booking.approval_status, "payment", entity="approval")
        if booking.status in TERMINAL_BOOKING_STATUSES:
            raise InvalidStateTransition(booking.status, "payment", entity="booking")

    @staticmethod
    def _status_after_payment(booking: Booking, fully_paid: bool) -> str:
        if fully_paid:
            return BookingStatus.CONFIRMED.value
        if booking.allow_partial_confirmation:
            return BookingStatus.CONFIRMED.value
        if booking.status == BookingStatus.DRAFT.value:
            return BookingStatus.PENDING_PAYMENT.value
        return booking.status

    def _mark_installments(self, booking: Booking, paid_total: Decimal, transaction_id: str) -> None:
        """Installments are covered in due order by the cumulative amount paid"""
        installments = self.db.execute(
            select(PaymentInstallment)
            .where(PaymentInstallment.booking_id == booking.id)
            .order_by(PaymentInstallment.due_date, PaymentInstallment.sequence)
        ).scalars().all()

        covered = Decimal("0")
        for installment in installments:
            covered += to_money(installment.amount)
            if covered > paid_total:
                break
            if installment.status != InstallmentStatus.PAID.value:
                installment.status = InstallmentStatus.PAID.value
                installment.paid_date = utcnow()
                installment.transaction_id = transaction_id

    # ------------------------------------------------------------------
    # Cancellation and refunds
    # ------------------------------------------------------------------

    def cancel(
            self,
            booking_id: UUID,
            reason: Optional[str] = None,
            requested_by: Optional[UUID] = None
    ) -> Booking:
        """
        Cancel a booking that has not been confirmed yet. Corporate budget
        deductions are returned; money already collected is refunded separately.
        """
        booking = self.get_booking(booking_id)
        if booking.status not in CANCELLABLE_STATUSES:
            raise InvalidStateTransition(booking.status, BookingStatus.CANCELLED.value, entity="booking")

        table = Booking.__table__
        result = self.db.execute(
            update(table)
            .where(
                table.c.id == booking.id,
                table.c.status.in_([s.value for s in CANCELLABLE_STATUSES]),
            )
            .values(
                status=BookingStatus.CANCELLED.value,
                cancellation_reason=reason,
                cancelled_at=utcnow(),
                cancelled_by=requested_by,
                updated_at=utcnow(),
            )
        )
        if result.rowcount != 1:
            self.db.rollback()
            current = self.get_booking(booking_id)
            raise InvalidStateTransition(current.status, BookingStatus.CANCELLED.value, entity="booking")

        if isinstance(booking, CorporateBooking):
            corporate = CorporateBooking.__table__
            self.db.execute(
                update(corporate)
                .where(
                    corporate.c.id == booking.id,
                    corporate.c.approval_status == ApprovalStatus.PENDING.value,
                )
                .values(approval_status=ApprovalStatus.CANCELLED.value)
            )
            self.budget.restore_for_booking(booking)

        AuditService.log(
            self.db,
            action="BOOKING_CANCELLED",
            resource="booking",
            resource_id=booking.id,
            actor_id=requested_by,
            details={"reason": reason, "total_paid": str(to_money(booking.total_paid))},
        )
        self.db.commit()
        self.db.expire(booking)
        self.db.refresh(booking)

        logger.info(f"Booking {booking.booking_reference} cancelled")
        return booking

    def record_refund(
            self,
            booking_id: UUID,
            amount: Decimal,
            transaction_id: str,
            reason: Optional[str] = None,
            processed_by: Optional[UUID] = None
    ) -> Booking:
        """Record money returned on a cancelled booking; fully refunded bookings become `refunded`"""
        amount = to_money(amount)
        if amount <= 0:
            raise BookingValidationError("Refund amount must be positive")

        existing = self.find_transaction(transaction_id)
        if existing is not None:
            if existing.booking_id != booking_id or existing.kind != TransactionKind.REFUND.value:
                raise BookingValidationError(f"Transaction {transaction_id} already recorded")
            return self.get_booking(booking_id)

        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.CANCELLED.value:
            raise InvalidStateTransition(booking.status, BookingStatus.REFUNDED.value, entity="booking")

        refunded_before = to_money(booking.refund_amount)
        paid = to_money(booking.total_paid)
        if refunded_before + amount > paid:
            raise BookingValidationError(f"Refund exceeds refundable amount {paid - refunded_before}")

        self.db.add(PaymentTransaction(
            id=uuid4(),
            booking_id=booking.id,
            transaction_id=transaction_id,
            kind=TransactionKind.REFUND.value,
            amount=amount,
            status="completed",
            processed_at=utcnow(),
            processed_by=processed_by,
            notes=reason,
        ))
        self.db.flush()

        refunded_after = refunded_before + amount
        values = {"refund_amount": refunded_after, "updated_at": utcnow()}
        if refunded_after >= paid:
            values["status"] = BookingStatus.REFUNDED.value
            values["payment_status"] = PaymentStatus.REFUNDED.value

        table = Booking.__table__
        result = self.db.execute(
            update(table)
            .where(table.c.id == booking.id, table.c.refund_amount == refunded_before)
            .values(**values)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise InvalidStateTransition("contended", "refund", entity="booking")

        AuditService.log(
            self.db,
            action="REFUND_RECORDED",
            resource="booking",
            resource_id=booking.id,
            actor_id=processed_by,
            details={"transaction_id": transaction_id, "amount": str(amount), "reason": reason},
        )
        self.db.commit()
        self.db.expire(booking)
        self.db.refresh(booking)

        logger.info(f"Refund {transaction_id} of {amount} recorded on {booking.booking_reference}")
        return booking

    # ------------------------------------------------------------------
    # Installments
    # ------------------------------------------------------------------

    def set_installment_schedule(self, booking_id: UUID, items: List[Dict[str, Any]]) -> Booking:
        """
        Replace the booking's installment plan. Each item holds `due_date`,
        `amount` and an optional `description`; overdue marking is left to
        whoever owns the calendar.
        """
        booking = self.get_booking(booking_id)
        if booking.status in TERMINAL_BOOKING_STATUSES:
            raise InvalidStateTransition(booking.status, "installments", entity="booking")

        total = Decimal("0")
        for item in items:
            amount = to_money(item["amount"])
            if amount <= 0:
                raise BookingValidationError("Installment amounts must be positive")
            if not isinstance(item["due_date"], date):
                raise BookingValidationError("Installment due_date must be a date")
            total += amount
        if total > to_money(booking.final_amount):
            raise BookingValidationError(
                f"Installments total {total} exceeds booking amount {to_money(booking.final_amount)}"
            )

        booking.installments.clear()
        self.db.flush()

        ordered = sorted(items, key=lambda item: item["due_date"])
        for sequence, item in enumerate(ordered, start=1):
            booking.installments.append(PaymentInstallment(
                id=uuid4(),
                sequence=sequence,
                due_date=item["due_date"],
                amount=to_money(item["amount"]),
                description=item.get("description"),
                status=InstallmentStatus.PENDING.value,
            ))
        self.db.flush()
        self._mark_installments(booking, to_money(booking.total_paid), transaction_id=None)

        AuditService.log(
            self.db,
            action="INSTALLMENTS_SCHEDULED",
            resource="booking",
            resource_id=booking.id,
            details={"count": len(items), "total": str(total)},
        )
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Installment schedule of {len(items)} set on {booking.booking_reference}")
        return booking

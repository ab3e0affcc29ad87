# ===== app/models/booking.py =====
from sqlalchemy import (
    Column, String, Integer, Text, DateTime, Date, Boolean, Numeric, JSON, ForeignKey, Uuid
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from decimal import Decimal
import enum
import uuid

from app.models.base import Base


class BookingStatus(str, enum.Enum):
    """Booking workflow states shared by trip and corporate bookings."""
    DRAFT = "draft"
    PENDING_PAYMENT = "pending-payment"
    PENDING_APPROVAL = "pending-approval"    # Corporate only
    APPROVED = "approved"                    # Corporate only
    REJECTED = "rejected"                    # Corporate only
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


TERMINAL_BOOKING_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.REFUNDED,
    BookingStatus.REJECTED,
})

# States in which no money has been collected yet and the booking can be cancelled
CANCELLABLE_STATUSES = frozenset({
    BookingStatus.DRAFT,
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.PENDING_APPROVAL,
    BookingStatus.APPROVED,
})


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class TransactionKind(str, enum.Enum):
    PAYMENT = "payment"
    REFUND = "refund"


class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"  # set by an external sweep, never by the ledger


class Booking(Base):
    """Base booking row; trip and corporate bookings specialize it"""
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_reference = Column(String(32), nullable=False, unique=True, index=True)
    booking_kind = Column(String(20), nullable=False)

    customer_id = Column(Uuid, nullable=True, index=True)
    appointment_id = Column(
        Uuid, ForeignKey("trip_appointments.id"), nullable=True, unique=True
    )

    # Trip snapshot (copied, never live-linked)
    trip_id = Column(Uuid, nullable=True)
    trip_title = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)
    duration_days = Column(Integer, nullable=True)
    duration_nights = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    # Primary contact + travelers
    contact_first_name = Column(String(100), nullable=True)
    contact_last_name = Column(String(100), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(30), nullable=True)
    traveler_count = Column(Integer, nullable=False, default=1)
    travelers = Column(JSON, default=list)

    status = Column(String(20), nullable=False, default=BookingStatus.DRAFT.value, index=True)

    # Pricing
    base_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    price_per_person = Column(Numeric(12, 2), nullable=True)
    add_ons = Column(JSON, default=list)
    customizations = Column(JSON, default=list)
    discounts = Column(JSON, default=list)
    subtotal = Column(Numeric(12, 2), nullable=True)
    taxes = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    fees = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    final_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    # Payment
    payment_method = Column(String(30), nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    total_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    credit_balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    refund_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    payment_deadline = Column(DateTime(timezone=True), nullable=True)
    allow_partial_confirmation = Column(Boolean, nullable=False, default=False)

    # Cancellation
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Uuid, nullable=True)

    source = Column(String(20), nullable=False, default="website")
    internal_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    transactions = relationship(
        "PaymentTransaction",
        back_populates="booking",
        order_by="PaymentTransaction.processed_at",
        cascade="all, delete-orphan",
    )
    installments = relationship(
        "PaymentInstallment",
        back_populates="booking",
        order_by="PaymentInstallment.sequence",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {
        "polymorphic_on": booking_kind,
        "polymorphic_identity": "booking",
    }

    @property
    def balance(self) -> Decimal:
        return Decimal(self.final_amount) - Decimal(self.total_paid or 0)


class TripBooking(Booking):
    """Consumer trip booking, created directly or converted from an appointment"""
    __mapper_args__ = {"polymorphic_identity": "trip"}


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_id = Column(String(100), nullable=False, unique=True)
    kind = Column(String(10), nullable=False, default=TransactionKind.PAYMENT.value)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(30), nullable=True)
    status = Column(String(20), nullable=False, default="completed")
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_by = Column(Uuid, nullable=True)
    notes = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="transactions")


class PaymentInstallment(Base):
    __tablename__ = "payment_installments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=True)
    status = Column(String(10), nullable=False, default=InstallmentStatus.PENDING.value)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    booking = relationship("Booking", back_populates="installments")

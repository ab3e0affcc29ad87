# ===== app/models/appointment.py =====
from sqlalchemy import (
    Column, String, Integer, Text, DateTime, Date, Boolean, Numeric, JSON, Uuid
)
from sqlalchemy.sql import func
import enum
import uuid

from app.models.base import Base


class AppointmentStatus(str, enum.Enum):
    """Lifecycle states of a consultation appointment."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"      # Call is happening
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"      # Legacy rows; behaves like scheduled
    CONVERTED = "converted"


# Statuses that hold a slot claim
OCCUPYING_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.RESCHEDULED,
    AppointmentStatus.IN_PROGRESS,
})

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.CONVERTED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})


class CustomerInterest(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NOT_INTERESTED = "not-interested"


class TripAppointment(Base):
    __tablename__ = "trip_appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_reference = Column(String(32), nullable=False, unique=True, index=True)

    # Owner
    customer_id = Column(Uuid, nullable=False, index=True)
    customer_first_name = Column(String(100), nullable=False)
    customer_last_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(30), nullable=False)
    travelers = Column(Integer, nullable=False, default=1)

    # Trip intent
    trip_id = Column(Uuid, nullable=False)
    trip_title = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)
    duration_days = Column(Integer, nullable=True)
    duration_nights = Column(Integer, nullable=True)
    estimated_price = Column(Numeric(12, 2), nullable=True)
    estimated_total = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")

    # Schedule
    preferred_date = Column(Date, nullable=False)
    time_slot = Column(String(40), nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")
    rescheduled_count = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value, index=True)

    # Consultation outcome
    assigned_agent_id = Column(Uuid, nullable=True, index=True)
    call_duration_minutes = Column(Integer, nullable=True)
    call_notes = Column(Text, nullable=True)
    customer_interest = Column(String(20), nullable=True)
    follow_up_required = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(Date, nullable=True)
    customizations = Column(JSON, default=list)
    quoted_price = Column(Numeric(12, 2), nullable=True)
    quote_valid_until = Column(DateTime(timezone=True), nullable=True)

    # Conversion pointer, set once through a conditional update
    booking_id = Column(Uuid, nullable=True, unique=True)
    converted_at = Column(DateTime(timezone=True), nullable=True)
    conversion_value = Column(Numeric(12, 2), nullable=True)
    conversion_agent_id = Column(Uuid, nullable=True)

    special_requests = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    source = Column(String(20), nullable=False, default="website")  # website, mobile-app, admin, api

    # Optimistic lock: every ORM update is conditional on the version it read
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    @property
    def customer_full_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}"

    @property
    def is_terminal(self) -> bool:
        return AppointmentStatus(self.status) in TERMINAL_STATUSES

# ===== app/models/corporate_booking.py =====
from sqlalchemy import Column, String, Text, DateTime, Date, Boolean, Numeric, JSON, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import enum

from app.models.booking import Booking


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto-approved"
    CANCELLED = "cancelled"  # booking cancelled before a decision


APPROVED_STATUSES = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.AUTO_APPROVED})


class CorporateBookingType(str, enum.Enum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    PACKAGE = "package"
    TRIP = "trip"
    MULTI_CITY = "multi-city"
    GROUP = "group"


class CorporateBooking(Booking):
    """Booking made on behalf of a company, gated by department budget and approval rules"""
    __tablename__ = "corporate_bookings"

    id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    booked_by_id = Column(Uuid, ForeignKey("corporate_members.id"), nullable=False, index=True)
    corporate_type = Column(String(20), nullable=False)

    department = Column(String(100), nullable=False, index=True)
    project = Column(String(200), nullable=True)
    cost_center = Column(String(100), nullable=True)
    purpose = Column(String(50), nullable=False, default="other")
    purpose_description = Column(Text, nullable=True)

    # Approval sub-record
    approval_required = Column(Boolean, nullable=False, default=True)
    approval_status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value, index=True)
    approver_id = Column(Uuid, ForeignKey("corporate_members.id"), nullable=True)
    approval_decided_at = Column(DateTime(timezone=True), nullable=True)
    approval_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    approval_limit_consulted = Column(Numeric(12, 2), nullable=True)

    # Budget sub-record
    budget_allocated = Column(Numeric(12, 2), nullable=True)
    budget_spent_before = Column(Numeric(12, 2), nullable=True)
    budget_spent_after = Column(Numeric(12, 2), nullable=True)
    budget_deducted = Column(Numeric(12, 2), nullable=True)
    budget_released_at = Column(DateTime(timezone=True), nullable=True)
    budget_exceeds_limit = Column(Boolean, nullable=False, default=False)

    # Corporate discount breakdown
    discount_type = Column(String(20), nullable=True)
    discount_value = Column(Numeric(12, 2), nullable=True)
    booking_details = Column(JSON, default=dict)

    departure_date = Column(Date, nullable=True)
    return_date = Column(Date, nullable=True)

    booked_by = relationship("CorporateMember", foreign_keys=[booked_by_id])
    approver = relationship("CorporateMember", foreign_keys=[approver_id])

    __mapper_args__ = {"polymorphic_identity": "corporate"}

# app/models/__init__.py
from .base import Base
from .appointment import TripAppointment, AppointmentStatus, CustomerInterest
from .availability import SlotReservation
from .booking import (
    Booking,
    TripBooking,
    BookingStatus,
    PaymentStatus,
    PaymentTransaction,
    PaymentInstallment,
    TransactionKind,
    InstallmentStatus,
)
from .company import Company, CorporateMember, CorporateRate, DepartmentBudget, DiscountType, MemberRole
from .corporate_booking import CorporateBooking, ApprovalStatus, CorporateBookingType
from .audit_log import AuditLog

__all__ = [
    "Base",
    "TripAppointment",
    "AppointmentStatus",
    "CustomerInterest",
    "SlotReservation",
    "Booking",
    "TripBooking",
    "BookingStatus",
    "PaymentStatus",
    "PaymentTransaction",
    "PaymentInstallment",
    "TransactionKind",
    "InstallmentStatus",
    "Company",
    "CorporateMember",
    "CorporateRate",
    "DepartmentBudget",
    "DiscountType",
    "MemberRole",
    "CorporateBooking",
    "ApprovalStatus",
    "CorporateBookingType",
    "AuditLog",
]

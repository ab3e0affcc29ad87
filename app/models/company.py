# app/models/company.py
"""
Company, travel policy and budget models used by corporate bookings
"""
from sqlalchemy import (
    Column, String, Boolean, DateTime, Numeric, ForeignKey, UniqueConstraint, Index, Uuid
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from decimal import Decimal
import enum
import uuid

from app.models.base import Base


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class MemberRole(str, enum.Enum):
    EMPLOYEE = "corporate-user"
    MANAGER = "corporate-manager"
    ADMIN = "corporate-admin"


class Company(Base):
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="USD")

    # Travel policy
    require_approval = Column(Boolean, nullable=False, default=True)
    budget_controls_enabled = Column(Boolean, nullable=False, default=True)

    status = Column(String(20), nullable=False, default="active")  # active, suspended, pending

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members = relationship("CorporateMember", back_populates="company")
    rates = relationship("CorporateRate", back_populates="company")
    budgets = relationship("DepartmentBudget", back_populates="company")


class CorporateMember(Base):
    """Employee view of the external user directory: company, department and approval rights"""
    __tablename__ = "corporate_members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    department = Column(String(100), nullable=True)
    designation = Column(String(100), nullable=True)
    role = Column(String(30), nullable=False, default=MemberRole.EMPLOYEE.value)

    can_approve = Column(Boolean, nullable=False, default=False)
    approval_limit = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    is_active = Column(Boolean, nullable=False, default=True)

    company = relationship("Company", back_populates="members")


class CorporateRate(Base):
    """Negotiated discount for one booking category over a validity window"""
    __tablename__ = "corporate_rates"
    __table_args__ = (
        Index("ix_corporate_rates_lookup", "company_id", "category", "valid_from", "valid_to"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False)
    vendor = Column(String(200), nullable=True)
    category = Column(String(20), nullable=False)  # flight, hotel, car, package, trip
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_to = Column(DateTime(timezone=True), nullable=False)
    conditions = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    company = relationship("Company", back_populates="rates")


class DepartmentBudget(Base):
    """Annual allocation and cumulative spend for one company department"""
    __tablename__ = "department_budgets"
    __table_args__ = (
        UniqueConstraint("company_id", "department", name="uq_department_budget"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False)
    department = Column(String(100), nullable=False)
    annual_budget = Column(Numeric(12, 2), nullable=False)
    spent_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False, default="USD")

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="budgets")

    @property
    def remaining(self) -> Decimal:
        return Decimal(self.annual_budget) - Decimal(self.spent_amount or 0)

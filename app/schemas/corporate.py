"""
Pydantic schemas for corporate bookings, approvals and budgets
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List, Any, Literal
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from app.models.corporate_booking import CorporateBookingType
from app.schemas.appointment import PageInfo
from app.schemas.booking import BookingResponse


class CorporateTraveler(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    is_primary: bool = False

    class Config:
        extra = "allow"


class PricingInputs(BaseModel):
    """Catalog price resolved by the caller; nights only matter for hotels"""
    unit_price: Decimal = Field(..., ge=0)
    nights: Optional[int] = Field(None, ge=1)

    class Config:
        extra = "allow"


class CorporateBookingRequest(BaseModel):
    company_id: UUID
    department: str = Field(..., min_length=1, max_length=100)
    booking_type: CorporateBookingType
    pricing: PricingInputs
    travelers: List[CorporateTraveler] = Field(..., min_length=1)

    purpose: str = Field("other", max_length=50)
    purpose_description: Optional[str] = None
    project: Optional[str] = Field(None, max_length=200)
    cost_center: Optional[str] = Field(None, max_length=100)
    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    payment_method: str = Field("corporate-card", max_length=30)
    budget_override: bool = False

    @field_validator('return_date')
    @classmethod
    def validate_return_date(cls, v, info):
        departure = info.data.get('departure_date')
        if v is not None and departure is not None and v < departure:
            raise ValueError('Return date precedes departure date')
        return v


class ApprovalDecisionRequest(BaseModel):
    decision: Literal["approve", "reject"]
    notes: Optional[str] = None
    reason: Optional[str] = None


class CorporateBookingResponse(BookingResponse):
    company_id: UUID
    booked_by_id: UUID
    corporate_type: str
    department: str
    project: Optional[str] = None
    cost_center: Optional[str] = None
    purpose: str

    approval_required: bool
    approval_status: str
    approver_id: Optional[UUID] = None
    approval_decided_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    rejection_reason: Optional[str] = None

    budget_allocated: Optional[Decimal] = None
    budget_spent_before: Optional[Decimal] = None
    budget_spent_after: Optional[Decimal] = None
    budget_deducted: Optional[Decimal] = None
    budget_released_at: Optional[datetime] = None

    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    travelers: List[Dict[str, Any]] = Field(default_factory=list)


class CorporateBookingCreated(BaseModel):
    success: bool = True
    requires_approval: bool
    booking: CorporateBookingResponse
    pricing: Dict[str, Any]


class BudgetStatusResponse(BaseModel):
    company_id: UUID
    department: str
    constrained: bool
    allocated: Optional[Decimal] = None
    spent: Optional[Decimal] = None
    remaining: Optional[Decimal] = None


class CorporateBookingListResponse(BaseModel):
    total: int
    page: PageInfo
    bookings: List[CorporateBookingResponse]

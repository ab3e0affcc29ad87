"""
Pydantic schemas for trip bookings, payments and installments
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List, Any
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from app.schemas.appointment import PageInfo


# ============================================================================
# Request Schemas
# ============================================================================

class LineItem(BaseModel):
    """Add-on or customization priced on top of the trip"""
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(1, ge=1)

    class Config:
        extra = "allow"


class DiscountItem(BaseModel):
    """Either a percentage of the subtotal or a fixed amount"""
    code: Optional[str] = None
    percentage: Optional[Decimal] = Field(None, gt=0, le=100)
    amount: Optional[Decimal] = Field(None, gt=0)

    @field_validator('amount')
    @classmethod
    def validate_one_kind(cls, v, info):
        if v is not None and info.data.get('percentage') is not None:
            raise ValueError('A discount is either a percentage or an amount, not both')
        return v


class DirectBookingRequest(BaseModel):
    """Booking that skips the consultation"""
    trip_id: Optional[UUID] = None
    trip_title: Optional[str] = None
    destination: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255)
    phone: str = Field(..., min_length=7, max_length=30)

    price_per_person: Decimal = Field(..., gt=0)
    traveler_count: int = Field(1, ge=1, le=50)
    travelers: List[Dict[str, Any]] = Field(default_factory=list)
    add_ons: List[LineItem] = Field(default_factory=list)
    customizations: List[LineItem] = Field(default_factory=list)
    discounts: List[DiscountItem] = Field(default_factory=list)
    taxes: Decimal = Field(Decimal("0"), ge=0)
    fees: Decimal = Field(Decimal("0"), ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    payment_method: Optional[str] = Field(None, max_length=30)
    payment_deadline: Optional[datetime] = None
    allow_partial_confirmation: bool = False


class PaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: str = Field(..., min_length=1, max_length=30)
    transaction_id: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    transaction_id: str = Field(..., min_length=1, max_length=100)
    reason: Optional[str] = None


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class InstallmentItem(BaseModel):
    due_date: date
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=255)


class InstallmentScheduleRequest(BaseModel):
    items: List[InstallmentItem] = Field(..., min_length=1)


# ============================================================================
# Response Schemas
# ============================================================================

class TransactionResponse(BaseModel):
    transaction_id: str
    kind: str
    amount: Decimal
    method: Optional[str] = None
    status: str
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InstallmentResponse(BaseModel):
    sequence: int
    due_date: date
    amount: Decimal
    description: Optional[str] = None
    status: str
    paid_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Shared view of trip and corporate bookings"""
    id: UUID
    booking_reference: str
    booking_kind: str
    customer_id: Optional[UUID] = None
    appointment_id: Optional[UUID] = None

    trip_id: Optional[UUID] = None
    trip_title: Optional[str] = None
    destination: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    traveler_count: int
    status: str

    base_price: Decimal
    subtotal: Optional[Decimal] = None
    total_discount: Decimal
    taxes: Decimal
    fees: Decimal
    final_amount: Decimal
    currency: str
    customizations: Optional[List[Dict[str, Any]]] = None

    payment_method: Optional[str] = None
    payment_status: str
    total_paid: Decimal
    balance: Decimal
    credit_balance: Decimal
    refund_amount: Decimal

    transactions: List[TransactionResponse] = Field(default_factory=list)
    installments: List[InstallmentResponse] = Field(default_factory=list)

    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    total: int
    page: PageInfo
    bookings: List[BookingResponse]

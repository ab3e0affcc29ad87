"""
Pydantic schemas for consultation appointments
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List, Any
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from app.models.appointment import CustomerInterest


# ============================================================================
# Request Schemas
# ============================================================================

class AppointmentCreateRequest(BaseModel):
    """Schema for booking a consultation slot"""
    trip_id: UUID
    trip_title: Optional[str] = Field(None, max_length=255)
    destination: Optional[str] = Field(None, max_length=255)
    duration_days: Optional[int] = Field(None, ge=1)
    duration_nights: Optional[int] = Field(None, ge=0)
    estimated_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255)
    phone: str = Field(..., min_length=7, max_length=30)
    travelers: int = Field(1, ge=1, le=50)

    preferred_date: date
    time_slot: str
    special_requests: Optional[str] = None
    source: str = Field("website", max_length=20)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if '@' not in v or v.startswith('@') or v.endswith('@'):
            raise ValueError('Invalid email address')
        return v.strip().lower()


class RescheduleRequest(BaseModel):
    new_date: date
    new_time_slot: str


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class CompleteConsultationRequest(BaseModel):
    """Outcome of the consultation call, entered by the agent"""
    notes: str = Field(..., min_length=1)
    interest_level: CustomerInterest = CustomerInterest.MEDIUM
    quoted_price: Optional[Decimal] = Field(None, gt=0)
    call_duration_minutes: Optional[int] = Field(None, ge=0)
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None
    customizations: Optional[List[Dict[str, Any]]] = None


class ConvertRequest(BaseModel):
    """Omit final_price to book at the still-valid consultation quote"""
    final_price: Optional[Decimal] = Field(None, gt=0)
    payment_method: Optional[str] = Field(None, max_length=30)
    customizations: Optional[List[Dict[str, Any]]] = None


# ============================================================================
# Response Schemas
# ============================================================================

class AppointmentResponse(BaseModel):
    id: UUID
    appointment_reference: str
    customer_id: UUID
    customer_first_name: str
    customer_last_name: str
    customer_email: str
    customer_phone: str
    travelers: int

    trip_id: UUID
    trip_title: Optional[str] = None
    destination: Optional[str] = None
    estimated_price: Optional[Decimal] = None
    estimated_total: Optional[Decimal] = None
    currency: str

    preferred_date: date
    time_slot: str
    timezone: str
    rescheduled_count: int
    status: str

    assigned_agent_id: Optional[UUID] = None
    call_notes: Optional[str] = None
    customer_interest: Optional[str] = None
    quoted_price: Optional[Decimal] = None
    quote_valid_until: Optional[datetime] = None
    customizations: Optional[List[Dict[str, Any]]] = None

    booking_id: Optional[UUID] = None
    converted_at: Optional[datetime] = None
    conversion_value: Optional[Decimal] = None

    special_requests: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailableSlotsResponse(BaseModel):
    date: date
    slots: List[str]
    booked: List[str]


class PageInfo(BaseModel):
    skip: int
    limit: int
    total_pages: int


class AppointmentListResponse(BaseModel):
    total: int
    page: PageInfo
    appointments: List[AppointmentResponse]

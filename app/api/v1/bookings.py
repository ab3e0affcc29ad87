# ============================================================================
# FILE: app/api/v1/bookings.py
# Trip bookings, payments, refunds and installment plans
# ============================================================================
from datetime import date
from fastapi import APIRouter, Depends, Path, Query, status
from typing import Optional
from uuid import UUID

from app.api.dependencies import (
    Actor,
    get_booking_service,
    get_current_actor,
    get_payment_ledger,
    require_staff,
)
from app.api.responses import outcome_response
from app.core.exceptions import AccessDenied
from app.models.booking import Booking
from app.models.corporate_booking import CorporateBooking
from app.schemas.booking import (
    BookingCancelRequest,
    BookingListResponse,
    BookingResponse,
    DirectBookingRequest,
    InstallmentScheduleRequest,
    PaymentRequest,
    RefundRequest,
)
from app.schemas.corporate import CorporateBookingResponse
from app.services.booking.booking_service import BookingService
from app.services.payment.payment_ledger import PaymentLedger

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _owned(booking: Booking, actor: Actor) -> Booking:
    owner = booking.booked_by_id if isinstance(booking, CorporateBooking) else booking.customer_id
    if not actor.is_staff and owner != actor.id:
        raise AccessDenied("You don't have access to this booking")
    return booking


def _serialize(booking: Booking) -> BookingResponse:
    if isinstance(booking, CorporateBooking):
        return CorporateBookingResponse.model_validate(booking)
    return BookingResponse.model_validate(booking)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_direct_booking(
        payload: DirectBookingRequest,
        actor: Actor = Depends(get_current_actor),
        service: BookingService = Depends(get_booking_service)
):
    """Book a trip without a consultation"""
    data = payload.model_dump(mode="json")
    booking = service.create_direct_booking(
        customer_id=actor.id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        phone=payload.phone,
        price_per_person=payload.price_per_person,
        traveler_count=payload.traveler_count,
        trip_id=payload.trip_id,
        trip_title=payload.trip_title,
        destination=payload.destination,
        start_date=payload.start_date,
        end_date=payload.end_date,
        travelers=data["travelers"],
        add_ons=data["add_ons"],
        customizations=data["customizations"],
        discounts=data["discounts"],
        taxes=payload.taxes,
        fees=payload.fees,
        currency=payload.currency,
        payment_method=payload.payment_method,
        payment_deadline=payload.payment_deadline,
        allow_partial_confirmation=payload.allow_partial_confirmation,
    )
    return {"success": True, "booking": BookingResponse.model_validate(booking)}


@router.get("", response_model=BookingListResponse)
async def list_bookings(
        customer_id: Optional[UUID] = Query(None, description="Staff only: filter by customer"),
        status_filter: Optional[str] = Query(None, alias="status"),
        kind: Optional[str] = Query(None, description="trip or corporate"),
        start_date: Optional[date] = Query(None, description="Trips starting on or after this date"),
        end_date: Optional[date] = Query(None, description="Trips starting on or before this date"),
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        actor: Actor = Depends(get_current_actor),
        service: BookingService = Depends(get_booking_service)
):
    """Customers only ever see their own bookings"""
    return service.list_bookings(
        customer_id=customer_id if actor.is_staff else actor.id,
        status=status_filter,
        booking_kind=kind,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )


@router.get("/{booking_id}")
async def get_booking(
        booking_id: UUID = Path(..., description="The booking ID"),
        actor: Actor = Depends(get_current_actor),
        service: BookingService = Depends(get_booking_service)
):
    return _serialize(_owned(service.get_booking(booking_id), actor))


@router.post("/{booking_id}/payments")
async def record_payment(
        payload: PaymentRequest,
        booking_id: UUID = Path(...),
        actor: Actor = Depends(get_current_actor),
        ledger: PaymentLedger = Depends(get_payment_ledger)
):
    """
    Record a payment captured by the payment processor.
    Replaying a transaction id returns the booking unchanged.
    """
    _owned(ledger.get_booking(booking_id), actor)

    result = ledger.add_payment(
        booking_id,
        amount=payload.amount,
        method=payload.method,
        transaction_id=payload.transaction_id,
        processed_by=actor.id,
        notes=payload.notes,
    )
    if not result.ok:
        return outcome_response(result)

    return {
        "success": True,
        "replayed": result.details.get("replayed", False),
        "overpaid": result.details.get("overpaid", False),
        "booking": _serialize(result.value),
    }


@router.post("/{booking_id}/refunds")
async def record_refund(
        payload: RefundRequest,
        booking_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        ledger: PaymentLedger = Depends(get_payment_ledger)
):
    booking = ledger.record_refund(
        booking_id,
        amount=payload.amount,
        transaction_id=payload.transaction_id,
        reason=payload.reason,
        processed_by=actor.id,
    )
    return {"success": True, "booking": _serialize(booking)}


@router.post("/{booking_id}/cancel")
async def cancel_booking(
        payload: BookingCancelRequest,
        booking_id: UUID = Path(...),
        actor: Actor = Depends(get_current_actor),
        ledger: PaymentLedger = Depends(get_payment_ledger)
):
    _owned(ledger.get_booking(booking_id), actor)
    booking = ledger.cancel(booking_id, reason=payload.reason, requested_by=actor.id)
    return {"success": True, "booking": _serialize(booking)}


@router.put("/{booking_id}/installments")
async def set_installments(
        payload: InstallmentScheduleRequest,
        booking_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        ledger: PaymentLedger = Depends(get_payment_ledger)
):
    booking = ledger.set_installment_schedule(
        booking_id,
        [item.model_dump() for item in payload.items],
    )
    return {"success": True, "booking": _serialize(booking)}

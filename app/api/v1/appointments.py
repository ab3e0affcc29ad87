# ============================================================================
# FILE: app/api/v1/appointments.py
# Consultation appointments - thin HTTP layer over AppointmentService
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path, status
from datetime import date
from typing import Optional
from uuid import UUID

from app.api.dependencies import (
    Actor,
    get_appointment_service,
    get_conversion_service,
    get_current_actor,
    require_staff,
)
from app.api.responses import outcome_response
from app.core.exceptions import AccessDenied
from app.models.appointment import TripAppointment
from app.schemas.appointment import (
    AppointmentCreateRequest,
    AppointmentListResponse,
    AppointmentResponse,
    AvailableSlotsResponse,
    CancelRequest,
    CompleteConsultationRequest,
    ConvertRequest,
    RescheduleRequest,
)
from app.schemas.booking import BookingResponse
from app.services.appointment.appointment_service import AppointmentService
from app.services.booking.conversion_service import ConversionService

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _owned(appointment: TripAppointment, actor: Actor) -> TripAppointment:
    if not actor.is_staff and appointment.customer_id != actor.id:
        raise AccessDenied("You don't have access to this appointment")
    return appointment


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
        payload: AppointmentCreateRequest,
        actor: Actor = Depends(get_current_actor),
        service: AppointmentService = Depends(get_appointment_service)
):
    """
    Book a consultation slot for the calling customer.
    Returns 409 with the remaining slots when the slot was taken.
    """
    result = service.create_appointment(
        customer_id=actor.id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        phone=payload.phone,
        trip_id=payload.trip_id,
        preferred_date=payload.preferred_date,
        time_slot=payload.time_slot,
        travelers=payload.travelers,
        trip_title=payload.trip_title,
        destination=payload.destination,
        duration_days=payload.duration_days,
        duration_nights=payload.duration_nights,
        estimated_price=payload.estimated_price,
        currency=payload.currency,
        special_requests=payload.special_requests,
        source=payload.source,
    )
    if not result.ok:
        return outcome_response(result)

    return {"success": True, "appointment": AppointmentResponse.model_validate(result.value)}


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
        slot_date: date = Query(..., alias="date", description="Day to check (YYYY-MM-DD)"),
        service: AppointmentService = Depends(get_appointment_service)
):
    """Open slots for a day, in catalog order"""
    return AvailableSlotsResponse(
        date=slot_date,
        slots=service.scheduler.available_slots(slot_date),
        booked=service.scheduler.booked_slots(slot_date),
    )


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
        customer_id: Optional[UUID] = Query(None, description="Staff only: filter by customer"),
        status_filter: Optional[str] = Query(None, alias="status"),
        start_date: Optional[date] = Query(None, description="Appointments on or after this date"),
        end_date: Optional[date] = Query(None, description="Appointments on or before this date"),
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        actor: Actor = Depends(get_current_actor),
        service: AppointmentService = Depends(get_appointment_service)
):
    """Customers only ever see their own appointments"""
    return service.list_appointments(
        customer_id=customer_id if actor.is_staff else actor.id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_current_actor),
        service: AppointmentService = Depends(get_appointment_service)
):
    return _owned(service.get_appointment(appointment_id), actor)


@router.post("/{appointment_id}/reschedule")
async def reschedule_appointment(
        payload: RescheduleRequest,
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(get_current_actor),
        service: AppointmentService = Depends(get_appointment_service)
):
    _owned(service.get_appointment(appointment_id), actor)

    result = service.reschedule(appointment_id, payload.new_date, payload.new_time_slot, actor_id=actor.id)
    if not result.ok:
        return outcome_response(result)

    return {"success": True, "appointment": AppointmentResponse.model_validate(result.value)}


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
        payload: CancelRequest,
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(get_current_actor),
        service: AppointmentService = Depends(get_appointment_service)
):
    _owned(service.get_appointment(appointment_id), actor)
    return service.cancel(appointment_id, reason=payload.reason, actor_id=actor.id)


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        service: AppointmentService = Depends(get_appointment_service)
):
    return service.confirm(appointment_id, agent_id=actor.id)


@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start_consultation(
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        service: AppointmentService = Depends(get_appointment_service)
):
    return service.start_consultation(appointment_id, agent_id=actor.id)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_consultation(
        payload: CompleteConsultationRequest,
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        service: AppointmentService = Depends(get_appointment_service)
):
    """Record the call outcome and, optionally, a quote"""
    return service.complete_consultation(
        appointment_id,
        agent_id=actor.id,
        notes=payload.notes,
        interest_level=payload.interest_level,
        quoted_price=payload.quoted_price,
        call_duration_minutes=payload.call_duration_minutes,
        follow_up_required=payload.follow_up_required,
        follow_up_date=payload.follow_up_date,
        customizations=payload.customizations,
    )


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        service: AppointmentService = Depends(get_appointment_service)
):
    return service.mark_no_show(appointment_id, agent_id=actor.id)


@router.post("/{appointment_id}/convert", status_code=status.HTTP_201_CREATED)
async def convert_appointment(
        payload: ConvertRequest,
        appointment_id: UUID = Path(...),
        actor: Actor = Depends(require_staff),
        service: ConversionService = Depends(get_conversion_service)
):
    """
    Turn a completed consultation into a booking.
    A second call returns 409 with the booking created by the first.
    """
    result = service.convert(
        appointment_id,
        final_price=payload.final_price,
        payment_method=payload.payment_method,
        customizations=payload.customizations,
        agent_id=actor.id,
    )
    if not result.ok:
        return outcome_response(result)

    return {
        "success": True,
        "reconciled": result.details.get("reconciled", False),
        "booking": BookingResponse.model_validate(result.value),
    }

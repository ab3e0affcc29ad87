"""Liveness and readiness endpoints"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.models.appointment import AppointmentStatus, TripAppointment
from app.models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)

health_router = APIRouter()


@health_router.get("/")
async def health_check():
    return {"status": "healthy", "service": "travel-booking-core"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Database reachability plus work queues agents care about"""
    try:
        pending_approvals = db.execute(
            select(func.count()).select_from(Booking)
            .where(Booking.status == BookingStatus.PENDING_APPROVAL.value)
        ).scalar_one()
        awaiting_conversion = db.execute(
            select(func.count()).select_from(TripAppointment)
            .where(TripAppointment.status == AppointmentStatus.COMPLETED.value)
        ).scalar_one()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "degraded", "database": "unreachable"}

    return {
        "status": "healthy",
        "database": "reachable",
        "pending_approvals": pending_approvals,
        "completed_consultations_awaiting_conversion": awaiting_conversion,
    }

# ============================================================================
# app/services/booking/booking_service.py
# ============================================================================
"""Direct trip bookings (no consultation) and booking lookups"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from app.config.settings import Settings, get_settings
from app.core.exceptions import BookingValidationError, EntityNotFound
from app.models.booking import Booking, BookingStatus, PaymentStatus, TripBooking
from app.services.audit.audit_service import AuditService
from app.utils.money import to_money
from app.utils.references import trip_booking_reference

logger = logging.getLogger(__name__)


def compute_trip_totals(
        price_per_person: Decimal,
        traveler_count: int,
        add_ons: Optional[List[Dict[str, Any]]] = None,
        customizations: Optional[List[Dict[str, Any]]] = None,
        discounts: Optional[List[Dict[str, Any]]] = None,
        taxes: Decimal = Decimal("0"),
        fees: Decimal = Decimal("0")
) -> Dict[str, Decimal]:
    """
    Price a trip booking.

    Add-ons are price x quantity, customizations add their price, discounts
    are either a percentage of the subtotal or a fixed amount.
    """
    base_price = to_money(price_per_person) * traveler_count
    extras = sum(
        (to_money(item.get("price")) * int(item.get("quantity", 1)) for item in (add_ons or [])),
        Decimal("0"),
    )
    extras += sum((to_money(item.get("price")) for item in (customizations or [])), Decimal("0"))
    subtotal = base_price + extras

    total_discount = Decimal("0")
    for discount in discounts or []:
        if discount.get("percentage") is not None:
            total_discount += to_money(subtotal * Decimal(str(discount["percentage"])) / 100)
        else:
            total_discount += to_money(discount.get("amount"))
    total_discount = min(total_discount, subtotal)

    final_amount = subtotal - total_discount + to_money(taxes) + to_money(fees)
    return {
        "base_price": to_money(base_price),
        "subtotal": to_money(subtotal),
        "total_discount": to_money(total_discount),
        "taxes": to_money(taxes),
        "fees": to_money(fees),
        "final_amount": to_money(final_amount),
    }


class BookingService:
    """Booking creation without an appointment, plus lookups shared by the API"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if not booking:
            raise EntityNotFound("Booking", booking_id)
        return booking

    def list_bookings(
            self,
            customer_id: Optional[UUID] = None,
            status: Optional[str] = None,
            booking_kind: Optional[str] = None,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            skip: int = 0,
            limit: int = 20
    ) -> Dict[str, Any]:
        """Paginated bookings, newest first; dates filter on the trip start"""
        query = self.db.query(Booking)

        if customer_id:
            query = query.filter(Booking.customer_id == customer_id)
        if status:
            query = query.filter(Booking.status == status)
        if booking_kind:
            query = query.filter(Booking.booking_kind == booking_kind)
        if start_date:
            query = query.filter(Booking.start_date >= start_date)
        if end_date:
            query = query.filter(Booking.start_date <= end_date)

        total = query.count()
        bookings = (
            query.order_by(Booking.created_at.desc(), Booking.start_date.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

        return {
            "total": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "bookings": bookings,
        }

    def create_direct_booking(
            self,
            customer_id: UUID,
            first_name: str,
            last_name: str,
            email: str,
            phone: str,
            price_per_person: Decimal,
            traveler_count: int = 1,
            trip_id: Optional[UUID] = None,
            trip_title: Optional[str] = None,
            destination: Optional[str] = None,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            travelers: Optional[List[Dict[str, Any]]] = None,
            add_ons: Optional[List[Dict[str, Any]]] = None,
            customizations: Optional[List[Dict[str, Any]]] = None,
            discounts: Optional[List[Dict[str, Any]]] = None,
            taxes: Decimal = Decimal("0"),
            fees: Decimal = Decimal("0"),
            currency: Optional[str] = None,
            payment_method: Optional[str] = None,
            payment_deadline: Optional[datetime] = None,
            allow_partial_confirmation: bool = False,
            source: str = "website"
    ) -> TripBooking:
        """Create a booking that skips the consultation; draft until a payment method is chosen"""
        if traveler_count < 1:
            raise BookingValidationError("At least one traveler is required")
        if start_date and end_date and end_date < start_date:
            raise BookingValidationError("Trip end date precedes start date")

        totals = compute_trip_totals(
            price_per_person, traveler_count, add_ons, customizations, discounts, taxes, fees
        )
        if totals["final_amount"] <= 0:
            raise BookingValidationError("Final amount must be positive")

        status = BookingStatus.PENDING_PAYMENT if payment_method else BookingStatus.DRAFT

        booking = TripBooking(
            id=uuid4(),
            booking_reference=trip_booking_reference(),
            customer_id=customer_id,
            trip_id=trip_id,
            trip_title=trip_title,
            destination=destination,
            start_date=start_date,
            end_date=end_date,
            contact_first_name=first_name,
            contact_last_name=last_name,
            contact_email=email,
            contact_phone=phone,
            traveler_count=traveler_count,
            travelers=travelers or [],
            price_per_person=to_money(price_per_person),
            add_ons=add_ons or [],
            customizations=customizations or [],
            discounts=discounts or [],
            currency=currency or self.settings.DEFAULT_CURRENCY,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            payment_deadline=payment_deadline,
            allow_partial_confirmation=allow_partial_confirmation,
            status=status.value,
            source=source,
            **totals,
        )
        self.db.add(booking)

        AuditService.log(
            self.db,
            action="BOOKING_CREATED",
            resource="booking",
            resource_id=booking.id,
            actor_id=customer_id,
            details={"reference": booking.booking_reference, "final_amount": str(totals["final_amount"])},
        )
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Direct booking {booking.booking_reference} created ({status.value})")
        return booking

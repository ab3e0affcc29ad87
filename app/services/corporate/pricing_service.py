# ============================================================================
# app/services/corporate/pricing_service.py
# ============================================================================
"""Corporate pricing: negotiated discount, tax and service fee"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config.settings import Settings, get_settings
from app.core.exceptions import BookingValidationError
from app.models.company import Company, CorporateRate, DiscountType
from app.utils.money import to_money
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PricingBreakdown:
    base_price: Decimal
    discount_amount: Decimal
    taxes: Decimal
    fees: Decimal
    total: Decimal
    currency: str
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    rate_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: (str(value) if isinstance(value, Decimal) else value) for key, value in asdict(self).items()}


class CorporatePricingService:
    """Prices corporate bookings against the company's active negotiated rate"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def find_active_rate(
            self,
            company_id,
            category: str,
            at: Optional[datetime] = None
    ) -> Optional[CorporateRate]:
        """
        Indexed lookup on (company, category, validity window).
        Overlapping windows resolve to the most recently started rate.
        """
        at = at or utcnow()
        return self.db.execute(
            select(CorporateRate)
            .where(
                CorporateRate.company_id == company_id,
                CorporateRate.category == category,
                CorporateRate.is_active.is_(True),
                CorporateRate.valid_from <= at,
                CorporateRate.valid_to >= at,
            )
            .order_by(CorporateRate.valid_from.desc())
            .limit(1)
        ).scalars().first()

    def price_corporate(
            self,
            booking_type: str,
            details: Dict[str, Any],
            company: Company,
            traveler_count: int,
            at: Optional[datetime] = None
    ) -> PricingBreakdown:
        """
        Price a corporate booking.

        `details["unit_price"]` is the catalog price per traveler, resolved by
        the caller; hotels multiply it by `details["nights"]`.
        """
        if traveler_count < 1:
            raise BookingValidationError("At least one traveler is required")
        if details.get("unit_price") is None:
            raise BookingValidationError("Pricing inputs need a unit_price")

        unit_price = to_money(details["unit_price"])
        if unit_price < 0:
            raise BookingValidationError("unit_price cannot be negative")

        base_price = unit_price
        if booking_type == "hotel":
            base_price *= int(details.get("nights") or 1)
        base_price *= traveler_count

        discount_amount = Decimal("0")
        discount_type = discount_value = rate_id = None
        rate = self.find_active_rate(company.id, booking_type, at)
        if rate:
            discount_type = rate.discount_type
            discount_value = to_money(rate.discount_value)
            rate_id = str(rate.id)
            if rate.discount_type == DiscountType.PERCENTAGE.value:
                discount_amount = to_money(base_price * discount_value / 100)
            else:
                discount_amount = to_money(discount_value * traveler_count)
            discount_amount = min(discount_amount, base_price)

        discounted = base_price - discount_amount
        taxes = to_money(discounted * Decimal(str(self.settings.CORPORATE_TAX_RATE)))
        fees = to_money(self.settings.CORPORATE_SERVICE_FEE)

        breakdown = PricingBreakdown(
            base_price=to_money(base_price),
            discount_amount=discount_amount,
            taxes=taxes,
            fees=fees,
            total=to_money(discounted + taxes + fees),
            currency=company.currency or self.settings.DEFAULT_CURRENCY,
            discount_type=discount_type,
            discount_value=discount_value,
            rate_id=rate_id,
        )
        logger.debug(f"Corporate price for {company.id}/{booking_type}: {breakdown.total}")
        return breakdown

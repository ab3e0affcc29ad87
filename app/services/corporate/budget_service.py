# ============================================================================
# app/services/corporate/budget_service.py
# ============================================================================
"""Department budget checks and atomic deductions"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.company import Company, DepartmentBudget
from app.models.corporate_booking import CorporateBooking
from app.utils.money import to_money
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class BudgetCheck:
    allowed: bool
    allocated: Optional[Decimal] = None
    spent: Optional[Decimal] = None
    remaining: Optional[Decimal] = None
    message: Optional[str] = None

    @property
    def constrained(self) -> bool:
        return self.allocated is not None


class BudgetService:
    """
    Deductions are a single conditional UPDATE
    (spent = spent + amount WHERE spent + amount <= allocation), so concurrent
    bookings against one department cannot overshoot it.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_budget(self, company_id, department: str) -> Optional[DepartmentBudget]:
        return self.db.execute(
            select(DepartmentBudget).where(
                DepartmentBudget.company_id == company_id,
                DepartmentBudget.department == department,
            )
        ).scalars().first()

    def check_budget(self, company: Company, department: str, amount: Decimal) -> BudgetCheck:
        """Departments without a configured budget are unconstrained"""
        if not company.budget_controls_enabled:
            return BudgetCheck(allowed=True, message="Budget controls disabled")

        budget = self.get_budget(company.id, department)
        if budget is None:
            return BudgetCheck(allowed=True, message="No budget limit set")

        allocated = to_money(budget.annual_budget)
        spent = to_money(budget.spent_amount)
        remaining = to_money(budget.remaining)

        if to_money(amount) > remaining:
            return BudgetCheck(
                allowed=False,
                allocated=allocated,
                spent=spent,
                remaining=remaining,
                message=f"Booking amount exceeds department budget. Available: {remaining}",
            )
        return BudgetCheck(allowed=True, allocated=allocated, spent=spent, remaining=remaining)

    def deduct(
            self,
            company: Company,
            department: str,
            amount: Decimal,
            override: bool = False
    ) -> bool:
        """
        Add `amount` to the department's spend in the caller's transaction.
        Returns False when the ceiling would be crossed (unless overridden).
        Untracked departments always succeed.
        """
        if not company.budget_controls_enabled:
            return True

        budget = self.get_budget(company.id, department)
        if budget is None:
            return True

        amount = to_money(amount)
        stmt = update(DepartmentBudget).where(DepartmentBudget.id == budget.id)
        if not override:
            stmt = stmt.where(DepartmentBudget.spent_amount + amount <= DepartmentBudget.annual_budget)

        result = self.db.execute(
            stmt.values(spent_amount=DepartmentBudget.spent_amount + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(f"Budget ceiling hit for {company.id}/{department} deducting {amount}")
            return False

        self.db.expire(budget)
        return True

    def restore_for_booking(self, booking: CorporateBooking) -> bool:
        """
        Give a booking's deduction back to its department, once.
        The booking-side marker is claimed with a conditional update first.
        """
        if booking.budget_deducted is None:
            return False

        table = CorporateBooking.__table__
        claimed = self.db.execute(
            update(table)
            .where(table.c.id == booking.id, table.c.budget_released_at.is_(None))
            .values(budget_released_at=utcnow())
        )
        if claimed.rowcount != 1:
            return False

        amount = to_money(booking.budget_deducted)
        self.db.execute(
            update(DepartmentBudget)
            .where(
                DepartmentBudget.company_id == booking.company_id,
                DepartmentBudget.department == booking.department,
            )
            .values(spent_amount=DepartmentBudget.spent_amount - amount)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(booking)
        logger.info(f"Restored {amount} to {booking.company_id}/{booking.department} for {booking.booking_reference}")
        return True

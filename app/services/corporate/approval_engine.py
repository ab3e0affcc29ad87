# ============================================================================
# app/services/corporate/approval_engine.py
# ============================================================================
"""
Corporate booking creation and approval workflow.

A corporate booking is priced against the company's negotiated rate, charged
to its department budget on creation and either auto-approved or parked in
pending-approval until an authorized member decides.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config.settings import Settings, get_settings
from app.core.exceptions import (
    AccessDenied,
    ApprovalNotAuthorized,
    BookingValidationError,
    EntityNotFound,
    InvalidStateTransition,
)
from app.core.outcomes import Outcome, ServiceResult
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.company import Company, CorporateMember, MemberRole
from app.models.corporate_booking import ApprovalStatus, CorporateBooking, CorporateBookingType
from app.services.audit.audit_service import AuditService
from app.services.corporate.budget_service import BudgetService
from app.services.corporate.pricing_service import CorporatePricingService
from app.utils.money import to_money
from app.utils.references import corporate_booking_reference
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

APPROVAL_DECISIONS = ("approve", "reject")


class CorporateApprovalEngine:

    def __init__(
            self,
            db: Session,
            pricing: Optional[CorporatePricingService] = None,
            budget: Optional[BudgetService] = None,
            settings: Optional[Settings] = None
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.pricing = pricing or CorporatePricingService(db, self.settings)
        self.budget = budget or BudgetService(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_company(self, company_id: UUID) -> Company:
        company = self.db.get(Company, company_id)
        if not company:
            raise EntityNotFound("Company", company_id)
        return company

    def get_member(self, member_id: UUID) -> CorporateMember:
        member = self.db.get(CorporateMember, member_id)
        if not member:
            raise EntityNotFound("Corporate member", member_id)
        return member

    def get_booking(self, booking_id: UUID) -> CorporateBooking:
        booking = self.db.get(CorporateBooking, booking_id)
        if not booking:
            raise EntityNotFound("Corporate booking", booking_id)
        return booking

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @staticmethod
    def requires_approval(company: Company, amount: Decimal, requester: CorporateMember) -> bool:
        if not company.require_approval:
            return False
        return to_money(amount) > to_money(requester.approval_limit)

    @staticmethod
    def can_approve(approver: CorporateMember, booking: CorporateBooking) -> bool:
        return (
            approver.company_id == booking.company_id
            and approver.is_active
            and approver.can_approve
            and to_money(approver.approval_limit) >= to_money(booking.final_amount)
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_corporate_booking(
            self,
            company_id: UUID,
            department: str,
            requester_id: UUID,
            booking_type: str,
            pricing_inputs: Dict[str, Any],
            travelers: List[Dict[str, Any]],
            purpose: str = "other",
            project: Optional[str] = None,
            cost_center: Optional[str] = None,
            purpose_description: Optional[str] = None,
            departure_date: Optional[date] = None,
            return_date: Optional[date] = None,
            payment_method: str = "corporate-card",
            budget_override: bool = False
    ) -> ServiceResult[CorporateBooking]:
        """
        Price, charge the department budget and create the booking.

        BUDGET_EXCEEDED leaves nothing written. A successful result carries
        `requires_approval` in its details.
        """
        company = self.get_company(company_id)
        requester = self.get_member(requester_id)
        if requester.company_id != company.id or not requester.is_active:
            raise AccessDenied("Requester is not an active member of this company")

        try:
            CorporateBookingType(booking_type)
        except ValueError:
            raise BookingValidationError(f"Unknown corporate booking type '{booking_type}'")
        if not travelers:
            raise BookingValidationError("At least one traveler is required")
        if departure_date and return_date and return_date < departure_date:
            raise BookingValidationError("Return date precedes departure date")

        breakdown = self.pricing.price_corporate(booking_type, pricing_inputs, company, len(travelers))
        total = breakdown.total

        check = self.budget.check_budget(company, department, total)
        if not check.allowed and not budget_override:
            return self._budget_exceeded(check)

        if not self.budget.deduct(company, department, total, override=budget_override):
            # Another booking consumed the remainder between check and deduct
            self.db.rollback()
            return self._budget_exceeded(self.budget.check_budget(company, department, total))

        needs_approval = self.requires_approval(company, total, requester)
        if needs_approval:
            status, approval_status = BookingStatus.PENDING_APPROVAL, ApprovalStatus.PENDING
        else:
            status, approval_status = BookingStatus.APPROVED, ApprovalStatus.AUTO_APPROVED

        tracked = check.constrained
        if tracked:
            # Read the spend our own UPDATE produced; the pre-check snapshot may be stale
            spent_after = to_money(self.budget.get_budget(company.id, department).spent_amount)
            spent_before = spent_after - total
        else:
            spent_after = spent_before = None
        primary = next((t for t in travelers if t.get("is_primary")), travelers[0])

        booking = CorporateBooking(
            id=uuid4(),
            booking_reference=corporate_booking_reference(),
            company_id=company.id,
            booked_by_id=requester.id,
            corporate_type=booking_type,
            department=department,
            project=project,
            cost_center=cost_center,
            purpose=purpose,
            purpose_description=purpose_description,
            contact_first_name=primary.get("first_name"),
            contact_last_name=primary.get("last_name"),
            contact_email=primary.get("email"),
            contact_phone=primary.get("phone"),
            traveler_count=len(travelers),
            travelers=travelers,
            booking_details=dict(pricing_inputs),
            departure_date=departure_date,
            return_date=return_date,
            start_date=departure_date,
            end_date=return_date,
            base_price=breakdown.base_price,
            subtotal=breakdown.base_price,
            total_discount=breakdown.discount_amount,
            discount_type=breakdown.discount_type,
            discount_value=breakdown.discount_value,
            taxes=breakdown.taxes,
            fees=breakdown.fees,
            final_amount=total,
            currency=breakdown.currency,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=status.value,
            approval_required=needs_approval,
            approval_status=approval_status.value,
            approval_limit_consulted=to_money(requester.approval_limit),
            approval_decided_at=None if needs_approval else utcnow(),
            budget_allocated=check.allocated if tracked else None,
            budget_spent_before=spent_before,
            budget_spent_after=spent_after,
            budget_deducted=total if tracked else None,
            budget_exceeds_limit=not check.allowed,
            source="corporate",
        )
        self.db.add(booking)

        AuditService.log(
            self.db,
            action="CORPORATE_BOOKING_CREATED",
            resource="corporate_booking",
            resource_id=booking.id,
            actor_id=requester.id,
            details={
                "reference": booking.booking_reference,
                "department": department,
                "total": str(total),
                "requires_approval": needs_approval,
                "budget_override": budget_override and not check.allowed,
            },
        )
        self.db.commit()
        self.db.refresh(booking)

        logger.info(
            f"Corporate booking {booking.booking_reference} created for {department} "
            f"({total} {booking.currency}, approval={approval_status.value})"
        )
        return ServiceResult.success(booking, requires_approval=needs_approval, pricing=breakdown.to_dict())

    @staticmethod
    def _budget_exceeded(check) -> ServiceResult[CorporateBooking]:
        return ServiceResult.failure(
            Outcome.BUDGET_EXCEEDED,
            check.message or "Booking amount exceeds department budget",
            remaining=str(check.remaining) if check.remaining is not None else None,
            allocated=str(check.allocated) if check.allocated is not None else None,
            spent=str(check.spent) if check.spent is not None else None,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide_approval(
            self,
            booking_id: UUID,
            approver_id: UUID,
            decision: str,
            notes: Optional[str] = None,
            reason: Optional[str] = None
    ) -> CorporateBooking:
        """Approve or reject a pending booking; rejection gives the budget back"""
        if decision not in APPROVAL_DECISIONS:
            raise BookingValidationError(f"Decision must be one of {', '.join(APPROVAL_DECISIONS)}")

        booking = self.get_booking(booking_id)
        approver = self.get_member(approver_id)

        if booking.approval_status != ApprovalStatus.PENDING.value:
            raise InvalidStateTransition(booking.approval_status, decision, entity="approval")
        if booking.status != BookingStatus.PENDING_APPROVAL.value:
            raise InvalidStateTransition(booking.status, decision, entity="booking")
        if not self.can_approve(approver, booking):
            raise ApprovalNotAuthorized("Approver lacks authority for this booking")

        approving = decision == "approve"
        approval_status = ApprovalStatus.APPROVED if approving else ApprovalStatus.REJECTED
        status = BookingStatus.APPROVED if approving else BookingStatus.REJECTED

        corporate = CorporateBooking.__table__
        claimed = self.db.execute(
            update(corporate)
            .where(
                corporate.c.id == booking.id,
                corporate.c.approval_status == ApprovalStatus.PENDING.value,
            )
            .values(
                approval_status=approval_status.value,
                approver_id=approver.id,
                approval_decided_at=utcnow(),
                approval_notes=notes,
                rejection_reason=None if approving else (reason or notes or "Rejected by approver"),
            )
        )
        if claimed.rowcount != 1:
            self.db.rollback()
            self.db.expire_all()
            current = self.get_booking(booking_id)
            raise InvalidStateTransition(current.approval_status, decision, entity="approval")

        base = Booking.__table__
        moved = self.db.execute(
            update(base)
            .where(base.c.id == booking.id, base.c.status == BookingStatus.PENDING_APPROVAL.value)
            .values(status=status.value, updated_at=utcnow())
        )
        if moved.rowcount != 1:
            self.db.rollback()
            self.db.expire_all()
            current = self.get_booking(booking_id)
            raise InvalidStateTransition(current.status, decision, entity="booking")

        if not approving:
            self.budget.restore_for_booking(booking)

        AuditService.log(
            self.db,
            action="CORPORATE_BOOKING_APPROVED" if approving else "CORPORATE_BOOKING_REJECTED",
            resource="corporate_booking",
            resource_id=booking.id,
            actor_id=approver.id,
            details={"notes": notes, "reason": reason},
        )
        self.db.commit()
        self.db.expire(booking)
        self.db.refresh(booking)

        logger.info(f"Corporate booking {booking.booking_reference} {approval_status.value} by {approver.id}")
        return booking

    def list_company_bookings(
            self,
            company_id: UUID,
            viewer_id: Optional[UUID] = None,
            status: Optional[str] = None,
            department: Optional[str] = None,
            booking_type: Optional[str] = None,
            departure_from: Optional[date] = None,
            departure_to: Optional[date] = None,
            skip: int = 0,
            limit: int = 20
    ) -> Dict[str, Any]:
        """
        Paginated company bookings, newest first.

        Without a viewer (staff) the whole company is visible. Otherwise
        employees see their own bookings, managers without approval rights see
        their department, approvers and admins see the company.
        """
        company = self.get_company(company_id)
        query = self.db.query(CorporateBooking).filter(CorporateBooking.company_id == company.id)

        if viewer_id is not None:
            viewer = self.db.get(CorporateMember, viewer_id)
            if viewer is None or viewer.company_id != company.id or not viewer.is_active:
                raise AccessDenied("You are not a member of this company")
            if viewer.role == MemberRole.EMPLOYEE.value:
                query = query.filter(CorporateBooking.booked_by_id == viewer.id)
            elif viewer.role == MemberRole.MANAGER.value and viewer.department and not viewer.can_approve:
                query = query.filter(CorporateBooking.department == viewer.department)

        if status:
            query = query.filter(CorporateBooking.status == status)
        if department:
            query = query.filter(CorporateBooking.department == department)
        if booking_type:
            query = query.filter(CorporateBooking.corporate_type == booking_type)
        if departure_from:
            query = query.filter(CorporateBooking.departure_date >= departure_from)
        if departure_to:
            query = query.filter(CorporateBooking.departure_date <= departure_to)

        total = query.count()
        bookings = (
            query.order_by(CorporateBooking.created_at.desc(), CorporateBooking.departure_date.desc())
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

    def list_pending_approvals(self, company_id: UUID, approver_id: UUID) -> List[CorporateBooking]:
        """Pending bookings of the company that this approver is allowed to decide"""
        approver = self.get_member(approver_id)
        if approver.company_id != company_id or not approver.can_approve or not approver.is_active:
            raise ApprovalNotAuthorized("Member cannot approve bookings for this company")

        return list(
            self.db.execute(
                select(CorporateBooking)
                .where(
                    CorporateBooking.company_id == company_id,
                    CorporateBooking.approval_status == ApprovalStatus.PENDING.value,
                    CorporateBooking.status == BookingStatus.PENDING_APPROVAL.value,
                    CorporateBooking.final_amount <= approver.approval_limit,
                )
                .order_by(CorporateBooking.created_at)
            ).scalars().all()
        )

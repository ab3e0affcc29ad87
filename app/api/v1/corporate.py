# ============================================================================
# FILE: app/api/v1/corporate.py
# Corporate bookings, approval decisions and department budgets
#
# X-Actor-Id is the caller's corporate member id on these routes.
# ============================================================================
from datetime import date
from fastapi import APIRouter, Depends, Path, Query, status
from typing import List, Optional
from uuid import UUID

from app.api.dependencies import Actor, get_approval_engine, get_current_actor
from app.api.responses import outcome_response
from app.core.exceptions import AccessDenied
from app.models.company import CorporateMember
from app.models.corporate_booking import CorporateBookingType
from app.schemas.corporate import (
    ApprovalDecisionRequest,
    BudgetStatusResponse,
    CorporateBookingCreated,
    CorporateBookingListResponse,
    CorporateBookingRequest,
    CorporateBookingResponse,
)
from app.services.corporate.approval_engine import CorporateApprovalEngine

router = APIRouter(prefix="/corporate", tags=["corporate"])


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
async def create_corporate_booking(
        payload: CorporateBookingRequest,
        actor: Actor = Depends(get_current_actor),
        engine: CorporateApprovalEngine = Depends(get_approval_engine)
):
    """
    Create a booking charged to a department budget.
    Returns 422 with the remaining budget when it does not fit.
    """
    data = payload.model_dump(mode="json")
    result = engine.create_corporate_booking(
        company_id=payload.company_id,
        department=payload.department,
        requester_id=actor.id,
        booking_type=payload.booking_type.value,
        pricing_inputs=data["pricing"],
        travelers=data["travelers"],
        purpose=payload.purpose,
        project=payload.project,
        cost_center=payload.cost_center,
        purpose_description=payload.purpose_description,
        departure_date=payload.departure_date,
        return_date=payload.return_date,
        payment_method=payload.payment_method,
        budget_override=payload.budget_override,
    )
    if not result.ok:
        return outcome_response(result)

    return CorporateBookingCreated(
        requires_approval=result.details["requires_approval"],
        booking=CorporateBookingResponse.model_validate(result.value),
        pricing=result.details["pricing"],
    )


@router.get("/bookings", response_model=CorporateBookingListResponse)
async def list_company_bookings(
        company_id: UUID = Query(...),
        status_filter: Optional[str] = Query(None, alias="status"),
        department: Optional[str] = Query(None),
        booking_type: Optional[CorporateBookingType] = Query(None, alias="type"),
        departure_from: Optional[date] = Query(None),
        departure_to: Optional[date] = Query(None),
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        actor: Actor = Depends(get_current_actor),
        engine: CorporateApprovalEngine = Depends(get_approval_engine)
):
    """Company bookings, narrowed to what the caller's role may see"""
    return engine.list_company_bookings(
        company_id,
        viewer_id=None if actor.is_staff else actor.id,
        status=status_filter,
        department=department,
        booking_type=booking_type.value if booking_type else None,
        departure_from=departure_from,
        departure_to=departure_to,
        skip=skip,
        limit=limit,
    )


@router.post("/bookings/{booking_id}/decision", response_model=CorporateBookingResponse)
async def decide_approval(
        payload: ApprovalDecisionRequest,
        booking_id: UUID = Path(...),
        actor: Actor = Depends(get_current_actor),
        engine: CorporateApprovalEngine = Depends(get_approval_engine)
):
    return engine.decide_approval(
        booking_id,
        approver_id=actor.id,
        decision=payload.decision,
        notes=payload.notes,
        reason=payload.reason,
    )


@router.get("/approvals/pending", response_model=List[CorporateBookingResponse])
async def list_pending_approvals(
        company_id: UUID = Query(...),
        actor: Actor = Depends(get_current_actor),
        engine: CorporateApprovalEngine = Depends(get_approval_engine)
):
    """Pending bookings the caller is allowed to decide"""
    return engine.list_pending_approvals(company_id, approver_id=actor.id)


@router.get("/budgets/{department}", response_model=BudgetStatusResponse)
async def get_department_budget(
        department: str = Path(..., min_length=1),
        company_id: UUID = Query(...),
        actor: Actor = Depends(get_current_actor),
        engine: CorporateApprovalEngine = Depends(get_approval_engine)
):
    company = engine.get_company(company_id)
    if not actor.is_staff:
        member = engine.db.get(CorporateMember, actor.id)
        if member is None or member.company_id != company.id:
            raise AccessDenied("You are not a member of this company")

    check = engine.budget.check_budget(company, department, 0)
    return BudgetStatusResponse(
        company_id=company.id,
        department=department,
        constrained=check.constrained,
        allocated=check.allocated,
        spent=check.spent,
        remaining=check.remaining,
    )

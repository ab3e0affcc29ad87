# ============================================================================
# FILE: app/api/responses.py
# Maps service outcomes and errors onto JSON responses
# ============================================================================
from fastapi import status
from fastapi.responses import JSONResponse

from app.core.exceptions import BookingCoreError
from app.core.outcomes import Outcome, ServiceResult

OUTCOME_STATUS = {
    Outcome.SLOT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    Outcome.DUPLICATE_CONVERSION: status.HTTP_409_CONFLICT,
    Outcome.PAYMENT_OVERPAY: status.HTTP_409_CONFLICT,
    Outcome.STALE_QUOTE: status.HTTP_409_CONFLICT,
    Outcome.BUDGET_EXCEEDED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def outcome_response(result: ServiceResult) -> JSONResponse:
    """Error body for a non-OK service outcome"""
    return JSONResponse(
        status_code=OUTCOME_STATUS.get(result.outcome, status.HTTP_400_BAD_REQUEST),
        content={
            "success": False,
            "error": {
                "code": result.outcome.value,
                "message": result.message,
                **result.details,
            },
        },
    )


def error_response(exc: BookingCoreError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )

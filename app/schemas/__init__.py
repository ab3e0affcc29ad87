# app/schemas/__init__.py
from .appointment import (
    AppointmentCreateRequest,
    RescheduleRequest,
    CancelRequest,
    CompleteConsultationRequest,
    ConvertRequest,
    AppointmentResponse,
    AvailableSlotsResponse,
    AppointmentListResponse,
    PageInfo
)

from .booking import (
    LineItem,
    DiscountItem,
    DirectBookingRequest,
    PaymentRequest,
    RefundRequest,
    BookingCancelRequest,
    InstallmentItem,
    InstallmentScheduleRequest,
    TransactionResponse,
    InstallmentResponse,
    BookingResponse,
    BookingListResponse
)

from .corporate import (
    CorporateTraveler,
    PricingInputs,
    CorporateBookingRequest,
    ApprovalDecisionRequest,
    CorporateBookingResponse,
    CorporateBookingCreated,
    BudgetStatusResponse,
    CorporateBookingListResponse
)

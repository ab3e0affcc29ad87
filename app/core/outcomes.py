# app/core/outcomes.py
"""
Typed results for expected business outcomes.

Slot conflicts, budget limits, duplicate conversions and overpayments are
normal answers, not failures, so services return them instead of raising.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar
import enum

T = TypeVar("T")


class Outcome(str, enum.Enum):
    OK = "ok"
    SLOT_UNAVAILABLE = "slot_unavailable"
    BUDGET_EXCEEDED = "budget_exceeded"
    DUPLICATE_CONVERSION = "duplicate_conversion"
    PAYMENT_OVERPAY = "payment_overpay"
    STALE_QUOTE = "stale_quote"


@dataclass
class ServiceResult(Generic[T]):
    """Value plus outcome; `value` may be set on non-OK outcomes (e.g. the existing booking)"""
    outcome: Outcome = Outcome.OK
    value: Optional[T] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK

    @classmethod
    def success(cls, value: T, **details) -> "ServiceResult[T]":
        return cls(outcome=Outcome.OK, value=value, details=details)

    @classmethod
    def failure(
            cls,
            outcome: Outcome,
            message: str,
            value: Optional[T] = None,
            **details
    ) -> "ServiceResult[T]":
        return cls(outcome=outcome, value=value, message=message, details=details)

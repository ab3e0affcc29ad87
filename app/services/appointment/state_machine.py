# ============================================================================
# app/services/appointment/state_machine.py
# ============================================================================
"""
Allowed appointment status transitions.

    scheduled -> confirmed -> in-progress -> completed -> converted
    live states -> cancelled | no-show
    live states -> rescheduled (lands back in scheduled with a new slot)

`converted` is reachable only through the conversion service, which passes
`via_conversion=True`.
"""
import logging
from typing import Dict, FrozenSet

from app.core.exceptions import InvalidStateTransition
from app.models.appointment import AppointmentStatus

logger = logging.getLogger(__name__)

S = AppointmentStatus

TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.RESCHEDULED, S.CANCELLED, S.NO_SHOW}),
    S.RESCHEDULED: frozenset({S.CONFIRMED, S.RESCHEDULED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.COMPLETED, S.RESCHEDULED, S.CANCELLED, S.NO_SHOW}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.NO_SHOW}),
    S.COMPLETED: frozenset({S.CONVERTED}),
    S.CONVERTED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}


def can_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    return requested in TRANSITIONS.get(current, frozenset())


def ensure_transition(
        current: str,
        requested: AppointmentStatus,
        via_conversion: bool = False
) -> None:
    """Raise InvalidStateTransition unless current -> requested is allowed"""
    current_status = AppointmentStatus(current)

    if requested == S.CONVERTED and not via_conversion:
        logger.warning(f"Rejected direct move to converted from {current_status.value}")
        raise InvalidStateTransition(current_status.value, requested.value)

    if not can_transition(current_status, requested):
        logger.warning(f"Rejected appointment transition {current_status.value} -> {requested.value}")
        raise InvalidStateTransition(current_status.value, requested.value)

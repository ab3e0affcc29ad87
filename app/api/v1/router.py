"""Version 1 API: consultations, bookings with payments, corporate travel"""
from fastapi import APIRouter

from app.api.dependencies import ACTOR_ROLES
from app.api.v1 import appointments, bookings, corporate

api_v1_router = APIRouter()

api_v1_router.include_router(appointments.router)
api_v1_router.include_router(bookings.router)
api_v1_router.include_router(corporate.router)


@api_v1_router.get("/", tags=["info"])
async def api_info():
    """Identity is asserted by the gateway in X-Actor-Id and X-Actor-Role"""
    return {
        "version": "v1",
        "resources": ["appointments", "bookings", "corporate"],
        "identity_headers": ["X-Actor-Id", "X-Actor-Role"],
        "roles": list(ACTOR_ROLES),
    }

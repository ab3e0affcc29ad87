# ===== app/models/availability.py =====
from sqlalchemy import Column, String, Date, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
import uuid

from app.models.base import Base


class SlotReservation(Base):
    """Claim on one (date, slot) pair; the row exists exactly while a live appointment holds it"""
    __tablename__ = "slot_reservations"
    __table_args__ = (
        UniqueConstraint("slot_date", "time_slot", name="uq_slot_reservation_date_slot"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slot_date = Column(Date, nullable=False)
    time_slot = Column(String(40), nullable=False)
    appointment_id = Column(
        Uuid, ForeignKey("trip_appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reserved_at = Column(DateTime(timezone=True), server_default=func.now())

from sqlalchemy import Column, String, DateTime, JSON, Uuid
from sqlalchemy.sql import func
import uuid

from app.models.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action = Column(String(100), nullable=False, index=True)  # APPOINTMENT_CREATED, PAYMENT_RECORDED, ...
    resource = Column(String(50), nullable=False)  # appointment, booking, corporate-booking
    resource_id = Column(String(64), nullable=False, index=True)
    actor_id = Column(Uuid, nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

# ============================================================================
# app/services/audit/audit_service.py
# ============================================================================
"""Audit trail for booking lifecycle events"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Writes audit rows into the caller's transaction"""

    @staticmethod
    def log(
            db: Session,
            action: str,
            resource: str,
            resource_id: Any,
            actor_id: Optional[UUID] = None,
            details: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """Add an audit entry; committed together with the change it describes"""
        entry = AuditLog(
            action=action,
            resource=resource,
            resource_id=str(resource_id),
            actor_id=actor_id,
            details=details or {},
        )
        db.add(entry)
        logger.info(f"{action} {resource}={resource_id}")
        return entry

"""
Audit logging for enrollment decisions, promotions and grade changes.
Rows are added to the caller's session so they commit or roll back with the change itself.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import Actor
from app.core.models import AuditLog


def log_audit(
    db: AsyncSession,
    actor: Actor,
    entity_type: str,
    entity_id: Optional[UUID],
    action: str,
    *,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
    remarks: Optional[str] = None,
) -> None:
    """Append one audit log entry. Caller must commit."""
    db.add(
        AuditLog(
            school_id=actor.school_id,
            entity_type=entity_type,
            entity_id=entity_id,
            from_status=from_status,
            to_status=to_status,
            action=action,
            performed_by=actor.id,
            performed_by_role=actor.role,
            meta=meta,
            remarks=remarks,
            timestamp=datetime.utcnow(),
        )
    )

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from review360.core.rbac import require_roles
from review360.db.session import get_db
from review360.models.enums import UserRole
from review360.models.user import User
from review360.repositories import AuditRepository, as_uuid
from review360.schemas.audit import AuditEventOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditEventOut])
def list_audit_events(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    pk = as_uuid(entity_id)
    if entity_id and pk is None:
        return []

    rows = AuditRepository(db, current_user.organization_id).recent(entity_type=entity_type, entity_id=pk, limit=limit)
    return [
        AuditEventOut(
            id=str(r.id),
            actor_user_id=str(r.actor_user_id) if r.actor_user_id else None,
            action=r.action,
            entity_type=r.entity_type,
            entity_id=str(r.entity_id) if r.entity_id else None,
            metadata=r.event_metadata,
            created_at=r.created_at,
        )
        for r in rows
    ]

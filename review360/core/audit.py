import uuid
from typing import Any

from sqlalchemy.orm import Session

from review360.models.audit_event import AuditEvent
from review360.models.user import User


def log_event(
    *,
    db: Session,
    organization_id: uuid.UUID,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id,
    metadata: dict[str, Any] | None = None,
):
    event = AuditEvent(
        organization_id=organization_id,
        actor_user_id=actor.id if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
    )
    db.add(event)

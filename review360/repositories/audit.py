from review360.models.audit_event import AuditEvent
from review360.repositories.base import TenantRepository


class AuditRepository(TenantRepository[AuditEvent]):
    model = AuditEvent
    label = "Audit event"

    def recent(self, *, entity_type: str | None = None, entity_id=None, limit: int = 50) -> list[AuditEvent]:
        q = self.query()
        if entity_type:
            q = q.filter(AuditEvent.entity_type == entity_type)
        if entity_id is not None:
            q = q.filter(AuditEvent.entity_id == entity_id)
        return q.order_by(AuditEvent.created_at.desc()).limit(limit).all()

"""
Tenant-scoped data access.

Every repository except OrganizationRepository is bound to one tenant at
construction time. Reads filter on ``organization_id`` and writes stamp it, so a
caller holding a repository for tenant A cannot see or touch rows of tenant B:
``get()`` of a foreign id simply returns ``None``.

Repositories never commit. The request transaction (``get_db``) or the calling
service owns commit/rollback.
"""
from __future__ import annotations

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Query, Session

from review360.core.exceptions import NotFoundError

ModelT = TypeVar("ModelT")


def as_uuid(value: Any) -> uuid.UUID | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class TenantRepository(Generic[ModelT]):
    model: type[ModelT]
    label: str = "Entity"

    def __init__(self, db: Session, organization_id: uuid.UUID):
        self.db = db
        self.organization_id = organization_id

    def query(self) -> Query:
        return self.db.query(self.model).filter(self.model.organization_id == self.organization_id)

    def get(self, entity_id: Any) -> ModelT | None:
        pk = as_uuid(entity_id)
        if pk is None:
            return None
        obj = self.db.get(self.model, pk)
        if obj is None or obj.organization_id != self.organization_id:
            return None
        return obj

    def get_or_404(self, entity_id: Any) -> ModelT:
        obj = self.get(entity_id)
        if obj is None:
            raise NotFoundError(f"{self.label} not found")
        return obj

    def list(self) -> list[ModelT]:
        return self.query().all()

    def add(self, obj: ModelT) -> ModelT:
        obj.organization_id = self.organization_id
        self.db.add(obj)
        return obj

    def delete(self, obj: ModelT) -> None:
        if obj.organization_id != self.organization_id:
            raise NotFoundError(f"{self.label} not found")
        self.db.delete(obj)

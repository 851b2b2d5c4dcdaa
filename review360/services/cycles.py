from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from review360.core.audit import log_event
from review360.core.config import settings
from review360.core.exceptions import NotFoundError, StateError, ValidationError
from review360.models.enums import CycleStatus
from review360.models.review_cycle import ReviewCycle
from review360.models.user import User
from review360.repositories import CycleRepository, OrganizationRepository

logger = logging.getLogger(__name__)


def default_cycle_name(today: date | None = None) -> str:
    return f"{(today or date.today()).year} 360 Review"


def can_transition(current: CycleStatus, target: CycleStatus) -> bool:
    """DRAFT -> ACTIVE -> CLOSED. Nothing moves backwards."""
    if target == CycleStatus.ACTIVE:
        return current == CycleStatus.DRAFT
    elif target == CycleStatus.CLOSED:
        return current == CycleStatus.ACTIVE
    elif target == CycleStatus.DRAFT:
        return False
    raise ValueError(f"Unknown cycle status: {target}")


class CycleManager:
    def __init__(self, db: Session, organization_id: uuid.UUID, actor: User | None = None):
        self.db = db
        self.organization_id = organization_id
        self.actor = actor
        self.cycles = CycleRepository(db, organization_id)

    def _lock(self) -> None:
        OrganizationRepository(self.db).lock(self.organization_id)

    def _audit(self, action: str, cycle: ReviewCycle, metadata: dict | None = None) -> None:
        log_event(
            db=self.db,
            organization_id=self.organization_id,
            actor=self.actor,
            action=action,
            entity_type="review_cycle",
            entity_id=cycle.id,
            metadata=metadata,
        )

    def get(self, cycle_id: Any) -> ReviewCycle:
        return self.cycles.get_or_404(cycle_id)

    def list(self, status: CycleStatus | None = None) -> list[ReviewCycle]:
        return self.cycles.list(status)

    def active(self) -> ReviewCycle:
        cycle = self.cycles.active()
        if cycle is None:
            raise NotFoundError("No active cycle")
        return cycle

    def resolve(self, cycle_id: Any | None) -> ReviewCycle:
        """Explicit cycle if given, otherwise the tenant's active cycle."""
        if cycle_id is None:
            return self.active()
        return self.get(cycle_id)

    def create(
        self,
        *,
        name: str | None,
        due_date: date | None = None,
        status: CycleStatus = CycleStatus.DRAFT,
    ) -> ReviewCycle:
        if not name or not name.strip():
            raise ValidationError("name is required", details=[{"field": "name", "code": "required"}])

        self._lock()
        cycle = ReviewCycle(name=name.strip(), status=status, due_date=due_date)
        self.cycles.add(cycle)
        self.db.flush()  # ensures cycle.id exists for audit

        self._audit(
            "CYCLE_CREATED",
            cycle,
            {"name": cycle.name, "due_date": str(due_date) if due_date else None, "status": cycle.status.value},
        )
        return cycle

    def create_default(self) -> ReviewCycle:
        """The ACTIVE cycle every new tenant starts with."""
        today = date.today()
        return self.create(
            name=default_cycle_name(today),
            due_date=today + timedelta(days=settings.DEFAULT_CYCLE_DUE_DAYS),
            status=CycleStatus.ACTIVE,
        )

    def update(self, cycle_id: Any, *, name: str | None = None, due_date: date | None = None) -> ReviewCycle:
        self._lock()
        cycle = self.get(cycle_id)
        if cycle.status == CycleStatus.CLOSED:
            raise StateError("Closed cycles cannot be updated")

        before = {"name": cycle.name, "due_date": str(cycle.due_date) if cycle.due_date else None}

        if name is not None:
            if not name.strip():
                raise ValidationError("name is required", details=[{"field": "name", "code": "required"}])
            cycle.name = name.strip()
        if due_date is not None:
            cycle.due_date = due_date
        cycle.updated_at = datetime.now(timezone.utc)
        self.db.flush()

        self._audit(
            "CYCLE_UPDATED",
            cycle,
            {"before": before, "after": {"name": cycle.name, "due_date": str(cycle.due_date) if cycle.due_date else None}},
        )
        return cycle

    def _move(self, cycle_id: Any, target: CycleStatus, action: str) -> ReviewCycle:
        self._lock()
        cycle = self.get(cycle_id)

        # Idempotent success: already there
        if cycle.status == target:
            return cycle

        if not can_transition(cycle.status, target):
            raise StateError(f"Cannot move cycle from {cycle.status.value} to {target.value}")

        prev = cycle.status
        cycle.status = target
        cycle.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        self._audit(action, cycle, {"from": prev.value, "to": target.value})
        return cycle

    def activate(self, cycle_id: Any) -> ReviewCycle:
        return self._move(cycle_id, CycleStatus.ACTIVE, "CYCLE_ACTIVATED")

    def close(self, cycle_id: Any) -> ReviewCycle:
        return self._move(cycle_id, CycleStatus.CLOSED, "CYCLE_CLOSED")

from __future__ import annotations

from review360.models.enums import CycleStatus
from review360.models.review_cycle import ReviewCycle
from review360.repositories.base import TenantRepository


class CycleRepository(TenantRepository[ReviewCycle]):
    model = ReviewCycle
    label = "Cycle"

    def list(self, status: CycleStatus | None = None) -> list[ReviewCycle]:
        q = self.query()
        if status is not None:
            q = q.filter(ReviewCycle.status == status)
        return q.order_by(ReviewCycle.created_at.desc()).all()

    def active(self) -> ReviewCycle | None:
        return (
            self.query()
            .filter(ReviewCycle.status == CycleStatus.ACTIVE)
            .order_by(ReviewCycle.created_at.desc())
            .first()
        )

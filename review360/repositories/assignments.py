import uuid

from sqlalchemy import or_

from review360.models.enums import AssignmentStatus
from review360.models.review_assignment import ReviewAssignment
from review360.repositories.base import TenantRepository


class AssignmentRepository(TenantRepository[ReviewAssignment]):
    model = ReviewAssignment
    label = "Assignment"

    def filtered(
        self,
        *,
        cycle_id: uuid.UUID | None = None,
        reviewer_id: uuid.UUID | None = None,
        subject_id: uuid.UUID | None = None,
        status: AssignmentStatus | None = None,
    ):
        q = self.query()
        if cycle_id is not None:
            q = q.filter(ReviewAssignment.cycle_id == cycle_id)
        if reviewer_id is not None:
            q = q.filter(ReviewAssignment.reviewer_id == reviewer_id)
        if subject_id is not None:
            q = q.filter(ReviewAssignment.subject_id == subject_id)
        if status is not None:
            q = q.filter(ReviewAssignment.status == status)
        return q.order_by(ReviewAssignment.created_at.asc(), ReviewAssignment.id.asc())

    def for_cycle(self, cycle_id: uuid.UUID) -> list[ReviewAssignment]:
        return self.filtered(cycle_id=cycle_id).all()

    def submitted_for_subject(self, subject_id: uuid.UUID, cycle_id: uuid.UUID) -> list[ReviewAssignment]:
        return self.filtered(
            cycle_id=cycle_id, subject_id=subject_id, status=AssignmentStatus.SUBMITTED
        ).all()

    def delete_for_cycle(self, cycle_id: uuid.UUID) -> int:
        return (
            self.query()
            .filter(ReviewAssignment.cycle_id == cycle_id)
            .delete(synchronize_session="fetch")
        )

    def delete_touching_user(self, user_id: uuid.UUID) -> int:
        """Every assignment where the user is reviewer or subject, across all cycles."""
        return (
            self.query()
            .filter(or_(ReviewAssignment.reviewer_id == user_id, ReviewAssignment.subject_id == user_id))
            .delete(synchronize_session="fetch")
        )

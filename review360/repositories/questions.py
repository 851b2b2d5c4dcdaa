from sqlalchemy import or_

from review360.models.question import Question
from review360.repositories.base import TenantRepository


class QuestionRepository(TenantRepository[Question]):
    """
    ``query()``/``get()`` cover tenant-owned questions only (the writable set).
    ``visible()`` adds the shared defaults for reading.
    """

    model = Question
    label = "Question"

    def visible_query(self):
        return self.db.query(Question).filter(
            or_(Question.organization_id == self.organization_id, Question.organization_id.is_(None))
        )

    def visible(self) -> list[Question]:
        return (
            self.visible_query()
            .order_by(Question.organization_id.is_not(None), Question.position.asc(), Question.created_at.asc())
            .all()
        )

    def next_position(self) -> int:
        rows = self.query().with_entities(Question.position).all()
        return max((r[0] for r in rows), default=-1) + 1

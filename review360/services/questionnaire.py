from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from review360.core.audit import log_event
from review360.core.exceptions import ValidationError
from review360.models.question import Question
from review360.models.user import User
from review360.repositories import OrganizationRepository, QuestionRepository
from review360.services.ai import AICollaborator, run_ai_task

logger = logging.getLogger(__name__)

# Shared questionnaire (organization_id NULL), installed by scripts/seed_questions.py
DEFAULT_QUESTIONS: list[tuple[str, str]] = [
    ("Integrity", "Treats team members fairly"),
    ("Integrity", "Holds to principles under heavy pressure or temptation"),
    ("Learning & Innovation", "Actively seeks feedback on own work"),
    ("Learning & Innovation", "Learns from benchmarks and tries new approaches"),
    ("Strategic Thinking", "Communicates company strategy and goals clearly"),
    ("Organizational Optimization", "Proposes improvements to organizational processes"),
    ("Talent Development", "Recognizes the strengths and gaps of others"),
]


def seed_default_questions(db: Session) -> int:
    """Install the shared default questions if none exist yet. Returns how many were added."""
    exists = db.query(Question.id).filter(Question.organization_id.is_(None)).first()
    if exists:
        return 0
    for position, (category, text) in enumerate(DEFAULT_QUESTIONS):
        db.add(Question(organization_id=None, category=category, text=text, position=position))
    db.flush()
    return len(DEFAULT_QUESTIONS)


class Questionnaire:
    def __init__(self, db: Session, organization_id: uuid.UUID, actor: User | None = None):
        self.db = db
        self.organization_id = organization_id
        self.actor = actor
        self.questions = QuestionRepository(db, organization_id)

    def _lock(self) -> None:
        OrganizationRepository(self.db).lock(self.organization_id)

    def _audit(self, action: str, entity_id, metadata: dict | None = None) -> None:
        log_event(
            db=self.db,
            organization_id=self.organization_id,
            actor=self.actor,
            action=action,
            entity_type="question",
            entity_id=entity_id,
            metadata=metadata,
        )

    @staticmethod
    def _require(field: str, value: str | None) -> str:
        if value is None or not value.strip():
            raise ValidationError(f"{field} is required", details=[{"field": field, "code": "required"}])
        return value.strip()

    def list(self) -> list[Question]:
        """Shared defaults first, then the tenant's own questions in order."""
        return self.questions.visible()

    def categories_by_id(self) -> dict[str, str]:
        return {str(q.id): q.category for q in self.questions.visible()}

    def create(self, *, category: str | None, text: str | None) -> Question:
        category = self._require("category", category)
        text = self._require("text", text)

        self._lock()
        q = Question(category=category, text=text, position=self.questions.next_position())
        self.questions.add(q)
        self.db.flush()
        self._audit("QUESTION_CREATED", q.id, {"category": category})
        return q

    def update(self, question_id: Any, *, category: str | None = None, text: str | None = None) -> Question:
        self._lock()
        # shared defaults are not in the tenant-owned set, so they 404 here
        q = self.questions.get_or_404(question_id)
        if category is not None:
            q.category = self._require("category", category)
        if text is not None:
            q.text = self._require("text", text)
        self._audit("QUESTION_UPDATED", q.id, {"category": q.category})
        return q

    def delete(self, question_id: Any) -> None:
        """Submitted scores keep their keys for this question; aggregation skips them."""
        self._lock()
        q = self.questions.get_or_404(question_id)
        self.questions.delete(q)
        self.db.flush()
        self._audit("QUESTION_DELETED", q.id, {"category": q.category})

    def apply_draft(self, drafts: list[dict], *, replace: bool = False) -> list[Question]:
        """
        Persist a questionnaire draft as tenant questions. Items without both
        category and text are skipped. An empty draft changes nothing.
        """
        items = [
            (str(d.get("category") or "").strip(), str(d.get("text") or "").strip())
            for d in drafts
        ]
        items = [(c, t) for c, t in items if c and t]
        if not items:
            return []

        self._lock()
        created: list[Question] = []
        with self.db.begin_nested():
            if replace:
                for q in self.questions.list():
                    self.db.delete(q)
                self.db.flush()
            start = self.questions.next_position()
            for offset, (category, text) in enumerate(items):
                q = Question(category=category, text=text, position=start + offset)
                self.questions.add(q)
                created.append(q)
            self.db.flush()

        self._audit("QUESTIONNAIRE_GENERATED", self.organization_id, {"count": len(created), "replace": replace})
        return created

    async def generate_draft(self, ai: AICollaborator, *, replace: bool = False) -> list[Question]:
        drafts = await run_ai_task(ai.draft_questionnaire(), fallback=[], label="draft_questionnaire")
        if not drafts:
            logger.info("Questionnaire draft came back empty; questionnaire unchanged")
        return self.apply_draft([d.model_dump() for d in drafts], replace=replace)

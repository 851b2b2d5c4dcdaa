"""
AggregationEngine: per-category score reports from submitted reviews.

Only SUBMITTED assignments count. Scores of zero or below are "not applicable"
and skipped, as are scores keyed by a question that no longer exists. Non-self
scores are averaged per category; the SELF score is reported next to them.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy.orm import Session

from review360.models.enums import Relationship
from review360.models.review_assignment import ReviewAssignment
from review360.repositories import AssignmentRepository, UserRepository
from review360.services.ai import AICollaborator, FeedbackSummary, fallback_summary, run_ai_task
from review360.services.cycles import CycleManager
from review360.services.questionnaire import Questionnaire

logger = logging.getLogger(__name__)

FULL_MARK = 5
SUMMARY_INSUFFICIENT = "Not enough submitted reviews to summarize yet."


def round1(value: float) -> float:
    """Half-up rounding to one decimal (4.25 -> 4.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass
class CategoryScore:
    category: str
    score: float
    self_score: float
    full_mark: int = FULL_MARK


@dataclass
class Report:
    subject_id: uuid.UUID
    cycle_id: uuid.UUID
    categories: list[CategoryScore]
    review_count: int
    average_score: float


@dataclass
class InsufficientData:
    """No submitted non-self review yet for this subject in this cycle."""

    subject_id: uuid.UUID
    cycle_id: uuid.UUID
    review_count: int = 0
    reason: str = "No submitted reviews from others yet"


@dataclass
class _Tally:
    total: int = 0
    count: int = 0
    self_score: float | None = None


def _usable(score: Any) -> bool:
    return isinstance(score, (int, float)) and not isinstance(score, bool) and score > 0


def aggregate(assignments: Iterable[ReviewAssignment], categories: dict[str, str]) -> list[CategoryScore]:
    """
    ``categories`` maps question id (as stored in ``scores``) to category.
    Categories come out in questionnaire order; only encountered ones are emitted.
    """
    tallies: dict[str, _Tally] = {}
    for a in assignments:
        for question_id, score in (a.scores or {}).items():
            if not _usable(score):
                continue
            category = categories.get(str(question_id))
            if category is None:
                continue
            tally = tallies.setdefault(category, _Tally())
            if a.relationship == Relationship.SELF:
                tally.self_score = score
            else:
                tally.total += score
                tally.count += 1

    order = list(dict.fromkeys(categories.values()))
    out = []
    for category in order:
        tally = tallies.get(category)
        if tally is None:
            continue
        out.append(
            CategoryScore(
                category=category,
                score=round1(tally.total / tally.count) if tally.count else 0,
                self_score=tally.self_score if tally.self_score is not None else 0,
            )
        )
    return out


def overall_average(assignments: Iterable[ReviewAssignment], categories: dict[str, str]) -> float:
    values = [
        score
        for a in assignments
        if a.relationship != Relationship.SELF
        for question_id, score in (a.scores or {}).items()
        if _usable(score) and str(question_id) in categories
    ]
    return round1(sum(values) / len(values)) if values else 0


class AggregationEngine:
    def __init__(self, db: Session, organization_id: uuid.UUID):
        self.db = db
        self.organization_id = organization_id
        self.assignments = AssignmentRepository(db, organization_id)
        self.users = UserRepository(db, organization_id)
        self.cycles = CycleManager(db, organization_id)
        self.questionnaire = Questionnaire(db, organization_id)

    def _submitted(self, subject_id: Any, cycle_id: Any | None):
        subject = self.users.get_or_404(subject_id)
        cycle = self.cycles.resolve(cycle_id)
        return subject, cycle, self.assignments.submitted_for_subject(subject.id, cycle.id)

    def build_report(self, subject_id: Any, cycle_id: Any | None = None) -> Report | InsufficientData:
        subject, cycle, submitted = self._submitted(subject_id, cycle_id)
        others = [a for a in submitted if a.relationship != Relationship.SELF]
        if not others:
            return InsufficientData(subject_id=subject.id, cycle_id=cycle.id)

        categories = self.questionnaire.categories_by_id()
        return Report(
            subject_id=subject.id,
            cycle_id=cycle.id,
            categories=aggregate(submitted, categories),
            review_count=len(others),
            average_score=overall_average(submitted, categories),
        )

    async def summarize(self, ai: AICollaborator, subject_id: Any, cycle_id: Any | None = None) -> FeedbackSummary:
        """Narrative summary from the AI collaborator, or the fallback when it is unavailable."""
        subject, cycle, submitted = self._submitted(subject_id, cycle_id)
        if not any(a.relationship != Relationship.SELF for a in submitted):
            return FeedbackSummary(summary=SUMMARY_INSUFFICIENT)

        categories = self.questionnaire.categories_by_id()
        scores = [
            {"category": c.category, "score": c.score, "self_score": c.self_score, "full_mark": c.full_mark}
            for c in aggregate(submitted, categories)
        ]
        reviews = [
            {
                "relationship": a.relationship.value,
                "feedback_strengths": a.feedback_strengths,
                "feedback_improvements": a.feedback_improvements,
            }
            for a in submitted
        ]
        logger.info("Summarizing %d review(s) for subject %s", len(reviews), subject.id)
        return await run_ai_task(
            ai.summarize(reviews, scores, subject.name),
            fallback=fallback_summary(),
            label="summarize",
        )

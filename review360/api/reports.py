from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from review360.core.access import assert_can_view_report
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.user import User
from review360.repositories import UserRepository
from review360.schemas.report import CategoryScoreOut, ReportOut, SummaryOut
from review360.services.aggregation import AggregationEngine, InsufficientData
from review360.services.ai import AICollaborator, get_ai_collaborator

router = APIRouter(prefix="/reports", tags=["reports"])


def _visible_subject(db: Session, viewer: User, subject_id: str) -> User:
    subject = UserRepository(db, viewer.organization_id).get_or_404(subject_id)
    assert_can_view_report(viewer, subject)
    return subject


@router.get("/{subject_id}", response_model=ReportOut)
def get_report(
    subject_id: str,
    cycle_id: str | None = Query(default=None, description="Defaults to the active cycle"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    subject = _visible_subject(db, current_user, subject_id)
    report = AggregationEngine(db, current_user.organization_id).build_report(subject.id, cycle_id)

    if isinstance(report, InsufficientData):
        return ReportOut(
            subject_id=str(report.subject_id),
            cycle_id=str(report.cycle_id),
            insufficient_data=True,
            review_count=report.review_count,
        )
    return ReportOut(
        subject_id=str(report.subject_id),
        cycle_id=str(report.cycle_id),
        insufficient_data=False,
        review_count=report.review_count,
        average_score=report.average_score,
        categories=[
            CategoryScoreOut(category=c.category, score=c.score, self_score=c.self_score, full_mark=c.full_mark)
            for c in report.categories
        ],
    )


@router.get("/{subject_id}/summary", response_model=SummaryOut)
async def get_summary(
    subject_id: str,
    cycle_id: str | None = Query(default=None, description="Defaults to the active cycle"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ai: AICollaborator = Depends(get_ai_collaborator),
):
    subject = _visible_subject(db, current_user, subject_id)
    summary = await AggregationEngine(db, current_user.organization_id).summarize(ai, subject.id, cycle_id)
    return SummaryOut(
        subject_id=str(subject.id),
        summary=summary.summary,
        strengths=summary.strengths,
        improvements=summary.improvements,
    )

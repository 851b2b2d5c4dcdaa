from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from review360.core.rbac import require_roles
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.enums import UserRole
from review360.models.question import Question
from review360.models.user import User
from review360.schemas.question import QuestionCreate, QuestionGenerateRequest, QuestionOut, QuestionUpdate
from review360.services.ai import AICollaborator, get_ai_collaborator
from review360.services.questionnaire import Questionnaire

router = APIRouter(prefix="/questions", tags=["questions"])


def to_out(q: Question) -> QuestionOut:
    return QuestionOut(
        id=str(q.id),
        organization_id=str(q.organization_id) if q.organization_id else None,
        category=q.category,
        text=q.text,
        position=q.position,
        shared=q.organization_id is None,
        created_at=q.created_at,
    )


@router.get("", response_model=list[QuestionOut])
def list_questions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Shared default questions first, then the organization's own."""
    return [to_out(q) for q in Questionnaire(db, current_user.organization_id).list()]


@router.post("", response_model=QuestionOut, status_code=status.HTTP_201_CREATED)
def create_question(
    payload: QuestionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    q = Questionnaire(db, current_user.organization_id, current_user).create(
        category=payload.category, text=payload.text
    )
    db.commit()
    return to_out(q)


@router.post("/generate", response_model=list[QuestionOut], status_code=status.HTTP_201_CREATED)
async def generate_questions(
    payload: QuestionGenerateRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    ai: AICollaborator = Depends(get_ai_collaborator),
):
    """AI questionnaire draft. Returns the questions added; empty when the AI service is unavailable."""
    created = await Questionnaire(db, current_user.organization_id, current_user).generate_draft(
        ai, replace=payload.replace if payload else False
    )
    db.commit()
    return [to_out(q) for q in created]


@router.patch("/{question_id}", response_model=QuestionOut)
def update_question(
    question_id: str,
    payload: QuestionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    q = Questionnaire(db, current_user.organization_id, current_user).update(
        question_id, category=payload.category, text=payload.text
    )
    db.commit()
    return to_out(q)


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_question(
    question_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    Questionnaire(db, current_user.organization_id, current_user).delete(question_id)
    db.commit()

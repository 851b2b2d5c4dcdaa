from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from review360.api.users import to_out as user_to_out
from review360.core.access import assert_user_is_reviewer
from review360.core.rbac import require_roles
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.enums import AssignmentStatus, UserRole
from review360.models.review_assignment import ReviewAssignment
from review360.models.user import User
from review360.schemas.pagination import paginate
from review360.schemas.review_assignment import (
    AssignmentCreate,
    AssignmentOut,
    MatrixOut,
    MatrixRequest,
    OrgChartImportOut,
    ReviewDraft,
    ReviewSubmit,
)
from review360.services.ai import AICollaborator, FilePart, get_ai_collaborator
from review360.services.matrix import AssignmentMatrix

router = APIRouter(prefix="/assignments", tags=["assignments"])


def to_out(a: ReviewAssignment) -> AssignmentOut:
    return AssignmentOut(
        id=str(a.id),
        cycle_id=str(a.cycle_id),
        reviewer_id=str(a.reviewer_id),
        subject_id=str(a.subject_id),
        relationship=a.relationship,
        status=a.status,
        scores=a.scores or {},
        comments=a.comments or {},
        feedback_strengths=a.feedback_strengths or "",
        feedback_improvements=a.feedback_improvements or "",
        submitted_at=a.submitted_at,
        created_at=a.created_at,
    )


def matrix_out(cycle_id, created: list[ReviewAssignment]) -> MatrixOut:
    return MatrixOut(cycle_id=str(cycle_id), created=len(created), assignments=[to_out(a) for a in created])


@router.get("")
def list_assignments(
    cycle_id: str | None = Query(default=None),
    reviewer_id: str | None = Query(default=None),
    subject_id: str | None = Query(default=None),
    status: AssignmentStatus | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    query = AssignmentMatrix(db, current_user.organization_id).list(
        cycle_id=cycle_id, reviewer_id=reviewer_id, subject_id=subject_id, status=status
    )
    return paginate(query, limit=limit, offset=offset, convert=to_out, include_pagination=include_pagination)


@router.post("", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    a = AssignmentMatrix(db, current_user.organization_id, current_user).create(
        reviewer_id=payload.reviewer_id,
        subject_id=payload.subject_id,
        relationship=payload.relationship,
        cycle_id=payload.cycle_id,
    )
    db.commit()
    return to_out(a)


@router.post("/generate", response_model=MatrixOut)
def generate_matrix(
    payload: MatrixRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """Replace every assignment of the cycle with the rule-based matrix."""
    matrix = AssignmentMatrix(db, current_user.organization_id, current_user)
    cycle = matrix.cycle_manager.resolve(payload.cycle_id if payload else None)
    created = matrix.regenerate(cycle.id)
    db.commit()
    return matrix_out(cycle.id, created)


@router.post("/suggest", response_model=MatrixOut)
async def suggest_matrix(
    payload: MatrixRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    ai: AICollaborator = Depends(get_ai_collaborator),
):
    """AI-proposed matrix. An empty proposal leaves the existing assignments alone (created == 0)."""
    matrix = AssignmentMatrix(db, current_user.organization_id, current_user)
    cycle = matrix.cycle_manager.resolve(payload.cycle_id if payload else None)
    created = await matrix.suggest(ai, cycle.id)
    db.commit()
    return matrix_out(cycle.id, created)


@router.post("/import-org-chart", response_model=OrgChartImportOut, status_code=status.HTTP_201_CREATED)
async def import_org_chart(
    file: UploadFile = File(None),
    text: str = Form(""),
    cycle_id: str | None = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    ai: AICollaborator = Depends(get_ai_collaborator),
):
    part = None
    if file is not None:
        part = FilePart(filename=file.filename or "upload", content_type=file.content_type, data=await file.read())
    result = await AssignmentMatrix(db, current_user.organization_id, current_user).import_org_chart(
        ai, text=text, file=part, cycle_id=cycle_id
    )
    db.commit()
    return OrgChartImportOut(
        users=[user_to_out(u) for u in result.users],
        assignments=[to_out(a) for a in result.assignments],
    )


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    AssignmentMatrix(db, current_user.organization_id, current_user).remove(assignment_id)
    db.commit()


@router.post("/{assignment_id}/draft", response_model=AssignmentOut)
def save_draft(
    assignment_id: str,
    payload: ReviewDraft,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    matrix = AssignmentMatrix(db, current_user.organization_id, current_user)
    assert_user_is_reviewer(current_user, matrix.get(assignment_id))
    a = matrix.save_draft(
        assignment_id,
        scores=payload.scores,
        comments=payload.comments,
        strengths=payload.feedback_strengths,
        improvements=payload.feedback_improvements,
    )
    db.commit()
    return to_out(a)


@router.post("/{assignment_id}/submit", response_model=AssignmentOut)
def submit_review(
    assignment_id: str,
    payload: ReviewSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    matrix = AssignmentMatrix(db, current_user.organization_id, current_user)
    assert_user_is_reviewer(current_user, matrix.get(assignment_id))
    a = matrix.submit(
        assignment_id,
        scores=payload.scores,
        comments=payload.comments,
        strengths=payload.feedback_strengths,
        improvements=payload.feedback_improvements,
    )
    db.commit()
    return to_out(a)

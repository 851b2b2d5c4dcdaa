from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from review360.api.assignments import to_out as assignment_to_out
from review360.api.auth import current_organization, org_to_out
from review360.api.users import to_out as user_to_out
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.user import User
from review360.schemas.auth import SessionOut
from review360.schemas.review_assignment import AssignmentOut
from review360.services.matrix import AssignmentMatrix

router = APIRouter(tags=["auth"])


@router.get("/me", response_model=SessionOut)
def me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return SessionOut(organization=org_to_out(current_organization(db, current_user)), user=user_to_out(current_user))


@router.get("/me/assignments", response_model=list[AssignmentOut])
def my_assignments(
    cycle_id: str | None = Query(default=None, description="Defaults to the active cycle"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Reviews the current user has to write."""
    matrix = AssignmentMatrix(db, current_user.organization_id, current_user)
    return [assignment_to_out(a) for a in matrix.list_for_reviewer(current_user.id, cycle_id)]

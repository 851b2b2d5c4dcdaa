from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from review360.core.rbac import require_roles
from review360.db.session import get_db
from review360.models.enums import UserRole
from review360.models.user import User
from review360.schemas.export import TableOut
from review360.services.export import Exporter, Table

router = APIRouter(prefix="/exports", tags=["exports"])


def to_out(t: Table) -> TableOut:
    return TableOut(columns=t.columns, rows=t.rows)


@router.get("/users", response_model=TableOut)
def export_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    return to_out(Exporter(db, current_user.organization_id).user_roster())


@router.get("/credentials", response_model=TableOut)
def export_credentials(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """Names, usernames and current passwords, for handing out accounts."""
    return to_out(Exporter(db, current_user.organization_id).credential_roster())


@router.get("/assignments", response_model=TableOut)
def export_assignments(
    cycle_id: str | None = Query(default=None, description="Defaults to the active cycle"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    return to_out(Exporter(db, current_user.organization_id).assignment_roster(cycle_id))

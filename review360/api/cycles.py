from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from review360.core.rbac import require_roles
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.enums import CycleStatus, UserRole
from review360.models.review_cycle import ReviewCycle
from review360.models.user import User
from review360.repositories import CycleRepository
from review360.schemas.pagination import paginate
from review360.schemas.review_cycle import ReviewCycleCreate, ReviewCycleOut, ReviewCycleUpdate
from review360.services.cycles import CycleManager

router = APIRouter(prefix="/cycles", tags=["review-cycles"])


def to_out(c: ReviewCycle) -> ReviewCycleOut:
    return ReviewCycleOut(
        id=str(c.id),
        name=c.name,
        status=c.status,
        due_date=c.due_date,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


@router.get("")
def list_cycles(
    search: str | None = Query(default=None, description="Search by name"),
    status: CycleStatus | None = Query(default=None, description="Filter by status (DRAFT, ACTIVE, CLOSED)"),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum number of results"),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    List the organization's review cycles, newest first.

    Use ?include_pagination=true to get pagination metadata.
    """
    query = CycleRepository(db, current_user.organization_id).query()
    if search:
        query = query.filter(ReviewCycle.name.ilike(f"%{search.lower()}%"))
    if status:
        query = query.filter(ReviewCycle.status == status)

    query = query.order_by(ReviewCycle.created_at.desc())
    return paginate(query, limit=limit, offset=offset, convert=to_out, include_pagination=include_pagination)


@router.get("/active", response_model=ReviewCycleOut)
def get_active_cycle(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_out(CycleManager(db, current_user.organization_id).active())


@router.get("/{cycle_id}", response_model=ReviewCycleOut)
def get_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_out(CycleManager(db, current_user.organization_id).get(cycle_id))


@router.post("", response_model=ReviewCycleOut, status_code=status.HTTP_201_CREATED)
def create_cycle(
    payload: ReviewCycleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    c = CycleManager(db, current_user.organization_id, current_user).create(
        name=payload.name, due_date=payload.due_date
    )
    db.commit()
    return to_out(c)


@router.patch("/{cycle_id}", response_model=ReviewCycleOut)
def update_cycle(
    cycle_id: str,
    payload: ReviewCycleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    c = CycleManager(db, current_user.organization_id, current_user).update(
        cycle_id, name=payload.name, due_date=payload.due_date
    )
    db.commit()
    return to_out(c)


@router.post("/{cycle_id}/activate", response_model=ReviewCycleOut)
def activate_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    c = CycleManager(db, current_user.organization_id, current_user).activate(cycle_id)
    db.commit()
    return to_out(c)


@router.post("/{cycle_id}/close", response_model=ReviewCycleOut)
def close_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    c = CycleManager(db, current_user.organization_id, current_user).close(cycle_id)
    db.commit()
    return to_out(c)

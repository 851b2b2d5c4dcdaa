from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from review360.core.access import assert_can_share_report
from review360.core.exceptions import ValidationError
from review360.core.rbac import require_roles
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.enums import UserRole
from review360.models.user import User
from review360.repositories import UserRepository, as_uuid
from review360.schemas.pagination import paginate
from review360.schemas.user import (
    ReportSharingUpdate,
    UserCreate,
    UserCredentialOut,
    UserDeleteOut,
    UserImportRequest,
    UserOut,
    UserUpdate,
)
from review360.services.ai import AICollaborator, FilePart, get_ai_collaborator
from review360.services.directory import Directory, UserCandidate
from review360.services.user_import import import_users_from_file

router = APIRouter(prefix="/users", tags=["users"])


def to_out(u: User) -> UserOut:
    return UserOut(
        id=str(u.id),
        name=u.name,
        username=u.username,
        email=u.email,
        role=u.role,
        department=u.department,
        manager_id=str(u.manager_id) if u.manager_id else None,
        report_shared=u.report_shared,
        created_at=u.created_at,
    )


def to_credential(u: User) -> UserCredentialOut:
    return UserCredentialOut(id=str(u.id), name=u.name, username=u.username, password=u.password_secret)


@router.get("")
def list_users(
    search: str | None = Query(default=None, description="Search by name or username"),
    department: str | None = Query(default=None),
    role: UserRole | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = UserRepository(db, current_user.organization_id).query()
    if search:
        term = f"%{search.lower()}%"
        query = query.filter((User.name.ilike(term)) | (User.username_key.like(term)))
    if department:
        query = query.filter(User.department == department)
    if role:
        query = query.filter(User.role == role)

    query = query.order_by(User.name.asc(), User.id.asc())
    return paginate(query, limit=limit, offset=offset, convert=to_out, include_pagination=include_pagination)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    u = Directory(db, current_user.organization_id, current_user).create(
        name=payload.name,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        department=payload.department,
        email=payload.email,
        manager_id=payload.manager_id,
    )
    db.commit()
    return to_out(u)


@router.post("/import", response_model=list[UserOut], status_code=status.HTTP_201_CREATED)
def import_users(
    payload: UserImportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    candidates = [
        UserCandidate(
            name=item.name,
            email=item.email,
            role=item.role,
            department=item.department,
            manager_id=as_uuid(item.manager_id),
        )
        for item in payload.items
    ]
    created = Directory(db, current_user.organization_id, current_user).import_batch(candidates)
    db.commit()
    return [to_out(u) for u in created]


@router.post("/import/file", response_model=list[UserOut], status_code=status.HTTP_201_CREATED)
async def import_users_file(
    file: UploadFile = File(None),
    text: str = Form(""),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    ai: AICollaborator = Depends(get_ai_collaborator),
):
    """
    Upload a roster. A CSV with a ``name`` column is read directly; other files
    (PDF, images, free text) are parsed by the AI service.
    """
    part = None
    if file is not None:
        part = FilePart(filename=file.filename or "upload", content_type=file.content_type, data=await file.read())
    created = await import_users_from_file(
        Directory(db, current_user.organization_id, current_user), ai, file=part, text=text
    )
    db.commit()
    return [to_out(u) for u in created]


@router.post("/reset-passwords", response_model=list[UserCredentialOut])
def reset_all_passwords(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """Random new password for everyone except the caller."""
    reset = Directory(db, current_user.organization_id, current_user).batch_reset_passwords(current_user.id)
    db.commit()
    return [to_credential(u) for u in reset]


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_out(UserRepository(db, current_user.organization_id).get_or_404(user_id))


@router.patch("/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    u = Directory(db, current_user.organization_id, current_user).update(
        user_id, payload.model_dump(exclude_unset=True)
    )
    db.commit()
    return to_out(u)


@router.delete("/{user_id}", response_model=UserDeleteOut)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    if as_uuid(user_id) == current_user.id:
        raise ValidationError("You cannot delete your own account")
    removed = Directory(db, current_user.organization_id, current_user).delete(user_id)
    db.commit()
    return UserDeleteOut(id=user_id, assignments_removed=removed)


@router.post("/{user_id}/reset-password", response_model=UserCredentialOut)
def reset_password(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    u = Directory(db, current_user.organization_id, current_user).reset_password(user_id)
    db.commit()
    return to_credential(u)


@router.post("/{user_id}/report-sharing", response_model=UserOut)
def set_report_sharing(
    user_id: str,
    payload: ReportSharingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    directory = Directory(db, current_user.organization_id, current_user)
    subject = directory.users.get_or_404(user_id)
    assert_can_share_report(current_user, subject)
    u = directory.set_report_sharing(subject.id, payload.shared)
    db.commit()
    return to_out(u)

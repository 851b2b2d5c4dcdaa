from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from review360.core.exceptions import AuthError
from review360.core.rbac import require_roles
from review360.core.security import get_current_user
from review360.db.session import get_db
from review360.models.enums import UserRole
from review360.models.organization import Organization
from review360.models.user import User
from review360.repositories import OrganizationRepository
from review360.api.users import to_out as user_to_out
from review360.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    OrganizationOut,
    RecoverRequest,
    RecoveryKeyOut,
    RegisterRequest,
    RegisterResponse,
    SessionOut,
)
from review360.services.directory import Directory
from review360.services.registry import TenantRegistry

router = APIRouter(tags=["auth"])


def org_to_out(o: Organization) -> OrganizationOut:
    return OrganizationOut(id=str(o.id), name=o.name, login_code=o.login_code, created_at=o.created_at)


@router.post("/auth/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    """Create an organization with its first ADMIN. The recovery key is shown once, here."""
    org, admin = TenantRegistry(db).register(
        name=payload.organization_name,
        login_code=payload.login_code,
        admin_name=payload.admin_name,
        admin_username=payload.admin_username,
        admin_password=payload.admin_password,
    )
    db.commit()
    return RegisterResponse(organization=org_to_out(org), admin=user_to_out(admin), recovery_key=org.recovery_key)


@router.post("/auth/login", response_model=SessionOut)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """Credential check only; later requests send X-Org-Code and HTTP Basic credentials."""
    registry = TenantRegistry(db)
    org = registry.orgs.by_login_code(payload.login_code)
    if org is None:
        # same failure as a wrong password
        raise AuthError()
    user = Directory(db, org.id).authenticate(payload.username, payload.password)
    return SessionOut(organization=org_to_out(org), user=user_to_out(user))


@router.post("/auth/recover")
def recover(payload: RecoverRequest, db: Session = Depends(get_db)):
    admin = TenantRegistry(db).recover_admin(payload.login_code, payload.recovery_key, payload.new_password)
    db.commit()
    return {"status": "ok", "username": admin.username}


@router.post("/auth/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    Directory(db, current_user.organization_id, current_user).change_password(
        current_user.id, payload.old_password, payload.new_password
    )
    db.commit()


@router.post("/organization/recovery-key", response_model=RecoveryKeyOut)
def rotate_recovery_key(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    org = TenantRegistry(db).rotate_recovery_key(current_user.organization_id, current_user)
    db.commit()
    return RecoveryKeyOut(recovery_key=org.recovery_key, rotated_at=org.recovery_key_rotated_at)


def current_organization(db: Session, user: User) -> Organization:
    return OrganizationRepository(db).get(user.organization_id)

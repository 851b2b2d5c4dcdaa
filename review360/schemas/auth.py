from datetime import datetime

from pydantic import BaseModel, Field

from review360.schemas.user import UserOut


class RegisterRequest(BaseModel):
    organization_name: str = Field(min_length=1, max_length=200)
    login_code: str = Field(min_length=1, max_length=100)
    admin_name: str = Field(min_length=1, max_length=200)
    admin_username: str = Field(min_length=1, max_length=100)
    admin_password: str = Field(min_length=1, max_length=200)


class LoginRequest(BaseModel):
    login_code: str
    username: str
    password: str


class RecoverRequest(BaseModel):
    login_code: str
    recovery_key: str
    new_password: str = Field(min_length=1, max_length=200)


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(min_length=1, max_length=200)


class OrganizationOut(BaseModel):
    id: str
    name: str
    login_code: str
    created_at: datetime


class RegisterResponse(BaseModel):
    """The recovery key is only ever returned here and on rotation."""
    organization: OrganizationOut
    admin: UserOut
    recovery_key: str


class RecoveryKeyOut(BaseModel):
    recovery_key: str
    rotated_at: datetime | None


class SessionOut(BaseModel):
    organization: OrganizationOut
    user: UserOut

from datetime import datetime

from pydantic import BaseModel, Field

from review360.models.enums import UserRole


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    username: str = Field(min_length=1, max_length=100)
    password: str | None = Field(default=None, max_length=200)
    role: UserRole = UserRole.EMPLOYEE
    department: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    manager_id: str | None = None


class UserUpdate(BaseModel):
    """Only the fields sent are changed; ``manager_id: null`` clears the manager."""
    name: str | None = Field(default=None, max_length=200)
    username: str | None = Field(default=None, max_length=100)
    password: str | None = Field(default=None, max_length=200)
    role: UserRole | None = None
    department: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    manager_id: str | None = None


class UserImportItem(BaseModel):
    name: str | None = None
    email: str | None = None
    role: str | None = None
    department: str | None = None
    manager_id: str | None = None


class UserImportRequest(BaseModel):
    items: list[UserImportItem] = Field(min_length=1, max_length=1000)


class ReportSharingUpdate(BaseModel):
    shared: bool


class UserOut(BaseModel):
    id: str
    name: str
    username: str
    email: str | None
    role: UserRole
    department: str
    manager_id: str | None
    report_shared: bool
    created_at: datetime


class UserCredentialOut(BaseModel):
    """Returned by password resets so the admin can hand the new password over."""
    id: str
    name: str
    username: str
    password: str


class UserDeleteOut(BaseModel):
    id: str
    assignments_removed: int

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import String, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from review360.db.base import Base
from review360.models.enums import UserRole


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("organization_id", "username_key", name="uq_users_org_username"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), index=True, nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    # case-folded copy of username; uniqueness is case-insensitive within a tenant
    username_key: Mapped[str] = mapped_column(String(100), nullable=False)

    # Plain credential: the credential roster export hands it out verbatim
    password_secret: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, native_enum=False, create_constraint=True, length=20, name="ck_users_role"),
        nullable=False,
        default=UserRole.EMPLOYEE,
    )
    department: Mapped[str] = mapped_column(String(200), nullable=False)

    # weak reference; cleared when the manager is deleted
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    report_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    @validates("username")
    def _sync_username_key(self, _key, value: str) -> str:
        self.username_key = normalize_username(value)
        return value


def normalize_username(username: str) -> str:
    return username.strip().lower()

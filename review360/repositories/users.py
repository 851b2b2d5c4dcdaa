from __future__ import annotations

from review360.models.enums import UserRole
from review360.models.user import User, normalize_username
from review360.repositories.base import TenantRepository


class UserRepository(TenantRepository[User]):
    model = User
    label = "User"

    def list(self) -> list[User]:
        return self.query().order_by(User.name.asc(), User.id.asc()).all()

    def by_username(self, username: str) -> User | None:
        return self.query().filter(User.username_key == normalize_username(username)).one_or_none()

    def username_keys(self) -> set[str]:
        return {r[0] for r in self.query().with_entities(User.username_key).all()}

    def admins(self) -> list[User]:
        return (
            self.query()
            .filter(User.role == UserRole.ADMIN)
            .order_by(User.created_at.asc(), User.id.asc())
            .all()
        )

    def reports_of(self, manager_id) -> list[User]:
        return self.query().filter(User.manager_id == manager_id).all()

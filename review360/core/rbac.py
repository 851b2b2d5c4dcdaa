from fastapi import Depends

from review360.core.exceptions import PermissionDeniedError
from review360.core.security import get_current_user
from review360.models.enums import UserRole
from review360.models.user import User


def require_roles(*required: UserRole):
    """
    Usage:
      Depends(require_roles(UserRole.ADMIN))
      Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))  # any-of
    """
    required_set = set(required)

    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role not in required_set:
            raise PermissionDeniedError(
                f"Forbidden. Requires one of: {sorted(r.value for r in required_set)}"
            )
        return user

    return _dep

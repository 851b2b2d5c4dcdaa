from fastapi import Depends, Header
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session

from review360.core.exceptions import AuthError
from review360.db.session import get_db
from review360.models.user import User
from review360.repositories import OrganizationRepository
from review360.services.directory import Directory

basic = HTTPBasic(auto_error=False)


def get_current_user(
    x_org_code: str | None = Header(default=None),
    credentials: HTTPBasicCredentials | None = Depends(basic),
    db: Session = Depends(get_db),
) -> User:
    """
    Session boundary: X-Org-Code header plus HTTP Basic (username, password).
    Example: X-Org-Code: acme, Authorization: Basic base64(alice:secret)

    Every failure (missing header, unknown organization, bad credentials) is the
    same 401 so callers cannot tell which part was wrong.
    """
    if not x_org_code or credentials is None:
        raise AuthError()

    org = OrganizationRepository(db).by_login_code(x_org_code)
    if org is None:
        raise AuthError()
    return Directory(db, org.id).authenticate(credentials.username, credentials.password)

"""
TenantRegistry: organization records, login codes and the recovery workflow.

Recovery keys are 160 bits from ``secrets`` rendered as eight base32 groups
(``ABCD-EFGH-...``). Verification is a constant-time comparison and fails the
same way for an unknown login code as for a wrong key.
"""
import base64
import logging
import re
import secrets
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from review360.core.audit import log_event
from review360.core.exceptions import AuthError, ConflictError, NotFoundError, StateError, ValidationError
from review360.models.enums import UserRole
from review360.models.organization import Organization
from review360.models.user import User
from review360.repositories import OrganizationRepository, UserRepository
from review360.repositories.organizations import normalize_login_code
from review360.services.cycles import CycleManager
from review360.services.directory import Directory

logger = logging.getLogger(__name__)

RECOVERY_KEY_BYTES = 20
RECOVERY_KEY_GROUP = 4

LOGIN_CODE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{1,99}$")


def generate_recovery_key() -> str:
    raw = base64.b32encode(secrets.token_bytes(RECOVERY_KEY_BYTES)).decode("ascii").rstrip("=")
    return "-".join(raw[i:i + RECOVERY_KEY_GROUP] for i in range(0, len(raw), RECOVERY_KEY_GROUP))


def _canonical_key(key: str) -> str:
    return re.sub(r"[\s-]", "", key or "").upper()


def _keys_match(given: str, stored: str) -> bool:
    return secrets.compare_digest(_canonical_key(given).encode(), _canonical_key(stored).encode())


class TenantRegistry:
    def __init__(self, db: Session):
        self.db = db
        self.orgs = OrganizationRepository(db)

    def register(
        self,
        *,
        name: str,
        login_code: str,
        admin_name: str,
        admin_username: str,
        admin_password: str,
    ) -> tuple[Organization, User]:
        """
        Create the tenant, its first ADMIN user and a default ACTIVE cycle.
        The generated recovery key is on the returned organization.
        """
        for field, value in (
            ("name", name),
            ("login_code", login_code),
            ("admin_name", admin_name),
            ("admin_username", admin_username),
            ("admin_password", admin_password),
        ):
            if value is None or not str(value).strip():
                raise ValidationError(f"{field} is required", details=[{"field": field, "code": "required"}])

        code = normalize_login_code(login_code)
        if not LOGIN_CODE_PATTERN.match(code):
            raise ValidationError(
                "login_code must be 2-100 characters of letters, digits, '-' or '_'",
                details=[{"field": "login_code", "code": "format"}],
            )
        if self.orgs.by_login_code(code) is not None:
            raise ConflictError(f"Organization code '{code}' is already registered")

        org = Organization(name=name.strip(), login_code=code, recovery_key=generate_recovery_key())
        self.orgs.add(org)
        try:
            self.db.flush()
        except IntegrityError:
            raise ConflictError(f"Organization code '{code}' is already registered")

        admin = Directory(self.db, org.id).create(
            name=admin_name,
            username=admin_username,
            password=admin_password,
            role=UserRole.ADMIN,
        )
        CycleManager(self.db, org.id, actor=admin).create_default()

        log_event(
            db=self.db,
            organization_id=org.id,
            actor=admin,
            action="ORGANIZATION_REGISTERED",
            entity_type="organization",
            entity_id=org.id,
            metadata={"name": org.name, "login_code": org.login_code},
        )
        logger.info("Registered organization %s (%s)", org.login_code, org.id)
        return org, admin

    def resolve_login_code(self, code: str) -> Organization:
        org = self.orgs.by_login_code(code or "")
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    def verify_recovery(self, login_code: str, recovery_key: str) -> Organization:
        org = self.orgs.by_login_code(login_code or "")
        stored = org.recovery_key if org else generate_recovery_key()
        if not _keys_match(recovery_key, stored) or org is None:
            logger.warning("Recovery verification failed for login code %r", login_code)
            raise AuthError()
        return org

    def recover_admin(self, login_code: str, recovery_key: str, new_password: str) -> User:
        """Verify the recovery key, then set the password of the tenant's (first) ADMIN user."""
        org = self.verify_recovery(login_code, recovery_key)
        if not new_password:
            raise ValidationError("new_password is required", details=[{"field": "new_password", "code": "required"}])

        self.orgs.lock(org.id)
        admins = UserRepository(self.db, org.id).admins()
        if not admins:
            raise StateError("Organization has no ADMIN user to recover")
        admin = admins[0]
        admin.password_secret = new_password

        log_event(
            db=self.db,
            organization_id=org.id,
            actor=None,
            action="RECOVERY_USED",
            entity_type="user",
            entity_id=admin.id,
            metadata={"username": admin.username},
        )
        logger.info("Recovery used for organization %s", org.login_code)
        return admin

    def rotate_recovery_key(self, organization_id, actor: User | None = None) -> Organization:
        org = self.orgs.lock(organization_id)
        if org is None:
            raise NotFoundError("Organization not found")
        org.recovery_key = generate_recovery_key()
        org.recovery_key_rotated_at = datetime.now(timezone.utc)

        log_event(
            db=self.db,
            organization_id=org.id,
            actor=actor,
            action="RECOVERY_KEY_ROTATED",
            entity_type="organization",
            entity_id=org.id,
        )
        return org

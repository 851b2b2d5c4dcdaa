"""
Directory: tenant-scoped user records.

Owns username uniqueness (case-insensitive, per tenant), the manager-reference
graph (kept acyclic), bulk import with username de-duplication, password
operations, and the one cascading-integrity rule of the engine: deleting a user
removes every assignment that references them.
"""
from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from review360.core.audit import log_event
from review360.core.config import settings
from review360.core.exceptions import AuthError, ConflictError, ValidationError
from review360.models.enums import UserRole
from review360.models.user import User, normalize_username
from review360.repositories import AssignmentRepository, OrganizationRepository, UserRepository, as_uuid

logger = logging.getLogger(__name__)

# no i, l, o, 0, 1
PASSWORD_ALPHABET = "abcdefghjkmnpqrstuvwxyz23456789"
PASSWORD_LENGTH = 8

_WHITESPACE = re.compile(r"\s+")
_NON_USERNAME = re.compile(r"[^a-z0-9_]")


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def derive_username(display_name: str | None) -> str:
    """Lower-case, whitespace to underscore, everything else non-alphanumeric dropped."""
    base = _WHITESPACE.sub("_", (display_name or "").strip().lower())
    base = _NON_USERNAME.sub("", base)
    return base or "user"


def unique_username(base: str, taken: set[str]) -> str:
    """``base``, then ``base1``, ``base2``, ... until it is not in ``taken`` (case-folded)."""
    candidate = base
    counter = 1
    while normalize_username(candidate) in taken:
        candidate = f"{base}{counter}"
        counter += 1
    return candidate


def parse_role(value: Any, default: UserRole = UserRole.EMPLOYEE) -> UserRole:
    if isinstance(value, UserRole):
        return value
    if isinstance(value, str):
        try:
            return UserRole(value.strip().upper())
        except ValueError:
            pass
    return default


@dataclass
class UserCandidate:
    """One row of a bulk import. Missing fields fall back to directory defaults."""

    name: str | None = None
    email: str | None = None
    role: Any = None
    department: str | None = None
    manager_id: uuid.UUID | None = None


class Directory:
    def __init__(self, db: Session, organization_id: uuid.UUID, actor: User | None = None):
        self.db = db
        self.organization_id = organization_id
        self.actor = actor
        self.users = UserRepository(db, organization_id)
        self.assignments = AssignmentRepository(db, organization_id)

    def _lock(self) -> None:
        OrganizationRepository(self.db).lock(self.organization_id)

    def _audit(self, action: str, entity_id, metadata: dict | None = None) -> None:
        log_event(
            db=self.db,
            organization_id=self.organization_id,
            actor=self.actor,
            action=action,
            entity_type="user",
            entity_id=entity_id,
            metadata=metadata,
        )

    # ---- authentication ----

    def authenticate(self, username: str, password: str) -> User:
        user = self.users.by_username(username or "")
        # compare even on unknown usernames so both failures look alike
        expected = user.password_secret if user else secrets.token_hex(8)
        if not secrets.compare_digest((password or "").encode(), expected.encode()) or user is None:
            raise AuthError()
        return user

    # ---- validation helpers ----

    def _require_text(self, field: str, value: str | None) -> str:
        if value is None or not value.strip():
            raise ValidationError(f"{field} is required", details=[{"field": field, "code": "required"}])
        return value.strip()

    def _check_username_free(self, username: str, exclude_id: uuid.UUID | None = None) -> None:
        existing = self.users.by_username(username)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(f"Username '{username}' is already taken")

    def _validate_manager(self, user_id: uuid.UUID | None, manager_id: Any) -> uuid.UUID | None:
        """Manager must be another user of this tenant and must not close a reporting loop."""
        if manager_id is None or manager_id == "":
            return None
        manager = self.users.get(manager_id)
        if manager is None:
            raise ValidationError("Manager not found in this organization", details=[{"field": "manager_id", "code": "not_found"}])
        if user_id is not None and manager.id == user_id:
            raise ValidationError("A user cannot be their own manager", details=[{"field": "manager_id", "code": "self_reference"}])

        if user_id is not None:
            seen: set[uuid.UUID] = set()
            cursor: User | None = manager
            while cursor is not None and cursor.manager_id is not None and cursor.id not in seen:
                seen.add(cursor.id)
                if cursor.manager_id == user_id:
                    raise ValidationError(
                        "Manager assignment would create a reporting cycle",
                        details=[{"field": "manager_id", "code": "cycle"}],
                    )
                cursor = self.users.get(cursor.manager_id)
        return manager.id

    def _flush_or_conflict(self) -> None:
        # the explicit check above covers the normal path; this catches a concurrent insert
        try:
            self.db.flush()
        except IntegrityError:
            raise ConflictError("Username is already taken")

    def _default_email(self, username: str) -> str | None:
        org = OrganizationRepository(self.db).get(self.organization_id)
        return f"{normalize_username(username)}@{org.login_code}.local" if org else None

    # ---- CRUD ----

    def create(
        self,
        *,
        name: str | None,
        username: str | None,
        password: str | None = None,
        role: Any = UserRole.EMPLOYEE,
        department: str | None = None,
        email: str | None = None,
        manager_id: Any = None,
    ) -> User:
        name = self._require_text("name", name)
        username = self._require_text("username", username)

        self._lock()
        self._check_username_free(username)
        manager_uuid = self._validate_manager(None, manager_id)

        user = User(
            name=name,
            username=username,
            password_secret=password or settings.DEFAULT_PASSWORD,
            role=parse_role(role),
            department=(department or "").strip() or settings.DEFAULT_DEPARTMENT,
            email=email or self._default_email(username),
            manager_id=manager_uuid,
        )
        self.users.add(user)
        self._flush_or_conflict()

        self._audit("USER_CREATED", user.id, {"username": user.username, "role": user.role.value})
        return user

    def update(self, user_id: Any, changes: dict[str, Any]) -> User:
        """
        Apply a partial update. Keys absent from ``changes`` are left alone;
        ``manager_id: None`` clears the manager.
        """
        self._lock()
        user = self.users.get_or_404(user_id)
        before = {"name": user.name, "username": user.username, "role": user.role.value, "department": user.department}

        if "name" in changes:
            user.name = self._require_text("name", changes["name"])
        if "username" in changes:
            username = self._require_text("username", changes["username"])
            self._check_username_free(username, exclude_id=user.id)
            user.username = username
        if changes.get("password"):
            user.password_secret = changes["password"]
        if "role" in changes and changes["role"] is not None:
            user.role = parse_role(changes["role"], default=user.role)
        if "department" in changes:
            user.department = (changes["department"] or "").strip() or settings.DEFAULT_DEPARTMENT
        if "email" in changes:
            user.email = changes["email"] or None
        if "manager_id" in changes:
            user.manager_id = self._validate_manager(user.id, changes["manager_id"])

        self._flush_or_conflict()
        self._audit(
            "USER_UPDATED",
            user.id,
            {"before": before, "after": {"name": user.name, "username": user.username, "role": user.role.value, "department": user.department}},
        )
        return user

    def delete(self, user_id: Any) -> int:
        """
        Remove the user and every assignment where they are reviewer or subject,
        in every cycle, as one unit. Reports of the user lose their manager link.
        Returns the number of assignments removed.
        """
        self._lock()
        user = self.users.get_or_404(user_id)

        with self.db.begin_nested():
            removed = self.assignments.delete_touching_user(user.id)
            for report in self.users.reports_of(user.id):
                report.manager_id = None
            self.db.delete(user)
            self.db.flush()

        logger.info("Deleted user %s and %d assignment(s)", user.id, removed)
        self._audit("USER_DELETED", user.id, {"username": user.username, "assignments_removed": removed})
        return removed

    # ---- bulk import ----

    def import_batch(self, candidates: Iterable[UserCandidate | dict]) -> list[User]:
        """
        Create one user per candidate, in order. Usernames come from the display
        name and are suffixed (name, name1, name2, ...) past anything already in the
        tenant or earlier in this batch. Bad manager references are dropped, not fatal.
        """
        rows = [c if isinstance(c, UserCandidate) else UserCandidate(**_candidate_fields(c)) for c in candidates]
        if not rows:
            return []

        self._lock()
        taken = self.users.username_keys()
        created: list[User] = []

        with self.db.begin_nested():
            for c in rows:
                name = (c.name or "").strip() or "Unknown"
                username = unique_username(derive_username(c.name), taken)
                taken.add(normalize_username(username))

                user = User(
                    name=name,
                    username=username,
                    password_secret=settings.DEFAULT_PASSWORD,
                    role=parse_role(c.role),
                    department=(c.department or "").strip() or settings.IMPORTED_DEPARTMENT,
                    email=c.email or None,
                    manager_id=None,
                )
                self.users.add(user)
                created.append(user)
            self.db.flush()

            for user, c in zip(created, rows):
                if c.manager_id is not None:
                    self.assign_manager_lenient(user, c.manager_id)
            self.db.flush()

        logger.info("Imported %d user(s) into organization %s", len(created), self.organization_id)
        self._audit(
            "USERS_IMPORTED",
            self.organization_id,
            {"count": len(created), "usernames": [u.username for u in created]},
        )
        return created

    def assign_manager_lenient(self, user: User, manager_id: Any) -> bool:
        """Import-path manager assignment: an invalid reference is logged and ignored."""
        try:
            user.manager_id = self._validate_manager(user.id, manager_id)
        except ValidationError as e:
            logger.warning("Dropping manager reference %s for user %s: %s", manager_id, user.id, e.message)
            return False
        return True

    # ---- passwords ----

    def reset_password(self, user_id: Any) -> User:
        self._lock()
        user = self.users.get_or_404(user_id)
        user.password_secret = settings.DEFAULT_PASSWORD
        self._audit("PASSWORD_RESET", user.id)
        return user

    def batch_reset_passwords(self, exclude_user_id: Any) -> list[User]:
        """
        Give every user except ``exclude_user_id`` an independent random password.
        The excluded user (normally the caller) keeps theirs.
        """
        self._lock()
        exclude = as_uuid(exclude_user_id)
        reset: list[User] = []
        with self.db.begin_nested():
            for user in self.users.list():
                if user.id == exclude:
                    continue
                user.password_secret = generate_password()
                reset.append(user)
            self.db.flush()

        logger.info("Batch password reset for %d user(s) in organization %s", len(reset), self.organization_id)
        self._audit("PASSWORDS_BATCH_RESET", self.organization_id, {"count": len(reset)})
        return reset

    def change_password(self, user_id: Any, old_password: str, new_password: str) -> User:
        self._lock()
        user = self.users.get_or_404(user_id)
        if not secrets.compare_digest((old_password or "").encode(), user.password_secret.encode()):
            raise AuthError()
        if not new_password:
            raise ValidationError("new_password is required", details=[{"field": "new_password", "code": "required"}])
        user.password_secret = new_password
        self._audit("PASSWORD_CHANGED", user.id)
        return user

    def set_report_sharing(self, user_id: Any, shared: bool) -> User:
        self._lock()
        user = self.users.get_or_404(user_id)
        user.report_shared = bool(shared)
        self._audit("USER_UPDATED", user.id, {"report_shared": user.report_shared})
        return user


def _candidate_fields(raw: dict) -> dict:
    return {
        "name": raw.get("name"),
        "email": raw.get("email"),
        "role": raw.get("role"),
        "department": raw.get("department"),
        "manager_id": as_uuid(raw.get("manager_id")),
    }

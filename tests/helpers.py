import base64
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from review360.models.enums import AssignmentStatus, Relationship, UserRole
from review360.models.question import Question
from review360.models.review_assignment import ReviewAssignment
from review360.models.review_cycle import ReviewCycle
from review360.models.user import User
from review360.repositories import CycleRepository
from review360.services.directory import Directory
from review360.services.registry import TenantRegistry


def create_org(db: Session, login_code: str = "acme", admin_username: str = "admin", admin_password: str = "secret"):
    org, admin = TenantRegistry(db).register(
        name=login_code.title(),
        login_code=login_code,
        admin_name="Admin",
        admin_username=admin_username,
        admin_password=admin_password,
    )
    db.commit()
    return org, admin


def create_user(
    db: Session,
    org,
    name: str,
    *,
    username: str | None = None,
    password: str = "pw",
    role: UserRole = UserRole.EMPLOYEE,
    department: str = "Eng",
    manager: User | None = None,
) -> User:
    u = Directory(db, org.id).create(
        name=name,
        username=username or name.lower().replace(" ", "_"),
        password=password,
        role=role,
        department=department,
        manager_id=manager.id if manager else None,
    )
    db.commit()
    return u


def active_cycle(db: Session, org) -> ReviewCycle:
    return CycleRepository(db, org.id).active()


def create_question(db: Session, org, category: str, text: str = "Question") -> Question:
    q = Question(organization_id=org.id, category=category, text=text, position=0)
    db.add(q)
    db.commit()
    return q


def create_submitted(
    db: Session,
    org,
    cycle: ReviewCycle,
    reviewer: User,
    subject: User,
    relationship: Relationship,
    scores: dict,
) -> ReviewAssignment:
    a = ReviewAssignment(
        organization_id=org.id,
        cycle_id=cycle.id,
        reviewer_id=reviewer.id,
        subject_id=subject.id,
        relationship=relationship,
        status=AssignmentStatus.SUBMITTED,
        scores={str(k): v for k, v in scores.items()},
        comments={},
        submitted_at=datetime.now(timezone.utc),
    )
    db.add(a)
    db.commit()
    return a


def auth_headers(login_code: str, username: str, password: str) -> dict:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"X-Org-Code": login_code, "Authorization": f"Basic {token}"}

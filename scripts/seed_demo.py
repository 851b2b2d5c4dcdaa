"""
Demo tenant: organization "acme" with a small Engineering team and a generated matrix.
Prints the admin login and the recovery key.
"""
from dotenv import load_dotenv

load_dotenv()

from review360.core.logging import configure_logging  # noqa: E402
from review360.db.session import SessionLocal  # noqa: E402
from review360.models.enums import UserRole  # noqa: E402
from review360.services.directory import Directory  # noqa: E402
from review360.services.matrix import AssignmentMatrix  # noqa: E402
from review360.services.questionnaire import seed_default_questions  # noqa: E402
from review360.services.registry import TenantRegistry  # noqa: E402

TEAM = [
    ("Bob Builder", "EMPLOYEE"),
    ("Carol Chen", "EMPLOYEE"),
    ("Dan Diaz", "EMPLOYEE"),
]


def main():
    configure_logging()
    db = SessionLocal()
    try:
        seed_default_questions(db)
        registry = TenantRegistry(db)
        if registry.orgs.by_login_code("acme") is not None:
            print("Demo organization already exists")
            return

        org, admin = registry.register(
            name="Acme Corp",
            login_code="acme",
            admin_name="Alice Admin",
            admin_username="alice",
            admin_password="change-me",
        )
        directory = Directory(db, org.id, admin)
        lead = directory.create(name="Erin Lead", username="erin", role=UserRole.MANAGER, department="Engineering")
        for name, role in TEAM:
            directory.create(
                name=name,
                username=name.split()[0].lower(),
                role=role,
                department="Engineering",
                manager_id=lead.id,
            )

        created = AssignmentMatrix(db, org.id, admin).regenerate()
        db.commit()
        print("Organization: acme  admin: alice / change-me")
        print("Recovery key:", org.recovery_key)
        print("Assignments generated:", len(created))
    finally:
        db.close()


if __name__ == "__main__":
    main()

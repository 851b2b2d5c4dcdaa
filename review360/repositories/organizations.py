import uuid

from sqlalchemy.orm import Session

from review360.models.organization import Organization


def normalize_login_code(code: str) -> str:
    return code.strip().lower()


class OrganizationRepository:
    """Organizations are the tenants themselves, so this one is not tenant-scoped."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, organization_id: uuid.UUID) -> Organization | None:
        return self.db.get(Organization, organization_id)

    def by_login_code(self, code: str) -> Organization | None:
        return (
            self.db.query(Organization)
            .filter(Organization.login_code == normalize_login_code(code))
            .one_or_none()
        )

    def add(self, org: Organization) -> Organization:
        self.db.add(org)
        return org

    def lock(self, organization_id: uuid.UUID) -> Organization | None:
        """
        Take the tenant's write lock (row lock on the organization) for the rest of
        the transaction. Serializes writers per tenant; SQLite ignores FOR UPDATE.
        """
        return (
            self.db.query(Organization)
            .filter(Organization.id == organization_id)
            .with_for_update()
            .one_or_none()
        )

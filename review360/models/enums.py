import enum


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class Relationship(str, enum.Enum):
    SELF = "SELF"
    MANAGER = "MANAGER"
    DIRECT_REPORT = "DIRECT_REPORT"
    PEER = "PEER"


class AssignmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"


class CycleStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"

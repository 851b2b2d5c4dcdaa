from review360.models.audit_event import AuditEvent
from review360.models.enums import AssignmentStatus, CycleStatus, Relationship, UserRole
from review360.models.organization import Organization
from review360.models.question import Question
from review360.models.review_assignment import ReviewAssignment
from review360.models.review_cycle import ReviewCycle
from review360.models.user import User

__all__ = [ "AuditEvent", "Organization", "Question", "ReviewAssignment",
           "ReviewCycle", "User", "AssignmentStatus", "CycleStatus",
           "Relationship", "UserRole" ]

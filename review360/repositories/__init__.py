from review360.repositories.base import TenantRepository, as_uuid
from review360.repositories.organizations import OrganizationRepository
from review360.repositories.users import UserRepository
from review360.repositories.questions import QuestionRepository
from review360.repositories.cycles import CycleRepository
from review360.repositories.assignments import AssignmentRepository
from review360.repositories.audit import AuditRepository

__all__ = [ "TenantRepository", "as_uuid", "OrganizationRepository", "UserRepository",
           "QuestionRepository", "CycleRepository", "AssignmentRepository", "AuditRepository" ]

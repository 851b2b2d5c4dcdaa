from review360.core.exceptions import PermissionDeniedError
from review360.models.enums import UserRole
from review360.models.review_assignment import ReviewAssignment
from review360.models.user import User


def assert_user_is_reviewer(user: User, assignment: ReviewAssignment):
    if assignment.reviewer_id != user.id:
        raise PermissionDeniedError("Only the assigned reviewer can perform this action")


def can_view_report(viewer: User, subject: User) -> bool:
    """ADMINs, the subject's direct manager, or the subject once their report is shared."""
    if viewer.role == UserRole.ADMIN:
        return True
    if subject.manager_id is not None and subject.manager_id == viewer.id:
        return True
    return viewer.id == subject.id and subject.report_shared


def assert_can_view_report(viewer: User, subject: User):
    if not can_view_report(viewer, subject):
        raise PermissionDeniedError("You are not allowed to view this report")


def assert_can_share_report(actor: User, subject: User):
    """Report sharing is toggled by an ADMIN or the subject's direct manager."""
    if actor.role == UserRole.ADMIN:
        return
    if subject.manager_id is not None and subject.manager_id == actor.id:
        return
    raise PermissionDeniedError("Only an ADMIN or the direct manager can change report sharing")

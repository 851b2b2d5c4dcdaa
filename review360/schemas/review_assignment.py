from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from review360.models.enums import AssignmentStatus, Relationship
from review360.schemas.user import UserOut


class AssignmentCreate(BaseModel):
    reviewer_id: str
    subject_id: str
    relationship: Relationship
    cycle_id: str | None = None


class MatrixRequest(BaseModel):
    """Target cycle for generate/suggest; the active cycle when omitted."""
    cycle_id: str | None = None


class ReviewDraft(BaseModel):
    # values are checked by the matrix service (integers up to 5)
    scores: dict[str, Any] | None = None
    comments: dict[str, str | None] | None = None
    feedback_strengths: str | None = None
    feedback_improvements: str | None = None


class ReviewSubmit(BaseModel):
    scores: dict[str, Any] = Field(default_factory=dict)
    comments: dict[str, str | None] = Field(default_factory=dict)
    feedback_strengths: str = ""
    feedback_improvements: str = ""


class AssignmentOut(BaseModel):
    id: str
    cycle_id: str
    reviewer_id: str
    subject_id: str
    relationship: Relationship
    status: AssignmentStatus
    scores: dict[str, Any]
    comments: dict[str, str]
    feedback_strengths: str
    feedback_improvements: str
    submitted_at: datetime | None
    created_at: datetime


class MatrixOut(BaseModel):
    cycle_id: str
    created: int
    assignments: list[AssignmentOut]


class OrgChartImportOut(BaseModel):
    users: list[UserOut]
    assignments: list[AssignmentOut]

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Text, CheckConstraint, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from review360.db.base import Base
from review360.models.enums import AssignmentStatus, Relationship


class ReviewAssignment(Base):
    __tablename__ = "review_assignments"
    __table_args__ = (
        # submitted_at is stamped exactly at the transition to SUBMITTED
        CheckConstraint(
            "(status <> 'SUBMITTED') OR (submitted_at IS NOT NULL)",
            name="ck_assignment_ts_submitted",
        ),
        CheckConstraint(
            "(status = 'SUBMITTED') OR (submitted_at IS NULL)",
            name="ck_assignment_ts_open",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), index=True, nullable=False
    )
    cycle_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("review_cycles.id", ondelete="CASCADE"), index=True, nullable=False
    )

    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    subject_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )

    relationship: Mapped[Relationship] = mapped_column(
        sa.Enum(Relationship, native_enum=False, create_constraint=True, length=20, name="ck_assignments_relationship"),
        nullable=False,
    )
    status: Mapped[AssignmentStatus] = mapped_column(
        sa.Enum(AssignmentStatus, native_enum=False, create_constraint=True, length=20, name="ck_assignments_status"),
        nullable=False,
        default=AssignmentStatus.PENDING,
    )

    # keyed by raw question id strings; keys may outlive their question
    scores: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    comments: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    feedback_strengths: Mapped[str] = mapped_column(Text, nullable=False, default="")
    feedback_improvements: Mapped[str] = mapped_column(Text, nullable=False, default="")

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

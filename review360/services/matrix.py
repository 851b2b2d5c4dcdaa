"""
AssignmentMatrix: who reviews whom in a cycle.

``derive_assignments`` is the rule-based generator (pure, no I/O). The
``AssignmentMatrix`` service owns assignment CRUD, full-replace regeneration,
AI suggestions and org-chart imports, and the PENDING/DRAFT -> SUBMITTED
lifecycle. Replacement runs inside a SAVEPOINT: if inserting the new set fails,
the previous set is still there.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from review360.core.audit import log_event
from review360.core.config import settings
from review360.core.exceptions import StateError, ValidationError
from review360.models.enums import AssignmentStatus, CycleStatus, Relationship
from review360.models.review_assignment import ReviewAssignment
from review360.models.review_cycle import ReviewCycle
from review360.models.user import User
from review360.repositories import AssignmentRepository, OrganizationRepository, UserRepository, as_uuid
from review360.services.ai import AICollaborator, FilePart, OrgChartProposal, ProposedAssignment, run_ai_task
from review360.services.cycles import CycleManager
from review360.services.directory import Directory, UserCandidate

logger = logging.getLogger(__name__)

MAX_SCORE = 5


class MatrixEntry(NamedTuple):
    reviewer_id: uuid.UUID
    subject_id: uuid.UUID
    relationship: Relationship


def _linked(a: User, b: User) -> bool:
    return a.manager_id == b.id or b.manager_id == a.id


def derive_assignments(users: Iterable[User], peers_per_subject: int = 2) -> list[MatrixEntry]:
    """
    Rule-based matrix for one tenant's users.

    SELF for everyone; MANAGER (m -> u) and DIRECT_REPORT (u -> m) for every
    manager link; PEER pairs inside each department. Peers are picked by
    walking the department ring (sorted by name, then id) from each member
    until they have ``peers_per_subject`` peers, skipping manager/report pairs.
    Every peer pair is reviewed in both directions. Output order is stable.
    """
    ordered = sorted(users, key=lambda u: (u.name, str(u.id)))
    ids = {u.id for u in ordered}

    out: list[MatrixEntry] = []
    seen: set[MatrixEntry] = set()

    def emit(reviewer_id, subject_id, relationship):
        entry = MatrixEntry(reviewer_id, subject_id, relationship)
        if entry not in seen:
            seen.add(entry)
            out.append(entry)

    for u in ordered:
        emit(u.id, u.id, Relationship.SELF)

    for u in ordered:
        m = u.manager_id
        if m is None or m == u.id or m not in ids:
            continue
        emit(m, u.id, Relationship.MANAGER)
        emit(u.id, m, Relationship.DIRECT_REPORT)

    departments: dict[str, list[User]] = defaultdict(list)
    for u in ordered:
        departments[u.department].append(u)

    for dept in sorted(departments):
        members = departments[dept]
        n = len(members)
        if n < 2:
            continue
        peers: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
        for i, u in enumerate(members):
            for step in range(1, n):
                if len(peers[u.id]) >= peers_per_subject:
                    break
                v = members[(i + step) % n]
                if v.id in peers[u.id] or _linked(u, v):
                    continue
                peers[u.id].add(v.id)
                peers[v.id].add(u.id)
                emit(u.id, v.id, Relationship.PEER)
                emit(v.id, u.id, Relationship.PEER)

    return out


def validate_scores(scores: Any) -> dict[str, int]:
    """Integer scores up to 5, keyed by question id. Zero or negative means not applicable."""
    if scores is None:
        return {}
    if not isinstance(scores, dict):
        raise ValidationError("scores must be an object keyed by question id")
    errors = []
    clean: dict[str, int] = {}
    for key, value in scores.items():
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append({"field": f"scores.{key}", "code": "not_integer"})
            continue
        if value > MAX_SCORE:
            errors.append({"field": f"scores.{key}", "code": "out_of_range"})
            continue
        clean[str(key)] = value
    if errors:
        raise ValidationError("Invalid scores", details=errors)
    return clean


def _clean_comments(comments: Any) -> dict[str, str]:
    if comments is None:
        return {}
    if not isinstance(comments, dict):
        raise ValidationError("comments must be an object keyed by question id")
    return {str(k): str(v) for k, v in comments.items() if v is not None}


@dataclass
class OrgChartImport:
    users: list[User] = field(default_factory=list)
    assignments: list[ReviewAssignment] = field(default_factory=list)


class AssignmentMatrix:
    def __init__(
        self,
        db: Session,
        organization_id: uuid.UUID,
        actor: User | None = None,
        *,
        peers_per_subject: int | None = None,
    ):
        self.db = db
        self.organization_id = organization_id
        self.actor = actor
        self.peers_per_subject = peers_per_subject or settings.PEERS_PER_SUBJECT
        self.assignments = AssignmentRepository(db, organization_id)
        self.users = UserRepository(db, organization_id)
        self.cycle_manager = CycleManager(db, organization_id, actor)

    def _lock(self) -> None:
        OrganizationRepository(self.db).lock(self.organization_id)

    def _audit(self, action: str, entity_type: str, entity_id, metadata: dict | None = None) -> None:
        log_event(
            db=self.db,
            organization_id=self.organization_id,
            actor=self.actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
        )

    def _open_cycle(self, cycle_id: Any | None) -> ReviewCycle:
        cycle = self.cycle_manager.resolve(cycle_id)
        if cycle.status == CycleStatus.CLOSED:
            raise StateError("Cycle is closed")
        return cycle

    def _still_open(self, cycle: ReviewCycle) -> None:
        """Re-read the cycle under the tenant lock; it may have been closed during an AI call."""
        self.db.refresh(cycle)
        if cycle.status == CycleStatus.CLOSED:
            raise StateError("Cycle is closed")

    def _user_ids(self) -> dict[str, uuid.UUID]:
        return {str(u.id): u.id for u in self.users.list()}

    @staticmethod
    def _check_shape(reviewer_id: uuid.UUID, subject_id: uuid.UUID, relationship: Relationship) -> bool:
        if relationship == Relationship.SELF:
            return reviewer_id == subject_id
        return reviewer_id != subject_id

    def _insert(self, cycle: ReviewCycle, entries: Iterable[MatrixEntry]) -> list[ReviewAssignment]:
        created = []
        for e in entries:
            a = ReviewAssignment(
                cycle_id=cycle.id,
                reviewer_id=e.reviewer_id,
                subject_id=e.subject_id,
                relationship=e.relationship,
                status=AssignmentStatus.PENDING,
                scores={},
                comments={},
            )
            self.assignments.add(a)
            created.append(a)
        return created

    def _replace(self, cycle: ReviewCycle, entries: list[MatrixEntry], *, source: str) -> list[ReviewAssignment]:
        try:
            with self.db.begin_nested():
                removed = self.assignments.delete_for_cycle(cycle.id)
                created = self._insert(cycle, entries)
                self.db.flush()
        except IntegrityError as e:
            logger.warning("Matrix replacement for cycle %s failed, keeping previous set: %s", cycle.id, e.orig)
            raise ValidationError("Matrix generation failed; previous assignments were kept")

        logger.info("Cycle %s matrix replaced (%s): %d removed, %d created", cycle.id, source, removed, len(created))
        self._audit(
            "MATRIX_REGENERATED",
            "review_cycle",
            cycle.id,
            {"source": source, "removed": removed, "created": len(created)},
        )
        return created

    def _validate_proposals(
        self,
        proposals: Iterable[ProposedAssignment],
        id_map: dict[str, uuid.UUID],
        *,
        dedupe: bool,
    ) -> list[MatrixEntry]:
        valid: list[MatrixEntry] = []
        seen: set[MatrixEntry] = set()
        dropped = 0
        for p in proposals:
            reviewer_id = id_map.get(p.reviewer_id)
            subject_id = id_map.get(p.subject_id)
            if reviewer_id is None or subject_id is None or not self._check_shape(reviewer_id, subject_id, p.relationship):
                dropped += 1
                continue
            entry = MatrixEntry(reviewer_id, subject_id, p.relationship)
            if dedupe and entry in seen:
                continue
            seen.add(entry)
            valid.append(entry)
        if dropped:
            logger.info("Dropped %d invalid proposed assignment(s)", dropped)
        return valid

    # ---- generation ----

    def regenerate(self, cycle_id: Any | None = None) -> list[ReviewAssignment]:
        """Discard the cycle's assignments (active cycle by default) and write the rule-based set."""
        self._lock()
        cycle = self._open_cycle(cycle_id)
        entries = derive_assignments(self.users.list(), self.peers_per_subject)
        return self._replace(cycle, entries, source="rules")

    async def suggest(self, ai: AICollaborator, cycle_id: Any | None = None) -> list[ReviewAssignment]:
        """
        Ask the AI collaborator for a matrix. A non-empty valid proposal replaces
        the cycle's assignments; otherwise nothing changes and [] is returned.
        """
        cycle = self._open_cycle(cycle_id)
        payload = [
            {
                "id": str(u.id),
                "name": u.name,
                "role": u.role.value,
                "department": u.department,
                "managerId": str(u.manager_id) if u.manager_id else None,
            }
            for u in self.users.list()
        ]
        proposals = await run_ai_task(
            ai.suggest_relationships(payload, str(cycle.id)),
            fallback=[],
            label="suggest_relationships",
        )

        self._lock()
        self._still_open(cycle)
        entries = self._validate_proposals(proposals, self._user_ids(), dedupe=True)
        if not entries:
            logger.info("No usable AI suggestions for cycle %s; matrix unchanged", cycle.id)
            return []
        return self._replace(cycle, entries, source="ai")

    async def import_org_chart(
        self,
        ai: AICollaborator,
        *,
        text: str = "",
        file: FilePart | None = None,
        cycle_id: Any | None = None,
    ) -> OrgChartImport:
        """
        Parse an org chart with the AI collaborator, create the people it found
        that are not in the directory yet, and append the proposed assignments.
        """
        if file is not None:
            file.check_size()
        cycle = self._open_cycle(cycle_id)
        existing = [
            {"id": str(u.id), "name": u.name, "department": u.department}
            for u in self.users.list()
        ]
        proposal = await run_ai_task(
            ai.parse_org_chart(text or "", existing, str(cycle.id), file),
            fallback=OrgChartProposal(),
            label="parse_org_chart",
        )

        self._lock()
        self._still_open(cycle)
        id_map = self._user_ids()
        stubs = [
            u for u in proposal.new_users
            if u.name and u.name.strip() and (u.id is None or u.id not in id_map)
        ]

        directory = Directory(self.db, self.organization_id, self.actor)
        created_users = directory.import_batch(
            [UserCandidate(name=s.name, email=s.email, role=s.role, department=s.department) for s in stubs]
        )
        for stub, user in zip(stubs, created_users):
            if stub.id:
                id_map[stub.id] = user.id
        for stub, user in zip(stubs, created_users):
            if not stub.manager_id:
                continue
            manager_id = id_map.get(stub.manager_id)
            if manager_id is None:
                logger.warning("Unknown manager reference %r for imported user %s", stub.manager_id, user.id)
                continue
            directory.assign_manager_lenient(user, manager_id)

        entries = self._validate_proposals(proposal.assignments, id_map, dedupe=False)
        with self.db.begin_nested():
            created = self._insert(cycle, entries)
            self.db.flush()

        self._audit(
            "ASSIGNMENTS_IMPORTED",
            "review_cycle",
            cycle.id,
            {"users_created": len(created_users), "assignments_created": len(created)},
        )
        return OrgChartImport(users=created_users, assignments=created)

    # ---- CRUD ----

    def get(self, assignment_id: Any) -> ReviewAssignment:
        return self.assignments.get_or_404(assignment_id)

    def list(
        self,
        *,
        cycle_id: Any | None = None,
        reviewer_id: Any | None = None,
        subject_id: Any | None = None,
        status: AssignmentStatus | None = None,
    ) -> Query:
        return self.assignments.filtered(
            cycle_id=as_uuid(cycle_id),
            reviewer_id=as_uuid(reviewer_id),
            subject_id=as_uuid(subject_id),
            status=status,
        )

    def list_for_reviewer(self, user_id: Any, cycle_id: Any | None = None) -> list[ReviewAssignment]:
        """A reviewer's tasks in the given cycle, or the active one. No active cycle means no tasks."""
        if cycle_id is None:
            cycle = self.cycle_manager.cycles.active()
            if cycle is None:
                return []
        else:
            cycle = self.cycle_manager.get(cycle_id)
        return self.assignments.filtered(cycle_id=cycle.id, reviewer_id=as_uuid(user_id)).all()

    def create(
        self,
        *,
        reviewer_id: Any,
        subject_id: Any,
        relationship: Relationship,
        cycle_id: Any | None = None,
    ) -> ReviewAssignment:
        self._lock()
        cycle = self._open_cycle(cycle_id)

        reviewer = self.users.get(reviewer_id)
        if reviewer is None:
            raise ValidationError("Reviewer not found in this organization", details=[{"field": "reviewer_id", "code": "not_found"}])
        subject = self.users.get(subject_id)
        if subject is None:
            raise ValidationError("Subject not found in this organization", details=[{"field": "subject_id", "code": "not_found"}])
        if not self._check_shape(reviewer.id, subject.id, relationship):
            raise ValidationError(
                "SELF assignments need reviewer == subject; other relationships need two different users",
                details=[{"field": "relationship", "code": "shape"}],
            )

        (a,) = self._insert(cycle, [MatrixEntry(reviewer.id, subject.id, relationship)])
        self.db.flush()
        self._audit(
            "ASSIGNMENT_CREATED",
            "review_assignment",
            a.id,
            {"cycle_id": str(cycle.id), "reviewer_id": str(reviewer.id), "subject_id": str(subject.id), "relationship": relationship.value},
        )
        return a

    def remove(self, assignment_id: Any) -> None:
        self._lock()
        a = self.assignments.get_or_404(assignment_id)
        self.assignments.delete(a)
        self.db.flush()
        self._audit(
            "ASSIGNMENT_DELETED",
            "review_assignment",
            a.id,
            {"reviewer_id": str(a.reviewer_id), "subject_id": str(a.subject_id), "status": a.status.value},
        )

    # ---- review lifecycle ----

    def _editable(self, assignment_id: Any) -> ReviewAssignment:
        a = self.assignments.get_or_404(assignment_id)
        if a.status == AssignmentStatus.SUBMITTED:
            raise StateError("Assignment already submitted")
        cycle = self.cycle_manager.get(a.cycle_id)
        if cycle.status == CycleStatus.CLOSED:
            raise StateError("Cycle is closed")
        return a

    def save_draft(
        self,
        assignment_id: Any,
        *,
        scores: dict | None = None,
        comments: dict | None = None,
        strengths: str | None = None,
        improvements: str | None = None,
    ) -> ReviewAssignment:
        """Store partial answers. Fields left as None keep their saved value."""
        self._lock()
        a = self._editable(assignment_id)
        if scores is not None:
            a.scores = validate_scores(scores)
        if comments is not None:
            a.comments = _clean_comments(comments)
        if strengths is not None:
            a.feedback_strengths = strengths
        if improvements is not None:
            a.feedback_improvements = improvements
        a.status = AssignmentStatus.DRAFT

        self._audit("ASSIGNMENT_DRAFT_SAVED", "review_assignment", a.id, {"answered": len(a.scores or {})})
        return a

    def submit(
        self,
        assignment_id: Any,
        *,
        scores: dict | None,
        comments: dict | None = None,
        strengths: str = "",
        improvements: str = "",
    ) -> ReviewAssignment:
        """
        Final answers. Partial score sets are accepted. The transition happens
        once: a second submit raises StateError and leaves submitted_at alone.
        """
        self._lock()
        a = self._editable(assignment_id)
        a.scores = validate_scores(scores)
        a.comments = _clean_comments(comments)
        a.feedback_strengths = strengths or ""
        a.feedback_improvements = improvements or ""
        a.status = AssignmentStatus.SUBMITTED
        a.submitted_at = datetime.now(timezone.utc)
        self.db.flush()

        logger.info("Assignment %s submitted", a.id)
        self._audit(
            "ASSIGNMENT_SUBMITTED",
            "review_assignment",
            a.id,
            {"subject_id": str(a.subject_id), "relationship": a.relationship.value, "answered": len(a.scores)},
        )
        return a

import uuid
from collections import Counter

import pytest

from review360.core.exceptions import NotFoundError, StateError, ValidationError
from review360.models.enums import AssignmentStatus, Relationship
from review360.models.user import User
from review360.repositories import AssignmentRepository
from review360.services import matrix as matrix_module
from review360.services.cycles import CycleManager
from review360.services.matrix import AssignmentMatrix, MatrixEntry, derive_assignments, validate_scores

from tests.helpers import active_cycle, create_org, create_user


def _user(name, department="Eng", manager=None):
    return User(id=uuid.uuid4(), name=name, username=name.lower(), department=department,
                manager_id=manager.id if manager else None)


def _acme(db_session):
    """A manages B and C, everyone in Eng (the admin sits in General)."""
    org, admin = create_org(db_session, "acme")
    a = create_user(db_session, org, "A")
    b = create_user(db_session, org, "B", manager=a)
    c = create_user(db_session, org, "C", manager=a)
    return org, admin, a, b, c


def test_exactly_one_self_per_user():
    users = [_user(n) for n in "ABCDE"] + [_user("F", department="Ops")]
    entries = derive_assignments(users)
    selfs = Counter(e.subject_id for e in entries if e.relationship == Relationship.SELF)
    assert selfs == Counter({u.id: 1 for u in users})
    assert all(e.reviewer_id == e.subject_id for e in entries if e.relationship == Relationship.SELF)


def test_manager_links_produce_one_each_direction():
    boss = _user("Boss")
    reports = [_user(f"R{i}", manager=boss) for i in range(3)]
    entries = derive_assignments([boss, *reports])

    for r in reports:
        assert entries.count(MatrixEntry(boss.id, r.id, Relationship.MANAGER)) == 1
        assert entries.count(MatrixEntry(r.id, boss.id, Relationship.DIRECT_REPORT)) == 1
    assert not any(
        e.relationship == Relationship.PEER and boss.id in (e.reviewer_id, e.subject_id) for e in entries
    )


def test_acme_scenario():
    a = _user("A")
    b = _user("B", manager=a)
    c = _user("C", manager=a)
    entries = derive_assignments([a, b, c])

    kinds = Counter(e.relationship for e in entries)
    assert kinds[Relationship.SELF] == 3
    assert kinds[Relationship.MANAGER] == 2
    assert kinds[Relationship.DIRECT_REPORT] == 2
    assert MatrixEntry(b.id, c.id, Relationship.PEER) in entries
    assert MatrixEntry(c.id, b.id, Relationship.PEER) in entries
    assert len(entries) == 9

    for subject in (b, c):
        incoming = [e for e in entries if e.subject_id == subject.id and e.relationship != Relationship.SELF]
        assert len(incoming) >= 2


def test_every_member_of_a_flat_team_gets_two_peers():
    team = [_user(n) for n in "ABCDE"]
    entries = derive_assignments(team)

    assert len(entries) == len(set(entries))
    for u in team:
        reviewers = {e.reviewer_id for e in entries if e.subject_id == u.id and e.relationship == Relationship.PEER}
        assert len(reviewers) >= 2
    for e in entries:
        if e.relationship == Relationship.PEER:
            assert MatrixEntry(e.subject_id, e.reviewer_id, Relationship.PEER) in entries


def test_peers_stay_within_department():
    eng = [_user("A"), _user("B")]
    ops = [_user("C", department="Ops")]
    entries = derive_assignments(eng + ops)
    assert not any(e.relationship == Relationship.PEER and ops[0].id in (e.reviewer_id, e.subject_id) for e in entries)


def test_derivation_is_deterministic():
    users = [_user(n) for n in "DCBA"]
    assert derive_assignments(users) == derive_assignments(list(reversed(users)))


def test_regenerate_replaces_previous_set(db_session):
    org, admin, a, b, c = _acme(db_session)
    matrix = AssignmentMatrix(db_session, org.id, admin)
    manual = matrix.create(reviewer_id=c.id, subject_id=a.id, relationship=Relationship.PEER)
    db_session.commit()

    created = matrix.regenerate()
    db_session.commit()

    cycle = active_cycle(db_session, org)
    rows = AssignmentRepository(db_session, org.id).for_cycle(cycle.id)
    assert {r.id for r in rows} == {r.id for r in created}
    assert manual.id not in {r.id for r in rows}
    # A, B, C plus the admin's own SELF
    assert Counter(r.relationship for r in rows)[Relationship.SELF] == 4


def test_failed_regeneration_keeps_previous_set(db_session, monkeypatch):
    org, admin, a, b, c = _acme(db_session)
    matrix = AssignmentMatrix(db_session, org.id, admin)
    before = {r.id for r in matrix.regenerate()}
    db_session.commit()

    ghost = uuid.uuid4()
    monkeypatch.setattr(
        matrix_module,
        "derive_assignments",
        lambda users, peers: [MatrixEntry(a.id, a.id, Relationship.SELF), MatrixEntry(ghost, a.id, Relationship.PEER)],
    )
    with pytest.raises(ValidationError):
        matrix.regenerate()

    cycle = active_cycle(db_session, org)
    after = {r.id for r in AssignmentRepository(db_session, org.id).for_cycle(cycle.id)}
    assert after == before


def test_regenerate_without_active_cycle(db_session):
    org, admin = create_org(db_session)
    cycle = active_cycle(db_session, org)
    CycleManager(db_session, org.id, admin).close(cycle.id)
    with pytest.raises(NotFoundError):
        AssignmentMatrix(db_session, org.id, admin).regenerate()
    with pytest.raises(StateError):
        AssignmentMatrix(db_session, org.id, admin).regenerate(cycle.id)


def test_create_validates_members_and_shape(db_session):
    org, admin, a, b, c = _acme(db_session)
    other_org, _ = create_org(db_session, "globex")
    outsider = create_user(db_session, other_org, "Outsider")
    matrix = AssignmentMatrix(db_session, org.id, admin)

    with pytest.raises(ValidationError):
        matrix.create(reviewer_id=a.id, subject_id=b.id, relationship=Relationship.SELF)
    with pytest.raises(ValidationError):
        matrix.create(reviewer_id=a.id, subject_id=a.id, relationship=Relationship.PEER)
    with pytest.raises(ValidationError):
        matrix.create(reviewer_id=outsider.id, subject_id=a.id, relationship=Relationship.PEER)

    created = matrix.create(reviewer_id=b.id, subject_id=c.id, relationship=Relationship.PEER)
    assert created.status == AssignmentStatus.PENDING
    assert created.organization_id == org.id


def test_remove_is_unconditional_leaf_delete(db_session):
    org, admin, a, b, c = _acme(db_session)
    matrix = AssignmentMatrix(db_session, org.id, admin)
    created = matrix.regenerate()
    db_session.commit()

    matrix.remove(created[0].id)
    db_session.commit()
    assert AssignmentRepository(db_session, org.id).get(created[0].id) is None
    assert matrix.list().count() == len(created) - 1


def test_submit_once(db_session):
    org, admin, a, b, c = _acme(db_session)
    matrix = AssignmentMatrix(db_session, org.id, b)
    a_reviews_b = matrix.create(reviewer_id=a.id, subject_id=b.id, relationship=Relationship.MANAGER)

    done = matrix.submit(a_reviews_b.id, scores={"q1": 4}, strengths="Calm", improvements="Delegate")
    db_session.commit()
    stamped = done.submitted_at
    assert done.status == AssignmentStatus.SUBMITTED
    assert stamped is not None

    with pytest.raises(StateError):
        matrix.submit(a_reviews_b.id, scores={"q1": 1})
    with pytest.raises(StateError):
        matrix.save_draft(a_reviews_b.id, scores={"q1": 2})

    reloaded = AssignmentRepository(db_session, org.id).get(a_reviews_b.id)
    assert reloaded.submitted_at == stamped
    assert reloaded.scores == {"q1": 4}


def test_save_draft_keeps_unsent_fields(db_session):
    org, admin, a, b, c = _acme(db_session)
    matrix = AssignmentMatrix(db_session, org.id, admin)
    task = matrix.create(reviewer_id=b.id, subject_id=c.id, relationship=Relationship.PEER)

    matrix.save_draft(task.id, scores={"q1": 3}, strengths="Helpful")
    draft = matrix.save_draft(task.id, improvements="Speak up")

    assert draft.status == AssignmentStatus.DRAFT
    assert draft.scores == {"q1": 3}
    assert draft.feedback_strengths == "Helpful"
    assert draft.feedback_improvements == "Speak up"
    assert draft.submitted_at is None


def test_partial_scores_and_not_applicable_are_accepted():
    assert validate_scores({"q1": 5, "q2": 0, "q3": -1}) == {"q1": 5, "q2": 0, "q3": -1}
    assert validate_scores(None) == {}


@pytest.mark.parametrize("bad", [6, "4", 3.5, True, None])
def test_invalid_scores_rejected(bad):
    with pytest.raises(ValidationError):
        validate_scores({"q1": bad})


def test_list_for_reviewer_uses_active_cycle(db_session):
    org, admin, a, b, c = _acme(db_session)
    matrix = AssignmentMatrix(db_session, org.id, admin)
    matrix.regenerate()
    db_session.commit()

    mine = matrix.list_for_reviewer(b.id)
    assert {x.relationship for x in mine} == {Relationship.SELF, Relationship.DIRECT_REPORT, Relationship.PEER}
    assert all(x.reviewer_id == b.id for x in mine)

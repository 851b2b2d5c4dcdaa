import pytest

from review360.core.exceptions import AuthError, ConflictError, NotFoundError, ValidationError
from review360.models.enums import UserRole
from review360.repositories import AssignmentRepository, UserRepository
from review360.services.directory import (
    PASSWORD_ALPHABET,
    Directory,
    UserCandidate,
    derive_username,
    unique_username,
)
from review360.services.matrix import AssignmentMatrix

from tests.helpers import create_org, create_user


def test_derive_username():
    assert derive_username("Mary Ann  Smith") == "mary_ann_smith"
    assert derive_username("O'Brien-Jones") == "obrienjones"
    assert derive_username("  ") == "user"


def test_unique_username_suffixes():
    assert unique_username("alice", {"alice", "alice1"}) == "alice2"
    assert unique_username("bob", set()) == "bob"


def test_authenticate_username_is_case_insensitive(db_session):
    org, _ = create_org(db_session)
    bob = create_user(db_session, org, "Bob", username="Bob", password="pw")

    directory = Directory(db_session, org.id)
    assert directory.authenticate("BOB", "pw").id == bob.id
    with pytest.raises(AuthError):
        directory.authenticate("bob", "PW")
    with pytest.raises(AuthError):
        directory.authenticate("nobody", "pw")


def test_create_applies_defaults(db_session):
    org, _ = create_org(db_session, "acme")
    u = Directory(db_session, org.id).create(name="Bob", username="Bob")

    assert u.role == UserRole.EMPLOYEE
    assert u.department == "General"
    assert u.password_secret == "123456"
    assert u.email == "bob@acme.local"


def test_create_requires_name_and_username(db_session):
    org, _ = create_org(db_session)
    directory = Directory(db_session, org.id)
    with pytest.raises(ValidationError):
        directory.create(name="", username="x")
    with pytest.raises(ValidationError):
        directory.create(name="X", username="   ")


def test_username_collision_is_case_insensitive(db_session):
    org, _ = create_org(db_session)
    create_user(db_session, org, "Alice", username="alice")
    with pytest.raises(ConflictError):
        Directory(db_session, org.id).create(name="Other Alice", username="ALICE")


def test_same_username_allowed_in_other_tenant(db_session):
    org_a, _ = create_org(db_session, "acme")
    org_b, _ = create_org(db_session, "globex")
    create_user(db_session, org_a, "Alice", username="alice")
    assert create_user(db_session, org_b, "Alice", username="alice").organization_id == org_b.id


def test_update_rename_collision(db_session):
    org, _ = create_org(db_session)
    create_user(db_session, org, "Alice", username="alice")
    bob = create_user(db_session, org, "Bob", username="bob")
    with pytest.raises(ConflictError):
        Directory(db_session, org.id).update(bob.id, {"username": "Alice"})


def test_import_batch_dedupes_against_directory_and_batch(db_session):
    org, _ = create_org(db_session)
    create_user(db_session, org, "Alice", username="alice")

    created = Directory(db_session, org.id).import_batch([{"name": "Alice"}, {"name": "Alice"}])
    db_session.commit()

    names = [u.username for u in created]
    assert names == ["alice1", "alice2"]
    keys = [u.username_key for u in UserRepository(db_session, org.id).list()]
    assert len(keys) == len(set(keys))


def test_import_batch_fallbacks(db_session):
    org, _ = create_org(db_session)
    (u,) = Directory(db_session, org.id).import_batch([UserCandidate(name="Zoë Ångström", role="wizard")])

    assert u.name == "Zoë Ångström"
    assert u.department == "Imported"
    assert u.password_secret == "123456"
    assert u.role == UserRole.EMPLOYEE


def test_import_batch_drops_bad_manager_reference(db_session):
    org, _ = create_org(db_session)
    other_org, _ = create_org(db_session, "globex")
    outsider = create_user(db_session, other_org, "Outsider")
    boss = create_user(db_session, org, "Boss")

    kept, dropped = Directory(db_session, org.id).import_batch(
        [UserCandidate(name="Kept", manager_id=boss.id), UserCandidate(name="Dropped", manager_id=outsider.id)]
    )
    assert kept.manager_id == boss.id
    assert dropped.manager_id is None


def test_manager_must_not_create_cycle(db_session):
    org, _ = create_org(db_session)
    a = create_user(db_session, org, "A")
    b = create_user(db_session, org, "B", manager=a)
    c = create_user(db_session, org, "C", manager=b)
    directory = Directory(db_session, org.id)

    with pytest.raises(ValidationError):
        directory.update(a.id, {"manager_id": c.id})
    with pytest.raises(ValidationError):
        directory.update(a.id, {"manager_id": a.id})

    directory.update(c.id, {"manager_id": None})
    assert directory.update(a.id, {"manager_id": c.id}).manager_id == c.id


def test_delete_cascades_assignments(db_session):
    org, admin = create_org(db_session)
    a = create_user(db_session, org, "A")
    b = create_user(db_session, org, "B", manager=a)
    create_user(db_session, org, "C", manager=a)
    AssignmentMatrix(db_session, org.id).regenerate()
    db_session.commit()

    removed = Directory(db_session, org.id, admin).delete(a.id)
    db_session.commit()

    assert removed > 0
    repo = AssignmentRepository(db_session, org.id)
    assert repo.filtered(reviewer_id=a.id).count() == 0
    assert repo.filtered(subject_id=a.id).count() == 0
    assert UserRepository(db_session, org.id).get(a.id) is None
    assert UserRepository(db_session, org.id).get(b.id).manager_id is None


def test_delete_foreign_user_is_not_found(db_session):
    org_a, _ = create_org(db_session, "acme")
    org_b, _ = create_org(db_session, "globex")
    stranger = create_user(db_session, org_b, "Stranger")

    with pytest.raises(NotFoundError):
        Directory(db_session, org_a.id).delete(stranger.id)
    assert UserRepository(db_session, org_b.id).get(stranger.id) is not None


def test_batch_reset_never_touches_excluded_user(db_session):
    org, admin = create_org(db_session, admin_password="keep-me")
    for name in ("A", "B", "C"):
        create_user(db_session, org, name, password="same")

    reset = Directory(db_session, org.id, admin).batch_reset_passwords(admin.id)
    db_session.commit()

    assert admin.id not in {u.id for u in reset}
    assert UserRepository(db_session, org.id).get(admin.id).password_secret == "keep-me"
    for u in reset:
        assert len(u.password_secret) == 8
        assert set(u.password_secret) <= set(PASSWORD_ALPHABET)
        assert u.password_secret != "same"


def test_reset_password_restores_default(db_session):
    org, _ = create_org(db_session)
    bob = create_user(db_session, org, "Bob", password="custom")
    assert Directory(db_session, org.id).reset_password(bob.id).password_secret == "123456"


def test_change_password(db_session):
    org, _ = create_org(db_session)
    bob = create_user(db_session, org, "Bob", password="old")
    directory = Directory(db_session, org.id, bob)

    with pytest.raises(AuthError):
        directory.change_password(bob.id, "wrong", "new")
    with pytest.raises(ValidationError):
        directory.change_password(bob.id, "old", "")

    directory.change_password(bob.id, "old", "new")
    assert directory.authenticate("bob", "new").id == bob.id

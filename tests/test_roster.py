import pytest

from review360.core.exceptions import ValidationError
from review360.models.enums import Relationship
from review360.services import ai as ai_module
from review360.services.ai import FilePart
from review360.services.directory import Directory
from review360.services.export import Exporter
from review360.services.matrix import AssignmentMatrix
from review360.services.user_import import import_users_from_file, parse_roster_csv

from tests.helpers import create_org, create_user


def test_parse_roster_csv_reads_named_columns():
    rows = parse_roster_csv("name,email,role,department\nAnn,ann@x.test,manager,Ops\n,skipped@x.test,,\nBo,,,\n")
    assert [(r.name, r.email, r.role, r.department) for r in rows] == [
        ("Ann", "ann@x.test", "manager", "Ops"),
        ("Bo", None, None, None),
    ]


def test_parse_roster_csv_tab_separated():
    rows = parse_roster_csv("Name\tDepartment\nCy\tSales\n")
    assert [(r.name, r.department) for r in rows] == [("Cy", "Sales")]


def test_parse_roster_csv_rejects_text_without_name_column():
    assert parse_roster_csv("Alice runs engineering and Bob reports to her.") is None
    assert parse_roster_csv("") is None


def test_credential_roster_includes_current_passwords(db_session):
    org, admin = create_org(db_session)
    create_user(db_session, org, "Łukasz", username="lukasz", password="s3cret", department="R&D")

    table = Exporter(db_session, org.id).credential_roster()

    assert table.columns == ["name", "username", "password", "role", "department"]
    assert ["Łukasz", "lukasz", "s3cret", "EMPLOYEE", "R&D"] in table.rows


def test_assignment_roster_names_both_sides(db_session):
    org, admin = create_org(db_session)
    a = create_user(db_session, org, "A")
    b = create_user(db_session, org, "B")
    AssignmentMatrix(db_session, org.id, admin).create(reviewer_id=a.id, subject_id=b.id, relationship=Relationship.PEER)
    db_session.commit()

    table = Exporter(db_session, org.id).assignment_roster()

    (row,) = table.rows
    assert row[1:5] == ["A", "B", "PEER", "PENDING"]
    assert row[5].endswith("360 Review")


@pytest.mark.asyncio
async def test_roster_upload_over_limit_is_rejected(db_session, fake_ai, monkeypatch):
    org, admin = create_org(db_session)
    monkeypatch.setattr(ai_module.settings, "AI_MAX_UPLOAD_BYTES", 10)
    roster = FilePart(filename="people.csv", content_type="text/csv", data=b"name\n" + b"Someone\n" * 20)

    with pytest.raises(ValidationError) as exc:
        await import_users_from_file(Directory(db_session, org.id, admin), fake_ai, file=roster)

    assert exc.value.details == [{"field": "file", "code": "too_large"}]
    assert len(Directory(db_session, org.id).users.list()) == 1

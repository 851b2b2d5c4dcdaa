"""Flat tables for the external roster writer (users, credentials, assignments)."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from review360.repositories import AssignmentRepository, UserRepository
from review360.services.cycles import CycleManager

USER_COLUMNS = ["id", "name", "username", "email", "role", "department", "manager_id"]
CREDENTIAL_COLUMNS = ["name", "username", "password", "role", "department"]
ASSIGNMENT_COLUMNS = ["id", "reviewer_name", "subject_name", "relationship", "status", "cycle_name"]


@dataclass
class Table:
    columns: list[str]
    rows: list[list[str]]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


class Exporter:
    def __init__(self, db: Session, organization_id: uuid.UUID):
        self.users = UserRepository(db, organization_id)
        self.assignments = AssignmentRepository(db, organization_id)
        self.cycles = CycleManager(db, organization_id)

    def user_roster(self) -> Table:
        rows = [
            [_cell(u.id), u.name, u.username, _cell(u.email), _cell(u.role), u.department, _cell(u.manager_id)]
            for u in self.users.list()
        ]
        return Table(columns=USER_COLUMNS, rows=rows)

    def credential_roster(self) -> Table:
        rows = [
            [u.name, u.username, u.password_secret, _cell(u.role), u.department]
            for u in self.users.list()
        ]
        return Table(columns=CREDENTIAL_COLUMNS, rows=rows)

    def assignment_roster(self, cycle_id: Any | None = None) -> Table:
        cycle = self.cycles.resolve(cycle_id)
        names = {u.id: u.name for u in self.users.list()}
        rows = [
            [
                _cell(a.id),
                names.get(a.reviewer_id, ""),
                names.get(a.subject_id, ""),
                _cell(a.relationship),
                _cell(a.status),
                cycle.name,
            ]
            for a in self.assignments.for_cycle(cycle.id)
        ]
        return Table(columns=ASSIGNMENT_COLUMNS, rows=rows)

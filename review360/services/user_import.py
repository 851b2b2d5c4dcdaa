"""
Roster file import.

A CSV (or other delimited text) whose header has a ``name`` column is read
locally; anything else (free text, PDFs, images) goes to the AI collaborator's
``parse_user_list``. Either way the rows end up in ``Directory.import_batch``.
"""
from __future__ import annotations

import csv
import io
import logging

from review360.core.exceptions import ValidationError
from review360.services.ai import AICollaborator, FilePart, run_ai_task
from review360.services.directory import Directory, UserCandidate
from review360.models.user import User

logger = logging.getLogger(__name__)


def parse_roster_csv(content: str) -> list[UserCandidate] | None:
    """Rows of a headed CSV with a ``name`` column, or None if the text is not one."""
    try:
        dialect = csv.Sniffer().sniff(content[:2048], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel

    reader = csv.DictReader(io.StringIO(content), dialect=dialect)
    if not reader.fieldnames:
        return None
    headers = {h.strip().lower(): h for h in reader.fieldnames if h}
    if "name" not in headers:
        return None

    def col(row: dict, key: str) -> str | None:
        h = headers.get(key)
        value = (row.get(h) or "").strip() if h else ""
        return value or None

    candidates = []
    for row in reader:
        name = col(row, "name")
        if not name:
            continue
        candidates.append(
            UserCandidate(
                name=name,
                email=col(row, "email"),
                role=col(row, "role"),
                department=col(row, "department"),
            )
        )
    return candidates


async def import_users_from_file(
    directory: Directory,
    ai: AICollaborator,
    *,
    file: FilePart | None = None,
    text: str = "",
) -> list[User]:
    if file is None and not text.strip():
        raise ValidationError("Provide a file or text to import")
    if file is not None:
        file.check_size()

    if file is not None and file.is_text:
        candidates = parse_roster_csv(file.text())
        if candidates is not None:
            logger.info("Parsed %d roster row(s) from %s", len(candidates), file.filename)
            return directory.import_batch(candidates)

    proposed = await run_ai_task(ai.parse_user_list(file, text), fallback=[], label="parse_user_list")
    candidates = [
        UserCandidate(name=p.name, email=p.email, role=p.role, department=p.department)
        for p in proposed
        if p.name and p.name.strip()
    ]
    if not candidates:
        logger.info("No users recognised in uploaded roster")
    return directory.import_batch(candidates)

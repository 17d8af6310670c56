"""Nine-column CSV export and additive import of sessions.

The dialect is fixed so spreadsheets and the KeeperLog web app can exchange
files with us:

    Date,Facility,Supervisor,Role,Duration (mins),Q1..Q4

Text fields are always quoted with inner quotes doubled. Embedded newlines are
written as-is inside the quotes, which is why import uses a character-level
parser instead of splitting lines on commas.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from keeperlog.activity import record_activity
from keeperlog.errors import InvalidFormatError, KeeperLogError, ParseFailure
from keeperlog.models import Session
from keeperlog.sessions import REFLECTION_PROMPTS, compose_reflection
from keeperlog.storage.repository import Repository

logger = logging.getLogger(__name__)

CSV_HEADERS = (
    "Date",
    "Facility",
    "Supervisor",
    "Role",
    "Duration (mins)",
    "Q1: What did you observe?",
    "Q2: Why was it done that way?",
    "Q3: What did you learn?",
    "Q4: What would you do differently?",
)
MIN_COLUMNS = len(CSV_HEADERS)
DATE_FORMAT = "%Y-%m-%d"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    session_ids: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _quote(value: object) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def export_sessions_csv(sessions: Iterable[Session]) -> str:
    """Render sessions in the nine-column dialect, header first."""
    lines = [",".join(CSV_HEADERS)]
    for session in sessions:
        answers = session.reflection_prompts or {}
        date_text = session.date.strftime(DATE_FORMAT) if session.date else ""
        cells = [
            date_text,
            _quote(session.facility),
            _quote(session.supervisor),
            _quote(session.role),
            str(session.duration_minutes or 0),
            *(_quote(answers.get(prompt, "")) for prompt in REFLECTION_PROMPTS),
        ]
        lines.append(",".join(cells))
    return "\n".join(lines)


def parse_csv(text: str) -> list[list[str]]:
    """Split CSV text into rows of fields, honouring quotes.

    Quotes toggle the quoted state; a doubled quote inside a quoted field is a
    literal quote. Commas and line breaks (``\\n``, ``\\r`` or ``\\r\\n``) only
    separate outside quotes. Rows whose fields are all empty are dropped.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    rows: list[list[str]] = []
    row: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    def end_row() -> None:
        row.append("".join(current))
        current.clear()
        if any(cell for cell in row):
            rows.append(list(row))
        row.clear()

    while i < n:
        char = text[i]
        if char == '"':
            if in_quotes and i + 1 < n and text[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            row.append("".join(current))
            current.clear()
        elif char in "\r\n" and not in_quotes:
            if char == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            end_row()
        else:
            current.append(char)
        i += 1

    if current or row:
        end_row()
    return rows


def parse_duration(value: str) -> int:
    """Leading integer of the cell, 0 when there is none."""
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def parse_date(value: str) -> datetime:
    try:
        return datetime.strptime((value or "").strip(), DATE_FORMAT)
    except ValueError as exc:
        raise ParseFailure(f"invalid date '{value}'") from exc


def row_to_session(row: list[str], now: datetime | None = None) -> Session:
    """Build a completed session from one data row."""
    if len(row) < MIN_COLUMNS:
        raise ParseFailure(f"expected {MIN_COLUMNS} columns, got {len(row)}")

    date_text, facility, supervisor, role, duration, *answers = row[:MIN_COLUMNS]
    day = parse_date(date_text)
    reflection_prompts = dict(zip(REFLECTION_PROMPTS, answers))
    now = now or datetime.now()
    return Session(
        date=day,
        start_time=day,
        facility=facility,
        supervisor=supervisor or None,
        role=role or None,
        duration_minutes=parse_duration(duration),
        status="completed",
        reflection=compose_reflection(reflection_prompts),
        reflection_prompts=reflection_prompts,
        competencies=[],
        created_at=now,
        updated_at=now,
    )


def import_sessions_csv(repo: Repository, text: str) -> ImportResult:
    """Append every valid data row as a completed session.

    Existing sessions are never touched. Bad rows are skipped with a warning;
    a file that yields no sessions at all raises InvalidFormatError.
    """
    rows = parse_csv(text)
    result = ImportResult()

    for line_no, row in enumerate(rows[1:], start=2):
        try:
            session = row_to_session(row)
            with repo.transaction():
                session_id = repo.sessions.add(session)
        except KeeperLogError as exc:
            message = f"Row {line_no} skipped: {exc}"
            logger.warning(message)
            result.warnings.append(message)
            result.skipped += 1
            continue
        result.session_ids.append(session_id)
        result.imported += 1

    if result.imported == 0:
        record_activity("import_csv", {"skipped": result.skipped}, error="no valid rows")
        raise InvalidFormatError("No valid sessions found in CSV")

    record_activity("import_csv", {"imported": result.imported, "skipped": result.skipped})
    logger.info(f"Imported {result.imported} sessions from CSV ({result.skipped} skipped)")
    return result


def export_csv_file(repo: Repository, path: Path) -> int:
    """Write every session to ``path``; returns the number of rows written."""
    sessions = repo.sessions.all()
    path.write_text(export_sessions_csv(sessions), encoding="utf-8")
    record_activity("export_csv", {"path": str(path), "session_count": len(sessions)})
    return len(sessions)


def import_csv_file(repo: Repository, path: Path) -> ImportResult:
    return import_sessions_csv(repo, path.read_text(encoding="utf-8-sig"))

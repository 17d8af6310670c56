"""Markdown placement report for assessors.

Only completed sessions are included, oldest first. Photos are listed only
when the student allowed them into exports; notes, observations and voice
captures are listed as text.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from keeperlog.models import Capture, Session
from keeperlog.sessions import format_duration
from keeperlog.storage.repository import Repository

logger = logging.getLogger(__name__)

REPORT_TITLE = "Placement Logbook"


def _capture_line(capture: Capture) -> str:
    when = capture.timestamp.strftime("%H:%M") if capture.timestamp else ""
    tags = f" [{', '.join(capture.tags)}]" if capture.tags else ""
    if capture.type == "photo":
        return f"- {when} Photo{tags}: {capture.content or capture.media_url or ''}".rstrip()
    return f"- {when} {capture.type.capitalize()}{tags}: {capture.content or ''}".rstrip()


def _session_section(session: Session, captures: list[Capture]) -> list[str]:
    lines = [
        f"## {session.date:%Y-%m-%d} - {session.facility}",
        "",
        f"- Supervisor: {session.supervisor or '-'}",
        f"- Role: {session.role or '-'}",
        f"- Duration: {format_duration(session.duration_minutes or 0)}",
    ]
    if session.area:
        lines.append(f"- Area: {session.area}")
    if session.competencies:
        lines.append(f"- Competencies: {', '.join(session.competencies)}")
    lines.append("")

    if session.reflection:
        lines.extend(["### Reflection", "", session.reflection, ""])
    if session.supervisor_note:
        lines.extend(["### Supervisor note", "", session.supervisor_note, ""])

    shown = [c for c in captures if c.exportable]
    if shown:
        lines.extend(["### Evidence", ""])
        lines.extend(_capture_line(c) for c in shown)
        lines.append("")
    hidden = len(captures) - len(shown)
    if hidden:
        logger.debug(f"Session {session.id}: {hidden} captures withheld from report")
    return lines


def build_report(
    repo: Repository,
    profile: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> str:
    profile = profile or {}
    sessions = sorted(repo.sessions.by_status("completed"), key=lambda s: s.date)
    total_minutes = sum(s.duration_minutes or 0 for s in sessions)

    lines = [f"# {REPORT_TITLE}", ""]
    if profile.get("name"):
        lines.append(f"**Student:** {profile['name']}")
    if profile.get("qualification"):
        lines.append(f"**Qualification:** {profile['qualification']}")
    lines.extend([
        f"**Generated:** {(now or datetime.now()):%Y-%m-%d}",
        f"**Sessions:** {len(sessions)}",
        f"**Total hours:** {format_duration(total_minutes)}",
        "",
    ])

    for session in sessions:
        lines.extend(_session_section(session, repo.captures.for_session(session.id)))

    return "\n".join(lines).rstrip() + "\n"

"""Placement session lifecycle: start, capture, reflect, complete.

A session is created ``active`` and moves once to ``completed``. The store
refuses a second active session, so starting a new one while another runs
fails with ActiveSessionError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from keeperlog.errors import InvalidTransitionError
from keeperlog.models import CAPTURE_TYPES, Capture, Session, coerce_datetime
from keeperlog.storage.repository import Repository

logger = logging.getLogger(__name__)

REFLECTION_PROMPTS: tuple[str, ...] = (
    "What did you observe or assist with today?",
    "Why was it done that way? (Rationale)",
    "What did you learn or understand better?",
    "What would you do differently or watch for next time?",
)
SHORT_PROMPTS: tuple[str, ...] = (REFLECTION_PROMPTS[0], REFLECTION_PROMPTS[2])

DEFAULT_ROLE = "Assisted"
EXPORT_REMINDER_SESSIONS = 5
EXPORT_REMINDER_DAYS = 7


@dataclass
class PeriodStats:
    count: int
    minutes: int

    @property
    def hours(self) -> float:
        return round(self.minutes / 60, 1)


def active_prompts(profile: dict[str, Any] | None) -> tuple[str, ...]:
    """The two-question form when the profile asks for short reflections."""
    if profile and profile.get("reflectionLength") == "short":
        return SHORT_PROMPTS
    return REFLECTION_PROMPTS


def compose_reflection(answers: dict[str, str], prompts: Iterable[str] = REFLECTION_PROMPTS) -> str:
    return "\n\n".join(f"**{prompt}**\n{answers.get(prompt) or '-'}" for prompt in prompts)


def start_session(
    repo: Repository,
    facility: str,
    start: datetime | None = None,
    supervisor: str | None = None,
    role: str | None = DEFAULT_ROLE,
    area: str | None = None,
) -> int:
    """Create the active session for a placement day."""
    facility = (facility or "").strip()
    if not facility:
        raise ValueError("Facility is required")

    start = coerce_datetime(start) if start is not None else datetime.now()
    now = datetime.now()
    session_id = repo.sessions.add(
        Session(
            date=start.replace(hour=0, minute=0, second=0, microsecond=0),
            start_time=start,
            facility=facility,
            supervisor=supervisor,
            role=role,
            area=area,
            status="active",
            duration_minutes=0,
            created_at=now,
            updated_at=now,
        )
    )
    logger.info(f"Started session {session_id} at {facility}")
    return session_id


def add_capture(
    repo: Repository,
    session_id: int,
    capture_type: str = "text",
    content: str | None = None,
    tags: Iterable[str] = (),
    media_url: str | None = None,
    include_in_export: bool | None = None,
    timestamp: datetime | None = None,
) -> int:
    """Attach a capture to a session. Photos stay out of reports unless allowed."""
    if capture_type not in CAPTURE_TYPES:
        raise ValueError(f"Unknown capture type '{capture_type}'")
    repo.sessions.require(session_id)

    if capture_type == "photo" and include_in_export is None:
        include_in_export = False
    clean_tags = list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))

    return repo.captures.add(
        Capture(
            session_id=session_id,
            type=capture_type,
            timestamp=timestamp or datetime.now(),
            content=content,
            tags=clean_tags,
            media_url=media_url,
            include_in_export=include_in_export if capture_type == "photo" else None,
        )
    )


def _reflection_changes(
    session: Session,
    answers: dict[str, str] | None,
    competencies: Iterable[str] | None,
    supervisor: str | None,
    supervisor_note: str | None,
    prompts: Iterable[str],
) -> dict[str, Any]:
    answers = dict(answers if answers is not None else session.reflection_prompts)
    changes: dict[str, Any] = {
        "reflection": compose_reflection(answers, prompts),
        "reflection_prompts": answers,
        "competencies": list(competencies) if competencies is not None else session.competencies,
        "updated_at": datetime.now(),
    }
    if supervisor is not None:
        changes["supervisor"] = supervisor
    if supervisor_note is not None:
        changes["supervisor_note"] = supervisor_note
    return changes


def save_draft(
    repo: Repository,
    session_id: int,
    answers: dict[str, str] | None = None,
    competencies: Iterable[str] | None = None,
    supervisor: str | None = None,
    supervisor_note: str | None = None,
    prompts: Iterable[str] = REFLECTION_PROMPTS,
) -> Session:
    """Save reflection progress without finishing the session."""
    session = repo.sessions.require(session_id)
    changes = _reflection_changes(session, answers, competencies, supervisor, supervisor_note, prompts)
    return repo.sessions.update(session_id, changes)


def complete_session(
    repo: Repository,
    session_id: int,
    answers: dict[str, str] | None = None,
    competencies: Iterable[str] | None = None,
    supervisor: str | None = None,
    supervisor_note: str | None = None,
    duration_minutes: int | None = None,
    prompts: Iterable[str] = REFLECTION_PROMPTS,
    now: datetime | None = None,
) -> Session:
    """Finalize a session: end time, duration, reflection, status completed."""
    session = repo.sessions.require(session_id)
    if session.status == "completed":
        raise InvalidTransitionError(f"Session {session_id} is already completed")

    now = coerce_datetime(now) if now is not None else datetime.now()
    if duration_minutes is None:
        elapsed = int((now - session.start_time).total_seconds() // 60)
        duration_minutes = session.duration_minutes or max(elapsed, 0)

    changes = _reflection_changes(session, answers, competencies, supervisor, supervisor_note, prompts)
    changes.update(
        end_time=now,
        duration_minutes=duration_minutes,
        status="completed",
    )
    completed = repo.sessions.update(session_id, changes)
    logger.info(f"Completed session {session_id} ({format_duration(duration_minutes)})")
    return completed


def delete_session(repo: Repository, session_id: int) -> None:
    """Delete a session together with its captures."""
    repo.sessions.delete(session_id)
    logger.info(f"Deleted session {session_id}")


def delete_capture(repo: Repository, capture_id: int) -> None:
    repo.captures.delete(capture_id)
    logger.info(f"Deleted capture {capture_id}")


def start_of_week(now: datetime) -> datetime:
    """Midnight on the most recent Sunday."""
    days_since_sunday = (now.weekday() + 1) % 7
    return (now - timedelta(days=days_since_sunday)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )


def _period(sessions: list[Session]) -> PeriodStats:
    return PeriodStats(
        count=len(sessions),
        minutes=sum(s.duration_minutes or 0 for s in sessions),
    )


def weekly_stats(repo: Repository, now: datetime | None = None) -> PeriodStats:
    return _period(repo.sessions.between(start=start_of_week(now or datetime.now())))


def total_stats(repo: Repository) -> PeriodStats:
    return _period(repo.sessions.all())


def format_duration(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def needs_export_reminder(
    session_count: int,
    last_export: tuple[datetime, int] | None = None,
    now: datetime | None = None,
) -> bool:
    """Remind after more than 5 new sessions or more than 7 days without an export."""
    now = now or datetime.now()
    if last_export is None:
        days_since, exported_count = None, 0
    else:
        exported_at, exported_count = last_export
        days_since = (now - exported_at).days

    sessions_since = session_count - exported_count
    stale = days_since is None or days_since > EXPORT_REMINDER_DAYS
    return sessions_since > EXPORT_REMINDER_SESSIONS or (stale and session_count > 0)

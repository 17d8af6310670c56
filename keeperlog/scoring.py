"""Competency evidence matching and scoring.

A session counts as evidence for a competency when the competency is ticked on
the session itself, or when one of the session's captures carries a tag that
loosely matches the competency label (tag "husbandry" matches "Routine animal
care and husbandry"). The score adds five components, capped at 100:

    coverage      20  at least one relevant session
    depth      0-25  best single session: 10, +10 long reflection, +5 photo/observation
    consistency 0-25  5 per distinct calendar day
    recency    0-20  days since the latest relevant session
    confidence 0-10  self-rating (0-5) x 2

Everything here is pure. Callers pass snapshots of the store and re-run the
scoring whenever the data changes.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from keeperlog.competencies import sorted_competencies
from keeperlog.models import Capture, Competency, Session, coerce_datetime

logger = logging.getLogger(__name__)

NOT_STARTED = "Not started"
IN_PROGRESS = "In progress"
CONSISTENT = "Consistent"
STRONG = "Strong"

STATUS_MESSAGES = {
    NOT_STARTED: "No evidence logged yet.",
    IN_PROGRESS: "Some practice logged. Build consistency.",
    CONSISTENT: "Practised regularly across sessions.",
    STRONG: "Recent and consistent evidence logged.",
}

COVERAGE_POINTS = 20
DEPTH_BASE_POINTS = 10
DEPTH_REFLECTION_POINTS = 10
DEPTH_MEDIA_POINTS = 5
MAX_DEPTH = 25
LONG_REFLECTION_CHARS = 100
MEDIA_CAPTURE_TYPES = ("photo", "observation")
POINTS_PER_DAY = 5
MAX_CONSISTENCY = 25
# (max days since latest evidence, points)
RECENCY_BUCKETS = ((14, 20), (30, 15), (60, 10), (90, 5))
MAX_CONFIDENCE = 5
MAX_SCORE = 100

# Skills overview filters
GAP_BELOW = 30
STRONG_FROM = 80
VIEWS = ("all", "gaps", "improving", "strong")


@dataclass
class CompetencyScore:
    score: int = 0
    coverage: int = 0
    depth: int = 0
    consistency: int = 0
    recency: int = 0
    confidence_points: int = 0
    status: str = NOT_STARTED
    status_message: str = STATUS_MESSAGES[NOT_STARTED]
    session_count: int = 0
    last_evidence: datetime | None = None


@dataclass
class CompetencyProgress:
    competency: Competency
    score: CompetencyScore


def _normalize(value: Any) -> str:
    if value is None:
        return ""
    return str(value).lower().strip()


def _spelling_variant(text: str) -> str:
    return text.replace("behavior", "behaviour", 1)


def _session_date(session: Any) -> datetime | None:
    try:
        return coerce_datetime(getattr(session, "date", None))
    except (TypeError, ValueError):
        return None


def _group_by_session(captures: Iterable[Capture] | None) -> dict[Any, list[Capture]]:
    grouped: dict[Any, list[Capture]] = defaultdict(list)
    for capture in captures or []:
        grouped[getattr(capture, "session_id", None)].append(capture)
    return grouped


def tag_matches(tag: Any, code: Any) -> bool:
    """Loose match between a capture tag and a competency label."""
    t = _normalize(tag)
    c = _normalize(code)
    if not t or not c:
        return False
    t_alt = _spelling_variant(t)
    c_alt = _spelling_variant(c)
    return c in t or t in c or c_alt in t_alt or t_alt in c_alt


def session_matches(code: Any, session: Session, session_captures: Iterable[Capture]) -> bool:
    """True if the session is evidence for ``code``."""
    target = _normalize(code)
    if not target:
        return False
    if any(_normalize(label) == target for label in getattr(session, "competencies", None) or []):
        return True
    return any(
        tag_matches(tag, code)
        for capture in session_captures
        for tag in getattr(capture, "tags", None) or []
    )


def find_relevant_sessions(
    code: Any,
    sessions: Iterable[Session] | None,
    captures: Iterable[Capture] | None,
) -> list[Session]:
    """Sessions that count as evidence for ``code``, newest first."""
    by_session = _group_by_session(captures)
    relevant = [
        session
        for session in sessions or []
        if _session_date(session) is not None
        and session_matches(code, session, by_session.get(getattr(session, "id", None), []))
    ]
    relevant.sort(key=_session_date, reverse=True)
    return relevant


def _session_depth(session: Session, session_captures: list[Capture]) -> int:
    points = DEPTH_BASE_POINTS
    if len(str(getattr(session, "reflection", None) or "")) > LONG_REFLECTION_CHARS:
        points += DEPTH_REFLECTION_POINTS
    if any(getattr(c, "type", None) in MEDIA_CAPTURE_TYPES for c in session_captures):
        points += DEPTH_MEDIA_POINTS
    return points


def recency_points(days_since: int) -> int:
    for max_days, points in RECENCY_BUCKETS:
        if days_since <= max_days:
            return points
    return 0


def _confidence(competency: Competency | None) -> int:
    try:
        value = int(getattr(competency, "confidence", None) or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, min(value, MAX_CONFIDENCE))


def status_for(score: int) -> str:
    if score >= 80:
        return STRONG
    if score >= 50:
        return CONSISTENT
    if score >= 1:
        return IN_PROGRESS
    return NOT_STARTED


def calculate_competency_score(
    code: Any,
    sessions: Iterable[Session] | None,
    captures: Iterable[Capture] | None,
    competency: Competency | None = None,
    now: datetime | None = None,
) -> CompetencyScore:
    """Score one competency from the full session and capture collections."""
    captures = list(captures or [])
    relevant = find_relevant_sessions(code, sessions, captures)
    if not relevant:
        return CompetencyScore()

    now = coerce_datetime(now) if now is not None else datetime.now()
    by_session = _group_by_session(captures)

    coverage = COVERAGE_POINTS
    depth = min(
        max(_session_depth(s, by_session.get(s.id, [])) for s in relevant),
        MAX_DEPTH,
    )
    days = {_session_date(s).date() for s in relevant}
    consistency = min(len(days) * POINTS_PER_DAY, MAX_CONSISTENCY)
    latest = _session_date(relevant[0])
    recency = recency_points((now - latest).days)
    confidence_points = _confidence(competency) * 2

    total = min(coverage + depth + consistency + recency + confidence_points, MAX_SCORE)
    status = status_for(total)

    logger.debug(
        f"Scored '{code}': sessions={len(relevant)} coverage={coverage} depth={depth} "
        f"consistency={consistency} recency={recency} confidence={confidence_points} "
        f"total={total} ids={[s.id for s in relevant]}"
    )

    return CompetencyScore(
        score=total,
        coverage=coverage,
        depth=depth,
        consistency=consistency,
        recency=recency,
        confidence_points=confidence_points,
        status=status,
        status_message=STATUS_MESSAGES[status],
        session_count=len(relevant),
        last_evidence=latest,
    )


def score_competencies(
    competencies: Iterable[Competency],
    sessions: Iterable[Session] | None,
    captures: Iterable[Capture] | None,
    now: datetime | None = None,
    include_inactive: bool = False,
) -> list[CompetencyProgress]:
    """Score every (active) competency, keeping catalogue order."""
    sessions = list(sessions or [])
    captures = list(captures or [])
    ordered = sorted_competencies(
        c for c in competencies if include_inactive or c.active is not False
    )
    return [
        CompetencyProgress(c, calculate_competency_score(c.code, sessions, captures, c, now))
        for c in ordered
    ]


def filter_progress(
    progress: Iterable[CompetencyProgress],
    view: str = "all",
    search: str | None = None,
) -> list[CompetencyProgress]:
    """Skills overview: gaps (<30), improving (30-79) or strong (80+), A-Z by code."""
    if view not in VIEWS:
        raise ValueError(f"Unknown view '{view}', expected one of {', '.join(VIEWS)}")

    items = list(progress)
    if view == "gaps":
        items = [p for p in items if p.score.score < GAP_BELOW]
    elif view == "improving":
        items = [p for p in items if GAP_BELOW <= p.score.score < STRONG_FROM]
    elif view == "strong":
        items = [p for p in items if p.score.score >= STRONG_FROM]

    if search:
        needle = search.lower()
        items = [
            p for p in items
            if needle in p.competency.code.lower() or needle in (p.competency.category or "").lower()
        ]

    return sorted(items, key=lambda p: p.competency.code.lower())


def status_counts(progress: Iterable[CompetencyProgress]) -> dict[str, int]:
    counts = {status: 0 for status in STATUS_MESSAGES}
    for item in progress:
        counts[item.score.status] += 1
    return counts


def overall_coverage(progress: Iterable[CompetencyProgress]) -> int:
    """Percentage of competencies with any evidence, rounded."""
    items = list(progress)
    if not items:
        return 0
    covered = sum(1 for p in items if p.score.score > 0)
    return round(covered / len(items) * 100)

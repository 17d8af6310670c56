"""Tests for keeperlog.scoring: evidence matching and competency scores."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from keeperlog.models import Capture, Competency, Session
from keeperlog.scoring import (
    CONSISTENT,
    IN_PROGRESS,
    NOT_STARTED,
    STRONG,
    CompetencyProgress,
    CompetencyScore,
    calculate_competency_score,
    filter_progress,
    find_relevant_sessions,
    overall_coverage,
    recency_points,
    score_competencies,
    status_counts,
    status_for,
    tag_matches,
)

NOW = datetime(2024, 3, 11, 9, 0)
WHS = "Workplace health and safety (WHS)"
HUSBANDRY = "Routine animal care and husbandry"


def _session(session_id: int, days_ago: int, competencies=(), reflection: str = "") -> Session:
    day = (NOW - timedelta(days=days_ago)).replace(hour=0, minute=0)
    return Session(
        id=session_id,
        date=day,
        start_time=day.replace(hour=8),
        facility="Taronga Zoo",
        status="completed",
        reflection=reflection,
        competencies=list(competencies),
    )


class TestTagMatching:
    def test_substring_either_way(self):
        assert tag_matches("husbandry", HUSBANDRY)
        assert tag_matches("Routine animal care and husbandry extra", HUSBANDRY)

    def test_case_insensitive(self):
        assert tag_matches("HUSBANDRY", HUSBANDRY)

    def test_spelling_variant(self):
        assert tag_matches("behavior", "Observe and record behaviour/health")

    def test_empty_never_matches(self):
        assert not tag_matches("", HUSBANDRY)
        assert not tag_matches("  ", HUSBANDRY)
        assert not tag_matches("welfare", "")
        assert not tag_matches(None, HUSBANDRY)

    def test_unrelated(self):
        assert not tag_matches("enrichment", HUSBANDRY)


class TestFindRelevantSessions:
    def test_ticked_competency(self):
        sessions = [_session(1, 3, competencies=[WHS]), _session(2, 1)]
        assert [s.id for s in find_relevant_sessions(WHS, sessions, [])] == [1]

    def test_ticked_competency_ignores_case(self):
        sessions = [_session(1, 3, competencies=[WHS.upper()])]
        assert find_relevant_sessions(WHS, sessions, [])

    def test_capture_tag(self):
        sessions = [_session(1, 3), _session(2, 1)]
        captures = [Capture(session_id=2, type="text", tags=["husbandry"])]
        assert [s.id for s in find_relevant_sessions(HUSBANDRY, sessions, captures)] == [2]

    def test_newest_first(self):
        sessions = [_session(i, days, competencies=[WHS]) for i, days in ((1, 20), (2, 2), (3, 9))]
        assert [s.id for s in find_relevant_sessions(WHS, sessions, [])] == [2, 3, 1]

    def test_none_inputs(self):
        assert find_relevant_sessions(WHS, None, None) == []


class TestRecency:
    @pytest.mark.parametrize(
        "days, points",
        [(0, 20), (14, 20), (15, 15), (30, 15), (31, 10), (60, 10), (61, 5), (90, 5), (91, 0)],
    )
    def test_buckets(self, days: int, points: int):
        assert recency_points(days) == points


class TestStatusFor:
    def test_thresholds(self):
        assert status_for(0) == NOT_STARTED
        assert status_for(1) == IN_PROGRESS
        assert status_for(49) == IN_PROGRESS
        assert status_for(50) == CONSISTENT
        assert status_for(79) == CONSISTENT
        assert status_for(80) == STRONG


class TestCalculateScore:
    def test_worked_example(self):
        session = _session(1, 10, competencies=[WHS], reflection="x" * 150)
        captures = [Capture(session_id=1, type="photo")]
        competency = Competency(code=WHS, confidence=3)

        result = calculate_competency_score(WHS, [session], captures, competency, now=NOW)

        assert result.coverage == 20
        assert result.depth == 25
        assert result.consistency == 5
        assert result.recency == 20
        assert result.confidence_points == 6
        assert result.score == 76
        assert result.status == CONSISTENT
        assert result.status_message == "Practised regularly across sessions."
        assert result.session_count == 1

    def test_no_evidence(self):
        result = calculate_competency_score(WHS, [_session(1, 1)], [], now=NOW)
        assert result == CompetencyScore()
        assert result.status == NOT_STARTED
        assert result.status_message == "No evidence logged yet."

    def test_malformed_inputs_degrade(self):
        assert calculate_competency_score(None, None, None).score == 0
        assert calculate_competency_score("", [_session(1, 1, [""])], []).score == 0

    def test_depth_uses_best_session(self):
        sessions = [
            _session(1, 5, [WHS], reflection="short"),
            _session(2, 6, [WHS], reflection="y" * 101),
        ]
        result = calculate_competency_score(WHS, sessions, [], now=NOW)
        assert result.depth == 20

    def test_observation_counts_as_media(self):
        sessions = [_session(1, 5, [WHS])]
        captures = [Capture(session_id=1, type="observation")]
        assert calculate_competency_score(WHS, sessions, captures, now=NOW).depth == 15

    def test_consistency_counts_distinct_days(self):
        sessions = [_session(i, days, [WHS]) for i, days in ((1, 1), (2, 1), (3, 2))]
        assert calculate_competency_score(WHS, sessions, [], now=NOW).consistency == 10

    def test_consistency_capped(self):
        sessions = [_session(i, i, [WHS]) for i in range(1, 9)]
        assert calculate_competency_score(WHS, sessions, [], now=NOW).consistency == 25

    def test_confidence_step_adds_two(self):
        sessions = [_session(1, 40, [WHS])]
        scores = [
            calculate_competency_score(
                WHS, sessions, [], Competency(code=WHS, confidence=k), now=NOW
            ).score
            for k in range(6)
        ]
        assert all(b - a == 2 for a, b in zip(scores, scores[1:]))

    def test_confidence_clamped(self):
        sessions = [_session(1, 40, [WHS])]
        high = calculate_competency_score(WHS, sessions, [], Competency(code=WHS, confidence=50), now=NOW)
        low = calculate_competency_score(WHS, sessions, [], Competency(code=WHS, confidence=-3), now=NOW)
        assert high.confidence_points == 10
        assert low.confidence_points == 0

    def test_new_session_today_never_lowers_recency(self):
        sessions = [_session(1, 45, [WHS])]
        before = calculate_competency_score(WHS, sessions, [], now=NOW).recency
        after = calculate_competency_score(WHS, sessions + [_session(2, 0, [WHS])], [], now=NOW).recency
        assert after >= before

    def test_bounded(self):
        sessions = [_session(i, i % 3, [WHS], reflection="z" * 500) for i in range(1, 20)]
        captures = [Capture(session_id=i, type="photo") for i in range(1, 20)]
        result = calculate_competency_score(
            WHS, sessions, captures, Competency(code=WHS, confidence=5), now=NOW
        )
        assert 0 <= result.score <= 100
        assert result.status == STRONG

    def test_undated_session_ignored(self):
        bad = Session(
            id=1, date=None, start_time=NOW, facility="Zoo",
            status="completed", competencies=[WHS],
        )
        assert calculate_competency_score(WHS, [bad], [], now=NOW).score == 0


def _progress(code: str, score: int, category: str = "Core") -> CompetencyProgress:
    return CompetencyProgress(
        Competency(code=code, category=category),
        CompetencyScore(score=score, status=status_for(score)),
    )


class TestOverview:
    def test_score_competencies_skips_inactive(self):
        competencies = [
            Competency(id=1, code=WHS, order=1),
            Competency(id=2, code="Retired", active=False, order=0),
            Competency(id=3, code=HUSBANDRY, order=0),
        ]
        progress = score_competencies(competencies, [_session(1, 2, [WHS])], [], now=NOW)
        assert [p.competency.code for p in progress] == [HUSBANDRY, WHS]
        assert progress[1].score.score > 0

    def test_include_inactive(self):
        competencies = [Competency(id=2, code="Retired", active=False)]
        assert len(score_competencies(competencies, [], [], include_inactive=True)) == 1

    def test_filter_views(self):
        progress = [_progress("C", 10), _progress("A", 50), _progress("B", 85), _progress("D", 30)]
        assert [p.competency.code for p in filter_progress(progress, "gaps")] == ["C"]
        assert [p.competency.code for p in filter_progress(progress, "improving")] == ["A", "D"]
        assert [p.competency.code for p in filter_progress(progress, "strong")] == ["B"]
        assert [p.competency.code for p in filter_progress(progress)] == ["A", "B", "C", "D"]

    def test_filter_search(self):
        progress = [_progress(WHS, 0), _progress("Enrichment", 0, category="Custom")]
        assert [p.competency.code for p in filter_progress(progress, search="whs")] == [WHS]
        assert [p.competency.code for p in filter_progress(progress, search="custom")] == ["Enrichment"]

    def test_unknown_view(self):
        with pytest.raises(ValueError):
            filter_progress([], "best")

    def test_counts_and_coverage(self):
        progress = [_progress("A", 0), _progress("B", 60), _progress("C", 90), _progress("D", 20)]
        counts = status_counts(progress)
        assert counts == {NOT_STARTED: 1, IN_PROGRESS: 1, CONSISTENT: 1, STRONG: 1}
        assert overall_coverage(progress) == 75
        assert overall_coverage([]) == 0

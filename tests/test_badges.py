"""Tests for keeperlog.badges."""

from __future__ import annotations

import pytest

from keeperlog.badges import BADGE_DEFINITIONS, badge_progress, derive_tier
from keeperlog.competencies import DEFAULT_COMPETENCIES
from keeperlog.models import Competency
from keeperlog.scoring import CompetencyProgress, CompetencyScore


class TestDeriveTier:
    @pytest.mark.parametrize(
        "score, tier",
        [(None, "none"), (0, "none"), (1, "bronze"), (49, "bronze"), (50, "silver"),
         (79, "silver"), (80, "gold"), (100, "gold")],
    )
    def test_thresholds(self, score, tier):
        assert derive_tier(score) == tier


class TestBadgeDefinitions:
    def test_ten_unique_badges(self):
        assert len(BADGE_DEFINITIONS) == 10
        assert len({b.id for b in BADGE_DEFINITIONS}) == 10

    def test_each_badge_links_a_default_competency(self):
        defaults = {code for code, _ in DEFAULT_COMPETENCIES}
        for badge in BADGE_DEFINITIONS:
            assert badge.competency_code in defaults


class TestBadgeProgress:
    def test_missing_competency_scores_zero(self):
        statuses = badge_progress([])
        assert len(statuses) == 10
        assert all(s.tier == "none" and s.score == 0 for s in statuses)

    def test_uses_linked_score(self):
        eagle = BADGE_DEFINITIONS[0]
        progress = [
            CompetencyProgress(
                Competency(code=eagle.competency_code.upper()),
                CompetencyScore(score=85),
            )
        ]
        status = badge_progress(progress, [eagle])[0]
        assert status.badge is eagle
        assert status.score == 85
        assert status.tier == "gold"

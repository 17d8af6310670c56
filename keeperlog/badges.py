"""Achievement badges: one per core competency, graded by that competency's score."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from keeperlog.scoring import CompetencyProgress

TIERS = ("none", "bronze", "silver", "gold")


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    symbol: str
    category: str
    competency_code: str
    description: str


@dataclass
class BadgeStatus:
    badge: BadgeDefinition
    tier: str
    score: int


BADGE_DEFINITIONS: tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        "eagle", "Eagle Eye", "eye", "observation",
        "Observe and record behaviour/health",
        "Precision in monitoring and reporting animal signals.",
    ),
    BadgeDefinition(
        "tortoise", "Tortoise Steady", "shell", "consistency",
        "Routine animal care and husbandry",
        "Consistency in essential daily care and checks.",
    ),
    BadgeDefinition(
        "otter", "Otter Method", "shield-drop", "hygiene",
        "Hygiene, cleaning, and biosecurity",
        "Methodical approach to cleaning and infection control.",
    ),
    BadgeDefinition(
        "dolphin", "Dolphin Signal", "wave-dot", "communication",
        "Communication and record keeping",
        "Clarity and accuracy in handover and documentation.",
    ),
    BadgeDefinition(
        "wombat", "Wombat Builder", "bricks", "habitat",
        "Habitat/enclosure maintenance",
        "Maintaining safe and secure environments.",
    ),
    BadgeDefinition(
        "kangaroo", "Kangaroo Guard", "shield", "safety",
        "Workplace health and safety (WHS)",
        "Proactive hazard management and safe movement.",
    ),
    BadgeDefinition(
        "bee", "Bee Diligent", "hexagon", "consistency",
        "Enrichment participation and evaluation",
        "Focus on animal mental and physical stimulation.",
    ),
    BadgeDefinition(
        "swan", "Swan Ethical", "heart", "ethics",
        "Animal welfare and ethical practice",
        "Commitment to humane care and welfare decisions.",
    ),
    BadgeDefinition(
        "bear", "Bear Secure", "lock", "handling",
        "Safe handling and restraint",
        "Safety and confidence in physical interactions.",
    ),
    BadgeDefinition(
        "owl", "Owl Guard", "bell", "operational",
        "Visitor/operational safety",
        "Awareness of public and operational boundaries.",
    ),
)


def derive_tier(score: float | None) -> str:
    if score is None:
        return "none"
    if score >= 80:
        return "gold"
    if score >= 50:
        return "silver"
    if score > 0:
        return "bronze"
    return "none"


def badge_progress(
    progress: Iterable[CompetencyProgress],
    badges: Iterable[BadgeDefinition] = BADGE_DEFINITIONS,
) -> list[BadgeStatus]:
    """Grade each badge by the score of its linked competency (missing = 0)."""
    scores = {p.competency.code.strip().lower(): p.score.score for p in progress}
    statuses = []
    for badge in badges:
        score = scores.get(badge.competency_code.strip().lower(), 0)
        statuses.append(BadgeStatus(badge=badge, tier=derive_tier(score), score=score))
    return statuses

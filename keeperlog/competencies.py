"""Default competency catalogue, seeding and competency management.

The catalogue carries an explicit version. The version that installed the
current rows is stored in the ``meta`` table, and each seeded row records it in
``seed_version``. Upgrades are additive: rows from older catalogues are
deactivated, never deleted, and user-entered competencies are left alone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from keeperlog.errors import ConstraintViolation
from keeperlog.models import Competency
from keeperlog.storage.repository import Repository

logger = logging.getLogger(__name__)

SEED_VERSION = 2
SEED_META_KEY = "competency_seed_version"
SEED_THRESHOLD = 5
MAX_CONFIDENCE = 5
CUSTOM_CATEGORY = "Custom"
CUSTOM_ORDER = 999

# (code, description)
DEFAULT_COMPETENCIES: tuple[tuple[str, str], ...] = (
    ("Routine animal care and husbandry", "Feeding, watering, daily checks"),
    ("Animal welfare and ethical practice", "Welfare decisions, humane care"),
    ("Observe and record behaviour/health", "Signals, monitoring, reporting"),
    ("Hygiene, cleaning, and biosecurity", "PPE, disinfecting, cross-contamination control"),
    ("Workplace health and safety (WHS)", "Hazards, manual handling, safe procedures"),
    ("Enrichment participation and evaluation", "Prep, delivery, response/outcomes"),
    ("Habitat/enclosure maintenance", "Safe upkeep, checks, environmental condition"),
    ("Safe handling and restraint", "Observed/assisted only where permitted"),
    ("Communication and record keeping", "Handover notes, clarity, documentation"),
    ("Visitor/operational safety", "Public impacts, safe boundaries in animal settings"),
)

# Labels shipped by catalogue version 1: unit codes and the first release's tags.
LEGACY_COMPETENCY_CODES = frozenset(
    code.lower()
    for code in (
        "ACMCAS201", "ACMWHS201", "ACMCAS301", "ACMCAS302", "ACMCAS303",
        "ACMCAS304", "ACMCAS306", "ACMSPE312", "ACMWLH301", "ACMEXH301",
        "Welfare", "Biosecurity", "OHS / WHS", "Husbandry", "Nutrition",
        "Enrichment", "Observation", "Public Interaction", "Maintenance",
    )
)


def default_competency_rows() -> list[Competency]:
    return [
        Competency(
            code=code,
            description=description,
            category="Core",
            active=True,
            order=index,
            seed_version=SEED_VERSION,
        )
        for index, (code, description) in enumerate(DEFAULT_COMPETENCIES)
    ]


def _stored_seed_version(repo: Repository) -> int | None:
    raw = repo.get_meta(SEED_META_KEY)
    return int(raw) if raw and raw.isdigit() else None


def _retire_legacy(repo: Repository, existing: list[Competency]) -> int:
    retired = 0
    for competency in existing:
        if competency.code.strip().lower() in LEGACY_COMPETENCY_CODES and competency.active:
            repo.competencies.update(competency.id, {"active": False})
            retired += 1
    if retired:
        logger.info(f"Deactivated {retired} competencies from the previous catalogue")
    return retired


def _install_missing_defaults(repo: Repository, existing: list[Competency]) -> int:
    known = {c.code.strip().lower() for c in existing}
    added = 0
    for row in default_competency_rows():
        if row.code.lower() not in known:
            repo.competencies.add(row)
            added += 1
    if added:
        logger.info(f"Seeded {added} default competencies")
    return added


def seed_competencies(repo: Repository, threshold: int = SEED_THRESHOLD) -> bool:
    """Install or upgrade the default catalogue. Returns True if rows changed.

    Never raises: a failed seed is logged and the store is left as it was.
    """
    try:
        stored = _stored_seed_version(repo)
        existing = repo.competencies.all()
        needs_defaults = (
            not existing
            or stored is None
            or stored < SEED_VERSION
            or len(existing) < threshold
        )
        changed = 0
        with repo.transaction():
            if existing and stored is None:
                changed += _retire_legacy(repo, existing)
            if needs_defaults:
                changed += _install_missing_defaults(repo, existing)
            if stored != SEED_VERSION:
                repo.set_meta(SEED_META_KEY, str(SEED_VERSION))
        return changed > 0
    except Exception:
        logger.exception("Seeding default competencies failed")
        return False


def reset_competencies(repo: Repository) -> int:
    """Replace every competency (custom ones included) with the defaults."""
    rows = default_competency_rows()
    with repo.transaction():
        repo.competencies.clear()
        repo.competencies.bulk_add(rows)
        repo.set_meta(SEED_META_KEY, str(SEED_VERSION))
    logger.info("Competencies reset to defaults")
    return len(rows)


def add_custom_competency(repo: Repository, code: str, description: str = "") -> int:
    code = code.strip()
    if not code:
        raise ValueError("Competency code must not be empty")
    if repo.competencies.by_code(code) is not None:
        raise ConstraintViolation(f"Competency '{code}' already exists")
    return repo.competencies.add(
        Competency(
            code=code,
            description=description,
            category=CUSTOM_CATEGORY,
            active=True,
            order=CUSTOM_ORDER,
        )
    )


def toggle_competency(repo: Repository, competency_id: int) -> bool:
    """Flip the active flag. Returns the new value."""
    current = repo.competencies.require(competency_id)
    updated = repo.competencies.update(competency_id, {"active": not current.active})
    return updated.active


def rename_competency(
    repo: Repository,
    competency_id: int,
    code: str,
    description: str | None = None,
) -> Competency:
    code = code.strip()
    if not code:
        raise ValueError("Competency code must not be empty")
    clash = repo.competencies.by_code(code)
    if clash is not None and clash.id != competency_id:
        raise ConstraintViolation(f"Competency '{code}' already exists")
    changes: dict = {"code": code}
    if description is not None:
        changes["description"] = description
    return repo.competencies.update(competency_id, changes)


def set_confidence(repo: Repository, competency_id: int, value: int) -> Competency:
    if not 0 <= value <= MAX_CONFIDENCE:
        raise ValueError(f"Confidence must be between 0 and {MAX_CONFIDENCE}")
    return repo.competencies.update(competency_id, {"confidence": value})


def sorted_competencies(rows: Iterable[Competency]) -> list[Competency]:
    """Active first, then by sort order (missing order sorts last)."""
    return sorted(rows, key=lambda c: (not c.active, c.sort_order, c.id or 0))

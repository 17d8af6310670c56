"""Full-journal backup and restore.

A bundle is a self-describing JSON snapshot of the whole store plus the
profile document:

    {version, timestamp, profile, sessions, captures, competencies, logs}

Rows use the camelCase field names of the KeeperLog web app, so its backups
restore unchanged. Restoring replaces every table inside one transaction and
keeps row ids, which keeps capture -> session links intact. The profile is
written afterwards, outside that transaction. If that write keeps failing,
the tables are already replaced and the profile is stale. The failure is
logged and raised rather than hidden.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from keeperlog.activity import record_activity
from keeperlog.errors import InvalidFormatError, StorageUnavailableError, TransactionFailure
from keeperlog.models import Capture, Competency, LogEntry, Session, coerce_datetime
from keeperlog.profile import ProfileStore
from keeperlog.storage.repository import Repository

logger = logging.getLogger(__name__)

BUNDLE_VERSION = 2
BUNDLE_TABLES = ("sessions", "captures", "competencies", "logs")
DATE_FIELDS = ("date", "startTime", "endTime", "createdAt", "updatedAt", "timestamp")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 0.5  # seconds


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def create_bundle(repo: Repository, profile_store: ProfileStore | None = None) -> dict[str, Any]:
    """Snapshot every table plus the profile."""
    return {
        "version": BUNDLE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "profile": profile_store.load() if profile_store else {},
        "sessions": [row.to_dict() for row in repo.sessions.all()],
        "captures": [row.to_dict() for row in repo.captures.all()],
        "competencies": [row.to_dict() for row in repo.competencies.all()],
        "logs": [row.to_dict() for row in repo.logs.all()],
    }


def dumps_bundle(bundle: dict[str, Any]) -> str:
    return json.dumps(bundle, indent=2, ensure_ascii=False, default=_json_default)


def default_backup_name(today: date | None = None) -> str:
    today = today or date.today()
    return f"KeeperLog_Backup_{today.isoformat()}.json"


def export_bundle(
    repo: Repository,
    profile_store: ProfileStore | None,
    path: Path,
) -> dict[str, Any]:
    """Write a backup file and return the bundle that was written."""
    bundle = create_bundle(repo, profile_store)
    path.write_text(dumps_bundle(bundle), encoding="utf-8")
    record_activity(
        "backup",
        {"path": str(path), "session_count": len(bundle["sessions"])},
    )
    logger.info(f"Backup written to {path}")
    return bundle


def parse_bundle(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidFormatError(f"Backup is not valid JSON: {exc}") from exc


def load_bundle(path: Path) -> Any:
    return parse_bundle(path.read_text(encoding="utf-8-sig"))


def normalize_row(item: dict[str, Any]) -> dict[str, Any]:
    """Copy of a bundle row with textual date fields parsed back into datetimes."""
    cleaned = dict(item)
    for name in DATE_FIELDS:
        value = cleaned.get(name)
        if value and isinstance(value, str):
            cleaned[name] = coerce_datetime(value)
    return cleaned


def _table_rows(bundle: dict[str, Any], key: str) -> list[dict[str, Any]]:
    rows = bundle.get(key)
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise InvalidFormatError(f"Backup field '{key}' must be a list")
    for row in rows:
        if not isinstance(row, dict):
            raise InvalidFormatError(f"Backup field '{key}' must hold objects")
    return rows


def _write_profile(
    profile_store: ProfileStore,
    profile: dict[str, Any],
    sleep: Callable[[float], None],
) -> None:
    for attempt in range(MAX_RETRIES):
        try:
            profile_store.save(profile)
            return
        except StorageUnavailableError as exc:
            if attempt < MAX_RETRIES - 1:
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(f"Profile write failed ({exc}), retrying in {delay}s...")
                sleep(delay)
            else:
                logger.error(
                    f"Profile write failed after {MAX_RETRIES} attempts; "
                    "journal data was restored but the profile is stale"
                )
                raise


def restore_bundle(
    repo: Repository,
    profile_store: ProfileStore | None,
    bundle: Any,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Replace the whole store with the bundle's contents.

    WARNING: clears every table first. Either all four tables are replaced or
    none is; on failure TransactionFailure is raised and the profile is left
    alone.
    """
    if not isinstance(bundle, dict):
        raise InvalidFormatError("Invalid backup data format")

    tables = {key: _table_rows(bundle, key) for key in BUNDLE_TABLES}
    profile = bundle.get("profile")
    if profile is not None and not isinstance(profile, dict):
        raise InvalidFormatError("Backup field 'profile' must be an object")

    version = bundle.get("version")
    logger.info(f"Restoring bundle version {version} from {bundle.get('timestamp')}")
    if version != BUNDLE_VERSION:
        logger.warning(f"Bundle version {version} differs from {BUNDLE_VERSION}, restoring anyway")

    try:
        with repo.transaction():
            repo.captures.clear()
            repo.sessions.clear()
            repo.competencies.clear()
            repo.logs.clear()

            repo.sessions.bulk_add(Session.from_dict(normalize_row(r)) for r in tables["sessions"])
            repo.captures.bulk_add(Capture.from_dict(normalize_row(r)) for r in tables["captures"])
            repo.competencies.bulk_add(
                Competency.from_dict(normalize_row(r)) for r in tables["competencies"]
            )
            repo.logs.bulk_add(LogEntry.from_dict(normalize_row(r)) for r in tables["logs"])
    except TransactionFailure as exc:
        logger.error(f"Restore failed: {exc}")
        record_activity("restore", {"version": version}, error=str(exc))
        raise

    counts = {key: len(rows) for key, rows in tables.items()}
    if profile and profile_store is not None:
        _write_profile(profile_store, profile, sleep)

    record_activity("restore", {"version": version, **counts})
    logger.info(f"Restored {counts}")
    return True

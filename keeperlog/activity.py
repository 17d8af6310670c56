"""Activity journal for data exchange operations.

Every backup, restore, CSV export/import and "clear all data" is appended to a
JSONL file so the user can see what happened to their journal and when. Each
line is a JSON object with timestamp, action, details and error.

The journal lives alongside keeperlog.db by default. The export reminder reads
the latest successful export from it.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

EXPORT_ACTIONS = ("backup", "export_csv")


def _resolve_activity_path() -> Path:
    """Find the journal path, checking env var then defaulting next to the DB."""
    env_path = os.getenv("KEEPERLOG_ACTIVITY_PATH")
    if env_path:
        return Path(env_path)

    db_path = os.getenv("KEEPERLOG_DB_PATH", "keeperlog.db")
    return Path(db_path).parent / "keeperlog-activity.jsonl"


def record_activity(
    action: str,
    details: dict[str, Any] | None = None,
    error: str | None = None,
    path: Path | None = None,
) -> None:
    """Append an entry to the activity journal. Never raises."""
    entry = {
        "timestamp": datetime.now().isoformat(),
        "action": action,
        "details": details or {},
        "error": error,
    }
    try:
        log_path = path or _resolve_activity_path()
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except OSError as exc:
        logger.warning(f"Could not write activity journal: {exc}")


def read_activity(
    limit: int = 20,
    action: str | None = None,
    path: Path | None = None,
) -> list[dict]:
    """Read recent journal entries.

    Returns entries in reverse chronological order (most recent first).
    """
    log_path = path or _resolve_activity_path()
    if not log_path.exists():
        return []

    entries: list[dict] = []
    for line in log_path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue

        if action and entry.get("action") != action:
            continue

        entries.append(entry)

    entries.reverse()
    return entries[:limit]


def last_export(path: Path | None = None) -> tuple[datetime, int] | None:
    """Timestamp and session count of the latest successful export, if any."""
    for entry in read_activity(limit=10_000, path=path):
        if entry.get("action") not in EXPORT_ACTIONS or entry.get("error"):
            continue
        try:
            when = datetime.fromisoformat(entry["timestamp"])
        except (KeyError, TypeError, ValueError):
            continue
        count = entry.get("details", {}).get("session_count", 0)
        return when, int(count or 0)
    return None

"""Core data models for keeperlog.

Every record is a dataclass that knows how to turn itself into a SQLite row
(snake_case columns, ISO datetimes, JSON for lists and mappings) and into a
bundle dict (camelCase keys, matching backups written by the web app).
"""

from __future__ import annotations

import json
import logging
from dataclasses import MISSING, dataclass, field, fields
from datetime import date, datetime, time
from typing import Any, ClassVar

logger = logging.getLogger(__name__)

SESSION_STATUSES = ("active", "completed")
CAPTURE_TYPES = ("text", "observation", "photo", "voice")


def coerce_datetime(value: Any) -> datetime | None:
    """Turn an ISO string, date or datetime into a naive local datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time())
    if not isinstance(value, datetime):
        raise TypeError(f"Expected a date/time value, got {type(value).__name__}")
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class Record:
    """Shared row/bundle conversion for the store's dataclasses."""

    TABLE: ClassVar[str] = ""
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ()
    JSON_FIELDS: ClassVar[tuple[str, ...]] = ()
    BOOL_FIELDS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def columns(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def _default_for(cls, name: str) -> Any:
        for f in fields(cls):
            if f.name != name:
                continue
            if f.default_factory is not MISSING:
                return f.default_factory()
            if f.default is not MISSING:
                return f.default
        return None

    @classmethod
    def encode_value(cls, name: str, value: Any) -> Any:
        """Encode one attribute for storage in a SQLite column."""
        if value is None:
            return None
        if name in cls.DATETIME_FIELDS:
            return coerce_datetime(value).isoformat()
        if name in cls.JSON_FIELDS:
            return json.dumps(value)
        if name in cls.BOOL_FIELDS:
            return int(bool(value))
        return value

    def to_row(self) -> dict[str, Any]:
        return {name: self.encode_value(name, getattr(self, name)) for name in self.columns()}

    @classmethod
    def from_row(cls, row: Any) -> Any:
        """Build a record from a sqlite3.Row, filling missing values with defaults."""
        keys = set(row.keys())
        values: dict[str, Any] = {}
        for name in cls.columns():
            raw = row[name] if name in keys else None
            if raw is None:
                values[name] = cls._default_for(name)
            elif name in cls.DATETIME_FIELDS:
                values[name] = datetime.fromisoformat(raw)
            elif name in cls.JSON_FIELDS:
                try:
                    values[name] = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Unreadable {name} on {cls.TABLE} row {row['id']}")
                    values[name] = cls._default_for(name)
            elif name in cls.BOOL_FIELDS:
                values[name] = bool(raw)
            else:
                values[name] = raw
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Bundle form: camelCase keys, ISO strings for datetimes."""
        out: dict[str, Any] = {}
        for name in self.columns():
            value = getattr(self, name)
            if isinstance(value, datetime):
                value = value.isoformat()
            out[camel_case(name)] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        """Build a record from a bundle dict; unknown keys are dropped."""
        by_key = {camel_case(name): name for name in cls.columns()}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = by_key.get(key) or (key if key in by_key.values() else None)
            if name is None:
                logger.debug(f"Dropping unknown {cls.TABLE} field '{key}'")
                continue
            if name in cls.DATETIME_FIELDS:
                value = coerce_datetime(value)
            values[name] = value
        return cls(**values)


@dataclass
class Session(Record):
    date: datetime
    start_time: datetime
    facility: str
    duration_minutes: int = 0
    end_time: datetime | None = None
    supervisor: str | None = None
    supervisor_note: str | None = None
    role: str | None = None
    area: str | None = None
    status: str = "active"  # "active" | "completed"
    reflection: str = ""
    reflection_prompts: dict[str, str] = field(default_factory=dict)
    competencies: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: int | None = None

    TABLE: ClassVar[str] = "sessions"
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = (
        "date", "start_time", "end_time", "created_at", "updated_at",
    )
    JSON_FIELDS: ClassVar[tuple[str, ...]] = ("reflection_prompts", "competencies")


@dataclass
class Capture(Record):
    session_id: int
    type: str  # "text" | "observation" | "photo" | "voice"
    timestamp: datetime = field(default_factory=datetime.now)
    content: str | None = None
    tags: list[str] = field(default_factory=list)
    media_url: str | None = None  # data: URL with the inline payload
    include_in_export: bool | None = None
    id: int | None = None

    TABLE: ClassVar[str] = "captures"
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("timestamp",)
    JSON_FIELDS: ClassVar[tuple[str, ...]] = ("tags",)
    BOOL_FIELDS: ClassVar[tuple[str, ...]] = ("include_in_export",)

    @property
    def exportable(self) -> bool:
        """Photos only reach reports when explicitly allowed."""
        if self.type == "photo":
            return self.include_in_export is True
        return self.include_in_export is not False


@dataclass
class Competency(Record):
    code: str  # display label, natural key
    description: str = ""
    category: str = "Core"
    active: bool = True
    order: int | None = None
    confidence: int | None = None  # self-rating 0-5
    seed_version: int | None = None  # catalogue version that installed it
    id: int | None = None

    TABLE: ClassVar[str] = "competencies"
    BOOL_FIELDS: ClassVar[tuple[str, ...]] = ("active",)

    @property
    def sort_order(self) -> int:
        return self.order if self.order is not None else 999


@dataclass
class LogEntry(Record):
    """Pre-session journal entry, kept for old backups."""

    date: datetime
    facility: str = ""
    duration_minutes: int = 0
    activity_type: str = ""
    notes: str = ""
    reflection: str = ""
    competencies: list[str] = field(default_factory=list)
    images: list[str] | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: int | None = None

    TABLE: ClassVar[str] = "logs"
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("date", "created_at", "updated_at")
    JSON_FIELDS: ClassVar[tuple[str, ...]] = ("competencies", "images")

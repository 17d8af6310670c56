"""CRUD operations, filtered reads and change notification for the journal store."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Generic, TypeVar

from keeperlog.errors import (
    ActiveSessionError,
    ConstraintViolation,
    InvalidTransitionError,
    NotFoundError,
    StorageUnavailableError,
    TransactionFailure,
)
from keeperlog.models import (
    CAPTURE_TYPES,
    SESSION_STATUSES,
    Capture,
    Competency,
    LogEntry,
    Record,
    Session,
    coerce_datetime,
)
from keeperlog.storage.db import get_connection

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

DATA_TABLES = ("sessions", "captures", "competencies", "logs")


def _translate_integrity_error(table: str, exc: sqlite3.IntegrityError, record: Any) -> Exception:
    if "FOREIGN KEY" in str(exc):
        return NotFoundError("sessions", getattr(record, "session_id", None))
    return ConstraintViolation(f"{table}: {exc}")


class Table(Generic[R]):
    """CRUD for one table of the store."""

    # Tables whose rows disappear along with rows of this one.
    cascades: tuple[str, ...] = ()

    def __init__(self, repo: Repository, model: type[R]) -> None:
        self._repo = repo
        self.model = model
        self.name = model.TABLE

    def get(self, row_id: int) -> R | None:
        row = self._repo.connection.execute(
            f"SELECT * FROM {self.name} WHERE id = ?", (row_id,)
        ).fetchone()
        return self.model.from_row(row) if row else None

    def require(self, row_id: int) -> R:
        record = self.get(row_id)
        if record is None:
            raise NotFoundError(self.name, row_id)
        return record

    def all(self) -> list[R]:
        return self._select()

    def count(self) -> int:
        return self._repo.connection.execute(f"SELECT COUNT(*) FROM {self.name}").fetchone()[0]

    def add(self, record: R) -> int:
        """Insert a record. An explicit id is kept, otherwise one is assigned."""
        self._validate(record, None)
        row = record.to_row()
        if row.get("id") is None:
            row.pop("id", None)
        columns = ", ".join(f'"{name}"' for name in row)
        placeholders = ", ".join("?" for _ in row)
        cursor = self._repo._write(
            self.name,
            f"INSERT INTO {self.name} ({columns}) VALUES ({placeholders})",
            list(row.values()),
            record=record,
        )
        return cursor.lastrowid

    def bulk_add(self, records: Iterable[R]) -> list[int]:
        """Insert many records atomically."""
        with self._repo.transaction():
            return [self.add(record) for record in records]

    def update(self, row_id: int, changes: dict[str, Any]) -> R:
        """Apply a partial update and return the updated record."""
        columns = self.model.columns()
        unknown = [name for name in changes if name == "id" or name not in columns]
        if unknown:
            raise ValueError(f"Cannot update {self.name} fields: {', '.join(unknown)}")

        current = self.require(row_id)
        if not changes:
            return current
        updated = replace(current, **changes)
        self._validate(updated, row_id)

        assignments = ", ".join(f'"{name}" = ?' for name in changes)
        params = [self.model.encode_value(name, value) for name, value in changes.items()]
        params.append(row_id)
        self._repo._write(
            self.name,
            f"UPDATE {self.name} SET {assignments} WHERE id = ?",
            params,
            record=updated,
        )
        return updated

    def delete(self, row_id: int) -> None:
        self.require(row_id)
        self._repo._write(
            self.name,
            f"DELETE FROM {self.name} WHERE id = ?",
            (row_id,),
            tables=(self.name, *self.cascades),
        )

    def clear(self) -> None:
        self._repo._write(self.name, f"DELETE FROM {self.name}", (), tables=(self.name, *self.cascades))

    def _validate(self, record: R, row_id: int | None) -> None:
        """Hook for table-specific checks before a write."""

    def _select(
        self,
        where: str = "",
        params: Iterable[Any] = (),
        order_by: str = "id",
        limit: int | None = None,
    ) -> list[R]:
        query = f"SELECT * FROM {self.name}"
        if where:
            query += f" WHERE {where}"
        query += f" ORDER BY {order_by}"
        values = list(params)
        if limit is not None:
            query += " LIMIT ?"
            values.append(limit)
        rows = self._repo.connection.execute(query, values).fetchall()
        return [self.model.from_row(row) for row in rows]


def _date_range(start: Any, end: Any) -> tuple[str, list[str]]:
    clauses: list[str] = []
    params: list[str] = []
    if start is not None:
        clauses.append("date >= ?")
        params.append(coerce_datetime(start).isoformat())
    if end is not None:
        clauses.append("date < ?")
        params.append(coerce_datetime(end).isoformat())
    return " AND ".join(clauses), params


class SessionTable(Table[Session]):
    cascades = ("captures",)

    def between(self, start: Any = None, end: Any = None) -> list[Session]:
        """Sessions dated in [start, end), newest first."""
        where, params = _date_range(start, end)
        return self._select(where, params, order_by="date DESC, id DESC")

    def by_status(self, status: str) -> list[Session]:
        return self._select("status = ?", (status,), order_by="date DESC, id DESC")

    def newest(self, limit: int = 3) -> list[Session]:
        return self._select(order_by="date DESC, id DESC", limit=limit)

    def active(self) -> Session | None:
        rows = self._select("status = 'active'", limit=1)
        return rows[0] if rows else None

    def update(self, row_id: int, changes: dict[str, Any]) -> Session:
        if changes.get("status") == "active" and self.require(row_id).status == "completed":
            raise InvalidTransitionError(f"Session {row_id} is completed and cannot be reopened")
        return super().update(row_id, changes)

    def _validate(self, record: Session, row_id: int | None) -> None:
        if record.status not in SESSION_STATUSES:
            raise ValueError(f"Unknown session status: {record.status}")
        if record.status != "active":
            return
        own_id = row_id if row_id is not None else record.id
        other = self._repo.connection.execute(
            "SELECT id FROM sessions WHERE status = 'active' AND id IS NOT ?", (own_id,)
        ).fetchone()
        if other is not None:
            raise ActiveSessionError(f"Session {other['id']} is already active")


class CaptureTable(Table[Capture]):
    def for_session(self, session_id: int) -> list[Capture]:
        return self._select("session_id = ?", (session_id,), order_by="timestamp, id")

    def by_type(self, capture_type: str) -> list[Capture]:
        return self._select("type = ?", (capture_type,), order_by="timestamp, id")

    def _validate(self, record: Capture, row_id: int | None) -> None:
        if record.type not in CAPTURE_TYPES:
            raise ValueError(f"Unknown capture type: {record.type}")


class CompetencyTable(Table[Competency]):
    def listing(self, active: bool | None = None) -> list[Competency]:
        """Competencies with active ones first, then by their sort order."""
        where, params = "", []
        if active is not None:
            where, params = "COALESCE(active, 1) = ?", [int(active)]
        return self._select(
            where, params, order_by='COALESCE(active, 1) DESC, COALESCE("order", 999), id'
        )

    def by_code(self, code: str) -> Competency | None:
        rows = self._select("LOWER(TRIM(code)) = LOWER(TRIM(?))", (code,), limit=1)
        return rows[0] if rows else None

    def _validate(self, record: Competency, row_id: int | None) -> None:
        if not str(record.code or "").strip():
            raise ValueError("Competency code must not be empty")


class LogTable(Table[LogEntry]):
    def between(self, start: Any = None, end: Any = None) -> list[LogEntry]:
        where, params = _date_range(start, end)
        return self._select(where, params, order_by="date DESC, id DESC")


@dataclass(eq=False)
class Subscription:
    """A registered query whose result is re-delivered after relevant commits."""

    repo: Repository
    query: Callable[[Repository], Any]
    callback: Callable[[Any], None]
    tables: frozenset[str]
    active: bool = True

    def deliver(self) -> None:
        self.callback(self.query(self.repo))

    def cancel(self) -> None:
        self.active = False
        if self in self.repo._subscriptions:
            self.repo._subscriptions.remove(self)


class Repository:
    """Data access layer for the keeperlog SQLite database.

    Construct one per database file and pass it to whatever needs the store.
    Writes commit immediately unless they run inside ``transaction()``.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._depth = 0
        self._pending: set[str] = set()
        self._subscriptions: list[Subscription] = []

        self.sessions = SessionTable(self, Session)
        self.captures = CaptureTable(self, Capture)
        self.competencies = CompetencyTable(self, Competency)
        self.logs = LogTable(self, LogEntry)

    def open(self) -> Repository:
        if self._conn is None:
            self._conn = get_connection(self.db_path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._subscriptions.clear()

    def __enter__(self) -> Repository:
        return self.open()

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailableError(f"Repository for {self.db_path} is not open")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[Repository]:
        """Run every write inside the block as one atomic SQLite transaction.

        Nested blocks join the outermost one. On any error the whole
        transaction is rolled back and TransactionFailure is raised.
        Observers hear about the changes only after the commit.
        """
        conn = self.connection
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        self._pending = set()
        try:
            if not conn.in_transaction:
                conn.execute("BEGIN")
            yield self
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._pending = set()
            logger.warning(f"Transaction rolled back: {exc}")
            if isinstance(exc, TransactionFailure):
                raise
            raise TransactionFailure(f"Transaction rolled back: {exc}") from exc
        except BaseException:
            conn.rollback()
            self._pending = set()
            raise
        finally:
            self._depth = 0

        changed, self._pending = self._pending, set()
        self._notify(changed)

    def subscribe(
        self,
        query: Callable[[Repository], Any],
        callback: Callable[[Any], None],
        tables: Iterable[str] = DATA_TABLES,
    ) -> Subscription:
        """Run ``query`` now and again after every commit touching ``tables``."""
        watched = frozenset(tables)
        unknown = watched - set(DATA_TABLES) - {"meta"}
        if unknown:
            raise ValueError(f"Unknown tables: {', '.join(sorted(unknown))}")
        subscription = Subscription(self, query, callback, watched)
        self._subscriptions.append(subscription)
        subscription.deliver()
        return subscription

    def get_meta(self, key: str, default: str | None = None) -> str | None:
        row = self.connection.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else default

    def set_meta(self, key: str, value: str) -> None:
        self._write("meta", "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))

    def clear_all(self) -> None:
        """Empty every data table in one transaction."""
        with self.transaction():
            self.captures.clear()
            self.sessions.clear()
            self.competencies.clear()
            self.logs.clear()

    def get_stats(self) -> dict:
        """Get summary statistics about the stored data."""
        conn = self.connection
        total_sessions = conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
        completed = conn.execute(
            "SELECT COUNT(*) FROM sessions WHERE status = 'completed'"
        ).fetchone()[0]
        minutes = conn.execute(
            "SELECT COALESCE(SUM(duration_minutes), 0) FROM sessions"
        ).fetchone()[0]
        captures = conn.execute("SELECT COUNT(*) FROM captures").fetchone()[0]
        photos = conn.execute("SELECT COUNT(*) FROM captures WHERE type = 'photo'").fetchone()[0]
        competencies = conn.execute("SELECT COUNT(*) FROM competencies").fetchone()[0]
        active_competencies = conn.execute(
            "SELECT COUNT(*) FROM competencies WHERE COALESCE(active, 1) = 1"
        ).fetchone()[0]
        logs = conn.execute("SELECT COUNT(*) FROM logs").fetchone()[0]

        return {
            "total_sessions": total_sessions,
            "completed_sessions": completed,
            "total_minutes": minutes,
            "total_captures": captures,
            "photo_captures": photos,
            "competencies": competencies,
            "active_competencies": active_competencies,
            "legacy_logs": logs,
        }

    def _write(
        self,
        table: str,
        sql: str,
        params: Iterable[Any],
        record: Any = None,
        tables: Iterable[str] | None = None,
    ) -> sqlite3.Cursor:
        conn = self.connection
        try:
            cursor = conn.execute(sql, list(params))
        except sqlite3.IntegrityError as exc:
            self._abort()
            raise _translate_integrity_error(table, exc, record) from exc
        except sqlite3.Error as exc:
            self._abort()
            raise StorageUnavailableError(f"Write to {table} failed: {exc}") from exc

        changed = set(tables or (table,))
        if self._depth:
            self._pending.update(changed)
            return cursor
        try:
            conn.commit()
        except sqlite3.Error as exc:
            self._abort()
            raise StorageUnavailableError(f"Commit to {table} failed: {exc}") from exc
        self._notify(changed)
        return cursor

    def _abort(self) -> None:
        # Inside transaction() the outermost block owns the rollback.
        if not self._depth and self._conn is not None:
            self._conn.rollback()

    def _notify(self, changed: set[str]) -> None:
        if not changed:
            return
        for subscription in list(self._subscriptions):
            if not subscription.active or not (subscription.tables & changed):
                continue
            try:
                subscription.deliver()
            except Exception:
                logger.exception(f"Observer on {sorted(subscription.tables)} failed")

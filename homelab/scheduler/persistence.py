"""
SQLite persistence for the automation engine.

One Database object per SQLite file owns the schema and a write lock.
Every store built on it writes synchronously inside a committed
transaction before returning, so callers get read-after-write
consistency. Writes are serialized per file; reads open their own
connection and do not take the lock (WAL mode).

Stores:
- TriggerStore: job definitions
- ExecutionLedger: append-only execution outcomes
- DedupLedger: bounded set of processed external item ids
- MetricsStore / NotificationStore: auxiliary tables used by handlers
- UploadLogStore: audit trail of email attachments filed on Drive
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .cron import validate_expression
from .entities import (
    ExecutionRecord,
    ExecutionStatus,
    JobType,
    Trigger,
    TriggerDraft,
    now_iso,
)
from .errors import (
    InvalidTriggerError,
    PersistenceError,
    TriggerNotFoundError,
    UnknownJobTypeError,
)


logger = logging.getLogger(__name__)

# Tables that may be exported by the backup handler
EXPORTABLE_TABLES = (
    "triggers",
    "executions",
    "dedup_entries",
    "notifications",
    "drive_uploads",
    "system_metrics",
)


class Database:
    """
    SQLite file handle shared by all stores on that file.

    Use ":memory:" only for schema checks; each operation opens its own
    connection, so an in-memory database does not keep rows.
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize the database and create the schema.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.RLock()
        self._init_db()
        logger.debug(f"[Persistence] Database ready at {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Read-only connection context."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized write transaction, committed before the context exits."""
        with self._write_lock:
            try:
                conn = self._get_connection()
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(str(e)) from e
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS triggers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    schedule TEXT NOT NULL,
                    job_type TEXT NOT NULL,
                    config TEXT NOT NULL DEFAULT '{}',
                    enabled INTEGER NOT NULL DEFAULT 1,
                    last_run TEXT,
                    next_run TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            # No foreign key: records outlive their trigger for audit
            conn.execute("""
                CREATE TABLE IF NOT EXISTS executions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    trigger_id INTEGER NOT NULL,
                    status TEXT NOT NULL CHECK(status IN ('success', 'error', 'running')),
                    message TEXT NOT NULL DEFAULT '',
                    duration_ms INTEGER NOT NULL DEFAULT 0,
                    executed_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_executions_trigger
                ON executions (trigger_id, executed_at)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS dedup_entries (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    namespace TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    inserted_at TEXT NOT NULL,
                    UNIQUE (namespace, item_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    cpu_load REAL,
                    mem_used_percent REAL,
                    temperature REAL,
                    recorded_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS drive_uploads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filename TEXT NOT NULL,
                    drive_id TEXT,
                    folder TEXT NOT NULL,
                    category TEXT NOT NULL,
                    uploaded_at TEXT NOT NULL
                )
            """)

    def fetch_table(self, table: str, limit: Optional[int] = None) -> list[dict]:
        """
        Export rows of a table, newest first.

        Args:
            table: One of EXPORTABLE_TABLES
            limit: Maximum rows (None = all)
        """
        if table not in EXPORTABLE_TABLES:
            raise ValueError(f"Table not exportable: {table}")

        order_column = "seq" if table == "dedup_entries" else "id"
        query = f"SELECT * FROM {table} ORDER BY {order_column} DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]


# =========================================================================
# TriggerStore
# =========================================================================


def _row_to_trigger(row: sqlite3.Row) -> Trigger:
    return Trigger(
        id=row["id"],
        name=row["name"],
        schedule=row["schedule"],
        job_type=JobType(row["job_type"]),
        config=json.loads(row["config"] or "{}"),
        enabled=bool(row["enabled"]),
        last_run=row["last_run"],
        next_run=row["next_run"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def validate_job_type(job_type) -> JobType:
    """Coerce a job type into the enumeration or raise UnknownJobTypeError."""
    try:
        return JobType(job_type)
    except ValueError:
        raise UnknownJobTypeError(str(job_type), JobType.values()) from None


class TriggerStore:
    """Durable table of trigger definitions."""

    def __init__(self, database: Database):
        self.database = database

    def create(self, draft: TriggerDraft) -> Trigger:
        """
        Persist a new trigger.

        Raises:
            InvalidScheduleError: If the schedule is malformed
            UnknownJobTypeError: If the type is not supported
            InvalidTriggerError: If the name is empty or config is not a map
        """
        if not draft.name or not draft.name.strip():
            raise InvalidTriggerError("Trigger name must not be empty")
        validate_expression(draft.schedule)
        job_type = validate_job_type(draft.job_type)
        if not isinstance(draft.config, dict):
            raise InvalidTriggerError("Trigger config must be a key/value map")

        now = now_iso()
        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO triggers
                (name, schedule, job_type, config, enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    draft.name.strip(),
                    draft.schedule.strip(),
                    job_type.value,
                    json.dumps(draft.config),
                    1 if draft.enabled else 0,
                    now,
                    now,
                ),
            )
            trigger_id = cursor.lastrowid

        return self.get(trigger_id)

    def get(self, trigger_id: int) -> Trigger:
        """
        Get a trigger by id.

        Raises:
            TriggerNotFoundError: If absent
        """
        trigger = self.find(trigger_id)
        if trigger is None:
            raise TriggerNotFoundError(trigger_id)
        return trigger

    def find(self, trigger_id: int) -> Optional[Trigger]:
        """Get a trigger by id, or None."""
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM triggers WHERE id = ?",
                (trigger_id,),
            ).fetchone()

        if row is None:
            return None
        return _row_to_trigger(row)

    def update(
        self,
        trigger_id: int,
        name: Optional[str] = None,
        schedule: Optional[str] = None,
        config: Optional[dict] = None,
        enabled: Optional[bool] = None,
    ) -> Trigger:
        """
        Partial update: only the supplied (non-None) fields change.

        Disabling a trigger clears its next_run.

        Raises:
            TriggerNotFoundError: If absent
            InvalidScheduleError / InvalidTriggerError: On invalid values
        """
        self.get(trigger_id)

        updates = []
        values: list = []

        if name is not None:
            if not name.strip():
                raise InvalidTriggerError("Trigger name must not be empty")
            updates.append("name = ?")
            values.append(name.strip())
        if schedule is not None:
            validate_expression(schedule)
            updates.append("schedule = ?")
            values.append(schedule.strip())
        if config is not None:
            if not isinstance(config, dict):
                raise InvalidTriggerError("Trigger config must be a key/value map")
            updates.append("config = ?")
            values.append(json.dumps(config))
        if enabled is not None:
            updates.append("enabled = ?")
            values.append(1 if enabled else 0)
            if not enabled:
                updates.append("next_run = NULL")

        if updates:
            updates.append("updated_at = ?")
            values.append(now_iso())
            values.append(trigger_id)

            with self.database.transaction() as conn:
                conn.execute(
                    f"UPDATE triggers SET {', '.join(updates)} WHERE id = ?",
                    values,
                )

        return self.get(trigger_id)

    def delete(self, trigger_id: int) -> bool:
        """
        Delete a trigger. Deleting an absent id is not an error.

        Returns:
            True if a row was removed
        """
        with self.database.transaction() as conn:
            cursor = conn.execute("DELETE FROM triggers WHERE id = ?", (trigger_id,))
            return cursor.rowcount > 0

    def list(self) -> list[Trigger]:
        """List all triggers, newest-created first."""
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM triggers ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [_row_to_trigger(row) for row in rows]

    def list_enabled(self) -> List[Trigger]:
        """List enabled triggers, newest-created first."""
        return [trigger for trigger in self.list() if trigger.enabled]

    def count(self) -> int:
        with self.database.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM triggers").fetchone()[0]

    def set_next_run(self, trigger_id: int, next_run: Optional[str]) -> None:
        """Record when the live timer fires next. No-op for deleted rows."""
        with self.database.transaction() as conn:
            conn.execute(
                "UPDATE triggers SET next_run = ? WHERE id = ?",
                (next_run, trigger_id),
            )


# =========================================================================
# ExecutionLedger
# =========================================================================


def _row_to_record(row: sqlite3.Row) -> ExecutionRecord:
    return ExecutionRecord(
        id=row["id"],
        trigger_id=row["trigger_id"],
        status=ExecutionStatus(row["status"]),
        message=row["message"],
        duration_ms=row["duration_ms"],
        executed_at=row["executed_at"],
    )


class ExecutionLedger:
    """Append-only log of execution outcomes."""

    def __init__(self, database: Database):
        self.database = database

    def record(self, record: ExecutionRecord) -> ExecutionRecord:
        """
        Append an execution record and stamp the owning trigger's last_run.

        Both writes share one transaction. The trigger may already be
        deleted; the record is kept regardless.

        Returns:
            The stored record with its id assigned
        """
        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO executions
                (trigger_id, status, message, duration_ms, executed_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.trigger_id,
                    record.status.value,
                    record.message,
                    record.duration_ms,
                    record.executed_at,
                ),
            )
            record_id = cursor.lastrowid
            conn.execute(
                "UPDATE triggers SET last_run = ? WHERE id = ?",
                (record.executed_at, record.trigger_id),
            )

        return ExecutionRecord(
            id=record_id,
            trigger_id=record.trigger_id,
            status=record.status,
            message=record.message,
            duration_ms=record.duration_ms,
            executed_at=record.executed_at,
        )

    def list(self, trigger_id: Optional[int] = None, limit: int = 50) -> list[ExecutionRecord]:
        """List records newest first, optionally for one trigger."""
        with self.database.connection() as conn:
            if trigger_id is None:
                rows = conn.execute(
                    "SELECT * FROM executions ORDER BY executed_at DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM executions WHERE trigger_id = ?
                    ORDER BY executed_at DESC, id DESC LIMIT ?
                    """,
                    (trigger_id, limit),
                ).fetchall()
        return [_row_to_record(row) for row in rows]

    def count(self, trigger_id: Optional[int] = None) -> int:
        with self.database.connection() as conn:
            if trigger_id is None:
                return conn.execute("SELECT COUNT(*) FROM executions").fetchone()[0]
            return conn.execute(
                "SELECT COUNT(*) FROM executions WHERE trigger_id = ?",
                (trigger_id,),
            ).fetchone()[0]


# =========================================================================
# DedupLedger
# =========================================================================


class DedupLedger:
    """
    Bounded, insertion-ordered set of processed external item ids.

    Handlers must check `contains()` before any side effect tied to an id
    and call `add()` only after those side effects committed. Once the
    namespace holds more than `capacity` ids the oldest are evicted.
    """

    def __init__(self, database: Database, namespace: str = "default", capacity: int = 500):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.database = database
        self.namespace = namespace
        self.capacity = capacity

    def contains(self, item_id: str) -> bool:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM dedup_entries WHERE namespace = ? AND item_id = ?",
                (self.namespace, item_id),
            ).fetchone()
        return row is not None

    def __contains__(self, item_id: str) -> bool:
        return self.contains(item_id)

    def add(self, item_id: str) -> bool:
        """
        Insert an id and evict beyond capacity in one transaction.

        Returns:
            True if the id was new
        """
        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO dedup_entries (namespace, item_id, inserted_at)
                VALUES (?, ?, ?)
                """,
                (self.namespace, item_id, now_iso()),
            )
            inserted = cursor.rowcount > 0
            conn.execute(
                """
                DELETE FROM dedup_entries
                WHERE namespace = ? AND seq NOT IN (
                    SELECT seq FROM dedup_entries WHERE namespace = ?
                    ORDER BY seq DESC LIMIT ?
                )
                """,
                (self.namespace, self.namespace, self.capacity),
            )
        return inserted

    def entries(self) -> list[str]:
        """Ids in insertion order, oldest first."""
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT item_id FROM dedup_entries WHERE namespace = ? ORDER BY seq ASC",
                (self.namespace,),
            ).fetchall()
        return [row["item_id"] for row in rows]

    def __len__(self) -> int:
        with self.database.connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM dedup_entries WHERE namespace = ?",
                (self.namespace,),
            ).fetchone()[0]


# =========================================================================
# Auxiliary stores
# =========================================================================


@dataclass(frozen=True)
class MetricSample:
    cpu_load: float
    mem_used_percent: float
    temperature: Optional[float]
    recorded_at: str


class MetricsStore:
    """System metric rows appended by the health-check handler."""

    def __init__(self, database: Database):
        self.database = database

    def append(
        self,
        cpu_load: float,
        mem_used_percent: float,
        temperature: Optional[float] = None,
        recorded_at: Optional[str] = None,
    ) -> None:
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO system_metrics (cpu_load, mem_used_percent, temperature, recorded_at)
                VALUES (?, ?, ?, ?)
                """,
                (cpu_load, mem_used_percent, temperature, recorded_at or now_iso()),
            )

    def since(self, hours: float = 24) -> list[MetricSample]:
        """Samples recorded within the last `hours`, oldest first."""
        cutoff = (datetime.now(timezone.utc) - timedelta(hours=hours)).strftime(
            "%Y-%m-%dT%H:%M:%S.%fZ"
        )
        with self.database.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM system_metrics WHERE recorded_at > ?
                ORDER BY recorded_at ASC
                """,
                (cutoff,),
            ).fetchall()
        return [
            MetricSample(
                cpu_load=row["cpu_load"],
                mem_used_percent=row["mem_used_percent"],
                temperature=row["temperature"],
                recorded_at=row["recorded_at"],
            )
            for row in rows
        ]


class NotificationStore:
    """User-facing notifications (reports, email summaries)."""

    def __init__(self, database: Database):
        self.database = database

    def add(self, notification_type: str, title: str, message: str) -> int:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO notifications (type, title, message, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (notification_type, title, message, now_iso()),
            )
            return cursor.lastrowid

    def list(self, limit: int = 50) -> list[dict]:
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM notifications ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [
            {
                "id": row["id"],
                "type": row["type"],
                "title": row["title"],
                "message": row["message"],
                "read": bool(row["read"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]


class UploadLogStore:
    """
    Audit trail of email attachments filed on Drive.

    One row per successful upload; failed uploads are only logged.
    """

    def __init__(self, database: Database):
        self.database = database

    def record(self, filename: str, drive_id: Optional[str], folder: str, category: str) -> int:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO drive_uploads (filename, drive_id, folder, category, uploaded_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (filename, drive_id, folder, category, now_iso()),
            )
            return cursor.lastrowid

    def recent(self, limit: int = 30) -> List[dict]:
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM drive_uploads ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]

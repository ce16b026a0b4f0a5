import json
import logging
import sqlite3
from datetime import UTC, datetime
from types import TracebackType
from typing import Any, Protocol

from ats_job_aggregator.models import Classification, PersistedJob

logger = logging.getLogger(__name__)

# Columns a caller may write through upsert_by_fingerprint.
POSTING_COLUMNS = (
    "title",
    "company",
    "location",
    "job_type",
    "experience_level",
    "degree_required",
    "description",
    "apply_url",
    "source",
    "source_id",
    "posted_date",
)
AI_COLUMNS = (
    "salary_min",
    "salary_max",
    "salary_currency",
    "skills",
    "category",
    "ai_classified",
)


class JobStore(Protocol):
    """The persistence operations the ingestion and verification code relies on."""

    def find_by_fingerprint(self, content_hash: str) -> PersistedJob | None: ...

    def upsert_by_fingerprint(
        self, content_hash: str, fields: dict[str, Any], now: datetime | None = None
    ) -> tuple[PersistedJob, bool]: ...

    def find_by_id(self, job_id: int) -> PersistedJob | None: ...

    def update_verification(
        self,
        job_id: int,
        *,
        last_verified: datetime,
        verification_attempts: int,
        last_verification_error: str | None,
        is_active: bool,
    ) -> None: ...

    def list_active_jobs_not_verified_since(self, timestamp: datetime) -> list[int]: ...

    def mark_stale_inactive(self, cutoff: datetime, max_attempts: int) -> int: ...

    def list_unclassified(self, limit: int | None = None) -> list[PersistedJob]: ...

    def update_ai_fields(self, job_id: int, classification: Classification) -> None: ...


def _to_db_time(value: datetime) -> str:
    """Serialize as a fixed-width UTC ISO string so text comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _to_db_value(column: str, value: Any) -> Any:
    if isinstance(value, datetime):
        return _to_db_time(value)
    if column == "skills":
        return json.dumps(list(value or []))
    if column == "ai_classified":
        return int(bool(value))
    if value is not None and column == "apply_url":
        return str(value)
    return value


class Database:
    """
    SQLite store for job postings, keyed by content fingerprint.
    Uses a single persistent connection for both file-based and in-memory databases.
    Supports context manager protocol for proper resource cleanup.
    """

    def __init__(self, db_path: str = "jobs.db") -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self.init_db()

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the persistent database connection."""
        if self._conn is None:
            raise RuntimeError("Database connection is closed")
        return self._conn

    def init_db(self) -> None:
        """Create the jobs table if it doesn't exist."""
        cursor = self.connection.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content_hash TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL,
                company TEXT NOT NULL,
                location TEXT,
                job_type TEXT NOT NULL,
                experience_level TEXT NOT NULL,
                degree_required TEXT NOT NULL,
                description TEXT,
                apply_url TEXT NOT NULL,
                source TEXT NOT NULL,
                source_id TEXT,
                posted_date TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                last_verified TEXT NOT NULL,
                verification_attempts INTEGER NOT NULL DEFAULT 0,
                last_verification_error TEXT,
                ai_classified INTEGER NOT NULL DEFAULT 0,
                salary_min REAL,
                salary_max REAL,
                salary_currency TEXT,
                skills TEXT NOT NULL DEFAULT '[]',
                category TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_jobs_active_verified ON jobs (is_active, last_verified)"
        )
        self.connection.commit()
        logger.info(f"Database initialized at {self.db_path}")

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> PersistedJob:
        data = dict(row)
        data["skills"] = json.loads(data.get("skills") or "[]")
        data["is_active"] = bool(data["is_active"])
        data["ai_classified"] = bool(data["ai_classified"])
        return PersistedJob.model_validate(data)

    def find_by_fingerprint(self, content_hash: str) -> PersistedJob | None:
        row = self.connection.execute(
            "SELECT * FROM jobs WHERE content_hash = ?", (content_hash,)
        ).fetchone()
        return self._row_to_job(row) if row else None

    def find_by_id(self, job_id: int) -> PersistedJob | None:
        row = self.connection.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def upsert_by_fingerprint(
        self, content_hash: str, fields: dict[str, Any], now: datetime | None = None
    ) -> tuple[PersistedJob, bool]:
        """
        Insert or refresh the job identified by content_hash.

        Either way the job comes back active with its verification state
        reset. Returns the stored job and whether it was created. The
        lookup and the write share one IMMEDIATE transaction, so the
        created flag is authoritative.
        """
        current = now or datetime.now(tz=UTC)
        unknown = set(fields) - set(POSTING_COLUMNS) - set(AI_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        values = {column: _to_db_value(column, value) for column, value in fields.items()}
        values.update(
            {
                "is_active": 1,
                "verification_attempts": 0,
                "last_verification_error": None,
                "last_verified": _to_db_time(current),
                "updated_at": _to_db_time(current),
            }
        )

        with self.connection:
            self.connection.execute("BEGIN IMMEDIATE")
            row = self.connection.execute(
                "SELECT id FROM jobs WHERE content_hash = ?", (content_hash,)
            ).fetchone()

            if row is None:
                values["content_hash"] = content_hash
                values["created_at"] = _to_db_time(current)
                columns = ", ".join(values)
                placeholders = ", ".join(f":{column}" for column in values)
                cursor = self.connection.execute(
                    f"INSERT INTO jobs ({columns}) VALUES ({placeholders})", values
                )
                job_id = cursor.lastrowid
                created = True
            else:
                job_id = row["id"]
                assignments = ", ".join(f"{column} = :{column}" for column in values)
                self.connection.execute(
                    f"UPDATE jobs SET {assignments} WHERE id = :id", {**values, "id": job_id}
                )
                created = False

        job = self.find_by_id(job_id)
        if job is None:
            raise RuntimeError(f"Job {job_id} vanished after upsert")
        return job, created

    def update_verification(
        self,
        job_id: int,
        *,
        last_verified: datetime,
        verification_attempts: int,
        last_verification_error: str | None,
        is_active: bool,
    ) -> None:
        with self.connection:
            self.connection.execute(
                """
                UPDATE jobs
                SET last_verified = ?, verification_attempts = ?,
                    last_verification_error = ?, is_active = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    _to_db_time(last_verified),
                    verification_attempts,
                    last_verification_error,
                    int(is_active),
                    _to_db_time(datetime.now(tz=UTC)),
                    job_id,
                ),
            )

    def list_active_jobs_not_verified_since(self, timestamp: datetime) -> list[int]:
        rows = self.connection.execute(
            "SELECT id FROM jobs WHERE is_active = 1 AND last_verified < ? ORDER BY id",
            (_to_db_time(timestamp),),
        ).fetchall()
        return [row["id"] for row in rows]

    def mark_stale_inactive(self, cutoff: datetime, max_attempts: int) -> int:
        """
        Deactivate active jobs not verified since cutoff, or that have
        reached max_attempts failed verifications. Returns the row count.
        """
        with self.connection:
            cursor = self.connection.execute(
                """
                UPDATE jobs SET is_active = 0, updated_at = ?
                WHERE is_active = 1 AND (last_verified < ? OR verification_attempts >= ?)
                """,
                (_to_db_time(datetime.now(tz=UTC)), _to_db_time(cutoff), max_attempts),
            )
        return cursor.rowcount

    def list_unclassified(self, limit: int | None = None) -> list[PersistedJob]:
        query = "SELECT * FROM jobs WHERE is_active = 1 AND ai_classified = 0 ORDER BY id"
        params: tuple[int, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return [self._row_to_job(row) for row in self.connection.execute(query, params)]

    def update_ai_fields(self, job_id: int, classification: Classification) -> None:
        fields = classification.model_dump()
        fields["ai_classified"] = True
        values = {column: _to_db_value(column, value) for column, value in fields.items()}
        values["updated_at"] = _to_db_time(datetime.now(tz=UTC))
        assignments = ", ".join(f"{column} = :{column}" for column in values)
        with self.connection:
            self.connection.execute(
                f"UPDATE jobs SET {assignments} WHERE id = :id", {**values, "id": job_id}
            )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

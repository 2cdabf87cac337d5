"""SQLite database management for the nutrition plan store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per user; demographics are an encrypted JSON blob
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id        TEXT PRIMARY KEY,
    profile_enc    TEXT NOT NULL,
    activity_level TEXT NOT NULL,
    primary_goal   TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);

-- Immutable BMI/BMR/TDEE snapshots produced by the metrics job
CREATE TABLE IF NOT EXISTS profile_metrics (
    id                 TEXT PRIMARY KEY,
    user_id            TEXT NOT NULL,
    bmi                REAL NOT NULL,
    bmr                INTEGER NOT NULL,
    tdee               INTEGER NOT NULL,
    version            INTEGER NOT NULL,
    computed_at        TEXT NOT NULL,   -- canonical UTC ISO 8601, microseconds
    inputs_fingerprint TEXT NOT NULL DEFAULT ''
);

-- At most one row per (user, version, computed_at)
CREATE TABLE IF NOT EXISTS metrics_acknowledgements (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    version             INTEGER NOT NULL,
    metrics_computed_at TEXT NOT NULL,
    acknowledged_at     TEXT NOT NULL,
    UNIQUE (user_id, version, metrics_computed_at)
);

-- Generated plans (audit history + recent-plan reuse)
CREATE TABLE IF NOT EXISTS plans (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    calorie_target  INTEGER NOT NULL,
    protein_target  INTEGER NOT NULL,
    water_target    INTEGER NOT NULL,
    estimated_weeks INTEGER,
    bmr             INTEGER NOT NULL,
    tdee            INTEGER NOT NULL,
    weekly_rate     REAL NOT NULL,
    start_date      TEXT NOT NULL,
    end_date        TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_metrics_user_computed ON profile_metrics(user_id, computed_at);
CREATE INDEX IF NOT EXISTS idx_ack_user              ON metrics_acknowledgements(user_id);
CREATE INDEX IF NOT EXISTS idx_plans_user_created    ON plans(user_id, created_at);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (gate outcomes, tool invocations, PHI-free)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    user_id         TEXT,
    tool_name       TEXT,
    tool_input_hash TEXT,
    outcome         TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_user      ON audit_log(user_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class PlanDatabase:
    """SQLite database manager for the nutrition plan store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = PlanDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return  # Already initialized

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Plan database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: Core tables (always applied; CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        # V2: Audit log table
        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Plan database closed")

    def __enter__(self) -> PlanDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()

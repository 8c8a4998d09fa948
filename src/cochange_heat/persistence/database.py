"""SQLite database holding watermarks and the derived analytics datasets."""

import sqlite3
from pathlib import Path
from typing import Optional

from ..logging_config import get_logger

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 1

IN_MEMORY = ":memory:"


class AnalyticsDB:
    """Manages the analytics SQLite database.

    Usage::

        with AnalyticsDB(".cochange/analytics.db") as db:
            store = AnalyticsStore(db.conn)
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Return the active connection. Raises if not connected."""
        if self._conn is None:
            raise RuntimeError("AnalyticsDB is not connected. Use as context manager or call connect().")
        return self._conn

    # ── lifecycle ─────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        """Create the parent directory; a ``.cochange`` dir also gets a .gitignore."""
        parent = Path(self.db_path).parent
        parent.mkdir(parents=True, exist_ok=True)
        if parent.name == ".cochange":
            gitignore = parent / ".gitignore"
            if not gitignore.exists():
                gitignore.write_text("*\n")

    def connect(self) -> sqlite3.Connection:
        """Open (or create) the database and run migrations."""
        if self.db_path != IN_MEMORY:
            self._ensure_dir()
        conn = sqlite3.connect(self.db_path)
        if self.db_path != IN_MEMORY:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        self._conn = conn
        self._migrate()
        logger.debug("Analytics DB connected at %s", self.db_path)
        return conn

    def close(self) -> None:
        """Close the connection if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "AnalyticsDB":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── migration ─────────────────────────────────────────────────

    def _migrate(self) -> None:
        """Idempotently create all tables."""
        c = self.conn

        c.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER NOT NULL
            )
            """
        )
        row = c.execute("SELECT version FROM schema_version").fetchone()
        if row is None:
            c.execute("INSERT INTO schema_version (version) VALUES (?)", (_SCHEMA_VERSION,))

        # ── projects ─────────────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS projects (
                project_id  TEXT PRIMARY KEY,
                repo_path   TEXT NOT NULL,
                registered_at TEXT NOT NULL
            )
            """
        )

        # ── watermarks ───────────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS watermarks (
                project_id   TEXT    NOT NULL,
                dataset_kind TEXT    NOT NULL,
                last_run_at  TEXT    NOT NULL,
                window_days  INTEGER NOT NULL,
                version      INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (project_id, dataset_kind)
            )
            """
        )

        # ── co_change_groups ─────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS co_change_groups (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id   TEXT    NOT NULL,
                scope        TEXT    NOT NULL,
                group_key    TEXT    NOT NULL,
                members      TEXT    NOT NULL DEFAULT '[]',
                frequency    INTEGER NOT NULL DEFAULT 0,
                last_seen_at TEXT,
                UNIQUE (project_id, scope, group_key)
            )
            """
        )

        # ── co_change_group_commits (provenance) ─────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS co_change_group_commits (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id   TEXT NOT NULL,
                scope        TEXT NOT NULL,
                group_key    TEXT NOT NULL,
                commit_hash  TEXT NOT NULL,
                committed_at TEXT NOT NULL,
                UNIQUE (project_id, scope, group_key, commit_hash)
            )
            """
        )

        # ── co_change_group_member_stats ─────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS co_change_group_member_stats (
                id                   INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id           TEXT NOT NULL,
                scope                TEXT NOT NULL,
                group_key            TEXT NOT NULL,
                member_path          TEXT NOT NULL,
                size_bytes           INTEGER,
                loc                  INTEGER,
                measured_commit_hash TEXT NOT NULL,
                measured_at          TEXT NOT NULL,
                UNIQUE (project_id, scope, group_key, member_path)
            )
            """
        )

        # ── file_heatmaps ────────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS file_heatmaps (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id      TEXT    NOT NULL,
                relative_path   TEXT    NOT NULL,
                change_count    INTEGER NOT NULL DEFAULT 0,
                heat_score      REAL    NOT NULL DEFAULT 0.0,
                last_changed_at TEXT    NOT NULL,
                size_bytes      INTEGER,
                loc             INTEGER,
                UNIQUE (project_id, relative_path)
            )
            """
        )

        # ── indexes ──────────────────────────────────────────────
        c.execute(
            "CREATE INDEX IF NOT EXISTS idx_group_commits_key "
            "ON co_change_group_commits(project_id, scope, group_key)"
        )
        c.execute(
            "CREATE INDEX IF NOT EXISTS idx_member_stats_key "
            "ON co_change_group_member_stats(project_id, scope, group_key)"
        )
        c.execute(
            "CREATE INDEX IF NOT EXISTS idx_file_heatmaps_score "
            "ON file_heatmaps(project_id, heat_score)"
        )

        c.commit()

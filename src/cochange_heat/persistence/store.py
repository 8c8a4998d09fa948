"""Natural-key reads and writes over the analytics database.

SQLite is used as a plain record store: every upsert is an explicit
read-then-insert-or-update keyed by the row's natural key, retried when a
concurrent writer wins the race on the unique constraint. Provenance rows
go in fixed-size batches, each committed on its own.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Iterable, Optional

from ..exceptions import ErrorCode, PersistenceError
from ..logging_config import get_logger
from ..temporal.window import utc
from .models import (
    CoChangeGroup,
    CoChangeGroupCommit,
    CoChangeGroupMemberStat,
    FileHeatmap,
    Watermark,
)

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 200

_UPSERT_ATTEMPTS = 3


def to_db_time(ts: datetime) -> str:
    return utc(ts).isoformat()


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return utc(datetime.fromisoformat(value))


def _batched(rows: list, size: int) -> Iterable[list]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class AnalyticsStore:
    """Record-level access to projects, watermarks, groups and heatmaps."""

    def __init__(self, conn: sqlite3.Connection, batch_size: int = DEFAULT_BATCH_SIZE):
        self.conn = conn
        self.batch_size = batch_size

    # ── projects ─────────────────────────────────────────────────

    def register_project(self, project_id: str, repo_path: str, registered_at: datetime) -> None:
        self._upsert(
            "SELECT 1 FROM projects WHERE project_id = ?",
            (project_id,),
            "INSERT INTO projects (project_id, repo_path, registered_at) VALUES (?, ?, ?)",
            (project_id, repo_path, to_db_time(registered_at)),
            "UPDATE projects SET repo_path = ? WHERE project_id = ?",
            (repo_path, project_id),
        )

    def get_repo_path(self, project_id: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT repo_path FROM projects WHERE project_id = ?", (project_id,)
        ).fetchone()
        return row["repo_path"] if row else None

    def list_projects(self) -> list[dict]:
        rows = self.conn.execute(
            "SELECT project_id, repo_path, registered_at FROM projects ORDER BY project_id"
        ).fetchall()
        return [dict(r) for r in rows]

    # ── watermarks ───────────────────────────────────────────────

    def get_watermark(self, project_id: str, dataset_kind: str) -> Optional[Watermark]:
        row = self.conn.execute(
            """
            SELECT project_id, dataset_kind, last_run_at, window_days, version
            FROM watermarks WHERE project_id = ? AND dataset_kind = ?
            """,
            (project_id, dataset_kind),
        ).fetchone()
        if row is None:
            return None
        return Watermark(
            project_id=row["project_id"],
            dataset_kind=row["dataset_kind"],
            last_run_at=from_db_time(row["last_run_at"]),
            window_days=row["window_days"],
            version=row["version"],
        )

    def put_watermark(self, watermark: Watermark) -> None:
        """Replace the watermark row for the record's project and kind."""
        self.conn.execute(
            """
            INSERT OR REPLACE INTO watermarks
                (project_id, dataset_kind, last_run_at, window_days, version)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                watermark.project_id,
                watermark.dataset_kind,
                to_db_time(watermark.last_run_at),
                watermark.window_days,
                watermark.version,
            ),
        )
        self.conn.commit()

    def delete_watermark(self, project_id: str, dataset_kind: str) -> None:
        self.conn.execute(
            "DELETE FROM watermarks WHERE project_id = ? AND dataset_kind = ?",
            (project_id, dataset_kind),
        )
        self.conn.commit()

    def list_watermarks(self, project_id: Optional[str] = None) -> list[Watermark]:
        sql = "SELECT project_id, dataset_kind FROM watermarks"
        params: tuple = ()
        if project_id is not None:
            sql += " WHERE project_id = ?"
            params = (project_id,)
        rows = self.conn.execute(sql + " ORDER BY project_id, dataset_kind", params).fetchall()
        marks = [self.get_watermark(r["project_id"], r["dataset_kind"]) for r in rows]
        return [m for m in marks if m is not None]

    # ── co-change groups ─────────────────────────────────────────

    def get_group(self, project_id: str, scope: str, group_key: str) -> Optional[CoChangeGroup]:
        row = self.conn.execute(
            """
            SELECT * FROM co_change_groups
            WHERE project_id = ? AND scope = ? AND group_key = ?
            """,
            (project_id, scope, group_key),
        ).fetchone()
        return _group_from_row(row) if row else None

    def list_groups(self, project_id: str, scope: str) -> list[CoChangeGroup]:
        rows = self.conn.execute(
            """
            SELECT * FROM co_change_groups
            WHERE project_id = ? AND scope = ?
            ORDER BY group_key
            """,
            (project_id, scope),
        ).fetchall()
        return [_group_from_row(r) for r in rows]

    def upsert_group(self, group: CoChangeGroup) -> None:
        last_seen = to_db_time(group.last_seen_at) if group.last_seen_at else None
        members = json.dumps(list(group.members))
        self._upsert(
            "SELECT 1 FROM co_change_groups WHERE project_id = ? AND scope = ? AND group_key = ?",
            (group.project_id, group.scope, group.group_key),
            """
            INSERT INTO co_change_groups
                (project_id, scope, group_key, members, frequency, last_seen_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (group.project_id, group.scope, group.group_key, members, group.frequency, last_seen),
            """
            UPDATE co_change_groups SET members = ?, frequency = ?, last_seen_at = ?
            WHERE project_id = ? AND scope = ? AND group_key = ?
            """,
            (members, group.frequency, last_seen, group.project_id, group.scope, group.group_key),
        )

    def delete_group(self, project_id: str, scope: str, group_key: str) -> None:
        """Delete a group together with its member-stat rows."""
        self.conn.execute(
            "DELETE FROM co_change_groups WHERE project_id = ? AND scope = ? AND group_key = ?",
            (project_id, scope, group_key),
        )
        self.conn.execute(
            """
            DELETE FROM co_change_group_member_stats
            WHERE project_id = ? AND scope = ? AND group_key = ?
            """,
            (project_id, scope, group_key),
        )
        self.conn.commit()

    # ── provenance ───────────────────────────────────────────────

    def insert_group_commits(self, rows: list[CoChangeGroupCommit]) -> int:
        """Insert provenance rows in batches; existing rows are left alone.

        Returns the number of rows actually inserted.

        Raises:
            PersistenceError: if a batch cannot be written
        """
        inserted = 0
        for batch in _batched(rows, self.batch_size):
            params = [
                (r.project_id, r.scope, r.group_key, r.commit_hash, to_db_time(r.committed_at))
                for r in batch
            ]
            try:
                before = self.conn.total_changes
                self.conn.executemany(
                    """
                    INSERT OR IGNORE INTO co_change_group_commits
                        (project_id, scope, group_key, commit_hash, committed_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    params,
                )
                self.conn.commit()
                inserted += self.conn.total_changes - before
            except sqlite3.Error as e:
                self.conn.rollback()
                raise PersistenceError(
                    message=f"Failed to write {len(batch)} provenance rows: {e}",
                    code=ErrorCode.CH900,
                    context={"group_key": batch[0].group_key, "batch_size": len(batch)},
                )
            logger.debug("Wrote provenance batch of %d rows", len(batch))
        return inserted

    def delete_group_commits(
        self, project_id: str, scope: str, keys: Iterable[tuple[str, str]]
    ) -> int:
        """Delete provenance rows matched by ``(group_key, commit_hash)``."""
        params = [(project_id, scope, key, commit_hash) for key, commit_hash in keys]
        deleted = 0
        for batch in _batched(params, self.batch_size):
            before = self.conn.total_changes
            self.conn.executemany(
                """
                DELETE FROM co_change_group_commits
                WHERE project_id = ? AND scope = ? AND group_key = ? AND commit_hash = ?
                """,
                batch,
            )
            self.conn.commit()
            deleted += self.conn.total_changes - before
        return deleted

    def group_commit_stats(
        self, project_id: str, scope: str, group_key: str
    ) -> tuple[int, Optional[datetime]]:
        """``(row count, latest committed_at)`` for one group key."""
        rows = self.conn.execute(
            """
            SELECT committed_at FROM co_change_group_commits
            WHERE project_id = ? AND scope = ? AND group_key = ?
            """,
            (project_id, scope, group_key),
        ).fetchall()
        if not rows:
            return 0, None
        return len(rows), max(from_db_time(r["committed_at"]) for r in rows)

    def list_group_commits(
        self, project_id: str, scope: str, group_key: Optional[str] = None
    ) -> list[CoChangeGroupCommit]:
        sql = """
            SELECT project_id, scope, group_key, commit_hash, committed_at
            FROM co_change_group_commits WHERE project_id = ? AND scope = ?
        """
        params: tuple = (project_id, scope)
        if group_key is not None:
            sql += " AND group_key = ?"
            params += (group_key,)
        rows = self.conn.execute(sql + " ORDER BY group_key, committed_at", params).fetchall()
        return [
            CoChangeGroupCommit(
                project_id=r["project_id"],
                scope=r["scope"],
                group_key=r["group_key"],
                commit_hash=r["commit_hash"],
                committed_at=from_db_time(r["committed_at"]),
            )
            for r in rows
        ]

    def group_commit_keys(self, project_id: str, scope: str) -> set[tuple[str, str]]:
        rows = self.conn.execute(
            """
            SELECT group_key, commit_hash FROM co_change_group_commits
            WHERE project_id = ? AND scope = ?
            """,
            (project_id, scope),
        ).fetchall()
        return {(r["group_key"], r["commit_hash"]) for r in rows}

    # ── member stats ─────────────────────────────────────────────

    def upsert_member_stats(self, stats: list[CoChangeGroupMemberStat]) -> None:
        """Write member stats for one or more groups.

        Raises:
            PersistenceError: if any row cannot be written
        """
        try:
            for s in stats:
                measured_at = to_db_time(s.measured_at)
                self._upsert(
                    """
                    SELECT 1 FROM co_change_group_member_stats
                    WHERE project_id = ? AND scope = ? AND group_key = ? AND member_path = ?
                    """,
                    (s.project_id, s.scope, s.group_key, s.member_path),
                    """
                    INSERT INTO co_change_group_member_stats
                        (project_id, scope, group_key, member_path, size_bytes, loc,
                         measured_commit_hash, measured_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        s.project_id, s.scope, s.group_key, s.member_path,
                        s.size_bytes, s.loc, s.measured_commit_hash, measured_at,
                    ),
                    """
                    UPDATE co_change_group_member_stats
                    SET size_bytes = ?, loc = ?, measured_commit_hash = ?, measured_at = ?
                    WHERE project_id = ? AND scope = ? AND group_key = ? AND member_path = ?
                    """,
                    (
                        s.size_bytes, s.loc, s.measured_commit_hash, measured_at,
                        s.project_id, s.scope, s.group_key, s.member_path,
                    ),
                )
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(
                message=f"Failed to write member stats: {e}",
                code=ErrorCode.CH900,
                context={"group_key": stats[0].group_key if stats else ""},
            )

    def delete_member_stats_except(
        self, project_id: str, scope: str, group_key: str, keep: Iterable[str]
    ) -> None:
        keep = set(keep)
        rows = self.conn.execute(
            """
            SELECT member_path FROM co_change_group_member_stats
            WHERE project_id = ? AND scope = ? AND group_key = ?
            """,
            (project_id, scope, group_key),
        ).fetchall()
        stale = [r["member_path"] for r in rows if r["member_path"] not in keep]
        for member_path in stale:
            self.conn.execute(
                """
                DELETE FROM co_change_group_member_stats
                WHERE project_id = ? AND scope = ? AND group_key = ? AND member_path = ?
                """,
                (project_id, scope, group_key, member_path),
            )
        self.conn.commit()

    def list_member_stats(
        self, project_id: str, scope: str, group_key: Optional[str] = None
    ) -> list[CoChangeGroupMemberStat]:
        sql = "SELECT * FROM co_change_group_member_stats WHERE project_id = ? AND scope = ?"
        params: tuple = (project_id, scope)
        if group_key is not None:
            sql += " AND group_key = ?"
            params += (group_key,)
        rows = self.conn.execute(sql + " ORDER BY group_key, member_path", params).fetchall()
        return [
            CoChangeGroupMemberStat(
                project_id=r["project_id"],
                scope=r["scope"],
                group_key=r["group_key"],
                member_path=r["member_path"],
                size_bytes=r["size_bytes"],
                loc=r["loc"],
                measured_commit_hash=r["measured_commit_hash"],
                measured_at=from_db_time(r["measured_at"]),
            )
            for r in rows
        ]

    # ── heatmaps ─────────────────────────────────────────────────

    def get_heatmaps(self, project_id: str, paths: Iterable[str]) -> dict[str, FileHeatmap]:
        wanted = set(paths)
        if not wanted:
            return {}
        return {p: row for p, row in self._heatmap_map(project_id).items() if p in wanted}

    def list_heatmaps(self, project_id: str) -> list[FileHeatmap]:
        return sorted(self._heatmap_map(project_id).values(), key=lambda r: r.relative_path)

    def upsert_heatmap(self, row: FileHeatmap) -> None:
        last_changed = to_db_time(row.last_changed_at)
        self._upsert(
            "SELECT 1 FROM file_heatmaps WHERE project_id = ? AND relative_path = ?",
            (row.project_id, row.relative_path),
            """
            INSERT INTO file_heatmaps
                (project_id, relative_path, change_count, heat_score, last_changed_at,
                 size_bytes, loc)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row.project_id, row.relative_path, row.change_count, row.heat_score,
                last_changed, row.size_bytes, row.loc,
            ),
            """
            UPDATE file_heatmaps
            SET change_count = ?, heat_score = ?, last_changed_at = ?, size_bytes = ?, loc = ?
            WHERE project_id = ? AND relative_path = ?
            """,
            (
                row.change_count, row.heat_score, last_changed, row.size_bytes, row.loc,
                row.project_id, row.relative_path,
            ),
        )

    def update_heat_score(self, project_id: str, relative_path: str, heat_score: float) -> None:
        self.conn.execute(
            "UPDATE file_heatmaps SET heat_score = ? WHERE project_id = ? AND relative_path = ?",
            (heat_score, project_id, relative_path),
        )
        self.conn.commit()

    def delete_heatmap(self, project_id: str, relative_path: str) -> None:
        self.conn.execute(
            "DELETE FROM file_heatmaps WHERE project_id = ? AND relative_path = ?",
            (project_id, relative_path),
        )
        self.conn.commit()

    def _heatmap_map(self, project_id: str) -> dict[str, FileHeatmap]:
        rows = self.conn.execute(
            "SELECT * FROM file_heatmaps WHERE project_id = ?", (project_id,)
        ).fetchall()
        return {
            r["relative_path"]: FileHeatmap(
                project_id=r["project_id"],
                relative_path=r["relative_path"],
                change_count=r["change_count"],
                heat_score=r["heat_score"],
                last_changed_at=from_db_time(r["last_changed_at"]),
                size_bytes=r["size_bytes"],
                loc=r["loc"],
            )
            for r in rows
        }

    # ── helpers ──────────────────────────────────────────────────

    def _upsert(
        self,
        select_sql: str,
        select_params: tuple,
        insert_sql: str,
        insert_params: tuple,
        update_sql: str,
        update_params: tuple,
    ) -> None:
        """Read-then-create-or-update, retrying when the insert loses a race."""
        for attempt in range(1, _UPSERT_ATTEMPTS + 1):
            exists = self.conn.execute(select_sql, select_params).fetchone() is not None
            try:
                if exists:
                    self.conn.execute(update_sql, update_params)
                else:
                    self.conn.execute(insert_sql, insert_params)
                self.conn.commit()
                return
            except sqlite3.IntegrityError:
                self.conn.rollback()
                logger.debug("Upsert conflict on attempt %d, retrying", attempt)

        raise PersistenceError(
            message="Upsert retries exhausted",
            code=ErrorCode.CH901,
            context={"params": str(select_params)},
            recoverable=False,
        )


def _group_from_row(row: sqlite3.Row) -> CoChangeGroup:
    return CoChangeGroup(
        project_id=row["project_id"],
        scope=row["scope"],
        group_key=row["group_key"],
        members=json.loads(row["members"]),
        frequency=row["frequency"],
        last_seen_at=from_db_time(row["last_seen_at"]),
    )

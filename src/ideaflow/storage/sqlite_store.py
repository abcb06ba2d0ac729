"""SQLite storage backend with WAL mode and explicit transactions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ideaflow.errors import StorageFailureError
from ideaflow.storage.base import StorageBackend

logger = logging.getLogger(__name__)

# Store whose transaction the current task is running inside, if any
_active_tx: ContextVar[SQLiteStore | None] = ContextVar("ideaflow_active_tx", default=None)

_IDEA_COLUMNS = (
    "id",
    "title",
    "description",
    "category",
    "status",
    "owner_id",
    "version",
    "created_at",
    "updated_at",
)
_EVALUATION_COLUMNS = (
    "id",
    "idea_id",
    "evaluator_id",
    "decision",
    "kind",
    "resulting_status",
    "comments",
    "file_ref",
    "created_at",
)

_INSERT_EVALUATION = """INSERT INTO evaluations (id, idea_id, evaluator_id, decision, kind,
    resulting_status, comments, file_ref, created_at)
    VALUES (:id, :idea_id, :evaluator_id, :decision, :kind,
    :resulting_status, :comments, :file_ref, :created_at)"""


class SQLiteStore(StorageBackend):
    """SQLite-based idea and evaluation store.

    The connection runs in autocommit mode. ``transaction()`` wraps a block in
    ``BEGIN IMMEDIATE``/``COMMIT`` and holds the connection lock for its
    duration, so other tasks never observe or join a half-finished unit.
    """

    def __init__(self, db_path: Path, *, wal_mode: bool = True) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database, apply schema and triggers."""
        if self._db is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(str(self.db_path), isolation_level=None)
            self._db.row_factory = aiosqlite.Row

            if self.wal_mode:
                await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")

            await self._db.executescript(_load_sql("workspace.sql"))
            await self._db.executescript(_load_sql("triggers.sql"))
        except aiosqlite.Error as e:
            logger.error("Failed to initialize SQLite store at %s: %s", self.db_path, e)
            raise StorageFailureError(f"Cannot open store at {self.db_path}") from e
        logger.info("Initialized SQLite store at %s", self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    @property
    def in_transaction(self) -> bool:
        return _active_tx.get() is self

    # --- Transactions ---

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteStore]:
        if self.in_transaction:
            # Nested use joins the enclosing unit
            yield self
            return

        async with self._lock:
            token = _active_tx.set(self)
            try:
                try:
                    await self.db.execute("BEGIN IMMEDIATE")
                except aiosqlite.Error as e:
                    raise StorageFailureError(f"Cannot begin transaction: {e}") from e
                except BaseException:
                    # Cancelled while waiting: the worker thread still runs BEGIN,
                    # and the ROLLBACK queued here runs after it
                    await self._rollback()
                    raise

                try:
                    yield self
                except BaseException:
                    await self._rollback()
                    raise

                try:
                    await self.db.execute("COMMIT")
                except aiosqlite.Error as e:
                    await self._rollback()
                    raise StorageFailureError(f"Transaction commit failed: {e}") from e
                except BaseException:
                    await self._rollback()
                    raise
            finally:
                _active_tx.reset(token)

    async def _rollback(self) -> None:
        try:
            await self.db.execute("ROLLBACK")
        except aiosqlite.Error as e:
            # SQLite may already have rolled back on its own
            logger.warning("Rollback failed: %s", e)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self.in_transaction:
            yield self.db
        else:
            async with self._lock:
                yield self.db

    async def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        try:
            async with self._connection() as db:
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error("Query failed: %s", e)
            raise StorageFailureError(f"Query failed: {e}") from e
        return [_row_to_dict(row) for row in rows]

    async def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = await self._fetchall(sql, params)
        return rows[0] if rows else None

    async def _scalar(self, sql: str, params: Sequence[Any] = ()) -> int:
        try:
            async with self._connection() as db:
                cursor = await db.execute(sql, params)
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error("Query failed: %s", e)
            raise StorageFailureError(f"Query failed: {e}") from e
        return row[0] if row else 0

    async def _write(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> int:
        try:
            async with self._connection() as db:
                cursor = await db.execute(sql, params)
                return cursor.rowcount
        except aiosqlite.Error as e:
            logger.error("Write failed: %s", e)
            raise StorageFailureError(f"Write failed: {e}") from e

    # --- Idea operations ---

    async def insert_idea(self, idea: dict[str, Any]) -> dict[str, Any]:
        row = {column: idea.get(column) for column in _IDEA_COLUMNS}
        row["version"] = row["version"] or 0
        await self._write(
            """INSERT INTO ideas (id, title, description, category, status,
               owner_id, version, created_at, updated_at)
               VALUES (:id, :title, :description, :category, :status,
               :owner_id, :version, :created_at, :updated_at)""",
            row,
        )
        return idea

    async def get_idea(self, idea_id: str) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM ideas WHERE id = ?", (idea_id,))

    async def get_ideas(self, idea_ids: Iterable[str]) -> list[dict[str, Any]]:
        ids = list(idea_ids)
        if not ids:
            return []
        placeholders = ",".join("?" * len(ids))
        return await self._fetchall(f"SELECT * FROM ideas WHERE id IN ({placeholders})", ids)

    async def update_idea_status(
        self,
        idea_id: str,
        status: str,
        *,
        expected_version: int | None = None,
    ) -> bool:
        sql = "UPDATE ideas SET status = ?, version = version + 1, updated_at = ? WHERE id = ?"
        params: list[Any] = [str(status), _now(), idea_id]
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)
        return await self._write(sql, params) > 0

    async def update_status_for_many(self, idea_ids: Iterable[str], status: str) -> int:
        ids = list(idea_ids)
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        return await self._write(
            f"UPDATE ideas SET status = ?, version = version + 1, updated_at = ?"
            f" WHERE id IN ({placeholders})",
            [str(status), _now(), *ids],
        )

    async def count_ideas_by_status(self, statuses: Iterable[str]) -> int:
        values = [str(s) for s in statuses]
        if not values:
            return 0
        placeholders = ",".join("?" * len(values))
        return await self._scalar(
            f"SELECT COUNT(*) FROM ideas WHERE status IN ({placeholders})", values
        )

    async def list_ideas_by_status(
        self,
        statuses: Iterable[str],
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        values = [str(s) for s in statuses]
        if not values:
            return []
        placeholders = ",".join("?" * len(values))
        return await self._fetchall(
            f"""SELECT * FROM ideas WHERE status IN ({placeholders})
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?""",
            [*values, limit, offset],
        )

    async def list_ideas(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        owner_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        if status:
            conditions.append("status = ?")
            params.append(str(status))
        if category:
            conditions.append("category = ?")
            params.append(category)
        if owner_id:
            conditions.append("owner_id = ?")
            params.append(owner_id)

        where = " AND ".join(conditions) if conditions else "1=1"
        params.extend([limit, offset])
        return await self._fetchall(
            f"""SELECT * FROM ideas WHERE {where}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?""",
            params,
        )

    # --- Evaluation operations ---

    async def insert_evaluation(self, evaluation: dict[str, Any]) -> dict[str, Any]:
        await self._write(_INSERT_EVALUATION, _evaluation_row(evaluation))
        return evaluation

    async def insert_evaluations(
        self, evaluations: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        if not evaluations:
            return []
        rows = [_evaluation_row(evaluation) for evaluation in evaluations]
        async with self.transaction():
            try:
                await self.db.executemany(_INSERT_EVALUATION, rows)
            except aiosqlite.Error as e:
                logger.error("Batch insert of %d evaluations failed: %s", len(rows), e)
                raise StorageFailureError(f"Batch insert failed: {e}") from e
        return evaluations

    async def list_evaluations_for_idea(self, idea_id: str) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM evaluations WHERE idea_id = ? ORDER BY created_at ASC, rowid ASC",
            (idea_id,),
        )

    async def latest_evaluations(self, idea_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        ids = list(idea_ids)
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        rows = await self._fetchall(
            f"""SELECT e.* FROM evaluations e
                WHERE e.idea_id IN ({placeholders})
                AND e.rowid = (
                    SELECT latest.rowid FROM evaluations latest
                    WHERE latest.idea_id = e.idea_id
                    ORDER BY latest.created_at DESC, latest.rowid DESC
                    LIMIT 1
                )""",
            ids,
        )
        return {row["idea_id"]: row for row in rows}

    # --- Stats ---

    async def get_stats(self) -> dict[str, Any]:
        rows = await self._fetchall(
            "SELECT status, COUNT(*) AS count FROM ideas GROUP BY status"
        )
        by_status = {row["status"]: row["count"] for row in rows}
        evaluation_count = await self._scalar("SELECT COUNT(*) FROM evaluations")

        return {
            "ideas": sum(by_status.values()),
            "evaluations": evaluation_count,
            "statuses": by_status,
            "db_path": str(self.db_path),
        }


# --- Helpers ---


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _load_sql(filename: str) -> str:
    """Load SQL file from the schema package."""
    schema_dir = Path(__file__).parent.parent / "schema"
    return (schema_dir / filename).read_text()


def _row_to_dict(row: aiosqlite.Row) -> dict[str, Any]:
    return dict(row)


def _evaluation_row(evaluation: dict[str, Any]) -> dict[str, Any]:
    row = {column: evaluation.get(column) for column in _EVALUATION_COLUMNS}
    for key in ("decision", "kind", "resulting_status"):
        if row[key] is not None:
            row[key] = str(row[key])
    return row

"""
FamCoins Sequencer — SQLite storage.

SequenceDB holds the five engine tables (sequences, groups, task_instances,
task_completions, task_templates) behind a small table-generic API: insert,
select, update, delete. Every method accepts an optional connection so that a
caller holding a transaction (see begin/commit/rollback) can run several
statements atomically.

DraftStore persists in-progress wizard drafts between sessions.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SCHEMA = {
    "sequences": """
        CREATE TABLE IF NOT EXISTS sequences (
            id              TEXT    PRIMARY KEY,
            child_id        TEXT    NOT NULL,
            parent_id       TEXT,
            name            TEXT    NOT NULL,
            type            TEXT    NOT NULL,
            start_date      TEXT    NOT NULL,
            end_date        TEXT    NOT NULL,
            budget_currency REAL    NOT NULL,
            budget_famcoins INTEGER NOT NULL,
            currency_code   TEXT    NOT NULL,
            status          TEXT    NOT NULL DEFAULT 'active',
            is_ongoing      INTEGER NOT NULL DEFAULT 0,
            created_at      TEXT    NOT NULL,
            updated_at      TEXT    NOT NULL
        )
    """,
    "groups": """
        CREATE TABLE IF NOT EXISTS "groups" (
            id          TEXT    PRIMARY KEY,
            sequence_id TEXT    NOT NULL REFERENCES sequences(id) ON DELETE CASCADE,
            name        TEXT    NOT NULL,
            active_days TEXT    NOT NULL,
            position    INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT    NOT NULL
        )
    """,
    "task_templates": """
        CREATE TABLE IF NOT EXISTS task_templates (
            id                   TEXT    PRIMARY KEY,
            name                 TEXT    NOT NULL,
            description          TEXT    NOT NULL DEFAULT '',
            category             TEXT    NOT NULL DEFAULT '',
            photo_proof_required INTEGER NOT NULL DEFAULT 0,
            effort_score         INTEGER,
            created_at           TEXT    NOT NULL
        )
    """,
    "task_instances": """
        CREATE TABLE IF NOT EXISTS task_instances (
            id                   TEXT    PRIMARY KEY,
            template_id          TEXT    NOT NULL,
            group_id             TEXT    NOT NULL REFERENCES "groups"(id) ON DELETE CASCADE,
            sequence_id          TEXT    NOT NULL,
            famcoin_value        INTEGER NOT NULL,
            photo_proof_required INTEGER NOT NULL DEFAULT 0,
            effort_score         INTEGER,
            is_bonus_task        INTEGER NOT NULL DEFAULT 0,
            created_at           TEXT    NOT NULL
        )
    """,
    "task_completions": """
        CREATE TABLE IF NOT EXISTS task_completions (
            id               TEXT    PRIMARY KEY,
            task_instance_id TEXT    NOT NULL REFERENCES task_instances(id) ON DELETE CASCADE,
            child_id         TEXT    NOT NULL,
            due_date         TEXT    NOT NULL,
            status           TEXT    NOT NULL DEFAULT 'pending',
            famcoins_earned  INTEGER NOT NULL DEFAULT 0,
            famcoin_bonus    INTEGER NOT NULL DEFAULT 0,
            completed_at     TEXT,
            approved_at      TEXT,
            created_at       TEXT    NOT NULL,
            UNIQUE (task_instance_id, due_date)
        )
    """,
}

# Columns ensured on an existing database file; _init_db adds any that
# PRAGMA table_info does not list: (table, column, DDL fragment)
_MIGRATIONS = [
    ("sequences", "is_ongoing", "INTEGER NOT NULL DEFAULT 0"),
    ("sequences", "parent_id", "TEXT"),
    ("groups", "position", "INTEGER NOT NULL DEFAULT 0"),
    ("task_completions", "famcoin_bonus", "INTEGER NOT NULL DEFAULT 0"),
]

_JSON_COLUMNS = {"active_days"}
_BOOL_COLUMNS = {"photo_proof_required", "is_bonus_task", "is_ongoing"}
_TIMESTAMPED = {"sequences"}   # tables that also carry updated_at

# Stay well under SQLITE_MAX_VARIABLE_NUMBER (999 on older builds)
_MAX_IN_PARAMS = 500


def _now() -> str:
    return datetime.now().isoformat()


def _encode(column: str, value: Any) -> Any:
    if column in _JSON_COLUMNS and value is not None:
        return json.dumps(list(value))
    if column in _BOOL_COLUMNS and value is not None:
        return int(bool(value))
    if isinstance(value, Enum):
        return value.value
    return value


def _decode(row: sqlite3.Row) -> dict:
    record = dict(row)
    for column in _JSON_COLUMNS & record.keys():
        if record[column] is not None:
            record[column] = json.loads(record[column])
    for column in _BOOL_COLUMNS & record.keys():
        if record[column] is not None:
            record[column] = bool(record[column])
    return record


class SequenceDB:
    """SQLite-backed storage for sequences and everything they own."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from famcoins.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._columns: dict[str, set[str]] = {}
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly with BEGIN.
        conn = sqlite3.connect(
            self._db_path, isolation_level=None, check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        """Create the engine tables if they don't exist, and migrate schema."""
        conn = self._connect()
        try:
            for ddl in _SCHEMA.values():
                conn.execute(ddl)
            for table, column, fragment in _MIGRATIONS:
                existing_cols = {
                    row[1] for row in conn.execute(f"PRAGMA table_info(\"{table}\")").fetchall()
                }
                if column not in existing_cols:
                    conn.execute(f"ALTER TABLE \"{table}\" ADD COLUMN {column} {fragment}")
            for table in _SCHEMA:
                self._columns[table] = {
                    row[1] for row in conn.execute(f"PRAGMA table_info(\"{table}\")").fetchall()
                }
        finally:
            conn.close()
        logger.debug("Sequence tables initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin(self) -> sqlite3.Connection:
        """Open a connection with a started transaction."""
        conn = self._connect()
        conn.execute("BEGIN")
        return conn

    @staticmethod
    def commit(conn: sqlite3.Connection) -> None:
        try:
            conn.execute("COMMIT")
        finally:
            conn.close()

    @staticmethod
    def rollback(conn: sqlite3.Connection) -> None:
        try:
            conn.execute("ROLLBACK")
        finally:
            conn.close()

    @contextmanager
    def _session(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's transaction, or run in a short one of our own."""
        if conn is not None:
            yield conn
            return
        own = self.begin()
        try:
            yield own
        except BaseException:
            self.rollback(own)
            raise
        self.commit(own)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _check_table(self, table: str) -> set[str]:
        if table not in self._columns:
            raise ValueError(f"Unknown table: {table!r}")
        return self._columns[table]

    def _check_columns(self, table: str, columns) -> None:
        known = self._check_table(table)
        unknown = set(columns) - known
        if unknown:
            raise ValueError(f"Unknown column(s) for {table}: {sorted(unknown)}")

    def _where(self, table: str, filters: dict | None) -> tuple[str, list]:
        if not filters:
            return "", []
        self._check_columns(table, filters)
        clauses: list[str] = []
        params: list = []
        for column, value in filters.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    clauses.append("1 = 0")
                    continue
                placeholders = ", ".join("?" for _ in values)
                clauses.append(f"{column} IN ({placeholders})")
                params.extend(_encode(column, v) for v in values)
            elif value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(_encode(column, value))
        return " WHERE " + " AND ".join(clauses), params

    # ------------------------------------------------------------------
    # Table-generic operations
    # ------------------------------------------------------------------

    def insert(
        self, table: str, rows: list[dict], conn: sqlite3.Connection | None = None,
    ) -> list[dict]:
        """Insert rows, filling id and timestamps. Returns the stored rows."""
        self._check_table(table)
        now = _now()
        prepared: list[dict] = []
        for row in rows:
            record = dict(row)
            record.setdefault("id", str(uuid.uuid4()))
            record.setdefault("created_at", now)
            if table in _TIMESTAMPED:
                record.setdefault("updated_at", now)
            self._check_columns(table, record)
            prepared.append(record)

        with self._session(conn) as session:
            for record in prepared:
                columns = list(record)
                session.execute(
                    f"INSERT INTO \"{table}\" ({', '.join(columns)}) "
                    f"VALUES ({', '.join('?' for _ in columns)})",
                    [_encode(c, record[c]) for c in columns],
                )
            ids = [r["id"] for r in prepared]
            stored: list[dict] = []
            for start in range(0, len(ids), _MAX_IN_PARAMS):
                chunk = ids[start:start + _MAX_IN_PARAMS]
                stored.extend(self.select(table, {"id": chunk}, conn=session))

        by_id = {r["id"]: r for r in stored}
        return [by_id[i] for i in ids]

    def select(
        self,
        table: str,
        filters: dict | None = None,
        order_by: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict]:
        """Return rows matching all filters (list values mean IN)."""
        where, params = self._where(table, filters)
        if order_by is not None:
            self._check_columns(table, [order_by])
            order = f" ORDER BY {order_by}, rowid"
        else:
            order = " ORDER BY rowid"

        query = f"SELECT * FROM \"{table}\"{where}{order}"
        if conn is not None:
            rows = conn.execute(query, params).fetchall()
        else:
            own = self._connect()
            try:
                rows = own.execute(query, params).fetchall()
            finally:
                own.close()
        return [_decode(r) for r in rows]

    def update(
        self,
        table: str,
        filters: dict,
        patch: dict,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict]:
        """Apply patch to every matching row. Returns the updated rows."""
        patch = dict(patch)
        if table in _TIMESTAMPED:
            patch.setdefault("updated_at", _now())
        self._check_columns(table, patch)

        with self._session(conn) as session:
            ids = [r["id"] for r in self.select(table, filters, conn=session)]
            if not ids:
                return []
            assignments = ", ".join(f"{c} = ?" for c in patch)
            placeholders = ", ".join("?" for _ in ids)
            session.execute(
                f"UPDATE \"{table}\" SET {assignments} WHERE id IN ({placeholders})",
                [_encode(c, v) for c, v in patch.items()] + ids,
            )
            return self.select(table, {"id": ids}, conn=session)

    def delete(
        self, table: str, filters: dict, conn: sqlite3.Connection | None = None,
    ) -> int:
        """Delete matching rows. Returns how many were removed."""
        where, params = self._where(table, filters)
        if not where:
            raise ValueError("Refusing to delete without filters")
        with self._session(conn) as session:
            cursor = session.execute(f"DELETE FROM \"{table}\"{where}", params)
        return cursor.rowcount


class DraftStore:
    """SQLite-backed storage for wizard drafts saved between sessions."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from famcoins.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS drafts (
                    id           TEXT    PRIMARY KEY,
                    payload      TEXT    NOT NULL,
                    current_step INTEGER NOT NULL DEFAULT 0,
                    updated_at   TEXT    NOT NULL
                )
            """)
        logger.debug("Drafts table initialized at %s", self._db_path)

    def save(self, draft_id: str, payload: str, current_step: int = 0) -> None:
        """Insert or replace a draft's JSON payload."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO drafts (id, payload, current_step, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    payload = excluded.payload,
                    current_step = excluded.current_step,
                    updated_at = excluded.updated_at
                """,
                (draft_id, payload, current_step, _now()),
            )
        logger.info("Draft %s saved at step %d", draft_id, current_step)

    def load(self, draft_id: str) -> tuple[str, int] | None:
        """Return (payload, current_step) for a saved draft, or None."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload, current_step FROM drafts WHERE id = ?", (draft_id,),
            ).fetchone()
        if row is None:
            return None
        return row["payload"], row["current_step"]

    def delete(self, draft_id: str) -> bool:
        """Forget a saved draft."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM drafts WHERE id = ?", (draft_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Draft %s deleted", draft_id)
        return deleted


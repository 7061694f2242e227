from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path

from flask import Flask, current_app, g
from werkzeug.security import generate_password_hash

from ..config import ADMIN_PASSWORD, ADMIN_USERNAME, DB_PATH


logger = logging.getLogger(__name__)


# Writable columns per collection. ``id`` and ``created_at`` are always
# assigned by the store.
COLLECTIONS: dict[str, tuple[str, ...]] = {
    "events": ("event_name", "event_date", "description", "venue", "event_type", "status"),
    "exams": ("exam_name", "status"),
    "assignments": ("title", "subject", "description", "due_date", "status"),
    "seminars": ("title", "speaker", "venue", "seminar_date", "description", "status"),
    "records": ("subject", "title", "description", "record_date", "category", "status"),
    "deadlines": ("title", "description", "deadline_date", "category", "priority", "status"),
    "birthdays": ("name", "birth_date", "category", "email", "phone", "notes", "status"),
    "homework": ("title", "subject", "description", "due_date", "difficulty", "status"),
    "syllabus": ("subject", "title", "description", "status"),
    "updates": ("title", "content", "category", "priority", "publish_date", "status"),
}

# Natural listing order per collection.
DEFAULT_ORDER: dict[str, str] = {
    "events": "event_date",
    "exams": "created_at",
    "assignments": "due_date",
    "seminars": "seminar_date",
    "records": "record_date",
    "deadlines": "deadline_date",
    "birthdays": "birth_date",
    "homework": "due_date",
    "syllabus": "created_at",
    "updates": "publish_date",
}

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "events": ("event_name", "event_date"),
    "exams": ("exam_name",),
    "assignments": ("title", "due_date"),
    "seminars": ("title", "seminar_date"),
    "records": ("subject", "record_date"),
    "deadlines": ("title", "deadline_date"),
    "birthdays": ("name", "birth_date"),
    "homework": ("title", "due_date"),
    "syllabus": ("subject", "title"),
    "updates": ("title", "content"),
}

# Status given to new rows that arrive without one.
DEFAULT_STATUS: dict[str, str] = {
    "homework": "pending",
    "seminars": "scheduled",
}

HOMEWORK_STATUSES = ("pending", "completed")
SEMINAR_STATUSES = ("scheduled", "ongoing", "completed")


def non_blank_fields(collection: str) -> tuple[str, ...]:
    """Columns that may be omitted on update but never set to blank."""
    fields = REQUIRED_FIELDS[collection]
    if "status" in COLLECTIONS[collection]:
        fields += ("status",)
    return fields


class SourceUnavailable(Exception):
    """A collection could not be read.

    ``missing_schema`` is set when the backing table does not exist, which
    callers treat differently from a transient read failure.
    """

    def __init__(self, source: str, message: str, missing_schema: bool = False) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message
        self.missing_schema = missing_schema


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def get_db_path() -> Path:
    return Path(current_app.config.get("DB_PATH") or DB_PATH)


def get_db() -> sqlite3.Connection:
    if "db" not in g:
        conn = sqlite3.connect(get_db_path())
        conn.row_factory = sqlite3.Row
        g.db = conn
    return g.db


def close_db(exception: Exception | None = None) -> None:
    conn = g.pop("db", None)
    if conn is not None:
        conn.close()


def init_app(app: Flask) -> None:
    app.teardown_appcontext(close_db)


def init_db(db_path: Path | None = None) -> None:
    path = db_path or DB_PATH
    db = sqlite3.connect(path)
    try:
        db.executescript(
            """
            CREATE TABLE IF NOT EXISTS students (
                id TEXT PRIMARY KEY,
                register_number TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS admin_users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                event_name TEXT NOT NULL,
                event_date TEXT NOT NULL,
                description TEXT,
                venue TEXT,
                event_type TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS exams (
                id TEXT PRIMARY KEY,
                exam_name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS assignments (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                subject TEXT,
                description TEXT,
                due_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS seminars (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                speaker TEXT,
                venue TEXT,
                seminar_date TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                subject TEXT NOT NULL,
                title TEXT,
                description TEXT,
                record_date TEXT NOT NULL,
                category TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS deadlines (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                deadline_date TEXT NOT NULL,
                category TEXT,
                priority TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS birthdays (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                birth_date TEXT NOT NULL,
                category TEXT,
                email TEXT,
                phone TEXT,
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS homework (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                subject TEXT,
                description TEXT,
                due_date TEXT NOT NULL,
                difficulty TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS syllabus (
                id TEXT PRIMARY KEY,
                subject TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS updates (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                category TEXT,
                priority TEXT,
                publish_date TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL
            );
            """
        )
        db.commit()

        admins_count = db.execute("SELECT COUNT(*) FROM admin_users").fetchone()[0]
        if admins_count == 0 and ADMIN_USERNAME and ADMIN_PASSWORD:
            db.execute(
                "INSERT INTO admin_users (id, username, password_hash, created_at) VALUES (?, ?, ?, ?)",
                (str(uuid.uuid4()), ADMIN_USERNAME, generate_password_hash(ADMIN_PASSWORD), now_iso()),
            )
            logger.info("Bootstrap admin user created: %s", ADMIN_USERNAME)

        db.commit()
    finally:
        db.close()


def _check_collection(collection: str) -> tuple[str, ...]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise KeyError(f"Unknown collection: {collection}") from None


def fetch_all(kind: str, order_by: str, db_path: Path | None = None) -> list[dict]:
    """Read every row of ``kind`` ordered ascending by ``order_by``.

    Opens a connection of its own so it can run off the request thread.
    Ties on ``order_by`` keep insertion order.
    """
    columns = _check_collection(kind)
    if order_by not in columns and order_by not in ("id", "created_at"):
        raise ValueError(f"Cannot order {kind} by {order_by}")

    path = db_path or DB_PATH
    try:
        with closing(sqlite3.connect(path)) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(f"SELECT * FROM {kind} ORDER BY {order_by} ASC, rowid ASC").fetchall()
    except sqlite3.OperationalError as e:
        missing = "no such table" in str(e).lower()
        raise SourceUnavailable(kind, str(e), missing_schema=missing) from e
    except sqlite3.DatabaseError as e:
        raise SourceUnavailable(kind, str(e)) from e
    return [dict(r) for r in rows]


def select(
    db: sqlite3.Connection,
    collection: str,
    where: dict | None = None,
    order_by: str | None = None,
) -> list[dict]:
    columns = _check_collection(collection)
    allowed = set(columns) | {"id", "created_at"}

    clauses = []
    params: list = []
    for key, value in (where or {}).items():
        if key not in allowed:
            raise ValueError(f"Unknown column {key} for {collection}")
        clauses.append(f"{key} = ?")
        params.append(value)

    order = order_by or DEFAULT_ORDER[collection]
    if order not in allowed:
        raise ValueError(f"Cannot order {collection} by {order}")

    sql = f"SELECT * FROM {collection}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += f" ORDER BY {order} ASC, rowid ASC"
    return [dict(r) for r in db.execute(sql, params).fetchall()]


def insert(db: sqlite3.Connection, collection: str, values: dict) -> dict:
    columns = _check_collection(collection)
    payload = {k: v for k, v in values.items() if k in columns}
    payload["id"] = str(uuid.uuid4())
    payload["created_at"] = now_iso()

    keys = list(payload.keys())
    placeholders = ", ".join(["?"] * len(keys))
    db.execute(
        f"INSERT INTO {collection} ({', '.join(keys)}) VALUES ({placeholders})",
        [payload[k] for k in keys],
    )
    db.commit()
    row = db.execute(f"SELECT * FROM {collection} WHERE id = ?", (payload["id"],)).fetchone()
    return dict(row)


def update(db: sqlite3.Connection, collection: str, row_id: str, values: dict) -> bool:
    columns = _check_collection(collection)
    payload = {k: v for k, v in values.items() if k in columns}
    if not payload:
        return False
    assignments = ", ".join(f"{k} = ?" for k in payload)
    cur = db.execute(
        f"UPDATE {collection} SET {assignments} WHERE id = ?",
        [*payload.values(), row_id],
    )
    db.commit()
    return cur.rowcount > 0


def delete(db: sqlite3.Connection, collection: str, row_id: str) -> bool:
    _check_collection(collection)
    cur = db.execute(f"DELETE FROM {collection} WHERE id = ?", (row_id,))
    db.commit()
    return cur.rowcount > 0

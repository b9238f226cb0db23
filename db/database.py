import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from config import load_config
from utils.errors import StorageError
from .schema import SCHEMA_SQL, INDEXES_SQL, SCHEMA_VERSION

DB_PATH: Optional[Path] = None


def resolve_db_path() -> Path:
    """DB_PATH wins when set (tests patch it); otherwise read [database].path."""
    if DB_PATH is not None:
        return Path(DB_PATH)
    return Path(load_config()["database"]["path"])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_ts(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC ISO timestamps so text comparison in SQL orders correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def init_db():
    """Initialize the database by creating tables and indexes if they don't exist."""
    db_path = resolve_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with get_conn() as conn:
        conn.executescript(SCHEMA_SQL)
        conn.executescript(INDEXES_SQL)
        ensure_schema_version(conn)
        conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the SQLite schema version from PRAGMA user_version."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA user_version")
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def ensure_schema_version(conn: sqlite3.Connection) -> None:
    """Ensure the current schema version is written to the database."""
    if get_schema_version(conn) != SCHEMA_VERSION:
        conn.execute(f"PRAGMA user_version = {int(SCHEMA_VERSION)}")


@contextmanager
def get_conn():
    """Context manager for SQLite connection, using row_factory for dict-like rows."""
    conn = sqlite3.connect(
        resolve_db_path(),
        check_same_thread=False,
        isolation_level=None,  # explicit BEGIN/COMMIT in transaction()
        timeout=10,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def get_db():
    """FastAPI dependency that yields a DB connection and closes it afterwards."""
    with get_conn() as conn:
        yield conn


@contextmanager
def storage_errors(logger=None, action: str = "storage call") -> Iterator[None]:
    """Convert sqlite3 failures raised inside the block into StorageError."""
    try:
        yield
    except sqlite3.Error as exc:
        if logger is not None:
            logger.error("%s failed: %s", action, exc, exc_info=True)
        raise StorageError() from exc


@contextmanager
def transaction(conn: sqlite3.Connection, logger=None, action: str = "transaction") -> Iterator[sqlite3.Connection]:
    """All-or-nothing unit of work.

    BEGIN IMMEDIATE takes the write lock up front, so concurrent writers of the
    same rows serialize here. Any exception rolls everything back; sqlite3
    errors surface as StorageError, everything else propagates unchanged.
    """
    with storage_errors(logger, f"{action} begin"):
        conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException as exc:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as rb_exc:
            if logger is not None:
                logger.error("%s rollback failed: %s", action, rb_exc)
        if isinstance(exc, sqlite3.Error):
            if logger is not None:
                logger.error("%s failed: %s", action, exc, exc_info=True)
            raise StorageError() from exc
        raise
    else:
        with storage_errors(logger, f"{action} commit"):
            conn.execute("COMMIT")

"""SQLite schema creation and migration for the todosync state database."""

import sqlite3

SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS state (
    area TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (area, key)
);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables."""
    conn.executescript(_SCHEMA_SQL)
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        ("schema_version", str(SCHEMA_VERSION)),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the current schema version, or None if metadata table doesn't exist."""
    try:
        row = conn.execute("SELECT value FROM metadata WHERE key = 'schema_version'").fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the database schema to the latest version."""
    version = get_schema_version(conn)
    if version is None:
        create_schema(conn)


def get_state(conn: sqlite3.Connection, area: str, key: str) -> str | None:
    """Return the stored value for ``(area, key)``, or None."""
    row = conn.execute(
        "SELECT value FROM state WHERE area = ? AND key = ?", (area, key)
    ).fetchone()
    return row[0] if row else None


def set_state(conn: sqlite3.Connection, area: str, key: str, value: str) -> None:
    conn.execute(
        """INSERT INTO state (area, key, value) VALUES (?, ?, ?)
           ON CONFLICT(area, key) DO UPDATE SET
               value = excluded.value,
               updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')""",
        (area, key, value),
    )
    conn.commit()


def delete_state(conn: sqlite3.Connection, area: str, key: str) -> bool:
    """Remove ``(area, key)``. Returns True if a row was deleted."""
    cursor = conn.execute("DELETE FROM state WHERE area = ? AND key = ?", (area, key))
    conn.commit()
    return cursor.rowcount > 0


def list_state_keys(conn: sqlite3.Connection, area: str) -> list[str]:
    rows = conn.execute("SELECT key FROM state WHERE area = ? ORDER BY key", (area,)).fetchall()
    return [r[0] for r in rows]

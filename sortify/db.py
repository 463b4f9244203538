"""Async SQLite database layer.

Uses aiosqlite for non-blocking access.  The key-value table backing
per-profile persistence is created on first startup via ``init_db()``.
"""

from __future__ import annotations

import aiosqlite

from sortify.config import get_settings

# Module-level connection (set during lifespan startup).
_db: aiosqlite.Connection | None = None

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    profile_id  TEXT    NOT NULL,
    key         TEXT    NOT NULL,
    value       TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (profile_id, key)
);
"""


# ---------------------------------------------------------------------------
# Lifecycle helpers
# ---------------------------------------------------------------------------

async def init_db() -> aiosqlite.Connection:
    """Open (or create) the SQLite database and ensure schema exists."""
    global _db  # noqa: PLW0603
    settings = get_settings()
    db_path = settings.db_abs_path

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row  # type: ignore[assignment]
    await _db.executescript(_SCHEMA_SQL)
    await _db.commit()
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db  # noqa: PLW0603
    if _db is not None:
        await _db.close()
        _db = None


def get_db() -> aiosqlite.Connection:
    """Return the current database connection (call after init)."""
    if _db is None:
        raise RuntimeError("Database not initialised — call init_db() first.")
    return _db

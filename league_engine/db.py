"""
League Save Store
=================

SQLite-backed store for league saves.

Design:
  - Each save is one encoded GameState document in a single row
  - Rows are keyed by (user_id, save_key)
  - pure sqlite3, WAL mode, one connection per call
  - Documents go through the same encode/decode gates as file import/export,
    so a corrupted row is rejected on load rather than half-restored

``commit`` is the transactional path: load, apply an operation, validate,
write.  If the operation raises, nothing is written.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Callable, Optional

from league_engine.contracts import decode_save, encode_save
from league_engine.errors import StorageError
from league_engine.invariants import assert_semantic_integrity
from league_engine.models import GameState

_log = logging.getLogger("league_engine.db")

_DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "league.db"

_db_path: Path = Path(os.environ["LEAGUE_DB_PATH"]) if os.environ.get("LEAGUE_DB_PATH") else _DEFAULT_DB_PATH


def set_db_path(path: str | Path):
    """Override the database file path (e.g. for testing)."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    return _db_path


def _connect() -> sqlite3.Connection:
    try:
        _db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(_db_path), timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
    except (sqlite3.Error, OSError) as e:
        raise StorageError(f"Cannot open save database at {_db_path}", cause=e) from e
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create tables if they don't exist. Safe to call multiple times."""
    conn = _connect()
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS league_saves (
                id             INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id        TEXT    NOT NULL DEFAULT 'default',
                save_key       TEXT    NOT NULL,
                label          TEXT    NOT NULL DEFAULT '',
                phase          TEXT    NOT NULL,
                season_number  INTEGER NOT NULL DEFAULT 1,
                data           TEXT    NOT NULL,
                created_at     REAL    NOT NULL,
                updated_at     REAL    NOT NULL,
                UNIQUE(user_id, save_key)
            );

            CREATE INDEX IF NOT EXISTS idx_league_saves_updated
                ON league_saves(updated_at DESC);
        """)
        conn.commit()
        _log.info(f"Database initialized at {_db_path}")
    except sqlite3.Error as e:
        raise StorageError("Cannot initialise save database", cause=e) from e
    finally:
        conn.close()


# ═══════════════════════════════════════════════════════════════
# CORE CRUD
# ═══════════════════════════════════════════════════════════════

def save_state(save_key: str, state: GameState, label: str = "", user_id: str = "default"):
    """Upsert a league save. Overwrites if (user_id, save_key) already exists."""
    now = time.time()
    blob = encode_save(state)
    conn = _connect()
    try:
        conn.execute(
            """
            INSERT INTO league_saves (user_id, save_key, label, phase, season_number, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, save_key)
            DO UPDATE SET data=excluded.data, label=excluded.label, phase=excluded.phase,
                          season_number=excluded.season_number, updated_at=excluded.updated_at
            """,
            (user_id, save_key, label, state.phase.value, state.metadata.season_number, blob, now, now),
        )
        conn.commit()
        _log.debug(f"Saved {save_key} for user={user_id} ({len(blob)} bytes, phase={state.phase.value})")
    except sqlite3.Error as e:
        raise StorageError(f"Cannot write save '{save_key}'", cause=e) from e
    finally:
        conn.close()


def load_state(save_key: str, user_id: str = "default") -> Optional[GameState]:
    """Load and validate a save. Returns None if not found."""
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT data FROM league_saves WHERE user_id=? AND save_key=?",
            (user_id, save_key),
        ).fetchone()
    except sqlite3.Error as e:
        raise StorageError(f"Cannot read save '{save_key}'", cause=e) from e
    finally:
        conn.close()
    if row is None:
        return None
    return decode_save(row["data"])


def delete_save(save_key: str, user_id: str = "default") -> bool:
    conn = _connect()
    try:
        cursor = conn.execute(
            "DELETE FROM league_saves WHERE user_id=? AND save_key=?",
            (user_id, save_key),
        )
        conn.commit()
        return cursor.rowcount > 0
    except sqlite3.Error as e:
        raise StorageError(f"Cannot delete save '{save_key}'", cause=e) from e
    finally:
        conn.close()


def list_saves(user_id: str = "default") -> list[dict]:
    """List saves (without loading full data). Returns metadata dicts."""
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT save_key, label, phase, season_number, created_at, updated_at,
                   length(data) as data_size
            FROM league_saves WHERE user_id=?
            ORDER BY updated_at DESC
            """,
            (user_id,),
        ).fetchall()
        return [dict(r) for r in rows]
    except sqlite3.Error as e:
        raise StorageError("Cannot list saves", cause=e) from e
    finally:
        conn.close()


# ═══════════════════════════════════════════════════════════════
# TRANSACTIONAL COMMIT
# ═══════════════════════════════════════════════════════════════

def commit(
    save_key: str,
    operation: Callable[[GameState], GameState],
    label: str = "",
    user_id: str = "default",
) -> GameState:
    """Apply ``operation`` to the stored state and persist the result.

    The stored row is only replaced once the operation has returned and the
    new state passes the invariant checker; any exception leaves it as it was.
    """
    current = load_state(save_key, user_id)
    if current is None:
        raise StorageError(f"No save named '{save_key}'")

    candidate = operation(current)
    assert_semantic_integrity(candidate)
    save_state(save_key, candidate, label=label, user_id=user_id)
    return candidate

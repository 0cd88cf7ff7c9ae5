"""
SQLite persistence layer.

Tables:
  - matches: one row per match (join PIN, scorer token, coarse status)
  - match_state: latest full MatchState snapshot per match, replaced on every save
  - match_reactions: spectator emoji reactions
  - spectator_messages: spectator template messages

Uses aiosqlite for async access. Database file: settings.db_path
"""

import json
import logging
import random
import secrets
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from app.config import settings
from app.models import MatchState

logger = logging.getLogger(__name__)

DB_PATH = Path(settings.db_path)
DB_DIR = DB_PATH.parent

_db: aiosqlite.Connection | None = None


class SnapshotError(ValueError):
    """A stored match snapshot could not be turned back into a MatchState."""


# ------------------------------------------------------------------ #
#  Connection management
# ------------------------------------------------------------------ #

async def init_db() -> None:
    """Create tables if they don't exist. Called once at app startup."""
    global _db
    DB_DIR.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(DB_PATH))
    _db.row_factory = aiosqlite.Row

    await _db.executescript("""
        CREATE TABLE IF NOT EXISTS matches (
            match_id      INTEGER PRIMARY KEY AUTOINCREMENT,
            pin           TEXT NOT NULL,
            scorer_token  TEXT NOT NULL,
            status        TEXT NOT NULL DEFAULT 'setup',
            created_at    TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_matches_pin ON matches(pin);

        CREATE TABLE IF NOT EXISTS match_state (
            match_id    INTEGER PRIMARY KEY,
            data        TEXT NOT NULL,
            updated_at  TEXT NOT NULL,
            FOREIGN KEY (match_id) REFERENCES matches(match_id)
        );

        CREATE TABLE IF NOT EXISTS match_reactions (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            match_id    INTEGER NOT NULL,
            reaction    TEXT NOT NULL,
            team        TEXT,
            created_at  TEXT NOT NULL,
            FOREIGN KEY (match_id) REFERENCES matches(match_id)
        );

        CREATE TABLE IF NOT EXISTS spectator_messages (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            match_id      INTEGER NOT NULL,
            template_key  TEXT NOT NULL,
            team          TEXT,
            player        TEXT,
            created_at    TEXT NOT NULL,
            FOREIGN KEY (match_id) REFERENCES matches(match_id)
        );

        CREATE INDEX IF NOT EXISTS idx_match_reactions ON match_reactions(match_id, id);
        CREATE INDEX IF NOT EXISTS idx_spectator_messages ON spectator_messages(match_id, id);
    """)
    await _db.commit()
    logger.info(f"SQLite database initialized at {DB_PATH}")


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db:
        await _db.close()
        _db = None


def _get_db() -> aiosqlite.Connection:
    if _db is None:
        raise RuntimeError("Database not initialized, call init_db() first")
    return _db


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_pin() -> str:
    """Four-digit PIN spectators type to join."""
    return str(random.randint(1000, 9999))


# ------------------------------------------------------------------ #
#  Matches
# ------------------------------------------------------------------ #

async def create_match(state: MatchState) -> dict:
    """
    Insert a match and its initial snapshot. The coarse status mirrors the snapshot.
    Returns the record including the scorer token, which is shown only once.
    """
    db = _get_db()
    now = _now()
    pin = generate_pin()
    token = secrets.token_urlsafe(16)
    status = state.status.value
    cursor = await db.execute(
        "INSERT INTO matches (pin, scorer_token, status, created_at) VALUES (?, ?, ?, ?)",
        (pin, token, status, now),
    )
    match_id = cursor.lastrowid
    await db.execute(
        "INSERT INTO match_state (match_id, data, updated_at) VALUES (?, ?, ?)",
        (match_id, json.dumps(state.to_snapshot()), now),
    )
    await db.commit()
    logger.info(f"Created match {match_id} (PIN {pin})")
    return {
        "match_id": match_id,
        "pin": pin,
        "scorer_token": token,
        "status": status,
        "created_at": now,
    }


async def get_match(match_id: int) -> dict | None:
    db = _get_db()
    async with db.execute("SELECT * FROM matches WHERE match_id = ?", (match_id,)) as cur:
        row = await cur.fetchone()
        return _row_to_match(row) if row else None


async def get_match_by_pin(pin: str) -> dict | None:
    """Most recent match using this PIN (PINs are short and may be reused)."""
    db = _get_db()
    async with db.execute(
        "SELECT * FROM matches WHERE pin = ? ORDER BY match_id DESC LIMIT 1", (pin,)
    ) as cur:
        row = await cur.fetchone()
        return _row_to_match(row) if row else None


async def verify_scorer(match_id: int, token: str | None) -> bool:
    if not token:
        return False
    db = _get_db()
    async with db.execute(
        "SELECT scorer_token FROM matches WHERE match_id = ?", (match_id,)
    ) as cur:
        row = await cur.fetchone()
    return row is not None and secrets.compare_digest(row["scorer_token"], token)


def _row_to_match(row: aiosqlite.Row) -> dict:
    # scorer_token never leaves this module
    return {
        "match_id": row["match_id"],
        "pin": row["pin"],
        "status": row["status"],
        "created_at": row["created_at"],
    }


# ------------------------------------------------------------------ #
#  Match state snapshots
# ------------------------------------------------------------------ #

async def save_state(match_id: int, state: MatchState) -> None:
    """
    Store the full snapshot, replacing whatever was there.
    The match row's coarse status follows the snapshot.
    """
    db = _get_db()
    await db.execute(
        """INSERT INTO match_state (match_id, data, updated_at) VALUES (?, ?, ?)
           ON CONFLICT(match_id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at""",
        (match_id, json.dumps(state.to_snapshot()), _now()),
    )
    await db.execute(
        "UPDATE matches SET status = ? WHERE match_id = ?", (state.status.value, match_id)
    )
    await db.commit()


async def load_state(match_id: int) -> MatchState | None:
    """Latest snapshot for a match, or None if the match has none."""
    db = _get_db()
    async with db.execute("SELECT data FROM match_state WHERE match_id = ?", (match_id,)) as cur:
        row = await cur.fetchone()
    if row is None:
        return None
    return parse_snapshot(row["data"])


def parse_snapshot(raw: str) -> MatchState:
    try:
        return MatchState.from_snapshot(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Corrupt match snapshot: {e}")
        raise SnapshotError(str(e)) from e


# ------------------------------------------------------------------ #
#  Spectator interactions
# ------------------------------------------------------------------ #

async def insert_reaction(match_id: int, reaction: str, team: str | None = None) -> int:
    db = _get_db()
    cursor = await db.execute(
        "INSERT INTO match_reactions (match_id, reaction, team, created_at) VALUES (?, ?, ?, ?)",
        (match_id, reaction, team, _now()),
    )
    await db.commit()
    return cursor.lastrowid


async def insert_message(
    match_id: int,
    template_key: str,
    team: str | None = None,
    player: str | None = None,
) -> int:
    db = _get_db()
    cursor = await db.execute(
        """INSERT INTO spectator_messages (match_id, template_key, team, player, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (match_id, template_key, team, player, _now()),
    )
    await db.commit()
    return cursor.lastrowid


async def get_recent_reactions(match_id: int, limit: int = 50) -> list[dict]:
    db = _get_db()
    async with db.execute(
        "SELECT * FROM match_reactions WHERE match_id = ? ORDER BY id DESC LIMIT ?",
        (match_id, limit),
    ) as cur:
        return [dict(r) for r in await cur.fetchall()]


async def get_recent_messages(match_id: int, limit: int = 50) -> list[dict]:
    db = _get_db()
    async with db.execute(
        "SELECT * FROM spectator_messages WHERE match_id = ? ORDER BY id DESC LIMIT ?",
        (match_id, limit),
    ) as cur:
        return [dict(r) for r in await cur.fetchall()]

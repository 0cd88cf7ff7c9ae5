#!/usr/bin/env python3
"""
Drop all tables from the database and recreate them via init_db().

Usage:
    python scripts/reset_db.py              # uses settings.db_path
    python scripts/reset_db.py path/to.db   # custom path
"""

import asyncio
import sqlite3
import sys
from pathlib import Path

# Allow importing app when run as script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import settings  # noqa: E402

# All table names in dependency order (children first)
TABLES = [
    "spectator_messages",
    "match_reactions",
    "match_state",
    "matches",
]


def reset(db_path: str) -> None:
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()

    for table in TABLES:
        cur.execute(f"DROP TABLE IF EXISTS {table}")
        print(f"  Dropped {table}")

    conn.commit()
    conn.close()
    print("\nRecreating tables via init_db()...")

    # Point database module at this path and run init_db
    import app.storage.database as db_mod
    path = Path(db_path)
    db_mod.DB_DIR = path.parent
    db_mod.DB_PATH = path

    async def recreate() -> None:
        await db_mod.init_db()
        await db_mod.close_db()

    asyncio.run(recreate())
    print(f"Done. All tables dropped and recreated: {db_path}")


if __name__ == "__main__":
    db = sys.argv[1] if len(sys.argv) > 1 else settings.db_path
    if not Path(db).exists():
        print(f"Database not found: {db}")
        sys.exit(1)
    reset(db)

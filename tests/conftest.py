"""
Shared fixtures for the test suite.

Key design decisions:
  - Each test gets its own temp-file SQLite DB.
  - Overrides the database module's `DB_DIR` / `DB_PATH` before each test.
  - Provides an `httpx.AsyncClient` wired to the FastAPI app via ASGITransport.
  - Supplies a scorer fixture: a match already through setup and toss.
"""

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import app.main as main_mod
import app.storage.database as db_mod
from app.engine.state_manager import StateManager, create_match
from app.models import TossDecision
from app.main import app


# --------------------------------------------------------------------------- #
#  Temp-file database, fresh for every test function
# --------------------------------------------------------------------------- #

@pytest_asyncio.fixture(autouse=True)
async def _init_test_db(tmp_path: Path):
    """
    Before each test:
      1. Point the DB module to a temp file.
      2. Run init_db() to create all tables.
      3. Forget spectator cooldowns and match locks from earlier tests.
    After the test:
      4. Close the connection.
    """
    test_db = tmp_path / "test.db"
    db_mod.DB_DIR = tmp_path
    db_mod.DB_PATH = test_db
    main_mod.interaction_cooldown.clear()
    main_mod.match_locks.clear()

    await db_mod.init_db()
    yield
    await db_mod.close_db()


# --------------------------------------------------------------------------- #
#  HTTP client: talks to the FastAPI app without a real server
# --------------------------------------------------------------------------- #

@pytest_asyncio.fixture
async def client() -> AsyncClient:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def live_match(client) -> dict:
    """
    Create a 2-over, 4-a-side match via the API and take it through setup and
    toss (Sharks bat first). Returns {"match_id", "pin", "headers"}.
    """
    r = await client.post("/api/matches", json={})
    assert r.status_code == 201
    created = r.json()
    headers = {"X-Scorer-Token": created["scorer_token"]}
    mid = created["match_id"]

    r = await client.post(
        f"/api/matches/{mid}/setup",
        json={"team1": "Sharks", "team2": "Eagles", "overs": 2, "players": 4},
        headers=headers,
    )
    assert r.status_code == 200
    r = await client.post(
        f"/api/matches/{mid}/toss",
        json={"winner": "Sharks", "decision": "bat"},
        headers=headers,
    )
    assert r.status_code == 200
    return {"match_id": mid, "pin": created["pin"], "headers": headers}


# --------------------------------------------------------------------------- #
#  In-memory state machines
# --------------------------------------------------------------------------- #

def make_live(overs: int = 4, players: int = 11, clock=None) -> StateManager:
    """A StateManager already through setup and toss, Sharks batting first."""
    sm = StateManager(create_match(), clock=clock or (lambda: 1_000))
    assert sm.complete_setup("Sharks", "Eagles", overs, players)
    assert sm.complete_toss("Sharks", TossDecision.BAT)
    return sm


@pytest.fixture
def live() -> StateManager:
    return make_live()


@pytest.fixture
def live_factory():
    return make_live

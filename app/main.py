import asyncio
import json
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from app.commentary.generator import CommentaryTracker
from app.commentary.templates import (
    InteractionCooldown,
    MessageTemplate,
    ReactionType,
    reaction_emoji,
    render_message,
)
from app.config import settings
from app.engine.analytics import (
    compute_match_result,
    get_match_analytics,
    required_rate_band,
    win_probability_band,
)
from app.engine.scoring import (
    ball_display,
    calculate_player_of_the_match,
    compute_innings_score,
    generate_innings_summary,
    get_batsman_stats,
    get_bowler_stats,
    overs_history,
    unique_batsmen,
    unique_bowlers,
)
from app.engine.state_manager import StateManager, create_match as new_match_state
from app.models import BallType, DismissalType, MatchState, PlayerRole, TossDecision
from app.storage import database as db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Live SSE subscribers per match
subscribers: dict[int, list[asyncio.Queue]] = {}
# One writer at a time per match: load, apply, save and broadcast run under this lock
match_locks: dict[int, asyncio.Lock] = {}
interaction_cooldown = InteractionCooldown(settings.interaction_cooldown_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """App startup/shutdown lifecycle."""
    logger.info("Match scorer starting up")
    await db.init_db()
    yield
    await db.close_db()
    logger.info("Shutting down")


app = FastAPI(
    title="Gully Cricket Scorer",
    description="Ball-by-ball scoring with live spectator sync",
    lifespan=lifespan,
)


# --------------------------------------------------------------------------- #
#  Request bodies
# --------------------------------------------------------------------------- #

class CreateMatchRequest(BaseModel):
    team1: str = ""
    team2: str = ""
    overs: int = Field(settings.default_overs, ge=1)
    players: int = Field(settings.default_players, ge=2)


class SetupRequest(BaseModel):
    team1: str = Field(..., min_length=1)
    team2: str = Field(..., min_length=1)
    overs: int = Field(settings.default_overs, ge=1)
    players: int = Field(settings.default_players, ge=2)


class TossRequest(BaseModel):
    winner: str
    decision: TossDecision


class BallRequest(BaseModel):
    runs: int = Field(0, ge=0)
    type: BallType = BallType.LEGAL
    is_wicket: bool = False
    dismissal: Optional[DismissalType] = None


class PlayerRequest(BaseModel):
    role: PlayerRole
    name: str


class TimeoutRequest(BaseModel):
    reason: str = settings.default_timeout_reason


class ScheduleRequest(BaseModel):
    seconds: int = Field(settings.innings_break_seconds, ge=0)


class ReactionRequest(BaseModel):
    reaction: ReactionType
    team: Optional[str] = None


class MessageRequest(BaseModel):
    template_key: MessageTemplate
    team: Optional[str] = None
    player: Optional[str] = None


# --------------------------------------------------------------------------- #
#  Broadcast
# --------------------------------------------------------------------------- #

async def broadcast(match_id: int, event_type: str, data: dict):
    """Push an SSE event to everyone watching this match."""
    event = {
        "event": event_type,
        "data": json.dumps(data, default=str),
    }
    for queue in subscribers.get(match_id, []):
        await queue.put(event)


# --------------------------------------------------------------------------- #
#  Helpers
# --------------------------------------------------------------------------- #

async def _load_state(match_id: int) -> MatchState:
    try:
        state = await db.load_state(match_id)
    except db.SnapshotError as e:
        raise HTTPException(status_code=500, detail=f"Stored match state is corrupt: {e}")
    if state is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return state


async def _apply(
    match_id: int,
    token: str | None,
    action: Callable[[StateManager], bool],
    name: str,
) -> dict:
    """
    Run one scoring action against the stored snapshot, then persist and
    broadcast the new state. Callers without the scorer token get a
    read-only manager, so the action is a no-op for them.

    Actions on the same match are applied one after another, each on top of
    the previous one's saved state.
    """
    lock = match_locks.setdefault(match_id, asyncio.Lock())
    async with lock:
        state = await _load_state(match_id)
        authorized = await db.verify_scorer(match_id, token)
        manager = StateManager(state, read_only=not authorized)
        applied = action(manager)

        if not authorized:
            raise HTTPException(status_code=403, detail="Only the scorer can change this match")
        if not applied:
            raise HTTPException(
                status_code=409,
                detail={
                    "message": f"{name} not allowed while {state.status.value}",
                    "state": state.to_snapshot(),
                },
            )

        new_state = manager.get_state()
        await db.save_state(match_id, new_state)
        snapshot = new_state.to_snapshot()
        await broadcast(match_id, "state", snapshot)
    return {"applied": True, "state": snapshot}


def _innings_card(state: MatchState, index: int) -> dict:
    inning = state.innings[index]
    events = inning.events
    return {
        "innings_number": index + 1,
        "score": compute_innings_score(events).model_dump(by_alias=True),
        "batsmen": [get_batsman_stats(events, n).model_dump(by_alias=True) for n in unique_batsmen(events)],
        "bowlers": [get_bowler_stats(events, n).model_dump(by_alias=True) for n in unique_bowlers(events)],
        "summary": generate_innings_summary(inning).model_dump(by_alias=True),
        "overs": [
            {"over": over + 1, "balls": [ball_display(e) for e in balls]}
            for over, balls in overs_history(events)
        ],
    }


# --------------------------------------------------------------------------- #
#  Matches
# --------------------------------------------------------------------------- #

@app.post("/api/matches", status_code=201)
async def create_match(body: CreateMatchRequest):
    """Create a match in setup. The scorer token in the response is the only write credential."""
    state = new_match_state(body.team1, body.team2, body.overs, body.players)
    record = await db.create_match(state)
    return {**record, "state": state.to_snapshot()}


@app.get("/api/matches/join/{pin}")
async def join_match(pin: str):
    """Spectator entry point: find a match by its 4-digit PIN."""
    match = await db.get_match_by_pin(pin)
    if match is None:
        raise HTTPException(status_code=404, detail="No match with that PIN")
    state = await _load_state(match["match_id"])
    return {**match, "state": state.to_snapshot()}


@app.get("/api/matches/{match_id}")
async def get_match(match_id: int):
    match = await db.get_match(match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    state = await _load_state(match_id)
    return {**match, "state": state.to_snapshot()}


# --------------------------------------------------------------------------- #
#  Scorer actions
# --------------------------------------------------------------------------- #

@app.post("/api/matches/{match_id}/setup")
async def setup_match(match_id: int, body: SetupRequest, x_scorer_token: str | None = Header(None)):
    return await _apply(
        match_id, x_scorer_token,
        lambda m: m.complete_setup(body.team1, body.team2, body.overs, body.players),
        "setup",
    )


@app.post("/api/matches/{match_id}/toss")
async def toss(match_id: int, body: TossRequest, x_scorer_token: str | None = Header(None)):
    return await _apply(
        match_id, x_scorer_token,
        lambda m: m.complete_toss(body.winner, body.decision),
        "toss",
    )


@app.post("/api/matches/{match_id}/toss/back")
async def toss_back(match_id: int, x_scorer_token: str | None = Header(None)):
    return await _apply(match_id, x_scorer_token, lambda m: m.back_to_setup(), "back to setup")


@app.post("/api/matches/{match_id}/balls")
async def record_ball(match_id: int, body: BallRequest, x_scorer_token: str | None = Header(None)):
    return await _apply(
        match_id, x_scorer_token,
        lambda m: m.record_ball(body.runs, body.type, body.is_wicket, body.dismissal),
        "scoring",
    )


@app.post("/api/matches/{match_id}/undo")
async def undo_ball(match_id: int, x_scorer_token: str | None = Header(None)):
    return await _apply(match_id, x_scorer_token, lambda m: m.undo_last_ball(), "undo")


@app.post("/api/matches/{match_id}/players")
async def update_player(match_id: int, body: PlayerRequest, x_scorer_token: str | None = Header(None)):
    return await _apply(
        match_id, x_scorer_token,
        lambda m: m.update_player(body.role, body.name),
        "player change",
    )


@app.post("/api/matches/{match_id}/timeout")
async def call_timeout(
    match_id: int,
    body: TimeoutRequest | None = None,
    x_scorer_token: str | None = Header(None),
):
    reason = body.reason if body else settings.default_timeout_reason
    return await _apply(match_id, x_scorer_token, lambda m: m.call_timeout(reason), "timeout")


@app.post("/api/matches/{match_id}/resume")
async def resume_match(match_id: int, x_scorer_token: str | None = Header(None)):
    return await _apply(match_id, x_scorer_token, lambda m: m.resume_match(), "resume")


@app.post("/api/matches/{match_id}/innings-break/schedule")
async def schedule_next_innings(
    match_id: int,
    body: ScheduleRequest | None = None,
    x_scorer_token: str | None = Header(None),
):
    seconds = body.seconds if body else settings.innings_break_seconds
    return await _apply(
        match_id, x_scorer_token,
        lambda m: m.schedule_next_innings(seconds),
        "innings break countdown",
    )


@app.post("/api/matches/{match_id}/next-innings")
async def start_next_innings(match_id: int, x_scorer_token: str | None = Header(None)):
    return await _apply(match_id, x_scorer_token, lambda m: m.start_next_innings(), "next innings")


@app.post("/api/matches/{match_id}/exit")
async def exit_match(match_id: int, x_scorer_token: str | None = Header(None)):
    return await _apply(match_id, x_scorer_token, lambda m: m.exit_match(), "exit")


@app.post("/api/matches/{match_id}/end")
async def end_session(match_id: int, x_scorer_token: str | None = Header(None)):
    return await _apply(match_id, x_scorer_token, lambda m: m.end_session(), "end session")


# --------------------------------------------------------------------------- #
#  Derived views
# --------------------------------------------------------------------------- #

@app.get("/api/matches/{match_id}/analytics")
async def match_analytics(match_id: int):
    state = await _load_state(match_id)
    analytics = get_match_analytics(state)
    return {
        **analytics.model_dump(by_alias=True),
        "winProbabilityBand": win_probability_band(analytics.win_probability),
        "requiredRateBand": required_rate_band(
            analytics.required_run_rate, analytics.current_run_rate
        ),
        "isFreeHit": StateManager(state, read_only=True).upcoming_free_hit(),
    }


@app.get("/api/matches/{match_id}/scorecard")
async def scorecard(match_id: int):
    state = await _load_state(match_id)
    return {
        "status": state.status.value,
        "current_inning_index": state.current_inning_index,
        "innings": [_innings_card(state, i) for i in range(2)],
    }


@app.get("/api/matches/{match_id}/result")
async def match_result(match_id: int):
    state = await _load_state(match_id)
    result = compute_match_result(state)
    if result is None:
        raise HTTPException(status_code=409, detail="Match is still in progress")
    return {
        "result": result.model_dump(by_alias=True),
        "player_of_the_match": calculate_player_of_the_match(state).model_dump(by_alias=True),
        "innings": [generate_innings_summary(i).model_dump(by_alias=True) for i in state.innings],
    }


# --------------------------------------------------------------------------- #
#  Spectators
# --------------------------------------------------------------------------- #

def _spectator_key(request: Request, client_id: str | None) -> str:
    if client_id:
        return client_id
    return request.client.host if request.client else "anonymous"


@app.post("/api/matches/{match_id}/reactions", status_code=201)
async def send_reaction(
    match_id: int,
    body: ReactionRequest,
    request: Request,
    x_client_id: str | None = Header(None),
):
    await _load_state(match_id)
    key = _spectator_key(request, x_client_id)
    if not interaction_cooldown.hit(key):
        raise HTTPException(
            status_code=429,
            detail=f"Please wait {interaction_cooldown.remaining(key):.1f}s before sending another interaction",
        )
    reaction_id = await db.insert_reaction(match_id, body.reaction.value, body.team)
    payload = {"id": reaction_id, "reaction": body.reaction.value, "emoji": reaction_emoji(body.reaction), "team": body.team}
    await broadcast(match_id, "reaction", payload)
    return payload


@app.post("/api/matches/{match_id}/messages", status_code=201)
async def send_message(
    match_id: int,
    body: MessageRequest,
    request: Request,
    x_client_id: str | None = Header(None),
):
    await _load_state(match_id)
    key = _spectator_key(request, x_client_id)
    if not interaction_cooldown.hit(key):
        raise HTTPException(
            status_code=429,
            detail=f"Please wait {interaction_cooldown.remaining(key):.1f}s before sending another interaction",
        )
    message_id = await db.insert_message(match_id, body.template_key.value, body.team, body.player)
    payload = {
        "id": message_id,
        "template_key": body.template_key.value,
        "text": render_message(body.template_key, team=body.team, player=body.player),
    }
    await broadcast(match_id, "message", payload)
    return payload


@app.get("/api/matches/{match_id}/feed")
async def interaction_feed(match_id: int):
    await _load_state(match_id)
    limit = settings.max_feed_items
    reactions = await db.get_recent_reactions(match_id, limit)
    messages = await db.get_recent_messages(match_id, limit)
    for m in messages:
        m["text"] = render_message(m["template_key"], team=m["team"], player=m["player"])
    return {"reactions": reactions, "messages": messages}


@app.get("/api/matches/{match_id}/stream")
async def stream(match_id: int, request: Request):
    """SSE endpoint: full state snapshots plus per-viewer auto commentary."""
    state = await _load_state(match_id)
    queue: asyncio.Queue = asyncio.Queue()
    subscribers.setdefault(match_id, []).append(queue)
    tracker = CommentaryTracker()
    tracker.observe(state)

    async def event_generator():
        try:
            yield {"event": "state", "data": json.dumps(state.to_snapshot())}
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    # Send keepalive
                    yield {"event": "ping", "data": "{}"}
                    continue
                yield event
                if event["event"] == "state":
                    snapshot = MatchState.from_snapshot(json.loads(event["data"]))
                    item = tracker.observe(snapshot)
                    if item is not None:
                        yield {"event": "commentary", "data": item.model_dump_json()}
        finally:
            subscribers[match_id].remove(queue)

    return EventSourceResponse(event_generator())

"""
Rule-based auto commentary for spectators.

Each viewing session owns a CommentaryTracker. It remembers what it last said
so consecutive lines of the same kind don't repeat, and watches successive
MatchState snapshots to decide when something is worth a line.
"""

import logging
import random
import time
import uuid
from enum import Enum

from pydantic import BaseModel

from app.config import settings
from app.engine.scoring import compute_innings_score
from app.models import BallType, MatchState, MatchStatus

logger = logging.getLogger(__name__)


class CommentaryType(str, Enum):
    SIX = "SIX"
    FOUR = "FOUR"
    DOT = "DOT"
    WICKET = "WICKET"
    PRESSURE = "PRESSURE"
    OVER_END = "OVER_END"
    TIMEOUT = "TIMEOUT"
    INNINGS_BREAK = "INNINGS_BREAK"
    MATCH_END = "MATCH_END"


COMMENTARY_POOLS: dict[CommentaryType, list[str]] = {
    CommentaryType.SIX: [
        "That's a massive six!",
        "Cleared the ropes with ease!",
        "Out of the park!",
        "One swing, six runs!",
        "That flew into the stands!",
        "Maximum! What a hit!",
        "That's gone all the way!",
        "Huge strike, six runs added!",
        "No doubt about that one!",
        "The crowd erupts as it sails over!",
    ],
    CommentaryType.FOUR: [
        "Cracking shot for four!",
        "Beautifully timed boundary.",
        "Placed perfectly, that's four.",
        "Finds the gap with precision.",
        "Four runs, no stopping that.",
        "Excellent timing from the batter.",
        "Races away to the boundary.",
        "That's a classy four.",
        "Controlled shot, easy boundary.",
        "Runs coming freely now.",
    ],
    CommentaryType.DOT: [
        "Dot ball, pressure building.",
        "Good bowling, no run.",
        "Tight line and length.",
        "No scoring opportunity there.",
        "Batters forced to defend.",
        "Another dot, pressure mounts.",
        "Bowler keeps it tight.",
        "Nothing off that delivery.",
        "Runs hard to come by.",
        "Dot ball at an important moment.",
    ],
    CommentaryType.WICKET: [
        "Wicket! Big breakthrough!",
        "Gone! That's a huge moment.",
        "The batter has to walk back.",
        "That wicket changes the game.",
        "Bowling side strikes at the right time.",
        "A massive wicket falls.",
        "Breakthrough for the bowling team!",
        "That could be a turning point.",
        "The crowd senses a shift here.",
        "Wicket at a crucial stage!",
    ],
    CommentaryType.PRESSURE: [
        "Dot balls piling up.",
        "Pressure mounting on the batting side.",
        "Bowler applying serious pressure.",
        "Runs drying up quickly.",
        "The batter is feeling the squeeze.",
        "Momentum slowing down.",
        "This spell is tightening things up.",
        "Bowling side gaining control.",
        "Batting side under pressure now.",
        "Every run is being earned.",
    ],
    CommentaryType.OVER_END: [
        "That's the end of the over.",
        "Over completed.",
        "Bowler finishes the over.",
        "Another over in the books.",
        "End of a disciplined over.",
        "The over comes to a close.",
        "Time to reset for the next over.",
        "Bowler completes the set.",
        "Over done, pressure maintained.",
        "That wraps up the over.",
    ],
    CommentaryType.TIMEOUT: [
        "Match paused for a timeout.",
        "A short break in play.",
        "Timeout taken as teams regroup.",
        "Play halted momentarily.",
        "Timeout called on the field.",
        "A brief pause in the action.",
        "Teams take a moment to reset.",
    ],
    CommentaryType.INNINGS_BREAK: [
        "That's the end of the innings.",
        "Innings complete.",
        "A solid innings comes to an end.",
        "Teams head into the innings break.",
        "Time for a break before the next innings.",
        "The first innings is wrapped up.",
        "That concludes the innings.",
        "All set for the chase after the break.",
    ],
    CommentaryType.MATCH_END: [
        "That's the end of the match!",
        "What a contest it's been!",
        "Match completed.",
        "The final result is in.",
        "A thrilling finish to the game.",
        "The game comes to a close.",
        "That wraps up a fantastic match.",
        "Full time on a great contest.",
    ],
}

_STATUS_COMMENTARY = {
    MatchStatus.TIMEOUT: CommentaryType.TIMEOUT,
    MatchStatus.INNINGS_BREAK: CommentaryType.INNINGS_BREAK,
    MatchStatus.FINISHED: CommentaryType.MATCH_END,
}

# Consecutive dots that earn a PRESSURE line
PRESSURE_DOTS = 3


class CommentaryItem(BaseModel):
    id: str
    text: str
    type: CommentaryType
    timestamp: int


class CommentaryTracker:
    """Per-session commentary memory. Create one per spectator connection."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()
        self.last_line: dict[CommentaryType, str | None] = {t: None for t in CommentaryType}
        self.last_event_key = ""
        self.dot_streak = 0
        self.last_status: MatchStatus | None = None
        self.last_inning_index: int | None = None

    def reset(self) -> None:
        """Forget everything, e.g. when the session moves to a new match."""
        self.last_line = {t: None for t in CommentaryType}
        self.last_event_key = ""
        self.dot_streak = 0
        self.last_status = None
        self.last_inning_index = None

    def pick_line(self, ctype: CommentaryType) -> str:
        """Random line from the pool, never the same as the previous one of this type."""
        pool = COMMENTARY_POOLS[ctype]
        if len(pool) == 1:
            return pool[0]
        available = [line for line in pool if line != self.last_line[ctype]]
        selected = self.rng.choice(available)
        self.last_line[ctype] = selected
        return selected

    def generate(self, ctype: CommentaryType) -> CommentaryItem:
        return CommentaryItem(
            id=uuid.uuid4().hex,
            text=self.pick_line(ctype),
            type=ctype,
            timestamp=int(time.time() * 1000),
        )

    def observe(self, state: MatchState) -> CommentaryItem | None:
        """Look at the latest snapshot and return a line if it deserves one."""
        if self.last_status is None:
            self.last_status = state.status
            self.last_inning_index = state.current_inning_index

        events = state.current_inning.events
        if not events:
            return None

        latest = events[-1]
        event_key = f"{latest.id}-{latest.timestamp}"
        new_ball = event_key != self.last_event_key
        status_changed = state.status != self.last_status
        inning_changed = state.current_inning_index != self.last_inning_index
        if not (new_ball or status_changed):
            return None
        self.last_event_key = event_key
        self.last_status = state.status
        self.last_inning_index = state.current_inning_index

        ctype: CommentaryType | None = None

        if status_changed and state.status in _STATUS_COMMENTARY:
            ctype = _STATUS_COMMENTARY[state.status]
        elif inning_changed:
            ctype = CommentaryType.INNINGS_BREAK
        elif new_ball and latest.type in (BallType.LEGAL, BallType.WIDE, BallType.NOBALL):
            ctype = self._ball_commentary(latest.runs, latest.type, latest.is_wicket)

            score = compute_innings_score(events)
            if score.legal_balls > 0 and score.legal_balls % 6 == 0 and latest.type == BallType.LEGAL:
                if ctype is None or self.rng.random() < settings.over_end_commentary_chance:
                    ctype = CommentaryType.OVER_END

        if ctype is None:
            return None
        item = self.generate(ctype)
        logger.debug(f"[COMMENTARY:{ctype.value}] {item.text}")
        return item

    def _ball_commentary(self, runs: int, ball_type: BallType, is_wicket: bool) -> CommentaryType | None:
        if is_wicket:
            self.dot_streak = 0
            return CommentaryType.WICKET
        if runs == 6:
            self.dot_streak = 0
            return CommentaryType.SIX
        if runs == 4:
            self.dot_streak = 0
            return CommentaryType.FOUR
        if runs == 0 and ball_type == BallType.LEGAL:
            self.dot_streak += 1
            if self.dot_streak == PRESSURE_DOTS:
                self.dot_streak = 0
                return CommentaryType.PRESSURE
            if self.rng.random() < settings.dot_commentary_chance:
                return CommentaryType.DOT
            return None
        if runs > 0:
            self.dot_streak = 0
        return None

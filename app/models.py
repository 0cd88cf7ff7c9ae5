from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BallType(str, Enum):
    """How a delivery is classified for scoring."""

    LEGAL = "legal"
    WIDE = "wide"
    NOBALL = "noball"
    BYE = "bye"
    LEGBYE = "legbye"


# Deliveries that consume one of the six balls of an over
BALL_COUNTING_TYPES = (BallType.LEGAL, BallType.BYE, BallType.LEGBYE)
# Deliveries that award a one-run penalty to the batting side
PENALTY_TYPES = (BallType.WIDE, BallType.NOBALL)


class DismissalType(str, Enum):
    BOWLED = "bowled"
    CAUGHT = "caught"
    LBW = "lbw"
    RUN_OUT = "run-out"
    STUMPED = "stumped"
    HIT_WICKET = "hit-wicket"
    OTHERS = "others"


class TossDecision(str, Enum):
    BAT = "bat"
    BOWL = "bowl"


class MatchStatus(str, Enum):
    """Lifecycle of a match. Allowed moves live in app.engine.state_manager.TRANSITIONS."""

    SETUP = "setup"
    WAITING = "waiting"
    TOSS = "toss"
    LIVE = "live"
    TIMEOUT = "timeout"
    INNINGS_BREAK = "innings_break"
    FINISHED = "finished"
    ENDED = "ended"


class PlayerRole(str, Enum):
    STRIKER = "striker"
    NON_STRIKER = "nonStriker"
    BOWLER = "bowler"


# Player identifiers are free text typed by the scorer. Kept opaque so a
# roster-backed id can replace it without touching the scoring folds.
PlayerId = str


class CamelModel(BaseModel):
    """Base for everything that crosses the persistence/transport boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BallEvent(CamelModel):
    """One delivery. Never edited once appended to an inning."""

    model_config = ConfigDict(frozen=True)

    id: str
    inning: int = Field(..., ge=1, le=2)
    over: int = Field(..., ge=0, description="Over number (0-indexed)")
    ball_in_over: int = Field(..., ge=1, le=6, description="Position within the over (1-6)")
    runs: int = Field(0, ge=0, description="Runs before any extras penalty")
    type: BallType = BallType.LEGAL
    is_wicket: bool = False
    is_free_hit: bool = False
    dismissal_type: Optional[DismissalType] = None
    striker_id: PlayerId = ""
    non_striker_id: PlayerId = ""
    bowler_id: PlayerId = ""
    timestamp: int = Field(0, description="Creation instant in epoch ms; display ordering only")


class Inning(CamelModel):
    team_name: str = ""
    events: list[BallEvent] = Field(default_factory=list)
    is_completed: bool = False


class MatchState(CamelModel):
    """The root aggregate handed to persistence and presentation."""

    team1: str = ""
    team2: str = ""
    overs_per_innings: int = Field(5, ge=1)
    players_per_team: int = Field(11, ge=2)

    toss_winner: Optional[str] = None
    toss_decision: Optional[TossDecision] = None
    batting_first: Optional[str] = None

    innings: list[Inning] = Field(
        default_factory=lambda: [Inning(), Inning()], min_length=2, max_length=2
    )
    current_inning_index: int = Field(0, ge=0, le=1)
    status: MatchStatus = MatchStatus.SETUP

    striker_id: PlayerId = "Batsman 1"
    non_striker_id: PlayerId = "Batsman 2"
    bowler_id: PlayerId = "Bowler 1"

    # Transient: only present while the matching status is active
    innings_break_started_at: Optional[int] = None
    next_innings_starts_at: Optional[int] = None
    timeout_started_at: Optional[int] = None
    timeout_reason: Optional[str] = None

    @property
    def max_wickets(self) -> int:
        return self.players_per_team - 1

    @property
    def total_balls(self) -> int:
        return self.overs_per_innings * 6

    @property
    def current_inning(self) -> Inning:
        return self.innings[self.current_inning_index]

    def to_snapshot(self) -> dict:
        """Serialize for storage. Unset optional fields are left out entirely."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_snapshot(cls, data: dict) -> "MatchState":
        return cls.model_validate(data)


# ------------------------------------------------------------------ #
#  Derived figures (computed on demand, never stored)
# ------------------------------------------------------------------ #


class Extras(CamelModel):
    wide: int = 0
    noball: int = 0
    bye: int = 0
    legbye: int = 0


class InningsScore(CamelModel):
    total_runs: int = 0
    total_wickets: int = 0
    legal_balls: int = 0
    overs: str = "0.0"
    extras: Extras = Field(default_factory=Extras)
    total_extras: int = 0


class BatsmanStats(CamelModel):
    name: PlayerId
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    sr: float = 0.0
    is_out: bool = False
    dismissal: str = ""


class BowlerStats(CamelModel):
    name: PlayerId
    overs: str = "0.0"
    maidens: int = 0
    runs: int = 0
    wickets: int = 0
    economy: float = 0.0
    wides: int = 0
    no_balls: int = 0

    @property
    def figures_str(self) -> str:
        return f"{self.wickets}/{self.runs} ({self.overs})"


class TopBatsman(CamelModel):
    name: PlayerId
    runs: int
    balls: int


class TopBowler(CamelModel):
    name: PlayerId
    wickets: int
    runs: int
    overs: str


class InningsSummary(CamelModel):
    team_name: str
    total_runs: int
    total_wickets: int
    overs: str
    top_batsman: Optional[TopBatsman] = None
    top_bowler: Optional[TopBowler] = None
    extras: int = 0


class PlayerOfTheMatch(CamelModel):
    name: str = "None"
    points: int = -1
    stats: str = ""


class MatchAnalytics(CamelModel):
    required_run_rate: Optional[float] = None
    current_run_rate: float = 0.0
    win_probability: Optional[float] = None
    runs_needed: Optional[int] = None
    balls_remaining: Optional[int] = None
    overs_remaining: Optional[str] = None
    wickets_remaining: Optional[int] = None
    target: Optional[int] = None


class MatchResult(CamelModel):
    winner: Optional[str] = None
    margin: str = ""
    is_tie: bool = False
    description: str = ""

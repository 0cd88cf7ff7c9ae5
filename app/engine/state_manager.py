import logging
import time
import uuid
from collections.abc import Callable
from enum import Enum

from app.engine.scoring import compute_innings_score, is_penalty_type, unique_batsmen
from app.models import (
    BALL_COUNTING_TYPES,
    BallEvent,
    BallType,
    DismissalType,
    Inning,
    MatchState,
    MatchStatus,
    PlayerRole,
    TossDecision,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_STRIKER = "Batsman 1"
PLACEHOLDER_NON_STRIKER = "Batsman 2"
PLACEHOLDER_BOWLER = "Bowler 1"


class MatchAction(str, Enum):
    """Everything that can move a match from one status to another."""

    COMPLETE_SETUP = "complete_setup"
    WAIT = "wait"
    COMPLETE_TOSS = "complete_toss"
    BACK_TO_SETUP = "back_to_setup"
    EXIT = "exit"
    CALL_TIMEOUT = "call_timeout"
    RESUME = "resume"
    END_INNINGS = "end_innings"
    START_NEXT_INNINGS = "start_next_innings"
    FINISH = "finish"
    END_SESSION = "end_session"


TRANSITIONS: dict[tuple[MatchStatus, MatchAction], MatchStatus] = {
    (MatchStatus.SETUP, MatchAction.COMPLETE_SETUP): MatchStatus.TOSS,
    (MatchStatus.SETUP, MatchAction.WAIT): MatchStatus.WAITING,
    (MatchStatus.WAITING, MatchAction.COMPLETE_SETUP): MatchStatus.TOSS,
    (MatchStatus.TOSS, MatchAction.COMPLETE_TOSS): MatchStatus.LIVE,
    (MatchStatus.TOSS, MatchAction.BACK_TO_SETUP): MatchStatus.SETUP,
    (MatchStatus.LIVE, MatchAction.EXIT): MatchStatus.SETUP,
    (MatchStatus.LIVE, MatchAction.CALL_TIMEOUT): MatchStatus.TIMEOUT,
    (MatchStatus.TIMEOUT, MatchAction.RESUME): MatchStatus.LIVE,
    (MatchStatus.LIVE, MatchAction.END_INNINGS): MatchStatus.INNINGS_BREAK,
    (MatchStatus.INNINGS_BREAK, MatchAction.START_NEXT_INNINGS): MatchStatus.LIVE,
    (MatchStatus.LIVE, MatchAction.FINISH): MatchStatus.FINISHED,
    (MatchStatus.FINISHED, MatchAction.END_SESSION): MatchStatus.ENDED,
}


def next_status(current: MatchStatus, action: MatchAction) -> MatchStatus | None:
    """Look up the transition table. None means the move is not allowed."""
    return TRANSITIONS.get((current, action))


def now_ms() -> int:
    return int(time.time() * 1000)


def create_match(
    team1: str = "",
    team2: str = "",
    overs: int = 5,
    players: int = 11,
) -> MatchState:
    """Fresh match in setup, with placeholder names on the field."""
    return MatchState(
        team1=team1,
        team2=team2,
        overs_per_innings=overs,
        players_per_team=players,
        innings=[Inning(team_name=team1), Inning(team_name=team2)],
        current_inning_index=0,
        status=MatchStatus.SETUP,
        striker_id=PLACEHOLDER_STRIKER,
        non_striker_id=PLACEHOLDER_NON_STRIKER,
        bowler_id=PLACEHOLDER_BOWLER,
    )


def is_free_hit(events: list[BallEvent]) -> bool:
    """
    Whether the next delivery is a free hit.

    A no-ball always earns one. A wide bowled during a free hit keeps it
    alive for the following ball; anything else uses it up.
    """
    if not events:
        return False
    last = events[-1]
    if last.type == BallType.NOBALL:
        return True
    return last.is_free_hit and last.type in (BallType.WIDE, BallType.NOBALL)


class StateManager:
    """
    Owns a MatchState and applies scoring actions to it one at a time.

    Every mutator returns True when it changed the state and False when the
    action was rejected. Rejections never raise and never touch the state.
    A read-only manager (a spectator's copy) rejects every mutation.
    """

    def __init__(
        self,
        state: MatchState,
        read_only: bool = False,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.state = state
        self.read_only = read_only
        self._clock = clock

    # ------------------------------------------------------------------ #
    #  Guards
    # ------------------------------------------------------------------ #

    def _can_write(self, action: str) -> bool:
        if self.read_only:
            logger.debug(f"Rejected {action}: caller has no scoring authority")
            return False
        return True

    def _transition(self, action: MatchAction) -> bool:
        target = next_status(self.state.status, action)
        if target is None:
            logger.debug(f"Rejected {action.value} while {self.state.status.value}")
            return False
        logger.info(f"Match status {self.state.status.value} -> {target.value} ({action.value})")
        self.state.status = target
        return True

    def can_score(self) -> bool:
        return not self.read_only and self.state.status == MatchStatus.LIVE

    # ------------------------------------------------------------------ #
    #  Derived helpers
    # ------------------------------------------------------------------ #

    def get_state(self) -> MatchState:
        return self.state

    def target(self) -> int | None:
        """Runs the chasing side needs; only defined in the second innings."""
        if self.state.current_inning_index != 1:
            return None
        return compute_innings_score(self.state.innings[0].events).total_runs + 1

    def upcoming_free_hit(self) -> bool:
        return is_free_hit(self.state.current_inning.events)

    def apply_snapshot(self, snapshot: MatchState) -> None:
        """Replace the whole state with one received from the scorer. Last write wins."""
        self.state = snapshot

    # ------------------------------------------------------------------ #
    #  Pre-match lifecycle
    # ------------------------------------------------------------------ #

    def complete_setup(self, team1: str, team2: str, overs: int, players: int) -> bool:
        if not self._can_write("complete_setup"):
            return False
        if not team1 or not team2 or overs < 1 or players < 2:
            logger.debug(f"Rejected setup: {team1!r} v {team2!r}, {overs} overs, {players} players")
            return False
        if not self._transition(MatchAction.COMPLETE_SETUP):
            return False
        s = self.state
        s.team1 = team1
        s.team2 = team2
        s.overs_per_innings = overs
        s.players_per_team = players
        s.innings = [Inning(team_name=team1), Inning(team_name=team2)]
        return True

    def wait(self) -> bool:
        if not self._can_write("wait"):
            return False
        return self._transition(MatchAction.WAIT)

    def complete_toss(self, winner: str, decision: TossDecision) -> bool:
        if not self._can_write("complete_toss"):
            return False
        s = self.state
        if winner not in (s.team1, s.team2):
            logger.debug(f"Rejected toss: {winner!r} is not playing")
            return False
        try:
            decision = TossDecision(decision)
        except ValueError:
            logger.debug(f"Rejected toss: unknown decision {decision!r}")
            return False
        if not self._transition(MatchAction.COMPLETE_TOSS):
            return False

        team1_batting = (winner == s.team1 and decision == TossDecision.BAT) or (
            winner == s.team2 and decision == TossDecision.BOWL
        )
        bat_first = s.team1 if team1_batting else s.team2
        bat_second = s.team2 if team1_batting else s.team1

        s.toss_winner = winner
        s.toss_decision = decision
        s.batting_first = bat_first
        s.innings = [Inning(team_name=bat_first), Inning(team_name=bat_second)]
        s.current_inning_index = 0
        logger.info(f"Toss: {winner} chose to {decision.value}, {bat_first} bat first")
        return True

    def back_to_setup(self) -> bool:
        if not self._can_write("back_to_setup"):
            return False
        return self._transition(MatchAction.BACK_TO_SETUP)

    def exit_match(self) -> bool:
        """Abandon a live match and return to setup. Scores are kept until the next setup."""
        if not self._can_write("exit_match"):
            return False
        return self._transition(MatchAction.EXIT)

    def end_session(self) -> bool:
        if not self._can_write("end_session"):
            return False
        return self._transition(MatchAction.END_SESSION)

    # ------------------------------------------------------------------ #
    #  On-field actors
    # ------------------------------------------------------------------ #

    def update_player(self, role: PlayerRole, name: str) -> bool:
        """Name the striker, non-striker or bowler. Names are not checked against a roster."""
        if not self._can_write("update_player"):
            return False
        if self.state.status not in (MatchStatus.LIVE, MatchStatus.TIMEOUT):
            return False
        try:
            role = PlayerRole(role)
        except ValueError:
            logger.debug(f"Rejected player update: unknown role {role!r}")
            return False
        if role == PlayerRole.STRIKER:
            self.state.striker_id = name
        elif role == PlayerRole.NON_STRIKER:
            self.state.non_striker_id = name
        else:
            self.state.bowler_id = name
        return True

    # ------------------------------------------------------------------ #
    #  Scoring
    # ------------------------------------------------------------------ #

    def record_ball(
        self,
        runs: int,
        ball_type: BallType = BallType.LEGAL,
        is_wicket: bool = False,
        dismissal: DismissalType | None = None,
    ) -> bool:
        """
        Append one delivery and apply strike rotation plus the end-of-innings
        and end-of-match rules.

        On a free hit the only dismissal recorded is a run-out. Otherwise the
        dismissal defaults to bowled when none is given.
        """
        if not self._can_write("record_ball"):
            return False
        s = self.state
        if s.status != MatchStatus.LIVE:
            logger.debug(f"Rejected ball while {s.status.value}")
            return False
        if runs < 0:
            logger.debug(f"Rejected ball with negative runs ({runs})")
            return False
        try:
            ball_type = BallType(ball_type)
            dismissal = DismissalType(dismissal) if dismissal else None
        except ValueError:
            logger.debug(f"Rejected ball: unknown type {ball_type!r} or dismissal {dismissal!r}")
            return False

        inning = s.current_inning
        score = compute_innings_score(inning.events)
        penalty = 1 if is_penalty_type(ball_type) else 0
        counts_ball = ball_type in BALL_COUNTING_TYPES
        new_total_runs = score.total_runs + runs + penalty
        new_wickets = score.total_wickets + (1 if is_wicket else 0)
        new_legal_balls = score.legal_balls + (1 if counts_ball else 0)

        names = [*unique_batsmen(inning.events), s.striker_id, s.non_striker_id]
        seen = [n for n in dict.fromkeys(names) if n]
        striker = s.striker_id or f"Batsman {len(seen) + 1}"
        non_striker = s.non_striker_id or f"Batsman {len(seen) + 2}"
        bowler = s.bowler_id or PLACEHOLDER_BOWLER

        free_hit = is_free_hit(inning.events)
        dismissal_type = None
        if is_wicket:
            if free_hit:
                dismissal_type = DismissalType.RUN_OUT
            else:
                dismissal_type = dismissal or DismissalType.BOWLED

        event = BallEvent(
            id=uuid.uuid4().hex[:9],
            inning=s.current_inning_index + 1,
            over=score.legal_balls // 6,
            ball_in_over=(score.legal_balls % 6) + 1,
            runs=runs,
            type=ball_type,
            is_wicket=is_wicket,
            is_free_hit=free_hit,
            dismissal_type=dismissal_type,
            striker_id=striker,
            non_striker_id=non_striker,
            bowler_id=bowler,
            timestamp=self._clock(),
        )
        inning.events.append(event)

        # Odd runs: the batsmen crossed
        if runs % 2 != 0:
            striker, non_striker = non_striker, striker
        # Over complete: ends change regardless of the last ball's runs
        if counts_ball and new_legal_balls > 0 and new_legal_balls % 6 == 0:
            striker, non_striker = non_striker, striker

        s.striker_id = striker
        s.non_striker_id = non_striker
        s.bowler_id = bowler
        if is_wicket:
            # Incoming batsman must be named before the next ball
            s.striker_id = ""

        overs_complete = new_legal_balls >= s.total_balls
        all_out = new_wickets >= s.max_wickets

        if s.current_inning_index == 0:
            if overs_complete or all_out:
                self._transition(MatchAction.END_INNINGS)
                s.innings_break_started_at = self._clock()
                s.innings[0].is_completed = True
                logger.info(
                    f"Innings 1 closed at {new_total_runs}/{new_wickets} "
                    f"({'overs complete' if overs_complete else 'all out'})"
                )
        else:
            target = self.target()
            target_reached = target is not None and new_total_runs >= target
            if target_reached or overs_complete or all_out:
                self._transition(MatchAction.FINISH)
                s.innings[1].is_completed = True
                logger.info(f"Match finished at {new_total_runs}/{new_wickets}, target {target}")
        return True

    def undo_last_ball(self) -> bool:
        """
        Drop the most recent delivery of the current inning.

        Striker, non-striker and bowler are left as they are; if the undone
        ball rotated strike the scorer has to fix the names by hand.
        """
        if not self._can_write("undo_last_ball"):
            return False
        if self.state.status != MatchStatus.LIVE:
            logger.debug(f"Rejected undo while {self.state.status.value}")
            return False
        events = self.state.current_inning.events
        if not events:
            return False
        events.pop()
        return True

    # ------------------------------------------------------------------ #
    #  Pauses
    # ------------------------------------------------------------------ #

    def schedule_next_innings(self, seconds: int) -> bool:
        """Stamp when the second innings is due to start (display countdown only)."""
        if not self._can_write("schedule_next_innings"):
            return False
        if self.state.status != MatchStatus.INNINGS_BREAK or seconds < 0:
            return False
        self.state.next_innings_starts_at = self._clock() + seconds * 1000
        return True

    def start_next_innings(self) -> bool:
        if not self._can_write("start_next_innings"):
            return False
        if not self._transition(MatchAction.START_NEXT_INNINGS):
            return False
        s = self.state
        s.current_inning_index = 1
        s.striker_id = PLACEHOLDER_STRIKER
        s.non_striker_id = PLACEHOLDER_NON_STRIKER
        s.bowler_id = PLACEHOLDER_BOWLER
        s.innings_break_started_at = None
        s.next_innings_starts_at = None
        return True

    def call_timeout(self, reason: str = "Drinks Break") -> bool:
        if not self._can_write("call_timeout"):
            return False
        if not self._transition(MatchAction.CALL_TIMEOUT):
            return False
        self.state.timeout_started_at = self._clock()
        self.state.timeout_reason = reason
        return True

    def resume_match(self) -> bool:
        if not self._can_write("resume_match"):
            return False
        if not self._transition(MatchAction.RESUME):
            return False
        self.state.timeout_started_at = None
        self.state.timeout_reason = None
        return True

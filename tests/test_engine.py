"""
Unit tests for the match state machine (StateManager). Pure in-memory, no DB.
"""

from app.engine.scoring import compute_innings_score
from app.engine.state_manager import (
    MatchAction,
    StateManager,
    create_match,
    is_free_hit,
    next_status,
)
from app.models import BallType, DismissalType, MatchState, MatchStatus, PlayerRole, TossDecision


def _score(sm: StateManager, index: int | None = None):
    idx = sm.state.current_inning_index if index is None else index
    return compute_innings_score(sm.state.innings[idx].events)


def _ends(sm: StateManager) -> tuple[str, str]:
    return sm.state.striker_id, sm.state.non_striker_id


# --------------------------------------------------------------------------- #
#  Setup & toss
# --------------------------------------------------------------------------- #


def test_create_match_defaults():
    state = create_match("Sharks", "Eagles", overs=3, players=6)
    assert state.status == MatchStatus.SETUP
    assert state.max_wickets == 5
    assert state.innings[0].team_name == "Sharks"
    assert (state.striker_id, state.non_striker_id, state.bowler_id) == ("Batsman 1", "Batsman 2", "Bowler 1")


def test_setup_rejects_bad_config():
    sm = StateManager(create_match())
    assert sm.complete_setup("Sharks", "", 5, 11) is False
    assert sm.complete_setup("Sharks", "Eagles", 0, 11) is False
    assert sm.complete_setup("Sharks", "Eagles", 5, 1) is False
    assert sm.state.status == MatchStatus.SETUP


def test_toss_decides_batting_order():
    sm = StateManager(create_match())
    sm.complete_setup("Sharks", "Eagles", 5, 11)
    assert sm.complete_toss("Eagles", TossDecision.BOWL)
    assert sm.state.status == MatchStatus.LIVE
    assert sm.state.batting_first == "Sharks"
    assert sm.state.innings[0].team_name == "Sharks"
    assert sm.state.innings[1].team_name == "Eagles"

    sm = StateManager(create_match())
    sm.complete_setup("Sharks", "Eagles", 5, 11)
    assert sm.complete_toss("Eagles", "bat")
    assert sm.state.batting_first == "Eagles"
    assert sm.state.innings[0].team_name == "Eagles"
    assert sm.state.toss_decision == TossDecision.BAT


def test_toss_unknown_team_rejected():
    sm = StateManager(create_match())
    sm.complete_setup("Sharks", "Eagles", 5, 11)
    assert sm.complete_toss("Lions", TossDecision.BAT) is False
    assert sm.state.status == MatchStatus.TOSS
    assert sm.back_to_setup() is True
    assert sm.state.status == MatchStatus.SETUP


def test_toss_unknown_decision_rejected():
    sm = StateManager(create_match())
    sm.complete_setup("Sharks", "Eagles", 5, 11)
    assert sm.complete_toss("Sharks", "field") is False
    assert sm.state.status == MatchStatus.TOSS
    assert sm.state.toss_winner is None


def test_waiting_then_setup():
    sm = StateManager(create_match())
    assert sm.wait() is True
    assert sm.state.status == MatchStatus.WAITING
    assert sm.complete_setup("Sharks", "Eagles", 5, 11) is True
    assert sm.state.status == MatchStatus.TOSS


def test_transition_table():
    assert next_status(MatchStatus.LIVE, MatchAction.CALL_TIMEOUT) == MatchStatus.TIMEOUT
    assert next_status(MatchStatus.TIMEOUT, MatchAction.RESUME) == MatchStatus.LIVE
    assert next_status(MatchStatus.INNINGS_BREAK, MatchAction.START_NEXT_INNINGS) == MatchStatus.LIVE
    assert next_status(MatchStatus.FINISHED, MatchAction.RESUME) is None
    assert next_status(MatchStatus.SETUP, MatchAction.FINISH) is None


# --------------------------------------------------------------------------- #
#  Recording balls
# --------------------------------------------------------------------------- #


def test_record_ball_builds_event(live):
    assert live.record_ball(4)
    event = live.state.innings[0].events[0]
    assert event.inning == 1
    assert event.over == 0
    assert event.ball_in_over == 1
    assert event.runs == 4
    assert event.type == BallType.LEGAL
    assert event.striker_id == "Batsman 1"
    assert event.non_striker_id == "Batsman 2"
    assert event.bowler_id == "Bowler 1"
    assert event.timestamp == 1_000
    assert event.dismissal_type is None


def test_over_and_ball_numbering_skips_extras(live):
    for _ in range(6):
        live.record_ball(0)
    live.record_ball(0, BallType.WIDE)
    live.record_ball(1)
    wide, next_ball = live.state.innings[0].events[-2:]
    assert (wide.over, wide.ball_in_over) == (1, 1)
    assert (next_ball.over, next_ball.ball_in_over) == (1, 1)
    assert _score(live).legal_balls == 7


def test_two_singles_restore_strike(live):
    start = _ends(live)
    live.record_ball(1)
    assert _ends(live) == (start[1], start[0])
    live.record_ball(1)
    assert _ends(live) == start


def test_even_runs_keep_strike(live):
    start = _ends(live)
    live.record_ball(2)
    live.record_ball(4)
    assert _ends(live) == start


def test_over_end_swaps_on_dot(live):
    start = _ends(live)
    for _ in range(6):
        live.record_ball(0)
    assert _ends(live) == (start[1], start[0])


def test_over_end_swaps_on_boundary(live):
    start = _ends(live)
    for _ in range(5):
        live.record_ball(0)
    live.record_ball(4)
    assert _ends(live) == (start[1], start[0])


def test_single_off_last_ball_keeps_strike(live):
    start = _ends(live)
    for _ in range(5):
        live.record_ball(0)
    live.record_ball(1)
    assert _ends(live) == start


def test_wides_do_not_count(live):
    for _ in range(3):
        live.record_ball(0, BallType.WIDE)
    score = _score(live)
    assert score.legal_balls == 0
    assert score.total_runs == 3
    assert score.extras.wide == 3


def test_wicket_clears_striker_and_default_names(live):
    live.record_ball(0, is_wicket=True)
    assert live.state.striker_id == ""
    assert live.state.non_striker_id == "Batsman 2"
    assert live.state.innings[0].events[0].dismissal_type == DismissalType.BOWLED

    live.record_ball(0)
    assert live.state.innings[0].events[1].striker_id == "Batsman 3"


def test_named_dismissal(live):
    live.record_ball(0, is_wicket=True, dismissal=DismissalType.CAUGHT)
    assert live.state.innings[0].events[0].dismissal_type == DismissalType.CAUGHT


def test_update_player(live):
    assert live.update_player(PlayerRole.STRIKER, "Ravi")
    assert live.update_player(PlayerRole.NON_STRIKER, "Sam")
    assert live.update_player("bowler", "Khan")
    live.record_ball(0)
    event = live.state.innings[0].events[0]
    assert (event.striker_id, event.non_striker_id, event.bowler_id) == ("Ravi", "Sam", "Khan")


def test_negative_runs_rejected(live):
    assert live.record_ball(-1) is False
    assert live.state.innings[0].events == []


def test_unknown_names_rejected(live):
    assert live.update_player("captain", "Ravi") is False
    assert live.record_ball(1, "bouncer") is False
    assert live.record_ball(0, is_wicket=True, dismissal="retired") is False
    assert live.state.innings[0].events == []
    assert live.state.status == MatchStatus.LIVE


# --------------------------------------------------------------------------- #
#  Free hit
# --------------------------------------------------------------------------- #


def test_free_hit_after_no_ball(live):
    live.record_ball(0, BallType.NOBALL)
    assert live.upcoming_free_hit() is True
    live.record_ball(0, is_wicket=True)
    event = live.state.innings[0].events[-1]
    assert event.is_free_hit is True
    assert event.dismissal_type == DismissalType.RUN_OUT


def test_free_hit_survives_a_wide(live):
    live.record_ball(0, BallType.NOBALL)
    live.record_ball(0, BallType.WIDE)
    live.record_ball(0)
    live.record_ball(0)
    events = live.state.innings[0].events
    assert [e.is_free_hit for e in events] == [False, True, True, False]


def test_plain_wide_gives_no_free_hit(live):
    live.record_ball(0, BallType.WIDE)
    assert live.upcoming_free_hit() is False
    assert is_free_hit([]) is False


# --------------------------------------------------------------------------- #
#  Undo
# --------------------------------------------------------------------------- #


def test_undo_pops_without_restoring_names(live):
    live.record_ball(1)
    after = _ends(live)
    assert live.undo_last_ball() is True
    assert live.state.innings[0].events == []
    assert _ends(live) == after


def test_undo_empty_log_is_noop(live):
    assert live.undo_last_ball() is False


def test_undo_then_redo_same_score(live):
    live.record_ball(4)
    live.record_ball(1, BallType.NOBALL)
    before = _score(live)
    live.undo_last_ball()
    live.record_ball(1, BallType.NOBALL)
    assert _score(live) == before


# --------------------------------------------------------------------------- #
#  Innings break & match end
# --------------------------------------------------------------------------- #


def test_innings_break_on_overs_complete(live_factory):
    sm = live_factory(overs=2, players=2)
    for _ in range(11):
        sm.record_ball(0)
    assert sm.state.status == MatchStatus.LIVE
    sm.record_ball(0)
    assert sm.state.status == MatchStatus.INNINGS_BREAK
    assert sm.state.innings[0].is_completed is True
    assert sm.state.innings_break_started_at == 1_000


def test_innings_break_on_all_out(live_factory):
    sm = live_factory(overs=2, players=2)
    sm.record_ball(3)
    sm.record_ball(0, is_wicket=True)
    assert sm.state.status == MatchStatus.INNINGS_BREAK
    assert _score(sm, 0).legal_balls == 2


def test_scoring_blocked_during_innings_break(live_factory):
    sm = live_factory(overs=1, players=11)
    for _ in range(6):
        sm.record_ball(0)
    assert sm.record_ball(6) is False
    assert sm.undo_last_ball() is False
    assert len(sm.state.innings[0].events) == 6


def test_start_next_innings(live_factory):
    sm = live_factory(overs=1, players=11)
    for _ in range(6):
        sm.record_ball(1)
    assert sm.schedule_next_innings(120) is True
    assert sm.state.next_innings_starts_at == 1_000 + 120_000
    assert sm.update_player(PlayerRole.STRIKER, "X") is False

    assert sm.start_next_innings() is True
    s = sm.state
    assert s.status == MatchStatus.LIVE
    assert s.current_inning_index == 1
    assert _ends(sm) == ("Batsman 1", "Batsman 2")
    assert s.bowler_id == "Bowler 1"
    assert s.innings_break_started_at is None
    assert s.next_innings_starts_at is None
    snapshot = s.to_snapshot()
    assert "inningsBreakStartedAt" not in snapshot
    assert "nextInningsStartsAt" not in snapshot


def test_start_next_innings_only_from_break(live):
    assert live.start_next_innings() is False
    assert live.schedule_next_innings(60) is False
    assert live.state.current_inning_index == 0


def test_finish_exactly_when_target_crossed(live_factory):
    sm = live_factory(overs=20, players=11)
    for _ in range(12):
        sm.record_ball(4)
    sm.record_ball(1)
    sm.record_ball(1)
    sm.record_ball(0, is_wicket=True)
    sm.update_player(PlayerRole.STRIKER, "Next")
    sm.record_ball(0, is_wicket=True)
    assert (_score(sm, 0).total_runs, _score(sm, 0).total_wickets) == (50, 2)

    # close the first innings by overs
    sm.state.overs_per_innings = 3
    sm.record_ball(0)
    sm.record_ball(0)
    assert sm.state.status == MatchStatus.INNINGS_BREAK
    sm.state.overs_per_innings = 20
    sm.start_next_innings()
    assert sm.target() == 51

    for _ in range(12):
        sm.record_ball(4)
    sm.record_ball(1)
    sm.record_ball(1)
    assert _score(sm).total_runs == 50
    assert sm.state.status == MatchStatus.LIVE
    sm.record_ball(1)
    assert _score(sm).total_runs == 51
    assert sm.state.status == MatchStatus.FINISHED
    assert sm.record_ball(1) is False


def test_end_to_end_overs_complete_just_short():
    sm = StateManager(create_match(), clock=lambda: 5)
    sm.complete_setup("Sharks", "Eagles", 4, 11)
    sm.complete_toss("Sharks", TossDecision.BAT)

    for _ in range(24):
        sm.record_ball(1)
    first = _score(sm, 0)
    assert (first.total_runs, first.total_wickets, first.legal_balls) == (24, 0, 24)
    assert sm.state.status == MatchStatus.INNINGS_BREAK

    sm.start_next_innings()
    assert sm.target() == 25
    for _ in range(23):
        sm.record_ball(1)
    assert sm.state.status == MatchStatus.LIVE
    sm.record_ball(1)
    second = _score(sm)
    assert second.total_runs == 24
    assert sm.state.status == MatchStatus.FINISHED
    assert sm.state.innings[1].is_completed is True


def test_second_innings_all_out_finishes(live_factory):
    sm = live_factory(overs=1, players=2)
    sm.record_ball(0, is_wicket=True)
    sm.start_next_innings()
    sm.record_ball(0, is_wicket=True)
    assert sm.state.status == MatchStatus.FINISHED
    assert sm.end_session() is True
    assert sm.state.status == MatchStatus.ENDED


# --------------------------------------------------------------------------- #
#  Timeout
# --------------------------------------------------------------------------- #


def test_timeout_blocks_scoring_and_resume_clears(live):
    assert live.call_timeout("Rain") is True
    assert live.state.status == MatchStatus.TIMEOUT
    assert live.state.timeout_reason == "Rain"
    assert live.state.timeout_started_at == 1_000
    assert live.record_ball(4) is False
    assert live.call_timeout() is False

    assert live.resume_match() is True
    assert live.state.status == MatchStatus.LIVE
    snapshot = live.state.to_snapshot()
    assert "timeoutStartedAt" not in snapshot
    assert "timeoutReason" not in snapshot
    assert live.record_ball(4) is True


def test_resume_only_from_timeout(live):
    assert live.resume_match() is False


def test_exit_match_returns_to_setup(live):
    assert live.exit_match() is True
    assert live.state.status == MatchStatus.SETUP


# --------------------------------------------------------------------------- #
#  Observers & snapshots
# --------------------------------------------------------------------------- #


def test_read_only_manager_rejects_everything(live):
    observer = StateManager(live.state, read_only=True)
    assert observer.record_ball(4) is False
    assert observer.call_timeout() is False
    assert observer.update_player(PlayerRole.BOWLER, "Khan") is False
    assert observer.undo_last_ball() is False
    assert live.state.innings[0].events == []
    assert live.state.bowler_id == "Bowler 1"


def test_snapshot_round_trip(live):
    live.record_ball(4)
    live.record_ball(0, BallType.NOBALL)
    live.record_ball(0, is_wicket=True)
    live.call_timeout("Drinks Break")

    snapshot = live.state.to_snapshot()
    assert snapshot["status"] == "timeout"
    assert snapshot["innings"][0]["events"][2]["dismissalType"] == "run-out"
    assert "dismissalType" not in snapshot["innings"][0]["events"][0]

    restored = MatchState.from_snapshot(snapshot)
    assert restored == live.state
    assert restored.to_snapshot() == snapshot


def test_apply_snapshot_replaces_state(live):
    other = create_match("A", "B")
    observer = StateManager(live.state, read_only=True)
    observer.apply_snapshot(other)
    assert observer.get_state() is other

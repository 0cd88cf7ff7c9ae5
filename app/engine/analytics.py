from app.engine.scoring import balls_to_overs, compute_innings_score
from app.models import MatchAnalytics, MatchResult, MatchState, MatchStatus


def calculate_current_run_rate(runs: int, balls_bowled: int) -> float:
    """Current Run Rate."""
    if balls_bowled == 0:
        return 0.0
    return runs / (balls_bowled / 6)


def calculate_required_run_rate(runs_needed: int, balls_remaining: int) -> float | None:
    """Required Run Rate. None once no balls are left, 0 once the target is met."""
    if balls_remaining <= 0:
        return None
    if runs_needed <= 0:
        return 0.0
    return runs_needed / (balls_remaining / 6)


def calculate_win_probability(
    current_runs: int,
    current_wickets: int,
    balls_bowled: int,
    target: int | None,
    total_balls: int,
    total_wickets: int,
) -> float | None:
    """
    Chasing side's chance of winning, as a percentage.

    Rule-based display aid: 100 or 0 for settled outcomes, otherwise a
    weighted blend of run-rate, wickets and balls, clamped to [5, 95].
    """
    if not target:
        return None

    runs_needed = target - current_runs
    balls_remaining = total_balls - balls_bowled
    wickets_remaining = total_wickets - current_wickets

    if runs_needed <= 0:
        return 100.0
    if wickets_remaining <= 0:
        return 0.0
    if balls_remaining <= 0:
        return 0.0

    crr = calculate_current_run_rate(current_runs, balls_bowled)
    rrr = calculate_required_run_rate(runs_needed, balls_remaining)
    if rrr is None:
        return None

    run_rate_factor = min(crr / rrr, 2)
    wicket_factor = wickets_remaining / total_wickets
    ball_factor = balls_remaining / total_balls

    raw = (run_rate_factor * 0.5 + wicket_factor * 0.3 + ball_factor * 0.2) * 100
    return max(5.0, min(95.0, raw))


def first_innings_target(state: MatchState) -> int | None:
    if state.current_inning_index != 1:
        return None
    return compute_innings_score(state.innings[0].events).total_runs + 1


def get_match_analytics(state: MatchState) -> MatchAnalytics:
    """All the live figures a scoreboard needs, recomputed from the log."""
    score = compute_innings_score(state.current_inning.events)

    total_balls = state.total_balls
    balls_bowled = score.legal_balls
    balls_remaining = total_balls - balls_bowled

    target = first_innings_target(state)
    runs_needed = target - score.total_runs if target is not None else None
    wickets_remaining = state.max_wickets - score.total_wickets

    required_run_rate = None
    if target is not None and balls_remaining > 0 and runs_needed and runs_needed > 0:
        required_run_rate = calculate_required_run_rate(runs_needed, balls_remaining)

    win_probability = None
    if target is not None:
        win_probability = calculate_win_probability(
            score.total_runs,
            score.total_wickets,
            balls_bowled,
            target,
            total_balls,
            state.max_wickets,
        )

    return MatchAnalytics(
        required_run_rate=required_run_rate,
        current_run_rate=calculate_current_run_rate(score.total_runs, balls_bowled),
        win_probability=win_probability,
        runs_needed=runs_needed,
        balls_remaining=balls_remaining,
        overs_remaining=balls_to_overs(balls_remaining) if balls_remaining > 0 else None,
        wickets_remaining=wickets_remaining,
        target=target,
    )


def win_probability_band(probability: float | None) -> str:
    if probability is None:
        return "unknown"
    if probability >= 70:
        return "favoured"
    if probability >= 40:
        return "balanced"
    return "behind"


def required_rate_band(rrr: float | None, crr: float) -> str:
    if rrr is None:
        return "unknown"
    if crr >= rrr:
        return "favoured"
    if crr >= rrr * 0.8:
        return "balanced"
    return "behind"


def compute_match_result(state: MatchState) -> MatchResult | None:
    """Winner and margin once the match is over; None while it is still in play."""
    if state.status not in (MatchStatus.FINISHED, MatchStatus.ENDED):
        return None

    first = compute_innings_score(state.innings[0].events)
    second = compute_innings_score(state.innings[1].events)
    first_team = state.innings[0].team_name
    second_team = state.innings[1].team_name

    if second.total_runs >= first.total_runs + 1:
        wickets_left = state.max_wickets - second.total_wickets
        margin = f"{wickets_left} Wickets"
        return MatchResult(
            winner=second_team,
            margin=margin,
            description=f"{second_team} won by {margin}",
        )
    if second.total_runs == first.total_runs:
        return MatchResult(is_tie=True, description="Match tied")

    margin = f"{first.total_runs - second.total_runs} Runs"
    return MatchResult(
        winner=first_team,
        margin=margin,
        description=f"{first_team} won by {margin}",
    )

"""
Scoring calculator.

Pure folds over an inning's event log. Nothing here keeps state between calls,
so every figure can be recomputed from scratch after any ball or undo.
"""

from collections.abc import Iterable, Sequence

from app.models import (
    BALL_COUNTING_TYPES,
    PENALTY_TYPES,
    BallEvent,
    BallType,
    BatsmanStats,
    BowlerStats,
    DismissalType,
    Extras,
    Inning,
    InningsScore,
    InningsSummary,
    MatchState,
    PlayerId,
    PlayerOfTheMatch,
    TopBatsman,
    TopBowler,
)


def balls_to_overs(balls: int) -> str:
    """27 balls -> '4.3' (cricket notation, not a decimal)."""
    return f"{balls // 6}.{balls % 6}"


def compute_innings_score(events: Sequence[BallEvent]) -> InningsScore:
    total_runs = 0
    total_wickets = 0
    legal_balls = 0
    extras = Extras()

    for event in events:
        total_runs += event.runs

        if event.type == BallType.WIDE:
            total_runs += 1
            extras.wide += 1
        elif event.type == BallType.NOBALL:
            total_runs += 1
            extras.noball += 1
        elif event.type == BallType.BYE:
            extras.bye += event.runs
        elif event.type == BallType.LEGBYE:
            extras.legbye += event.runs

        if event.is_wicket:
            total_wickets += 1

        if event.type in BALL_COUNTING_TYPES:
            legal_balls += 1

    return InningsScore(
        total_runs=total_runs,
        total_wickets=total_wickets,
        legal_balls=legal_balls,
        overs=balls_to_overs(legal_balls),
        extras=extras,
        total_extras=extras.wide + extras.noball + extras.bye + extras.legbye,
    )


def get_batsman_stats(events: Iterable[BallEvent], player: PlayerId) -> BatsmanStats:
    """
    Figures for one batsman, counted only on balls where they were on strike.

    Run-outs are never attributed: the log does not say which batsman was run
    out, so neither striker nor non-striker is marked out for them.
    """
    runs = balls = fours = sixes = 0
    is_out = False
    dismissal = ""

    for e in events:
        if e.striker_id != player:
            continue
        # No-ball runs belong to the batsman; wides, byes and leg-byes do not
        if e.type not in (BallType.WIDE, BallType.BYE, BallType.LEGBYE):
            runs += e.runs
            if e.runs == 4:
                fours += 1
            if e.runs == 6:
                sixes += 1
        if e.type != BallType.WIDE:
            balls += 1
        if e.is_wicket and e.dismissal_type != DismissalType.RUN_OUT:
            is_out = True
            dismissal = e.dismissal_type.value if e.dismissal_type else "out"

    return BatsmanStats(
        name=player,
        runs=runs,
        balls=balls,
        fours=fours,
        sixes=sixes,
        sr=(runs / balls) * 100 if balls > 0 else 0.0,
        is_out=is_out,
        dismissal=dismissal,
    )


def get_bowler_stats(events: Iterable[BallEvent], player: PlayerId) -> BowlerStats:
    """
    Figures for one bowler.

    Maidens are not tracked and always report 0.
    """
    runs_conceded = legal_balls = wickets = wides = noballs = 0

    for e in events:
        if e.bowler_id != player:
            continue
        if e.type == BallType.WIDE:
            runs_conceded += e.runs + 1
            wides += 1
        elif e.type == BallType.NOBALL:
            runs_conceded += e.runs + 1
            noballs += 1
        elif e.type == BallType.LEGAL:
            runs_conceded += e.runs
            legal_balls += 1
        else:
            # bye / legbye: uses up a ball, not charged to the bowler
            legal_balls += 1

        if e.is_wicket and e.dismissal_type != DismissalType.RUN_OUT:
            wickets += 1

    return BowlerStats(
        name=player,
        overs=balls_to_overs(legal_balls),
        maidens=0,
        runs=runs_conceded,
        wickets=wickets,
        economy=runs_conceded / (legal_balls / 6) if legal_balls > 0 else 0.0,
        wides=wides,
        no_balls=noballs,
    )


def unique_batsmen(events: Iterable[BallEvent]) -> list[PlayerId]:
    """Strikers in order of first appearance."""
    return list(dict.fromkeys(e.striker_id for e in events if e.striker_id))


def unique_bowlers(events: Iterable[BallEvent]) -> list[PlayerId]:
    """Bowlers in order of first appearance."""
    return list(dict.fromkeys(e.bowler_id for e in events if e.bowler_id))


def batting_points(stats: BatsmanStats) -> int:
    points = stats.runs + stats.fours + stats.sixes * 2
    if stats.runs >= 50:
        points += 10
    if stats.runs >= 100:
        points += 20
    return points


def bowling_points(stats: BowlerStats) -> int:
    points = stats.wickets * 20
    if stats.wickets >= 3:
        points += 10
    if stats.wickets >= 5:
        points += 20
    return points


def calculate_player_of_the_match(state: MatchState) -> PlayerOfTheMatch:
    """
    Rank every player across both innings by batting plus bowling points.

    Ties go to the player who entered the points table first: batsmen in order
    of first appearance on strike, then bowlers in order of first appearance.
    """
    all_events = [*state.innings[0].events, *state.innings[1].events]
    # dict preserves insertion order, which is the tie-break
    table: dict[PlayerId, dict] = {}

    for name in unique_batsmen(all_events):
        stats = get_batsman_stats(all_events, name)
        points = batting_points(stats)
        if points > 0:
            entry = table.setdefault(name, {"points": 0, "stats": []})
            entry["points"] += points
            if stats.runs > 20:
                entry["stats"].append(f"{stats.runs} Runs")

    for name in unique_bowlers(all_events):
        stats = get_bowler_stats(all_events, name)
        points = bowling_points(stats)
        if points > 0:
            entry = table.setdefault(name, {"points": 0, "stats": []})
            entry["points"] += points
            entry["stats"].append(f"{stats.wickets} Wickets")

    winner = PlayerOfTheMatch()
    for name, entry in table.items():
        if entry["points"] > winner.points:
            winner = PlayerOfTheMatch(
                name=name, points=entry["points"], stats=" & ".join(entry["stats"])
            )
    return winner


def generate_innings_summary(inning: Inning) -> InningsSummary:
    score = compute_innings_score(inning.events)

    top_batsman: TopBatsman | None = None
    max_runs = 0
    for name in unique_batsmen(inning.events):
        stats = get_batsman_stats(inning.events, name)
        if stats.runs > max_runs:
            max_runs = stats.runs
            top_batsman = TopBatsman(name=stats.name, runs=stats.runs, balls=stats.balls)

    top_bowler: TopBowler | None = None
    max_wickets = 0
    for name in unique_bowlers(inning.events):
        stats = get_bowler_stats(inning.events, name)
        if stats.wickets > max_wickets or (
            stats.wickets == max_wickets
            and (top_bowler is None or stats.runs < top_bowler.runs)
        ):
            max_wickets = stats.wickets
            top_bowler = TopBowler(
                name=stats.name, wickets=stats.wickets, runs=stats.runs, overs=stats.overs
            )

    return InningsSummary(
        team_name=inning.team_name,
        total_runs=score.total_runs,
        total_wickets=score.total_wickets,
        overs=score.overs,
        top_batsman=top_batsman,
        top_bowler=top_bowler,
        extras=score.total_extras,
    )


# ------------------------------------------------------------------ #
#  Display helpers over the log
# ------------------------------------------------------------------ #

def ball_display(event: BallEvent) -> str:
    """Short label for a delivery in the over strip, e.g. '4', 'W', '2wd', '1lb'."""
    if event.is_wicket:
        return "W"
    if event.type == BallType.WIDE:
        return f"{event.runs + 1 if event.runs > 0 else ''}wd"
    if event.type == BallType.NOBALL:
        return f"{event.runs + 1 if event.runs > 0 else ''}nb"
    if event.type == BallType.BYE:
        return f"{event.runs}b"
    if event.type == BallType.LEGBYE:
        return f"{event.runs}lb"
    return str(event.runs)


def overs_history(events: Iterable[BallEvent]) -> list[tuple[int, list[BallEvent]]]:
    """Events grouped by over number, most recent over first."""
    groups: dict[int, list[BallEvent]] = {}
    for e in events:
        groups.setdefault(e.over, []).append(e)
    return sorted(groups.items(), key=lambda item: item[0], reverse=True)


def is_new_over(events: Sequence[BallEvent]) -> bool:
    """True when the next delivery starts a fresh over (bowler may change)."""
    legal_balls = compute_innings_score(events).legal_balls
    if legal_balls == 0:
        return True
    if legal_balls % 6 != 0:
        return False
    if not events:
        return True
    return events[-1].over < legal_balls // 6


def last_ball_was_wicket(events: Sequence[BallEvent]) -> bool:
    return bool(events) and events[-1].is_wicket


def is_hat_trick(events: Sequence[BallEvent], bowler: PlayerId) -> bool:
    """True if the bowler's previous two deliveries both took wickets."""
    bowler_events = [e for e in events if e.bowler_id == bowler]
    if len(bowler_events) < 2:
        return False
    return bowler_events[-1].is_wicket and bowler_events[-2].is_wicket


def is_penalty_type(ball_type: BallType) -> bool:
    return ball_type in PENALTY_TYPES

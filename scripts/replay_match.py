#!/usr/bin/env python3
"""
Replay a scored match from a JSON action list and print the scorecard.

Runs the state machine in-process; no server or database needed.

File format:
    {
      "team1": "Sharks", "team2": "Eagles", "overs": 2, "players": 4,
      "toss": {"winner": "Sharks", "decision": "bat"},
      "actions": [
        {"player": {"role": "striker", "name": "Ravi"}},
        {"ball": {"runs": 4}},
        {"ball": {"runs": 0, "type": "wide"}},
        {"ball": {"runs": 0, "is_wicket": true}},
        {"undo": true},
        {"timeout": "Rain"}, {"resume": true},
        {"next_innings": true}
      ]
    }

Usage:
    python scripts/replay_match.py data/sample/sharks_v_eagles.json
    python scripts/replay_match.py match.json --json   # dump final snapshot
"""

import argparse
import json
import sys
from pathlib import Path

# Allow importing app when run as script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.engine.analytics import compute_match_result, get_match_analytics  # noqa: E402
from app.engine.scoring import (  # noqa: E402
    calculate_player_of_the_match,
    compute_innings_score,
    get_batsman_stats,
    get_bowler_stats,
    unique_batsmen,
    unique_bowlers,
)
from app.engine.state_manager import StateManager, create_match  # noqa: E402
from app.models import BallType  # noqa: E402


def replay(raw: dict) -> StateManager:
    manager = StateManager(create_match())
    manager.complete_setup(raw["team1"], raw["team2"], raw.get("overs", 5), raw.get("players", 11))
    toss = raw.get("toss", {"winner": raw["team1"], "decision": "bat"})
    manager.complete_toss(toss["winner"], toss["decision"])

    for i, action in enumerate(raw.get("actions", []), start=1):
        if "ball" in action:
            b = action["ball"]
            ok = manager.record_ball(
                b.get("runs", 0), BallType(b.get("type", "legal")), b.get("is_wicket", False), b.get("dismissal")
            )
        elif "player" in action:
            ok = manager.update_player(action["player"]["role"], action["player"]["name"])
        elif action.get("undo"):
            ok = manager.undo_last_ball()
        elif "timeout" in action:
            ok = manager.call_timeout(action["timeout"] or "Drinks Break")
        elif action.get("resume"):
            ok = manager.resume_match()
        elif action.get("next_innings"):
            ok = manager.start_next_innings()
        else:
            print(f"  #{i}: unknown action {action}")
            continue
        if not ok:
            print(f"  #{i}: ignored {action} (status {manager.state.status.value})")
    return manager


def print_scorecard(manager: StateManager) -> None:
    state = manager.state
    for inning in state.innings:
        if not inning.events:
            continue
        score = compute_innings_score(inning.events)
        print(f"\n{inning.team_name}: {score.total_runs}/{score.total_wickets} ({score.overs} ov), extras {score.total_extras}")
        for name in unique_batsmen(inning.events):
            b = get_batsman_stats(inning.events, name)
            out = b.dismissal if b.is_out else "not out"
            print(f"  {b.name:<20} {b.runs:>4} ({b.balls})  4s:{b.fours} 6s:{b.sixes}  SR {b.sr:.1f}  {out}")
        for name in unique_bowlers(inning.events):
            bw = get_bowler_stats(inning.events, name)
            print(f"  {bw.name:<20} {bw.figures_str}  econ {bw.economy:.2f}  wd {bw.wides} nb {bw.no_balls}")

    analytics = get_match_analytics(state)
    print(f"\nStatus: {state.status.value}  CRR {analytics.current_run_rate:.2f}")
    result = compute_match_result(state)
    if result:
        potm = calculate_player_of_the_match(state)
        print(result.description)
        print(f"Player of the match: {potm.name} ({potm.points} pts) {potm.stats}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a scored match from a JSON file")
    parser.add_argument("file", type=Path)
    parser.add_argument("--json", action="store_true", help="Print the final snapshot as JSON")
    args = parser.parse_args()

    if not args.file.exists():
        print(f"File not found: {args.file}")
        sys.exit(1)
    with open(args.file, encoding="utf-8") as f:
        raw = json.load(f)

    manager = replay(raw)
    if args.json:
        print(json.dumps(manager.state.to_snapshot(), indent=2))
    else:
        print_scorecard(manager)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Score matches from JSON action files via the API.

Reads the same file format as replay_match.py and plays it against the
running server using the public scorer endpoints, so spectators joined by
PIN see the match unfold ball by ball.

Workflow per file:
  1. POST  /api/matches                     create match (prints PIN + scorer token)
  2. POST  /api/matches/{id}/setup          teams, overs, players
  3. POST  /api/matches/{id}/toss           toss winner and decision
  4. POST  /api/matches/{id}/balls ...      one request per action

Usage:
    python scripts/load_match.py                       # load all JSON files
    python scripts/load_match.py sharks_v_eagles.json  # load one file
    python scripts/load_match.py --delay 2             # pause between actions
    python scripts/load_match.py --base-url http://localhost:8001

Requires the server to be running (uvicorn app.main:app).
"""

import argparse
import json
import sys
import time
from pathlib import Path

import httpx

FEED_DIR = Path(__file__).resolve().parent.parent / "data" / "sample"
DEFAULT_BASE_URL = "http://localhost:8000"


def action_request(match_id: int, action: dict) -> tuple[str, dict | None]:
    """Map one action from the file to (path, json body)."""
    base = f"/api/matches/{match_id}"
    if "ball" in action:
        return f"{base}/balls", action["ball"]
    if "player" in action:
        return f"{base}/players", action["player"]
    if action.get("undo"):
        return f"{base}/undo", None
    if "timeout" in action:
        return f"{base}/timeout", {"reason": action["timeout"]} if action["timeout"] else None
    if action.get("resume"):
        return f"{base}/resume", None
    if action.get("next_innings"):
        return f"{base}/next-innings", None
    raise ValueError(f"unknown action {action}")


def load_file(client: httpx.Client, filepath: Path, delay: float) -> bool:
    """Create, set up and score one match. Returns True on success."""
    print(f"\n{'='*60}")
    print(f"Loading: {filepath.name}")
    print(f"{'='*60}")

    with open(filepath, encoding="utf-8") as f:
        raw = json.load(f)

    resp = client.post("/api/matches", json={})
    resp.raise_for_status()
    created = resp.json()
    match_id = created["match_id"]
    headers = {"X-Scorer-Token": created["scorer_token"]}
    print(f"  Created match: id={match_id}, PIN {created['pin']}")
    print(f"  Scorer token:  {created['scorer_token']}")

    resp = client.post(
        f"/api/matches/{match_id}/setup",
        json={
            "team1": raw["team1"],
            "team2": raw["team2"],
            "overs": raw.get("overs", 5),
            "players": raw.get("players", 11),
        },
        headers=headers,
    )
    resp.raise_for_status()

    toss = raw.get("toss", {"winner": raw["team1"], "decision": "bat"})
    resp = client.post(f"/api/matches/{match_id}/toss", json=toss, headers=headers)
    resp.raise_for_status()
    print(f"  {raw['team1']} vs {raw['team2']}, {toss['winner']} won the toss and chose to {toss['decision']}")

    ignored = 0
    state = resp.json()["state"]
    for i, action in enumerate(raw.get("actions", []), start=1):
        path, body = action_request(match_id, action)
        resp = client.post(path, json=body, headers=headers)
        if resp.status_code == 409:
            print(f"  #{i}: ignored {action} ({resp.json()['detail']['message']})")
            ignored += 1
            continue
        resp.raise_for_status()
        state = resp.json()["state"]
        if delay:
            time.sleep(delay)

    print(f"  SUCCESS: match_id={match_id}, status {state['status']}, {ignored} actions ignored")
    return True


def main():
    parser = argparse.ArgumentParser(description="Score matches via the API")
    parser.add_argument(
        "files", nargs="*",
        help="JSON filenames to load (default: all *.json in data/sample/)",
    )
    parser.add_argument(
        "--base-url", default=DEFAULT_BASE_URL,
        help=f"Server base URL (default: {DEFAULT_BASE_URL})",
    )
    parser.add_argument(
        "--delay", type=float, default=0.0,
        help="Seconds to wait between actions (default: 0)",
    )
    args = parser.parse_args()

    # Resolve files
    if args.files:
        filepaths = []
        for name in args.files:
            p = FEED_DIR / name
            if not p.exists():
                print(f"ERROR: file not found: {p}")
                sys.exit(1)
            filepaths.append(p)
    else:
        filepaths = sorted(FEED_DIR.glob("*.json"))
        if not filepaths:
            print(f"No JSON files found in {FEED_DIR}")
            sys.exit(1)

    print(f"Server: {args.base_url}")
    print(f"Files:  {len(filepaths)}")

    # Verify server is reachable
    client = httpx.Client(base_url=args.base_url, timeout=60.0)
    try:
        resp = client.get("/openapi.json")
        resp.raise_for_status()
    except httpx.ConnectError:
        print(f"\nERROR: Cannot connect to {args.base_url}")
        print("Make sure the server is running: uvicorn app.main:app")
        sys.exit(1)

    success = 0
    failed = 0
    for fp in filepaths:
        try:
            if load_file(client, fp, args.delay):
                success += 1
            else:
                failed += 1
        except (httpx.HTTPError, KeyError, ValueError) as e:
            print(f"\n  FAILED: {e}")
            failed += 1

    print(f"\n{'='*60}")
    print(f"Done: {success} succeeded, {failed} failed")
    print(f"{'='*60}")

    client.close()


if __name__ == "__main__":
    main()

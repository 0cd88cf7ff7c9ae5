"""
Spectator interactions: emoji reactions, canned support messages and the
system lines posted around the innings break.

Spectators can't type free text; every message is rendered from a template.
"""

import time
from collections.abc import Callable
from enum import Enum


class ReactionType(str, Enum):
    CLAP = "clap"
    FIRE = "fire"
    SUPPORT = "support"
    WOW = "wow"


REACTION_EMOJIS: dict[ReactionType, str] = {
    ReactionType.CLAP: "👏",
    ReactionType.FIRE: "🔥",
    ReactionType.SUPPORT: "💪",
    ReactionType.WOW: "😮",
}


class MessageTemplate(str, Enum):
    TEAM_SUPPORT = "team_support"
    PLAYER_SUPPORT = "player_support"
    BIG_MOMENT = "big_moment"
    NEED_WICKET = "need_wicket"
    WELL_PLAYED = "well_played"


MESSAGE_TEMPLATES: dict[MessageTemplate, str] = {
    MessageTemplate.TEAM_SUPPORT: "Come on {{team}}!",
    MessageTemplate.PLAYER_SUPPORT: "Let's go {{player}}!",
    MessageTemplate.BIG_MOMENT: "Big moment for {{player}} 🔥",
    MessageTemplate.NEED_WICKET: "We need a wicket, {{team}}!",
    MessageTemplate.WELL_PLAYED: "Well played {{player}} 👏",
}


def render_message(key: MessageTemplate, team: str | None = None, player: str | None = None) -> str:
    """Fill a template with team/player names. Missing names leave the placeholder."""
    rendered = MESSAGE_TEMPLATES[MessageTemplate(key)]
    if team:
        rendered = rendered.replace("{{team}}", team)
    if player:
        rendered = rendered.replace("{{player}}", player)
    return rendered


def reaction_emoji(reaction: ReactionType) -> str:
    return REACTION_EMOJIS[ReactionType(reaction)]


def is_valid_template_key(key: str) -> bool:
    return key in {t.value for t in MessageTemplate}


def is_valid_reaction(reaction: str) -> bool:
    return reaction in {r.value for r in ReactionType}


# ------------------------------------------------------------------ #
#  System messages
# ------------------------------------------------------------------ #

def innings_break_start(team_name: str, runs: int, wickets: int) -> str:
    return f"🏏 End of innings! {team_name}: {runs}/{wickets}"


def target_set(target: int, overs: int) -> str:
    return f"🎯 Target: {target} runs in {overs} overs"


def next_innings_soon() -> str:
    return "⏳ Second innings coming up..."


def innings_break_end() -> str:
    return "🚀 Second innings begins!"


# ------------------------------------------------------------------ #
#  Cooldown
# ------------------------------------------------------------------ #

class InteractionCooldown:
    """
    One interaction per spectator every `seconds`.

    Keyed by whatever identifies a spectator (client id, IP). The clock is
    injectable for tests.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._last: dict[str, float] = {}

    def remaining(self, key: str) -> float:
        last = self._last.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.seconds - (self._clock() - last))

    def can_interact(self, key: str) -> bool:
        return self.remaining(key) <= 0

    def hit(self, key: str) -> bool:
        """Record an interaction. Returns False (and records nothing) while cooling down."""
        if not self.can_interact(key):
            return False
        now = self._clock()
        # spectators whose cooldown has run out are forgotten
        self._last = {k: t for k, t in self._last.items() if now - t < self.seconds}
        self._last[key] = now
        return True

    def __len__(self) -> int:
        return len(self._last)

    def clear(self) -> None:
        self._last.clear()

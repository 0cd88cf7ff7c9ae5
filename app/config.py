from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # SQLite file holding match snapshots and spectator interactions
    db_path: str = "data/matches.db"

    # Defaults offered when a scorer creates a match
    default_overs: int = 5
    default_players: int = 11

    # Innings break countdown shown to spectators (seconds)
    innings_break_seconds: int = 300
    default_timeout_reason: str = "Drinks Break"

    # Spectator interactions
    interaction_cooldown_seconds: float = 5.0
    max_feed_items: int = 50

    # Auto commentary: chance of a line on a plain dot ball / at over end
    dot_commentary_chance: float = 0.2
    over_end_commentary_chance: float = 0.5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

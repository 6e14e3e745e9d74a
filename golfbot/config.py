from dataclasses import dataclass
import os

from dotenv import load_dotenv


DEFAULT_GAME_URL = "https://kindahardgolf.com"


@dataclass(frozen=True, slots=True)
class Settings:
    discord_token: str
    database_path: str
    command_guild_id: int | None
    game_url: str
    daily_cache_minutes: int
    daily_fetch_timeout: float


def load_settings() -> Settings:
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("Missing DISCORD_TOKEN in environment.")

    data_dir = os.getenv("DATA_DIR", "").strip() or "."
    default_path = os.path.join(data_dir, "leaderboard.db")
    database_path = os.getenv("SQLITE_PATH", default_path).strip() or default_path

    guild_raw = os.getenv("COMMAND_GUILD_ID", "").strip()
    try:
        command_guild_id = int(guild_raw) if guild_raw else None
    except ValueError:
        raise RuntimeError("COMMAND_GUILD_ID must be a numeric guild id.") from None

    game_url = os.getenv("GAME_URL", DEFAULT_GAME_URL).strip() or DEFAULT_GAME_URL

    try:
        daily_cache_minutes = int(os.getenv("DAILY_CACHE_MINUTES", "30"))
    except ValueError:
        raise RuntimeError("DAILY_CACHE_MINUTES must be a whole number of minutes.") from None
    if daily_cache_minutes < 1:
        raise RuntimeError("DAILY_CACHE_MINUTES must be at least 1.")

    try:
        daily_fetch_timeout = float(os.getenv("DAILY_FETCH_TIMEOUT", "10"))
    except ValueError:
        raise RuntimeError("DAILY_FETCH_TIMEOUT must be a number of seconds.") from None
    if daily_fetch_timeout <= 0:
        raise RuntimeError("DAILY_FETCH_TIMEOUT must be positive.")

    return Settings(
        discord_token=token,
        database_path=database_path,
        command_guild_id=command_guild_id,
        game_url=game_url,
        daily_cache_minutes=daily_cache_minutes,
        daily_fetch_timeout=daily_fetch_timeout,
    )

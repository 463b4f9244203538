"""Application settings loaded from .env via pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_URL = "https://api.spotify.com/v1"

SCOPES = " ".join(
    [
        "playlist-read-private",
        "playlist-modify-private",
        "playlist-modify-public",
    ]
)


class Settings(BaseSettings):
    """Central configuration — values come from environment / .env file."""

    # Spotify
    spotify_client_id: str = ""

    # App
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"
    log_level: str = "INFO"
    collation_locale: str = ""  # empty → LC_COLLATE from the environment

    # Database
    db_path: str = "./data/sortify.db"

    # Session
    token_refresh_buffer_seconds: int = 300

    # Reordering
    write_batch_size: int = 100
    default_sort_rules: str = "artist release_date album title"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}/callback"

    @property
    def db_abs_path(self) -> Path:
        """Return the database path as an absolute Path, creating parents if needed."""
        p = Path(self.db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p.resolve()


@lru_cache
def get_settings() -> Settings:
    """Cached singleton so .env is read only once."""
    return Settings()

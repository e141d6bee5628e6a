"""Configuration management for series-track."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment or config file."""

    # Database (empty means the SQLite file under data/)
    database_url: str = ""

    # Metadata provider: "tmdb" or "tvdb"
    metadata_provider: str = "tmdb"

    # TMDB API
    tmdb_api_key: str = ""
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    # When set, requests go through this proxy, which adds its own key
    tmdb_proxy_base_url: str = ""

    # TVDB API
    tvdb_api_key: str = ""
    tvdb_pin: str = ""
    tvdb_base_url: str = "https://api4.thetvdb.com/v4"

    # Seconds before an upstream request is abandoned
    upstream_timeout: float = 30.0

    # Curated lists
    curated_limit: int = 12

    # Server
    host: str = "0.0.0.0"
    port: int = 8096
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_prefix = "SERIES_TRACK_"
        env_file = ".env"


# Global settings instance
settings = Settings()


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_dir = get_project_root() / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def get_database_path() -> Path:
    """Get the SQLite database path."""
    return get_data_dir() / "series-track.db"


def get_database_url() -> str:
    """Get the configured database URL, defaulting to the SQLite file."""
    if settings.database_url:
        return settings.database_url
    return f"sqlite:///{get_database_path()}"

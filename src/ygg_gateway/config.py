"""Centralised configuration via Pydantic Settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Gateway configuration loaded from environment variables."""

    model_config = {"env_prefix": "YGG_", "frozen": True}

    # Account used by the shared session
    username: str = ""
    password: str = ""

    # Origin site
    domain: str = "www.yggtorrent.top"
    # Pinned DNS answer for ``domain`` (Direct mode). Empty = public DNS.
    resolve_ip: str = ""
    # Value sent in CF-Connecting-IP / X-Forwarded-For. Empty = headers omitted.
    own_ip: str = ""
    # curl_cffi browser fingerprint profile
    impersonate: str = "chrome"
    request_timeout: int = 30

    # FlareSolverr. Empty = Direct strategy.
    flaresolverr_url: str = ""
    flaresolverr_timeout: int = 60

    # Session persistence
    use_sessions: bool = True
    session_dir: str = "sessions"

    # TMDB bearer token for tmdbid/imdbid searches
    tmdb_token: str = ""

    # Downloads
    turbo_enabled: bool = False
    download_cooldown_seconds: float = 30.0
    remaining_downloads_path: str = (
        "/torrent/application/windows/316475-microsoft-toolkit-v2-6-4-activateur-office-2016---2019-windows-10"
    )

    # Outbound pacing towards the origin site
    rate_limit_concurrency: int = 2
    rate_limit_interval_seconds: float = 0.5

    # Category taxonomy snapshot (JSON); empty uses the bundled tree
    categories_file: str = ""

    # HTTP layer
    api_host: str = "0.0.0.0"
    api_port: int = 8715


def get_settings() -> Settings:
    """Factory, allows overriding in tests."""
    return Settings()

"""
Application settings using Pydantic.

Provides environment-based configuration loading with DASHREPORT_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Grafana
    grafana_url: str = "http://localhost:3000"
    grafana_token: str | None = None
    grafana_api: str = "v4"  # v4 (slug), v5 (uid)

    # Series-label lookups through the Grafana datasource proxy
    datasource_proxy_id: int = 1
    resolver_timeout: float = 300.0

    # HTTP client settings
    http_timeout: float = 60.0

    # Panel render sizes (pixels)
    graph_width: int = 1000
    graph_height: int = 500
    singlestat_width: int = 300
    singlestat_height: int = 150

    # Report build
    tmp_dir: str = "tmp"
    layout_file: str | None = None
    font_dir: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8686

    # Logging
    log_level: str = "info"
    log_file: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "DASHREPORT_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Configuration management for the proxy server."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    # HTTP Client Configuration
    http_timeout_seconds: float = 10.0
    http_max_connections: int = 100
    http_max_keepalive_connections: int = 20
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Stream Proxy Configuration
    proxy_path: str = "/proxy/stream"
    playlist_cache_ttl_seconds: float = 5.0
    playlist_cache_purge_factor: int = 10
    segment_cache_max_age_seconds: int = 3600
    # Comma-separated "host_suffix=origin" pairs; Referer is the origin plus "/"
    provider_origins: str = "pluto.tv=https://pluto.tv"

    # Pluto TV Session Configuration
    pluto_channels_url: str = "https://api.pluto.tv/v2/channels"
    pluto_channels_simple_url: str = "https://api.pluto.tv/v2/channels.json"
    pluto_boot_url: str = "https://boot.pluto.tv/v4/start"
    pluto_app_version: str = "8.0.0"
    pluto_device_version: str = "120.0.0"
    pluto_server_side_ads: bool = False
    schedule_window_hours: int = 6
    channels_cache_max_age_seconds: int = 60
    channels_stale_while_revalidate_seconds: int = 300

    # Catalog Configuration
    iptv_org_api_base: str = "https://iptv-org.github.io/api"
    catalog_cache_ttl_seconds: float = 1800.0

    # Metadata Configuration
    tmdb_api_key: str = ""
    tmdb_api_base: str = "https://api.themoviedb.org/3"
    tmdb_image_base: str = "https://image.tmdb.org/t/p"

    @property
    def provider_origin_map(self) -> dict[str, str]:
        """Parse provider origins from comma-separated "suffix=origin" pairs."""
        origins = {}
        for pair in self.provider_origins.split(","):
            suffix, sep, origin = pair.partition("=")
            if sep and suffix.strip() and origin.strip():
                origins[suffix.strip().lower()] = origin.strip().rstrip("/")
        return origins


# Global settings instance
settings = Settings()

"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for the visit tracker, loaded from
environment variables with sensible defaults.

Usage:
    from tracker.config import get_settings
    settings = get_settings()
    config = settings.tracker.to_tracking_config()
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tracker.models.visits import TrackingConfig


def parse_pattern_list(raw: str | None) -> list[str]:
    """Split a comma/newline separated setting into trimmed, non-empty entries."""
    if not raw:
        return []
    return [p.strip() for p in raw.replace("\n", ",").split(",") if p.strip()]


def _parse_bool(v):
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes")
    return bool(v)


class TrackerSettings(BaseSettings):
    """Visit tracking rules."""

    model_config = SettingsConfigDict(env_prefix="TRACKER_", extra="ignore")

    status: bool = Field(default=True, description="Record visits at all")
    exclude_ips: str = Field(default="", description="IP ranges never tracked")
    track_robots: bool = Field(default=False, description="Record visits from robots")
    exclude_routes: str = Field(default="", description="Route name patterns never tracked")
    exclude_paths: str = Field(
        default="metrics",
        description="Path patterns never tracked. Add health here when probes hit /health",
    )
    site_root_url: str = Field(default="", description="Own root URL, dropped as referrer")
    online_timeout: int = Field(
        default=10, ge=1, description="Minutes since the last visit a visitor counts as online"
    )
    trust_forwarded: bool = Field(
        default=True,
        description="Take the client IP from x-forwarded-for. Only safe behind a proxy that sets it",
    )

    @field_validator("status", "track_robots", "trust_forwarded", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

    @property
    def excluded_ip_ranges(self) -> list[str]:
        return parse_pattern_list(self.exclude_ips)

    @property
    def excluded_route_patterns(self) -> list[str]:
        return parse_pattern_list(self.exclude_routes)

    @property
    def excluded_path_patterns(self) -> list[str]:
        return parse_pattern_list(self.exclude_paths)

    def to_tracking_config(self) -> TrackingConfig:
        """Freeze the current settings into the value used per request."""
        return TrackingConfig(
            tracking_enabled=self.status,
            excluded_ip_ranges=tuple(self.excluded_ip_ranges),
            track_robots=self.track_robots,
            excluded_route_patterns=tuple(self.excluded_route_patterns),
            excluded_path_patterns=tuple(self.excluded_path_patterns),
            site_root_url=self.site_root_url,
        )


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str = Field(default="", description="Redis password")
    max_connections: int = Field(default=200, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    health_check_interval: int = Field(default=30, description="Health check interval in seconds")
    retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, description="Socket connect timeout in seconds")
    visit_log_size: int = Field(default=1000, description="Visits kept in the Redis visit log")


class PostgresSettings(BaseSettings):
    """PostgreSQL connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="postgres", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="tracker", description="PostgreSQL user")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(
        default="tracker",
        validation_alias="POSTGRES_DB",
        description="Database name",
    )
    pool_min_size: int = Field(default=2, description="Minimum pool size")
    pool_max_size: int = Field(default=10, description="Maximum pool size")
    pool_timeout: int = Field(default=30, description="Timeout for acquiring connections")
    pool_max_lifetime: int = Field(
        default=1800, description="Maximum connection lifetime in seconds"
    )
    pool_max_idle: int = Field(
        default=300, description="Maximum idle time before closing connection"
    )

    def get_dsn(self) -> str:
        """Generate PostgreSQL DSN connection string."""
        return (
            f"host={self.host} port={self.port} user={self.user} "
            f"password={self.password} dbname={self.database} sslmode=disable"
        )


class GeoIPSettings(BaseSettings):
    """GeoIP configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    db_path: str = Field(default="/app/GeoLite2-City.mmdb", alias="geoip_db_path")


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    tracker: bool = Field(default=False, alias="tracker_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class FeatureSettings(BaseSettings):
    """Feature flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    visits_db: bool = Field(default=False, alias="enable_visits_db")
    redis_visit_log: bool = Field(default=True, alias="enable_redis_visit_log")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.tracker = TrackerSettings()
        self.redis = RedisSettings()
        self.postgres = PostgresSettings()
        self.geoip = GeoIPSettings()
        self.debug = DebugSettings()
        self.features = FeatureSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()

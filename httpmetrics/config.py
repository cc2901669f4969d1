"""
Configuration Management Module

Configures the default HTTP client via environment variables or .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Measurement Configuration Class

    All configuration items can be overridden by environment variables named
    after the fields (uppercase) with the HTTPMETRICS_ prefix.
    """

    # Application Config
    DEBUG: bool = False

    # HTTP Client Config
    # Overall request timeout (seconds)
    HTTP_TIMEOUT: float = 30.0
    # Connect timeout (seconds), per address; async clients also bound name resolution with it
    HTTP_CONNECT_TIMEOUT: float = 30.0
    # Verify server certificates for https:// requests
    VERIFY_TLS: bool = True
    # Negotiate HTTP/2 via ALPN when the server offers it
    HTTP2: bool = False
    # Redirects would add connections to a single measurement, so they are off
    FOLLOW_REDIRECTS: bool = False

    # Connection Pool Config
    MAX_CONNECTIONS: int = 100
    MAX_KEEPALIVE_CONNECTIONS: int = 20
    # Idle keep-alive connection expiry (seconds)
    KEEPALIVE_EXPIRY: float = 90.0

    # Tracing Config
    # Resolve host names explicitly so DNS lookup time is reported.
    # When disabled, the timeline is anchored at TCP connect start.
    RESOLVE_DNS: bool = True

    model_config = SettingsConfigDict(
        env_prefix="HTTPMETRICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get measurement configuration (Singleton)

    Uses lru_cache to ensure configuration is loaded only once.

    Returns:
        Settings: Configuration instance
    """
    return Settings()

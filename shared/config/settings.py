"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storefront settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Hosted backend (auth + data + storage)
    backend_url: str = ""
    backend_anon_key: str = ""
    http_timeout: float = 10.0

    # Tables exposed by the backend's REST layer
    profiles_table: str = "profiles"
    orders_table: str = "orders"
    order_items_table: str = "order_items"

    # Client-local storage
    local_storage_path: str = ".storefront/local_storage.json"
    session_storage_key: str = "supabase.auth.token"
    guest_storage_key: str = "cloud_guest_profile"
    cart_storage_key: str = "cart"

    # Session refresh policy: poll every interval, refresh when expiry is closer than threshold
    session_refresh_interval: int = 5 * 60
    session_refresh_threshold: int = 10 * 60

    # Per-identifier throttling for auth attempts
    login_rate_limit: int = 5
    login_rate_window: int = 15 * 60
    signup_rate_limit: int = 3
    signup_rate_window: int = 60 * 60

    # Checkout
    delivery_fee: float = 2.99
    allow_guest_checkout: bool = True

    password_reset_redirect_url: str = "http://localhost:5173/reset-password"

    # Environment
    environment: str = "development"
    debug: bool = True
    app_port: int = 8010

    @property
    def is_configured(self) -> bool:
        return not self.validate_configuration()

    def validate_configuration(self) -> list[str]:
        """
        Check that the backend connection is usable.

        Returns a list of problems. Empty list means the storefront can start.
        """
        errors = []

        if not self.backend_url:
            errors.append("STOREFRONT_BACKEND_URL is not set")
        else:
            parsed = urlparse(self.backend_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append("STOREFRONT_BACKEND_URL must be an http(s) URL")

        if not self.backend_anon_key:
            errors.append("STOREFRONT_BACKEND_ANON_KEY is not set")

        if self.session_refresh_interval <= 0:
            errors.append("STOREFRONT_SESSION_REFRESH_INTERVAL must be positive")
        elif self.session_refresh_threshold <= self.session_refresh_interval:
            # A threshold shorter than the polling interval lets a token expire between two checks
            errors.append(
                "STOREFRONT_SESSION_REFRESH_THRESHOLD must be larger than the refresh interval"
            )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


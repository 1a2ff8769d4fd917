"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for required variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REMINDER_TEMPLATE = (
    "Bonjour {client_name}, il vous reste {balance_remaining} MAD à payer pour les "
    "services : {tour_title}. Merci de régulariser."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # Backend
    # ==========================================================================
    backend_webhook_url: str = Field(description="Webhook receiving inbound chat messages")
    backend_sync_contacts_url: str = Field(description="Endpoint receiving roster pushes")
    backend_reminders_url: str = Field(
        description="Endpoint listing clients who owe a payment reminder"
    )
    backend_auth_token: SecretStr | None = Field(
        default=None,
        description="Bearer token sent with every backend call",
    )
    backend_timeout_seconds: float = Field(
        default=10.0, description="Timeout for a single backend request"
    )

    # ==========================================================================
    # Chat bridge
    # ==========================================================================
    bridge_url: str = Field(
        default="ws://localhost:3001",
        description="WebSocket URL of the chat-network bridge process",
    )
    bridge_request_timeout_seconds: float = Field(
        default=30.0, description="Timeout for a single bridge request"
    )
    bridge_reconnect_seconds: float = Field(
        default=5.0, description="Delay between bridge socket reconnect attempts"
    )
    session_auth_dir: str = Field(
        default=".wwebjs_auth",
        description="Directory holding persisted session credentials",
    )

    # ==========================================================================
    # Session lifecycle timers
    # ==========================================================================
    ready_watchdog_seconds: float = Field(
        default=60.0,
        description="Max wait between 'authenticated' and 'ready' before a forced restart",
    )
    roster_sync_interval_seconds: float = Field(
        default=120.0, description="Period of the recurring roster sync"
    )
    reconnect_delay_seconds: float = Field(
        default=5.0, description="Backoff before re-initializing after a disconnection"
    )
    restart_delay_seconds: float = Field(
        default=2.0,
        description="Delay before re-initializing after a manual disconnect/clear-session",
    )
    destroy_retry_delay_seconds: float = Field(
        default=2.0, description="Delay before retrying a failed client teardown"
    )

    # ==========================================================================
    # Messaging
    # ==========================================================================
    default_country_code: str = Field(
        default="212",
        description="Country code replacing a national trunk '0' in phone numbers",
    )
    address_suffix: str = Field(
        default="@c.us", description="Chat-network address suffix for individual users"
    )
    reminder_template: str = Field(
        default=DEFAULT_REMINDER_TEMPLATE,
        description="Payment reminder text (client_name, balance_remaining, tour_title)",
    )
    intake_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Live messages held while not Ready; extra ones are dropped",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    cors_origins: list[str] = Field(
        default_factory=list, description="Origins allowed to call the HTTP API"
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    host: str = Field(default="0.0.0.0", description="Bind address for the HTTP server")
    port: int = Field(default=3000, description="Port for the HTTP server")

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def backend_token(self) -> str | None:
        """Plain bearer token for backend calls, if configured."""
        if self.backend_auth_token is None:
            return None
        return self.backend_auth_token.get_secret_value() or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()  # type: ignore[call-arg]  # loads from env

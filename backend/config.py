"""
Configuration management for the Bugsymart order & delivery backend.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() refuses to boot production without a
      JWT secret or with wildcard CORS
    - realtime_event_ttl_days bounds how long the event audit trail is kept
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/bugsymart.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    # Base URL for server-to-server calls and the bundled scripts
    api_base_url: str = "http://localhost:8000"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "bugsymart-api"
    jwt_access_ttl_minutes: int = 7 * 24 * 60  # 7 days

    # ── Real-time ───────────────────────────────────────────────────
    realtime_event_ttl_days: int = 30
    event_sweep_seconds: int = 3600
    outbox_poll_seconds: int = 5
    outbox_max_attempts: int = 5
    outbox_batch_size: int = 100
    outbox_claim_timeout_seconds: int = 60
    ws_reconnect_delay_seconds: float = 1.0
    ws_send_timeout_seconds: float = 2.0  # a subscriber slower than this is dropped

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def ws_base_url(self) -> str:
        """WebSocket URL derived from api_base_url (http -> ws, https -> wss)."""
        if self.api_base_url.startswith("https://"):
            return "wss://" + self.api_base_url[len("https://"):]
        if self.api_base_url.startswith("http://"):
            return "ws://" + self.api_base_url[len("http://"):]
        return self.api_base_url

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to verify bearer tokens on every request and WebSocket handshake."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (every authenticated request will fail)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"{w}")


# Global settings instance
settings = Settings()

"""
Configuration management for the delivery order core.

Loads settings from .env via pydantic-settings.

Notes:
    - validate_production_settings() enforces strict CORS and a JWT secret
      in production
    - delivery_fee and cancellation_penalty_rate are business constants kept
      here so deployments can tune them without code changes
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/delivery_core.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Auth (JWT issued by the identity service) ───────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "delivery-identity"
    jwt_access_ttl_minutes: int = 60

    # ── Order economics ─────────────────────────────────────────────
    delivery_fee: float = 25.0               # fixed fee added to every order
    cancellation_penalty_rate: float = 0.10  # withheld from paid cancellations

    # ── Ratings ─────────────────────────────────────────────────────
    rating_comment_max_length: int = 500

    # ── Real-time notifications ─────────────────────────────────────
    notification_send_timeout_seconds: float = 5.0

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

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
                    "It is used to verify access tokens from the identity service."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (all authenticated calls will fail)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"{w}")


# Global settings instance
settings = Settings()

"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_KEY_DEFAULTS = {"change-me-in-production", "secret", "dev-service-key"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ghostwriter"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"
    allowed_origins: str = "http://localhost:3000"

    # Internal API key (server-to-server callers)
    service_api_key: str | None = None

    # Database
    database_url: str = "sqlite:///./ghostwriter.db"

    # Credit allotments
    public_monthly_credits: int = 25
    skool_monthly_credits: int = 100

    # Referral rewards
    referral_inviter_credits: int = 40
    referral_invitee_credits: int = 20

    # Invite codes
    invite_owner_email: str = ""
    invite_code_prefix: str = "BLACKAI"


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    key = settings.service_api_key or ""
    if key in _INSECURE_KEY_DEFAULTS or len(key) < 32:
        print(
            "\n❌  FATAL: SERVICE_API_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)

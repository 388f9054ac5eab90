"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "mediaforge"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console or json
    allowed_origins: str = "http://localhost:3000"
    rate_limit_default: str = "200/minute"
    rate_limit_storage_uri: str = "memory://"  # limits storage URI; per-process by default
    app_url: str | None = None  # Public dashboard URL used for checkout redirects

    # Database
    database_url: str = "sqlite:///./mediaforge.db"

    # Clerk
    clerk_jwt_key: str | None = None  # PEM public key for networkless session verification
    clerk_authorized_parties: str = ""  # Comma-separated allowed `azp` origins
    clerk_webhook_secret: str | None = None

    # Stripe
    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    stripe_webhook_secret: str | None = None

    # Admin
    admin_emails: str = ""  # Comma-separated

    # Credits
    free_credits_for_new_users: int = 50
    referral_signup_bonus: int = 20
    referral_pro_purchase_reward: int = 50

    @property
    def admin_email_list(self) -> list[str]:
        """Parsed admin e-mail allowlist."""
        return [
            email.strip().lower()
            for email in self.admin_emails.split(",")
            if email.strip()
        ]

    @property
    def authorized_parties(self) -> list[str]:
        """Parsed Clerk authorized parties."""
        return [
            party.strip()
            for party in self.clerk_authorized_parties.split(",")
            if party.strip()
        ]


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production" and not settings.clerk_jwt_key:
    print(
        "\n❌  FATAL: CLERK_JWT_KEY is not set.\n"
        "   Copy the PEM public key from the Clerk dashboard (API Keys → JWT public key).\n",
        file=sys.stderr,
    )
    sys.exit(1)

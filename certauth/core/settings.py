import secrets
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Required in production:
      - JWT_SECRET_KEY (auto-generated for development, which invalidates
        every issued credential on restart)

    Optional:
      - DATABASE_URL: admin account store (defaults to a local SQLite file)
      - SESSION_SWEEP_INTERVAL_SECONDS: 0 disables the background expiry sweep
      - SMTP_HOST: outbound mail server for password reset links (unset
        disables delivery, the link is only logged as unsent)
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./certauth.db"

    # JWT Authentication settings
    jwt_secret_key: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        validation_alias="JWT_SECRET_KEY",
        description="Secret key for JWT signing. MUST be set in production.",
    )
    jwt_access_token_expire_minutes: int = Field(
        default=120,
        validation_alias="JWT_ACCESS_TOKEN_EXPIRE_MINUTES",
        description="Access token expiration in minutes (default 2 hours)",
    )
    password_reset_expire_minutes: int = Field(
        default=60,
        validation_alias="PASSWORD_RESET_EXPIRE_MINUTES",
        description="Password reset token expiration in minutes",
    )
    bcrypt_rounds: int = Field(
        default=12,
        validation_alias="BCRYPT_ROUNDS",
        description="bcrypt cost factor for admin password hashes",
    )

    # Session registry
    session_sweep_interval_seconds: int = Field(
        default=300,
        validation_alias="SESSION_SWEEP_INTERVAL_SECONDS",
        description="Seconds between expired-session sweeps (0 disables)",
    )

    # Admin self-service toggles
    allow_registration: bool = Field(default=True, validation_alias="ALLOW_REGISTRATION")
    expose_reset_token: bool = Field(
        default=False,
        validation_alias="EXPOSE_RESET_TOKEN",
        description="Return the reset token in the forgot-password response (dev only)",
    )

    # Outbound email (password reset links)
    smtp_host: Optional[str] = Field(default=None, validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=25, validation_alias="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, validation_alias="SMTP_USER")
    smtp_password: Optional[str] = Field(default=None, validation_alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(
        default=False,
        validation_alias="SMTP_USE_TLS",
        description="Upgrade the SMTP connection with STARTTLS before sending",
    )
    from_email: str = Field(default="noreply@certauth.local", validation_alias="FROM_EMAIL")
    password_reset_url: str = Field(
        default="http://localhost:5173/reset-password",
        validation_alias="PASSWORD_RESET_URL",
        description="Frontend page that accepts ?token=<reset token>",
    )

    # API prefix (kept constant for reverse-proxy routing)
    api_prefix: str = "/api"

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]


settings = Settings()

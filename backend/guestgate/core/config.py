"""Application configuration loaded from environment variables.

Settings for database, API, session and invite security, email delivery and
rate limiting. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "guestgate_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "guestgate"
    database_user: str = "guestgate_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # Never set to ["*"]: session cookies require credentialed requests
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    # auth_secret keys the OTP code HMAC and the guest pass JWT signature.
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "guestgate"
    session_cookie_name: str = "session_token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "strict"
    auth_cookie_domain: str = ""
    session_ttl_days: int = 7
    magic_link_ttl_minutes: int = 15
    organization_invitation_ttl_days: int = 7

    # Guest invites
    invite_pass_cookie_name: str = "guestgate.invite-pass"
    invite_otp_ttl_minutes: int = 10
    invite_otp_max_attempts: int = 5
    invite_access_log_retention_days: int = 365

    # Email
    email_from: str = "noreply@guestgate.app"
    resend_api_key: SecretStr = SecretStr("")

    # Frontend URL (magic links and invite links point here)
    frontend_url: str = "http://localhost:3000"

    # Rate Limiting (Security)
    # rate_limit_storage_uri: "memory://" keeps windows in-process. Multi-instance
    # deployments use a shared limits backend, e.g. "async+redis://host:6379".
    # rate_limit_default: coarse per-IP cap applied to every route by slowapi.
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    rate_limit_default: str = "300/minute"

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_production(self) -> bool:
        """True when running with production security requirements."""
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - TTLs and attempt limits must be positive (all environments)
        - SameSite=None requires Secure flag (all environments)
        - CORS must not use wildcard origin (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        - Session cookies must be Secure in production
        """
        for field_name in (
            "session_ttl_days",
            "magic_link_ttl_minutes",
            "organization_invitation_ttl_days",
            "invite_otp_ttl_minutes",
            "invite_otp_max_attempts",
            "invite_access_log_retention_days",
        ):
            value = getattr(self, field_name)
            if value <= 0:
                msg = f"{field_name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Session cookies are incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.is_production:
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

            if not self.auth_cookie_secure:
                msg = "AUTH_COOKIE_SECURE must be true in production."
                raise ValueError(msg)

        return self


settings = Settings()

"""Tests for application configuration.

Defaults for sessions and invite security, plus the validation that keeps
insecure settings out of production.
"""

import pytest
from pydantic import SecretStr, ValidationError

from guestgate.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

# Reusable test constants
_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


def _production(**overrides) -> Settings:
    kwargs = {
        "environment": _PRODUCTION,
        "database_password": _SECURE_DB_PASSWORD,
        "auth_secret": SecretStr(_TEST_AUTH_SECRET),
    }
    kwargs.update(overrides)
    return Settings(**kwargs)


class TestDefaults:
    """Session and invite defaults."""

    def test_session_defaults(self):
        s = Settings()
        assert s.session_ttl_days == 7
        assert s.magic_link_ttl_minutes == 15
        assert s.auth_cookie_samesite == "strict"

    def test_invite_defaults(self):
        s = Settings()
        assert s.invite_otp_ttl_minutes == 10
        assert s.invite_otp_max_attempts == 5
        assert s.invite_access_log_retention_days == 365

    def test_database_url_uses_asyncpg(self):
        s = Settings(database_name="guestgate", database_password="pw")
        assert s.database_url.startswith("postgresql+asyncpg://")
        assert s.database_url.endswith("/guestgate")


class TestAllEnvironmentValidation:
    """Checks that apply outside production too."""

    @pytest.mark.parametrize(
        "field_name", ["session_ttl_days", "invite_otp_max_attempts"]
    )
    def test_rejects_non_positive_values(self, field_name):
        with pytest.raises(ValidationError, match=field_name.upper()):
            Settings(**{field_name: 0})

    def test_rejects_wildcard_origin(self):
        with pytest.raises(ValidationError, match="wildcard"):
            Settings(allowed_origins=["*"])

    def test_samesite_none_requires_secure(self):
        with pytest.raises(ValidationError, match="SameSite=None"):
            Settings(auth_cookie_samesite="none", auth_cookie_secure=False)


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD
        assert s.is_production is False

    def test_rejects_default_password_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            _production(database_password=_INSECURE_DEFAULT_PASSWORD)

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert "Cannot use default database password in production" in str(
            errors[0]["msg"]
        )

    def test_requires_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="AUTH_SECRET must be set"):
            _production(auth_secret=SecretStr(""))

    def test_rejects_short_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="at least 32"):
            _production(auth_secret=SecretStr("too-short"))

    def test_requires_secure_cookies_in_production(self):
        with pytest.raises(ValidationError, match="AUTH_COOKIE_SECURE"):
            _production(auth_cookie_secure=False)

    def test_valid_production_settings(self):
        s = _production()
        assert s.is_production is True

"""Tests for configuration loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.affilify_env == "dev"
        assert settings.is_prod is False
        assert settings.bcrypt_rounds == 12
        assert settings.max_login_attempts == 5
        assert settings.lockout_minutes == 15
        assert settings.jwt_issuer == "affilify-auth"
        assert settings.jwt_audience == "affilify-users"

    def test_prod_rejects_default_secret(self) -> None:
        with pytest.raises(ValidationError):
            Settings(affilify_env="prod", _env_file=None)

    def test_prod_rejects_short_secret(self) -> None:
        with pytest.raises(ValidationError):
            Settings(affilify_env="prod", jwt_secret="too-short", _env_file=None)

    def test_prod_accepts_strong_secret(self) -> None:
        settings = Settings(affilify_env="prod", jwt_secret="x" * 48, _env_file=None)
        assert settings.is_prod is True

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOCKOUT_MINUTES", "30")
        monkeypatch.setenv("MAX_SESSIONS_PER_USER", "3")
        settings = Settings(_env_file=None)
        assert settings.lockout_minutes == 30
        assert settings.max_sessions_per_user == 3

    def test_secret_not_in_repr(self) -> None:
        settings = Settings(jwt_secret="super-secret-value", _env_file=None)
        assert "super-secret-value" not in repr(settings)

    def test_rate_limit_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.login_rate_limit == "10/60"
        assert settings.signup_rate_limit == "5/60"
        assert settings.max_api_keys_per_user == 10

    @pytest.mark.parametrize("rule", ["10", "ten/60", "0/60", "10/60s"])
    def test_rate_limit_rule_format(self, rule: str) -> None:
        with pytest.raises(ValidationError):
            Settings(login_rate_limit=rule, _env_file=None)

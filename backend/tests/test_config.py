"""
Tests for Settings loading from the environment and dotenv files.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from config import DEV_JWT_SECRET, load_settings


@pytest.fixture
def clean_env(monkeypatch):
    """Remove any PiggyBank variables the host environment may define."""
    for var in (
        "ENVIRONMENT", "DATABASE_URL", "JWT_SECRET", "CORS_ORIGIN", "OPENAI_API_KEY",
        "LOG_LEVEL", "RATE_LIMIT_MAX_REQUESTS", "WALLET_STARTING_BALANCE",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestLoadSettings:

    def test_defaults(self, clean_env):
        settings = load_settings(env_file=None)

        assert settings.environment == "development"
        assert settings.jwt_secret == DEV_JWT_SECRET
        assert settings.cors_origins == ["http://localhost:5173"]
        assert settings.wallet_starting_balance == Decimal("1000")
        assert settings.ai_configured is False

    def test_reads_environment(self, clean_env):
        clean_env.setenv("CORS_ORIGIN", "http://a.test, http://b.test")
        clean_env.setenv("RATE_LIMIT_MAX_REQUESTS", "7")
        clean_env.setenv("LOG_LEVEL", "WARN")
        clean_env.setenv("OPENAI_API_KEY", "  sk-test  ")

        settings = load_settings(env_file=None)

        assert settings.cors_origins == ["http://a.test", "http://b.test"]
        assert settings.rate_limit_max_requests == 7
        assert settings.log_level == "warning"
        assert settings.openai_api_key == "sk-test"

    def test_empty_variables_ignored(self, clean_env):
        clean_env.setenv("DATABASE_URL", "")
        clean_env.setenv("OPENAI_API_KEY", "")

        settings = load_settings(env_file=None)

        assert settings.database_url.startswith("sqlite")
        assert settings.openai_api_key is None

    def test_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("WALLET_STARTING_BALANCE=250\nCORS_ORIGIN=http://dot.test\n")

        settings = load_settings(env_file=str(env_file))

        assert settings.wallet_starting_balance == Decimal("250")
        assert settings.cors_origins == ["http://dot.test"]

    def test_process_environment_beats_dotenv(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("RATE_LIMIT_MAX_REQUESTS=3\n")
        clean_env.setenv("RATE_LIMIT_MAX_REQUESTS", "9")

        assert load_settings(env_file=str(env_file)).rate_limit_max_requests == 9

    def test_overrides_win(self, clean_env):
        clean_env.setenv("RATE_LIMIT_MAX_REQUESTS", "9")

        settings = load_settings(env_file=None, rate_limit_max_requests=2)

        assert settings.rate_limit_max_requests == 2

    def test_production_requires_secret(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "production")

        with pytest.raises(ValidationError):
            load_settings(env_file=None)

        clean_env.setenv("JWT_SECRET", "p" * 40)
        assert load_settings(env_file=None).is_production

    def test_short_secret_rejected(self, clean_env):
        clean_env.setenv("JWT_SECRET", "too-short")

        with pytest.raises(ValidationError):
            load_settings(env_file=None)

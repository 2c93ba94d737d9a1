import pytest
from pydantic import ValidationError

from sessionguard.config import JWT_SECRET_FILE, Settings, get_settings
from sessionguard.service.tokens import TokenConfig


def test_defaults(tmp_path):
    settings = Settings(jwt_secret="s", secrets_dir=str(tmp_path))
    assert settings.jwt_issuer == "sessionguard"
    assert settings.access_token_ttl_minutes == 15
    assert settings.refresh_token_ttl_minutes == 30 * 24 * 60
    assert settings.auto_logout_minutes == 24 * 60
    assert settings.clock_skew_leeway_seconds == 0


def test_secret_loaded_from_secrets_dir(tmp_path):
    (tmp_path / JWT_SECRET_FILE).write_text("mounted-secret\n")
    settings = Settings(secrets_dir=str(tmp_path))
    assert settings.jwt_secret == "mounted-secret"


def test_explicit_secret_wins_over_file(tmp_path):
    (tmp_path / JWT_SECRET_FILE).write_text("mounted-secret")
    settings = Settings(jwt_secret="explicit", secrets_dir=str(tmp_path))
    assert settings.jwt_secret == "explicit"


def test_ephemeral_secret_generated_when_none_configured(tmp_path):
    first = Settings(secrets_dir=str(tmp_path))
    second = Settings(secrets_dir=str(tmp_path))
    assert first.jwt_secret
    assert first.jwt_secret != second.jwt_secret


@pytest.mark.parametrize(
    "field", ["access_token_ttl_minutes", "refresh_token_ttl_minutes", "auto_logout_minutes"]
)
def test_non_positive_durations_rejected(field):
    with pytest.raises(ValidationError):
        Settings(jwt_secret="s", **{field: 0})


def test_negative_leeway_rejected():
    with pytest.raises(ValidationError):
        Settings(jwt_secret="s", clock_skew_leeway_seconds=-1)


def test_from_env_reads_overrides(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_TTL_MINUTES", "5")
    monkeypatch.setenv("JWT_ISSUER", "auth.example")
    monkeypatch.setenv("JWT_SECRET", "from-env")

    settings = Settings.from_env()

    assert settings.access_token_ttl_minutes == 5
    assert settings.jwt_issuer == "auth.example"
    assert settings.jwt_secret == "from-env"


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_token_config_from_settings():
    settings = Settings(
        jwt_secret="s",
        access_token_ttl_minutes=10,
        refresh_token_ttl_minutes=60,
        clock_skew_leeway_seconds=3,
    )
    config = TokenConfig.from_settings(settings)
    assert config.access_lifetime.total_seconds() == 600
    assert config.refresh_lifetime.total_seconds() == 3600
    assert config.leeway.total_seconds() == 3

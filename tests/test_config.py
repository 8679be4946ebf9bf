import pytest

from mcp_devin.config import (
    DEFAULT_BASE_URL,
    DEFAULT_ORG_NAME,
    ConfigurationError,
    clear_settings_cache,
    get_settings,
    validate_settings,
)


def test_settings_from_environment(settings):
    assert settings.devin.api_key == "test-devin-key"
    assert settings.devin.org_name == "Acme"
    assert settings.devin.base_url == "https://devin.test/v1"
    assert settings.devin.timeout_seconds is None
    assert settings.slack.enabled is True
    assert settings.slack.default_channel == "#general"
    assert settings.slack.devin_user_name == "Devin"
    assert settings.http.port == 8765
    validate_settings(settings)


def test_defaults_apply_when_unset(isolated_env, monkeypatch):
    monkeypatch.delenv("DEVIN_ORG_NAME", raising=False)
    monkeypatch.delenv("DEVIN_BASE_URL", raising=False)
    clear_settings_cache()
    settings = get_settings()
    assert settings.devin.org_name == DEFAULT_ORG_NAME
    assert settings.devin.base_url == DEFAULT_BASE_URL


def test_base_url_trailing_slash_is_stripped(isolated_env, monkeypatch):
    monkeypatch.setenv("DEVIN_BASE_URL", "https://example.test/api/")
    clear_settings_cache()
    assert get_settings().devin.base_url == "https://example.test/api"


@pytest.mark.parametrize(("raw", "expected"), [("30", 30.0), ("0", None), ("", None), ("bogus", None)])
def test_timeout_parsing(isolated_env, monkeypatch, raw, expected):
    monkeypatch.setenv("DEVIN_TIMEOUT_SECONDS", raw)
    clear_settings_cache()
    assert get_settings().devin.timeout_seconds == expected


def test_missing_keys_are_all_reported(isolated_env, monkeypatch):
    monkeypatch.delenv("DEVIN_API_KEY", raising=False)
    monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)
    monkeypatch.delenv("SLACK_DEFAULT_CHANNEL", raising=False)
    clear_settings_cache()
    with pytest.raises(ConfigurationError) as excinfo:
        validate_settings(get_settings())
    assert excinfo.value.missing == ["DEVIN_API_KEY", "SLACK_BOT_TOKEN", "SLACK_DEFAULT_CHANNEL"]
    assert "DEVIN_API_KEY" in str(excinfo.value)


def test_slack_keys_not_required_when_disabled(isolated_env, monkeypatch):
    monkeypatch.setenv("SLACK_ENABLED", "false")
    monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)
    monkeypatch.delenv("SLACK_DEFAULT_CHANNEL", raising=False)
    clear_settings_cache()
    settings = get_settings()
    assert settings.slack.enabled is False
    validate_settings(settings)


def test_settings_are_cached_until_cleared(isolated_env, monkeypatch):
    first = get_settings()
    monkeypatch.setenv("DEVIN_ORG_NAME", "Other")
    assert get_settings() is first
    clear_settings_cache()
    assert get_settings().devin.org_name == "Other"

"""Application configuration loaded via python-decouple with typed helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, Protocol, cast

from decouple import (
    Config as DecoupleConfig,
    RepositoryEmpty,
    RepositoryEnv,
)

_DOTENV_PATH: Final[Path] = Path(".env")

DEFAULT_ORG_NAME: Final[str] = "Default Organization"
DEFAULT_BASE_URL: Final[str] = "https://api.devin.ai/v1"


def _build_decouple_config() -> DecoupleConfig:
    # Gracefully handle missing .env (e.g., in CI/tests) by falling back to an empty repository.
    try:
        return DecoupleConfig(RepositoryEnv(str(_DOTENV_PATH)))
    except FileNotFoundError:
        return DecoupleConfig(RepositoryEmpty())


_decouple_config: Final[DecoupleConfig] = _build_decouple_config()


class ConfigurationError(Exception):
    """Raised when required settings are missing; fatal at startup."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


@dataclass(slots=True, frozen=True)
class DevinSettings:
    """Coding-agent API settings."""

    api_key: str | None
    org_name: str
    base_url: str
    # None disables the client timeout entirely
    timeout_seconds: float | None


@dataclass(slots=True, frozen=True)
class SlackSettings:
    """Slack integration settings."""

    enabled: bool
    bot_token: str | None
    default_channel: str | None
    devin_user_name: str


@dataclass(slots=True, frozen=True)
class HttpSettings:
    """HTTP transport related settings."""

    host: str
    port: int
    path: str
    bearer_token: str | None
    allow_localhost_unauthenticated: bool
    request_log_enabled: bool


@dataclass(slots=True, frozen=True)
class Settings:
    """Top-level application settings."""

    environment: str
    devin: DevinSettings
    slack: SlackSettings
    http: HttpSettings
    # Logging
    log_rich_enabled: bool
    log_level: str
    log_json_enabled: bool
    # Tools logging
    tools_log_enabled: bool


def _bool(value: str, *, default: bool) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "t", "yes", "y"}:
        return True
    if normalized in {"0", "false", "f", "no", "n"}:
        return False
    return default


def _int(value: str, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float_optional(value: str) -> float | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = float(text)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    devin_settings = DevinSettings(
        api_key=_decouple_config("DEVIN_API_KEY", default="").strip() or None,
        org_name=_decouple_config("DEVIN_ORG_NAME", default="").strip() or DEFAULT_ORG_NAME,
        base_url=(_decouple_config("DEVIN_BASE_URL", default="").strip() or DEFAULT_BASE_URL).rstrip("/"),
        timeout_seconds=_float_optional(_decouple_config("DEVIN_TIMEOUT_SECONDS", default="")),
    )

    slack_settings = SlackSettings(
        enabled=_bool(_decouple_config("SLACK_ENABLED", default="true"), default=True),
        bot_token=_decouple_config("SLACK_BOT_TOKEN", default="").strip() or None,
        default_channel=_decouple_config("SLACK_DEFAULT_CHANNEL", default="").strip() or None,
        devin_user_name=_decouple_config("SLACK_DEVIN_USER_NAME", default="Devin").strip() or "Devin",
    )

    http_settings = HttpSettings(
        host=_decouple_config("HTTP_HOST", default="127.0.0.1"),
        port=_int(_decouple_config("HTTP_PORT", default="8080"), default=8080),
        path=_decouple_config("HTTP_PATH", default="/mcp/"),
        bearer_token=_decouple_config("HTTP_BEARER_TOKEN", default="") or None,
        allow_localhost_unauthenticated=_bool(
            _decouple_config("HTTP_ALLOW_LOCALHOST_UNAUTHENTICATED", default="true"), default=True
        ),
        request_log_enabled=_bool(_decouple_config("HTTP_REQUEST_LOG_ENABLED", default="false"), default=False),
    )

    return Settings(
        environment=_decouple_config("APP_ENVIRONMENT", default="development"),
        devin=devin_settings,
        slack=slack_settings,
        http=http_settings,
        log_rich_enabled=_bool(_decouple_config("LOG_RICH_ENABLED", default="true"), default=True),
        log_level=_decouple_config("LOG_LEVEL", default="INFO"),
        log_json_enabled=_bool(_decouple_config("LOG_JSON_ENABLED", default="false"), default=False),
        tools_log_enabled=_bool(_decouple_config("TOOLS_LOG_ENABLED", default="true"), default=True),
    )


def validate_settings(settings: Settings) -> None:
    """Raise ConfigurationError listing every required key that is unset."""
    missing: list[str] = []
    if not settings.devin.api_key:
        missing.append("DEVIN_API_KEY")
    if settings.slack.enabled:
        if not settings.slack.bot_token:
            missing.append("SLACK_BOT_TOKEN")
        if not settings.slack.default_channel:
            missing.append("SLACK_DEFAULT_CHANNEL")
    if missing:
        raise ConfigurationError(missing)


class _CacheClearable(Protocol):
    def cache_clear(self) -> None: ...


def clear_settings_cache() -> None:
    """Clear the lru_cache for get_settings in a type-checker-friendly way."""
    cache_clear = getattr(cast(_CacheClearable, get_settings), "cache_clear", None)
    if callable(cache_clear):
        cache_clear()

"""
Report and bot configuration.

Settings resolve in this order, later sources winning:

  1. model defaults
  2. YAML file (``config/payload_monitor.yaml`` or ``PM_CONFIG_PATH``)
  3. ``PM_*`` environment variables
  4. explicit overrides (CLI flags)

The merged values are validated once into a ``ReportConfig`` (or
``BotConfig``) and passed by value to the report generator.
"""

import os
from datetime import timedelta
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from analytics.utils import parse_duration
from monitoring.errors import ConfigError

DEFAULT_CONFIG_PATH = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "config", "payload_monitor.yaml")
)
DEFAULT_RELEASE_API_URL = "https://amd64.ocp.releases.ci.openshift.org"
DEFAULT_STREAM_URL_TEMPLATE = "https://amd64.ocp.releases.ci.openshift.org/#%s"

_ENV_KEYS = {
    "release_api_url": "PM_RELEASE_API_URL",
    "stream_url_template": "PM_STREAM_URL_TEMPLATE",
    "oldest_minor": "PM_OLDEST_MINOR",
    "newest_minor": "PM_NEWEST_MINOR",
    "stream_kind": "PM_STREAM_KIND",
    "accepted_staleness_limit": "PM_ACCEPTED_STALENESS_LIMIT",
    "built_staleness_limit": "PM_BUILT_STALENESS_LIMIT",
    "upgrade_staleness_limit": "PM_UPGRADE_STALENESS_LIMIT",
    "request_timeout_seconds": "PM_REQUEST_TIMEOUT_SECONDS",
    "upgrade_probe_limit": "PM_UPGRADE_PROBE_LIMIT",
    "slack_alias": "PM_SLACK_ALIAS",
    "slack_webhook_url": "PM_SLACK_WEBHOOK_URL",
    "interval": "PM_BOT_INTERVAL",
}

_YAML_LIMIT_KEYS = {
    "accepted": "accepted_staleness_limit",
    "built": "built_staleness_limit",
    "upgrade": "upgrade_staleness_limit",
}


class ReportConfig(BaseModel):
    release_api_url: str = DEFAULT_RELEASE_API_URL
    stream_url_template: str = DEFAULT_STREAM_URL_TEMPLATE
    oldest_minor: int = 9
    newest_minor: int = 12
    stream_kind: str = "nightly"
    accepted_staleness_limit: timedelta = timedelta(hours=24)
    built_staleness_limit: timedelta = timedelta(hours=72)
    upgrade_staleness_limit: timedelta = timedelta(hours=72)
    request_timeout_seconds: float = 30.0
    upgrade_probe_limit: int = 5
    suppress_explained_acceptance: bool = True

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator(
        "accepted_staleness_limit",
        "built_staleness_limit",
        "upgrade_staleness_limit",
        mode="before",
    )
    @classmethod
    def _parse_limit(cls, value):
        limit = parse_duration(value)
        if limit <= timedelta(0):
            raise ValueError("staleness limits must be positive")
        return limit

    @field_validator("release_api_url")
    @classmethod
    def _strip_url(cls, value):
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("release_api_url must not be empty")
        return value

    @field_validator("stream_url_template")
    @classmethod
    def _check_template(cls, value):
        if value.count("%s") != 1:
            raise ValueError("stream_url_template must contain exactly one %s")
        return value

    @field_validator("oldest_minor")
    @classmethod
    def _check_oldest(cls, value):
        if value < 1:
            raise ValueError("oldest_minor must be >= 1")
        return value

    @field_validator("stream_kind")
    @classmethod
    def _check_kind(cls, value):
        kind = str(value).strip().lower()
        if kind not in {"ci", "nightly"}:
            raise ValueError("stream_kind must be 'ci' or 'nightly'")
        return kind

    @field_validator("request_timeout_seconds")
    @classmethod
    def _check_timeout(cls, value):
        if value <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        return value

    @field_validator("upgrade_probe_limit")
    @classmethod
    def _check_probe_limit(cls, value):
        if value < 0:
            raise ValueError("upgrade_probe_limit must be >= 0")
        return value

    @model_validator(mode="after")
    def _check_range(self):
        if self.newest_minor < self.oldest_minor:
            raise ValueError(
                f"newest_minor ({self.newest_minor}) is older than oldest_minor ({self.oldest_minor})"
            )
        return self

    def minors(self):
        return range(self.oldest_minor, self.newest_minor + 1)


class BotConfig(ReportConfig):
    slack_alias: str = ""
    slack_webhook_url: Optional[str] = None
    interval: timedelta = timedelta(hours=24)

    @field_validator("interval", mode="before")
    @classmethod
    def _parse_interval(cls, value):
        interval = parse_duration(value)
        if interval < timedelta(minutes=1):
            raise ValueError("interval must be at least one minute")
        return interval

    @field_validator("slack_webhook_url", mode="before")
    @classmethod
    def _blank_webhook(cls, value):
        if value is None or not str(value).strip():
            return None
        return str(value).strip()


def load_config_yaml(config_path=None):
    """Load raw settings from YAML.

    Expected structure (every key optional):
      release_api_url: https://...
      stream_url_template: https://.../#%s
      oldest_minor: 9
      newest_minor: 12
      stream_kind: nightly
      staleness_limits: {accepted: 24h, built: 72h, upgrade: 72h}
      bot: {slack_alias: "@team", slack_webhook_url: https://..., interval: 24h}

    A missing file yields an empty mapping; unreadable or malformed YAML
    raises ConfigError.
    """
    config_path = config_path or os.getenv("PM_CONFIG_PATH") or DEFAULT_CONFIG_PATH
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            payload = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"could not read config {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError(f"config {config_path} must be a mapping")

    settings = {key: value for key, value in payload.items() if key not in ("staleness_limits", "bot")}

    limits = payload.get("staleness_limits") or {}
    if not isinstance(limits, dict):
        raise ConfigError("staleness_limits must be a mapping")
    for short_key, field_name in _YAML_LIMIT_KEYS.items():
        if limits.get(short_key) is not None:
            settings[field_name] = limits[short_key]

    bot = payload.get("bot") or {}
    if not isinstance(bot, dict):
        raise ConfigError("bot must be a mapping")
    for key in ("slack_alias", "slack_webhook_url", "interval"):
        if bot.get(key) is not None:
            settings[key] = bot[key]

    return settings


def _env_settings():
    settings = {}
    for field_name, env_key in _ENV_KEYS.items():
        value = os.getenv(env_key)
        if value is not None and value.strip():
            settings[field_name] = value.strip()
    return settings


def load_config(config_path=None, overrides=None, model=ReportConfig):
    """Resolve and validate configuration into ``model``."""
    settings = load_config_yaml(config_path)
    settings.update(_env_settings())
    settings.update({key: value for key, value in (overrides or {}).items() if value is not None})
    try:
        return model(**settings)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
import shlex
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shekelstream.core.retry import RetryPolicy
from shekelstream.jobs.sync.scheduler import build_cron_trigger

TRANSLATION_PLACEHOLDER = "<text_to_replace>"
DEFAULT_TRANSLATION_PROMPT_KEY = "translate-descriptions"

DEFAULT_DATABASE_URL = "sqlite:///shekelstream.db"
DEFAULT_CHROMIUM_PATH = "/usr/bin/chromium-browser"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised when the environment holds an invalid configuration value."""


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Process configuration loaded once at startup."""

    database_url: str = DEFAULT_DATABASE_URL
    openai_api_key: str | None = None
    translation_model: str | None = None
    translation_prompt: str | None = None
    translation_chunk_size: int = 30
    telegram_bot_token: str | None = None
    sync_days_count: int = 7
    sync_on_startup: bool = False
    sync_on_schedule: bool = False
    sync_schedule: str | None = None
    default_timezone: str = "Asia/Jerusalem"
    source_timezone: str = "Asia/Jerusalem"
    docker: bool = False
    chromium_path: str = DEFAULT_CHROMIUM_PATH
    scraper_command: tuple[str, ...] | None = None
    translation_retry: RetryPolicy = RetryPolicy(retries=5, min_timeout=20, factor=2)
    notify_retry: RetryPolicy = RetryPolicy(retries=5, min_timeout=30, factor=1)
    strict_companies: bool = False

    @property
    def translation_enabled(self) -> bool:
        return bool(
            self.openai_api_key
            and self.translation_model
            and self.translation_prompt
            and TRANSLATION_PLACEHOLDER in self.translation_prompt
        )

    @property
    def is_scheduled(self) -> bool:
        return self.sync_on_schedule and bool(self.sync_schedule)

    @property
    def browser_executable_path(self) -> str | None:
        return self.chromium_path if self.docker else None


def _get(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


def _get_bool(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUE_VALUES


def _get_positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _get_timezone(env: Mapping[str, str], name: str, default: str) -> str:
    value = _get(env, name) or default
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"{name} is not a known timezone: {value!r}") from e
    return value


def _get_schedule(env: Mapping[str, str], timezone: str) -> str | None:
    schedule = _get(env, "SYNC_SCHEDULE")
    if schedule is None:
        return None
    try:
        build_cron_trigger(schedule, timezone=timezone)
    except ValueError as e:
        raise ConfigError(f"SYNC_SCHEDULE is not a valid cron expression: {e}") from e
    return schedule


def _load_translation_prompt(env: Mapping[str, str]) -> str | None:
    from shekelstream.prompts.loader import load_translation_prompt

    return load_translation_prompt(env.get("GPT_TRANSLATION_PROMPT"))


def load_app_config_from_env(env: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration from the environment and validate value shapes."""
    env = os.environ if env is None else env

    scraper_command = _get(env, "SCRAPER_COMMAND")
    default_timezone = _get_timezone(env, "DEFAULT_TIMEZONE", "Asia/Jerusalem")
    return AppConfig(
        database_url=_get(env, "DATABASE_URL") or DEFAULT_DATABASE_URL,
        openai_api_key=_get(env, "OPENAI_API_KEY"),
        translation_model=_get(env, "GPT_MODEL_FAST"),
        translation_prompt=_load_translation_prompt(env),
        translation_chunk_size=_get_positive_int(env, "GPT_TRANSLATION_COUNT", 30),
        telegram_bot_token=_get(env, "TELEGRAM_BOT_TOKEN"),
        sync_days_count=_get_positive_int(env, "SYNC_DAYS_COUNT", 7),
        sync_on_startup=_get_bool(env, "SYNC_ON_STARTUP"),
        sync_on_schedule=_get_bool(env, "SYNC_ON_SCHEDULE"),
        sync_schedule=_get_schedule(env, default_timezone),
        default_timezone=default_timezone,
        source_timezone=_get_timezone(env, "SOURCE_TIMEZONE", "Asia/Jerusalem"),
        docker=_get_bool(env, "DOCKER"),
        chromium_path=_get(env, "CHROMIUM_PATH") or DEFAULT_CHROMIUM_PATH,
        scraper_command=(
            tuple(shlex.split(scraper_command)) if scraper_command else None
        ),
        translation_retry=RetryPolicy(
            retries=_get_positive_int(env, "TRANSLATION_RETRIES", 5),
            min_timeout=_get_positive_int(env, "TRANSLATION_MIN_TIMEOUT", 20),
            factor=2,
        ),
        notify_retry=RetryPolicy(
            retries=_get_positive_int(env, "NOTIFY_RETRIES", 5),
            min_timeout=_get_positive_int(env, "NOTIFY_MIN_TIMEOUT", 30),
            factor=1,
        ),
        strict_companies=_get_bool(env, "STRICT_COMPANIES"),
    )

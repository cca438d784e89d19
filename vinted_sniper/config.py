"""Application configuration using Pydantic settings."""

import re
from decimal import Decimal
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or invalid at startup."""

    pass


def parse_list(value: str | list | tuple | None) -> list[str]:
    """
    Parse a list setting.

    Commas take priority; without a comma the value is split on whitespace.

    Args:
        value: Raw setting value (string or already a sequence)

    Returns:
        List of non-empty, stripped entries
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    raw = str(value)
    if "," in raw:
        return [part.strip() for part in raw.split(",") if part.strip()]
    return [part for part in re.split(r"\s+", raw) if part]


class Settings(BaseSettings):
    """Application settings."""

    # Telegram
    telegram_token: str = Field("", validation_alias=AliasChoices("telegram_token", "tok"))
    chat_id: str = ""

    # Search terms: BRANDS switches to brand mode, otherwise KEYWORDS/KEYWORD
    brands: str = ""
    keywords: str = Field("", validation_alias=AliasChoices("keywords", "keyword"))

    # Filter policy defaults
    min_price: float | None = None
    max_price: float | None = 40.0
    sizes: str = ""
    conditions: str = ""
    exclude_brands: str = ""
    exclude_keywords: str = ""
    exclude_conditions: str = ""
    max_age_minutes: int | None = 60
    require_images: bool = True

    # Polling loop
    poll_interval_ms: int = 60000
    backoff_delay_ms: int = 30000
    idle_tick_ms: int = 5000
    search_timeout_seconds: float = 60.0
    notify_timeout_seconds: float = 60.0

    # Marketplace
    vinted_base_url: str = "https://www.vinted.it"
    search_per_page: int = 96

    # Persistence
    data_dir: str = "data"
    seen_retention_hours: float = 24.0
    seen_recent_minutes: float = 60.0

    # App Settings
    log_level: str = "INFO"
    metrics_port: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def brand_mode(self) -> bool:
        """True when searching by brand (brands double as the allowed-brand filter)."""
        return bool(parse_list(self.brands))

    @property
    def search_terms(self) -> list[str]:
        if self.brand_mode:
            return parse_list(self.brands)
        return parse_list(self.keywords)

    @property
    def allowed_brands(self) -> list[str]:
        return parse_list(self.brands)

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    def validate_required(self) -> None:
        """
        Check settings the bot cannot start without.

        Raises:
            ConfigurationError: If a required value is missing or out of range
        """
        missing = []
        if not self.telegram_token:
            missing.append("TOK")
        if not self.chat_id:
            missing.append("CHAT_ID")
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )

        if not self.search_terms:
            raise ConfigurationError("Missing required: BRANDS or KEYWORD/KEYWORDS")

        for name in ("poll_interval_ms", "backoff_delay_ms", "idle_tick_ms"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name.upper()} must be >= 0")

        if self.seen_retention_hours <= 0:
            raise ConfigurationError("SEEN_RETENTION_HOURS must be > 0")


def _decimal_or_none(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def build_policy(settings: Settings):
    """
    Build the startup filter policy from settings.

    Args:
        settings: Application settings

    Returns:
        FilterPolicy populated from the environment
    """
    from vinted_sniper.detect.policy import FilterPolicy

    return FilterPolicy(
        allowed_brands=tuple(settings.allowed_brands),
        allowed_sizes=tuple(parse_list(settings.sizes)),
        allowed_conditions=tuple(parse_list(settings.conditions)),
        excluded_brands=tuple(parse_list(settings.exclude_brands)),
        excluded_keywords=tuple(parse_list(settings.exclude_keywords)),
        excluded_conditions=tuple(parse_list(settings.exclude_conditions)),
        min_price=_decimal_or_none(settings.min_price),
        max_price=_decimal_or_none(settings.max_price),
        max_age_minutes=settings.max_age_minutes,
        require_image=settings.require_images,
    )

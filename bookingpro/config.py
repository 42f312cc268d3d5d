"""
Centralized configuration with environment variable overrides.

Webhook endpoints, retry limits, lead timeouts and the booking window
are configurable here. Components receive an AppConfig explicitly
through the application context; nothing reads the environment later.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SyncConfig:
    """Outbound Google Sheets webhook settings."""

    enabled: bool = _safe_bool("GOOGLE_SHEETS_ENABLED", "true")
    webhook_url: str = os.getenv("GOOGLE_SHEETS_WEBHOOK_URL", "")
    max_attempts: int = _safe_int("SYNC_MAX_ATTEMPTS", "3")
    retry_delay_seconds: float = _safe_float("SYNC_RETRY_DELAY_SECONDS", "120")
    initial_delay_seconds: float = _safe_float("SYNC_INITIAL_DELAY_SECONDS", "8")
    timeout_seconds: float = _safe_float("SYNC_TIMEOUT_SECONDS", "30")
    user_agent: str = os.getenv("SYNC_USER_AGENT", "BookingSystemPro/1.0")


@dataclass(frozen=True)
class LeadConfig:
    """Incomplete-lead lifecycle timings."""

    stuck_timeout_minutes: float = _safe_float("STUCK_LEAD_TIMEOUT_MINUTES", "10")
    reaper_interval_seconds: float = _safe_float("REAPER_INTERVAL_SECONDS", "300")
    session_retention_hours: float = _safe_float("SESSION_RETENTION_HOURS", "24")
    max_upsert_retries: int = _safe_int("LEAD_UPSERT_RETRIES", "5")


@dataclass(frozen=True)
class AvailabilityConfig:
    """Calendar generation and booking submission settings."""

    booking_window_days: int = _safe_int("BOOKING_WINDOW_DAYS", "3")
    default_slot_duration: int = _safe_int("DEFAULT_SLOT_DURATION", "30")
    auto_confirm_bookings: bool = _safe_bool("AUTO_CONFIRM_BOOKINGS", "false")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    sync: SyncConfig = field(default_factory=SyncConfig)
    leads: LeadConfig = field(default_factory=LeadConfig)
    availability: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "booking-system-pro")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.sync.max_attempts < 1:
        raise ValueError(
            f"SYNC_MAX_ATTEMPTS must be >= 1, got {config.sync.max_attempts}"
        )
    if config.sync.retry_delay_seconds < 0:
        raise ValueError(
            f"SYNC_RETRY_DELAY_SECONDS must be >= 0, got {config.sync.retry_delay_seconds}"
        )
    if config.sync.initial_delay_seconds < 0:
        raise ValueError(
            f"SYNC_INITIAL_DELAY_SECONDS must be >= 0, got {config.sync.initial_delay_seconds}"
        )
    if config.sync.timeout_seconds <= 0:
        raise ValueError(
            f"SYNC_TIMEOUT_SECONDS must be > 0, got {config.sync.timeout_seconds}"
        )
    if config.sync.enabled and config.sync.webhook_url and not config.sync.webhook_url.startswith(
        ("http://", "https://")
    ):
        raise ValueError(
            f"GOOGLE_SHEETS_WEBHOOK_URL must be an http(s) URL, got {config.sync.webhook_url!r}"
        )
    if config.leads.stuck_timeout_minutes <= 0:
        raise ValueError(
            "STUCK_LEAD_TIMEOUT_MINUTES must be > 0, "
            f"got {config.leads.stuck_timeout_minutes}"
        )
    if config.leads.reaper_interval_seconds <= 0:
        raise ValueError(
            "REAPER_INTERVAL_SECONDS must be > 0, "
            f"got {config.leads.reaper_interval_seconds}"
        )
    if config.leads.session_retention_hours <= 0:
        raise ValueError(
            "SESSION_RETENTION_HOURS must be > 0, "
            f"got {config.leads.session_retention_hours}"
        )
    if config.leads.max_upsert_retries < 1:
        raise ValueError(
            f"LEAD_UPSERT_RETRIES must be >= 1, got {config.leads.max_upsert_retries}"
        )
    if config.availability.booking_window_days < 0:
        raise ValueError(
            "BOOKING_WINDOW_DAYS must be >= 0, "
            f"got {config.availability.booking_window_days}"
        )
    if not 0 < config.availability.default_slot_duration <= 480:
        raise ValueError(
            "DEFAULT_SLOT_DURATION must be between 1 and 480, "
            f"got {config.availability.default_slot_duration}"
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    configure_logging(config.log_level)
    logger.info(
        "Configuration loaded for '%s' (sheets sync %s)",
        config.app_name,
        "enabled" if config.sync.enabled and config.sync.webhook_url else "disabled",
    )
    return config

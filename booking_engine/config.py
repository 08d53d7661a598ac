"""
Centralized configuration with environment variable overrides.

Business hours, gateway credentials, timeouts and storage endpoints are
configurable here. Scheduling and flow logic receive these values
explicitly instead of reading globals.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from booking_engine.logging_context import FLOW_LOG_FORMAT, install_flow_filter

load_dotenv()

logger = logging.getLogger(__name__)


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


def _safe_weekdays(env_var: str, default: str = "") -> tuple[int, ...]:
    """Parse a comma separated list of weekday numbers (Monday=0)."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValueError(
            f"Invalid weekday list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BusinessConfig:
    """Shop-level scheduling settings."""

    name: str = os.getenv("BUSINESS_NAME", "The Barber Shop")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "Europe/London")
    start_hour: int = _safe_int("BUSINESS_START_HOUR", "8")
    end_hour: int = _safe_int("BUSINESS_END_HOUR", "22")
    slot_interval_minutes: int = _safe_int("SLOT_INTERVAL_MINUTES", "30")
    closed_weekdays: tuple[int, ...] = _safe_weekdays("CLOSED_WEEKDAYS")
    booking_horizon_days: int = _safe_int("BOOKING_HORIZON_DAYS", "14")


@dataclass(frozen=True)
class TwilioConfig:
    """Credentials for Twilio Messages and Twilio Verify."""

    account_sid: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    auth_token: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    verify_service_sid: str = os.getenv("TWILIO_VERIFY_SID", "")
    from_number: str = os.getenv("TWILIO_PHONE_NUMBER", "+15005550006")
    default_country_code: str = os.getenv("DEFAULT_COUNTRY_CODE", "+44")

    @property
    def sms_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def verify_configured(self) -> bool:
        return self.sms_configured and bool(self.verify_service_sid)


@dataclass(frozen=True)
class SupabaseConfig:
    """PostgREST endpoint of the booking database."""

    url: str = os.getenv("SUPABASE_URL", "")
    service_key: str = os.getenv("SUPABASE_SERVICE_KEY", "")

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)


@dataclass(frozen=True)
class GatewayConfig:
    """Timeouts applied to every outbound call."""

    request_timeout_sec: float = _safe_float("GATEWAY_TIMEOUT", "10.0")
    notification_timeout_sec: float = _safe_float("NOTIFICATION_TIMEOUT", "15.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    twilio: TwilioConfig = field(default_factory=TwilioConfig)
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    gateways: GatewayConfig = field(default_factory=GatewayConfig)
    environment: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def mock_codes_allowed(self) -> bool:
        """Verification codes may be echoed back to the caller outside production."""
        return not self.is_production


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    business = config.business
    for name, hour in [
        ("BUSINESS_START_HOUR", business.start_hour),
        ("BUSINESS_END_HOUR", business.end_hour),
    ]:
        if not 0 <= hour <= 24:
            raise ValueError(f"{name} must be between 0 and 24, got {hour}")
    if not business.start_hour < business.end_hour - 1:
        raise ValueError(
            "BUSINESS_START_HOUR must be more than one hour before BUSINESS_END_HOUR, "
            f"got {business.start_hour} and {business.end_hour}"
        )
    if not 1 <= business.slot_interval_minutes <= 60:
        raise ValueError(
            "SLOT_INTERVAL_MINUTES must be between 1 and 60, "
            f"got {business.slot_interval_minutes}"
        )
    if business.booking_horizon_days < 1:
        raise ValueError(
            f"BOOKING_HORIZON_DAYS must be >= 1, got {business.booking_horizon_days}"
        )
    for weekday in business.closed_weekdays:
        if not 0 <= weekday <= 6:
            raise ValueError(f"CLOSED_WEEKDAYS entries must be 0-6, got {weekday}")

    if config.gateways.request_timeout_sec <= 0:
        raise ValueError(
            f"GATEWAY_TIMEOUT must be > 0, got {config.gateways.request_timeout_sec}"
        )
    if config.gateways.notification_timeout_sec <= 0:
        raise ValueError(
            "NOTIFICATION_TIMEOUT must be > 0, "
            f"got {config.gateways.notification_timeout_sec}"
        )

    if config.is_production and not config.twilio.verify_configured:
        raise ValueError(
            "TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_VERIFY_SID are required "
            "when APP_ENV is production"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=FLOW_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        install_flow_filter(handler)
    logger.info(
        "Configuration loaded for '%s' (%s)", config.business.name, config.environment
    )
    return config


# Singleton instance
settings = load_config()

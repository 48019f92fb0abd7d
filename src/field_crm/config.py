"""Application configuration."""

from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "0.1.0"


class DatabaseSettings(BaseModel):
    """Database configuration."""

    url: str = "sqlite+aiosqlite:///data/field_crm.db"
    echo: bool = False


class RetrySettings(BaseModel):
    """Unit-of-work retry policy for transient persistence errors."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds; wait is base_delay * attempt
    max_delay: float = 10.0


class GeocodingSettings(BaseModel):
    """Address geocoding provider configuration."""

    provider: str = "nominatim"  # nominatim, google, disabled
    api_key: str = ""  # required for google
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    google_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    user_agent: str = "field-crm/1.0"
    timeout: float = 5.0

    # Stop calling a failing provider for a while
    failure_threshold: int = 5
    reset_timeout: float = 60.0


class DispatchSettings(BaseModel):
    """Job lifecycle and dispatch rules."""

    arrival_radius_meters: float = 150.0

    # Reject transitions whose source state is not an allowed predecessor
    strict_transitions: bool = True

    default_labor_rate: Decimal = Decimal("25.00")
    default_commission_rate: Decimal = Decimal("0.15")
    default_max_daily_jobs: int = 8

    technician_job_path: str = "/technician/jobs"


class SendGridSettings(BaseModel):
    """SendGrid email configuration."""

    api_key: str = ""
    api_url: str = "https://api.sendgrid.com/v3/mail/send"


class EmailSettings(BaseModel):
    """Email gateway configuration."""

    enabled: bool = False
    provider: str = "mock"  # sendgrid, mock
    from_email: str = "dispatch@example.com"
    from_name: str = "Dispatch"
    reply_to: str = ""
    timeout: float = 10.0
    sendgrid: SendGridSettings = Field(default_factory=SendGridSettings)


class TwilioSettings(BaseModel):
    """Twilio SMS configuration."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    messaging_service_sid: str = ""


class SMSSettings(BaseModel):
    """SMS gateway configuration."""

    enabled: bool = False
    provider: str = "mock"  # twilio, mock
    timeout: float = 10.0
    twilio: TwilioSettings = Field(default_factory=TwilioSettings)


class IntegrationsSettings(BaseModel):
    """External integrations configuration."""

    email: EmailSettings = Field(default_factory=EmailSettings)
    sms: SMSSettings = Field(default_factory=SMSSettings)


class Settings(BaseSettings):
    """Application settings.

    Loaded from:
    1. Environment variables (FCRM_*)
    2. configs/{environment}.yaml
    3. configs/default.yaml
    """

    model_config = SettingsConfigDict(
        env_prefix="FCRM_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    rate_limit_enabled: bool = True

    # Branding used in outbound messages
    company_name: str = "Field Service"
    app_base_url: str = "http://localhost:3000"

    # Subsystems
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    integrations: IntegrationsSettings = Field(default_factory=IntegrationsSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings object loaded from config files and environment.
    """
    from dynaconf import Dynaconf

    config_dir = Path(os.getenv("FCRM_CONFIG_DIR", "configs"))
    env = os.getenv("FCRM_ENV", "development")

    settings_files = []
    if (config_dir / "default.yaml").exists():
        settings_files.append(str(config_dir / "default.yaml"))
    if (config_dir / f"{env}.yaml").exists():
        settings_files.append(str(config_dir / f"{env}.yaml"))

    dynaconf = Dynaconf(
        envvar_prefix="FCRM",
        settings_files=settings_files,
        load_dotenv=True,
    )

    config_dict: dict[str, Any] = {}
    for key in dynaconf.keys():
        if not key.startswith("_"):
            config_dict[key.lower()] = _plain(dynaconf[key])

    config_dict["environment"] = env

    return Settings(**config_dict)


def _plain(value: Any) -> Any:
    """Turn Dynaconf boxes into plain dicts with lower-case keys."""
    if isinstance(value, dict):
        return {str(k).lower(): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def validate_production_settings(settings: Settings) -> list[str]:
    """Validate settings for production readiness.

    Args:
        settings: Application settings to validate.

    Returns:
        List of validation error messages (empty if all valid).
    """
    errors: list[str] = []

    if settings.environment not in ("production", "staging", "prod"):
        return errors

    if "sqlite" in settings.database.url:
        errors.append("FCRM_DATABASE__URL should point at a server database in production")

    if settings.geocoding.provider == "google" and not settings.geocoding.api_key:
        errors.append("FCRM_GEOCODING__API_KEY must be set for the google geocoder")

    email = settings.integrations.email
    if email.enabled and email.provider == "sendgrid" and not email.sendgrid.api_key:
        errors.append("FCRM_INTEGRATIONS__EMAIL__SENDGRID__API_KEY must be set")

    sms = settings.integrations.sms
    if sms.enabled and sms.provider == "twilio":
        if not sms.twilio.account_sid or not sms.twilio.auth_token:
            errors.append("Twilio account SID and auth token must be set when SMS is enabled")
        if not sms.twilio.from_number and not sms.twilio.messaging_service_sid:
            errors.append("Twilio from number or messaging service SID must be set")

    return errors

"""Application configuration with environment-specific profiles.

Supports dev, staging, test and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    secret_key: str = "change-me"
    jwt_secret: str = "jwt-change-me"
    jwt_algorithm: str = "HS256"
    access_token_minutes: int = 480
    log_level: str = "INFO"

    # Calendar and program defaults
    reference_timezone: str = "America/Los_Angeles"
    default_cardio_target_minutes: int = 60
    default_run_miles_target: float = 5.0
    default_program_weeks: int = 4

    # Invitations
    site_url: str = "http://localhost:5173"
    invitation_ttl_days: int = 30
    resend_api_key: str = ""
    email_from: str = "Moai Coaching <onboarding@resend.dev>"

    # HTTP
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    request_id_header_name: str = "X-Request-ID"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    sign_in_rate_limit: str = "5/minute"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "access_token_minutes": 1440,
    },
    "staging": {
        "log_level": "INFO",
        "access_token_minutes": 480,
    },
    "test": {
        "log_level": "WARNING",
        "access_token_minutes": 60,
        "rate_limit_enabled": False,
    },
    "production": {
        "log_level": "WARNING",
        "access_token_minutes": 240,
    },
}


def get_database_url() -> str:
    """Resolve database URL from env var or local default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "sqlite+pysqlite:///./moai.db"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        secret_key=os.getenv("SECRET_KEY", "change-me"),
        jwt_secret=os.getenv("JWT_SECRET", os.getenv("SECRET_KEY", "jwt-change-me")),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        access_token_minutes=int(
            os.getenv("ACCESS_TOKEN_MINUTES", str(profile.get("access_token_minutes", 480)))
        ),
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        reference_timezone=os.getenv("REFERENCE_TIMEZONE", "America/Los_Angeles"),
        default_cardio_target_minutes=int(os.getenv("DEFAULT_CARDIO_TARGET_MINUTES", "60")),
        default_run_miles_target=float(os.getenv("DEFAULT_RUN_MILES_TARGET", "5")),
        default_program_weeks=int(os.getenv("DEFAULT_PROGRAM_WEEKS", "4")),
        site_url=os.getenv("SITE_URL", "http://localhost:5173").rstrip("/"),
        invitation_ttl_days=int(os.getenv("INVITATION_TTL_DAYS", "30")),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        email_from=os.getenv("EMAIL_FROM", "Moai Coaching <onboarding@resend.dev>"),
        cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:5173"]),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID"),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", profile.get("rate_limit_enabled", True)),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
        sign_in_rate_limit=os.getenv("SIGN_IN_RATE_LIMIT", "5/minute"),
    )

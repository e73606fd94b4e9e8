# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Core configuration — all env-driven, zero hardcode.
Single source of truth for every tunable parameter.
"""

import json
import os


def _json_env(name: str, default: str) -> dict[str, str]:
    try:
        value = json.loads(os.getenv(name, default) or default)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "triage-rotation")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")
    SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "8005"))
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")

    # All calendar decisions (weekend defer, period bounds, eve check)
    REFERENCE_TIMEZONE: str = os.getenv("REFERENCE_TIMEZONE", "America/Los_Angeles")

    DATA_DIR: str = os.getenv("DATA_DIR", "data")
    ROSTER_FILE: str = os.getenv("ROSTER_FILE", "disciplines.json")
    OVERRIDES_FILE: str = os.getenv("OVERRIDES_FILE", "overrides.json")
    PERIODS_FILE: str = os.getenv("PERIODS_FILE", "sprints.json")

    # Empty → in-memory rotation store
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "300"))

    NOTIFICATION_SERVICE_URL: str = os.getenv(
        "NOTIFICATION_SERVICE_URL", "http://notification-service:8004"
    )
    NOTIFICATION_TIMEOUT: float = float(os.getenv("NOTIFICATION_TIMEOUT", "3.0"))
    NOTIFICATION_CHANNEL: str = os.getenv("NOTIFICATION_CHANNEL", "slack")
    ADMIN_CHANNEL_ID: str = os.getenv("ADMIN_CHANNEL_ID", "")

    GROUP_SYNC_URL: str = os.getenv("GROUP_SYNC_URL", "")
    USERGROUP_ID: str = os.getenv("USERGROUP_ID", "")
    TRIAGE_CHANNEL_ID: str = os.getenv("TRIAGE_CHANNEL_ID", "")
    TOPIC_PREFIX: str = os.getenv(
        "TOPIC_PREFIX", "Bug Link Only - keep conversations in threads."
    )

    CRON_SECRET: str = os.getenv("CRON_SECRET", "")

    # JSON object: role -> fallback user id for roles with an empty roster
    FALLBACK_USERS: dict[str, str] = _json_env("FALLBACK_USERS", "{}")

    # A pending trigger audit older than this is treated as a crashed attempt and resumed
    TRIGGER_PENDING_STALE_SECONDS: int = int(os.getenv("TRIGGER_PENDING_STALE_SECONDS", "300"))

    SNAPSHOT_LIST_LIMIT: int = int(os.getenv("SNAPSHOT_LIST_LIMIT", "10"))
    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()

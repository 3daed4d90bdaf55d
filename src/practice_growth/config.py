"""Environment-based configuration for the growth engine."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class Settings:
    """Runtime configuration loaded from environment variables."""

    def __init__(self):
        self.db_path = os.getenv(
            "PG_DATABASE_PATH",
            str(Path.home() / ".practice-growth" / "growth.db"),
        )
        self.scoring_config_path = os.getenv(
            "PG_SCORING_CONFIG",
            str(Path.home() / ".practice-growth" / "scoring_config.json"),
        )

        # Practice identity used for content personalization
        self.practice_name = os.getenv("PG_PRACTICE_NAME", "Our Practice")
        self.practice_phone = os.getenv("PG_PRACTICE_PHONE", "")
        subdomain = os.getenv("PG_BOOKING_SUBDOMAIN", "practice")
        self.booking_link = os.getenv("PG_BOOKING_LINK") or f"https://booking.{subdomain}.com"

        self.timezone = os.getenv("PG_TIMEZONE", "America/Los_Angeles")
        self.log_level = os.getenv("PG_LOG_LEVEL", "INFO").upper()


_settings = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
        logger.debug(f"Loaded settings (db={_settings.db_path}, tz={_settings.timezone})")
    return _settings


class _SettingsProxy:
    """Lazy proxy so settings aren't loaded until first access."""

    def __getattr__(self, name):
        return getattr(_get_settings(), name)


settings = _SettingsProxy()

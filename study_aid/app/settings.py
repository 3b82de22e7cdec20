"""Configuration helpers for the Study Aid runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    telegram_bot_token: str
    max_interval_days: Optional[int] = None

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Study Aid")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN")

        if not telegram_bot_token:
            raise RuntimeError(
                "TELEGRAM_BOT_TOKEN environment variable is required to start the Telegram bot."
            )

        max_interval_days: Optional[int] = None
        raw_max_interval = os.getenv("SRS_MAX_INTERVAL_DAYS", "").strip()
        if raw_max_interval:
            try:
                max_interval_days = int(raw_max_interval)
            except ValueError as exc:
                raise RuntimeError("SRS_MAX_INTERVAL_DAYS must be an integer.") from exc
            if max_interval_days < 1:
                raise RuntimeError("SRS_MAX_INTERVAL_DAYS must be a positive integer.")

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            telegram_bot_token=telegram_bot_token,
            max_interval_days=max_interval_days,
        )

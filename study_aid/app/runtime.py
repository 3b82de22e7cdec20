"""Bootstrap logic for running the Telegram study bot."""

from __future__ import annotations

import asyncio
import logging

from study_aid.app.settings import AppSettings
from study_aid.bot import StudyBotAgent, build_application
from study_aid.db import get_session_factory, run_migrations_if_needed
from study_aid.review.session import StudySession


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )


def _ensure_event_loop() -> None:
    """Guarantee that an asyncio event loop exists for the current thread."""
    try:
        asyncio.get_event_loop()
    except RuntimeError:
        asyncio.set_event_loop(asyncio.new_event_loop())


def run_bot(settings: AppSettings) -> None:
    """Start the Telegram bot using the provided settings."""
    _configure_logging(settings.log_level)

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    study_session = StudySession(
        get_session_factory(),
        max_interval_days=settings.max_interval_days,
    )
    agent = StudyBotAgent(study_session)
    application = build_application(settings.telegram_bot_token, agent)

    _ensure_event_loop()

    if settings.max_interval_days is None:
        LOGGER.info("Review intervals are unbounded.")
    else:
        LOGGER.info("Review intervals are capped at %s days.", settings.max_interval_days)
    LOGGER.info("Starting Telegram bot for %s in %s mode.", settings.app_name, settings.app_env)
    application.run_polling()

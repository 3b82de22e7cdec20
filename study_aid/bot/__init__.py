"""Telegram front end for flashcard study sessions."""

from .agent import StudyBotAgent
from .telegram import build_application

__all__ = ["StudyBotAgent", "build_application"]

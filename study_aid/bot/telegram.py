"""Telegram application wiring for the study bot."""

from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
)

from .agent import StudyBotAgent


def build_application(bot_token: str, agent: StudyBotAgent) -> Application:
    """Configure the Telegram application instance."""
    application = ApplicationBuilder().token(bot_token).build()
    application.add_handler(CommandHandler("start", agent.handle_start))
    application.add_handler(CommandHandler("add", agent.handle_add))
    application.add_handler(CommandHandler("study", agent.handle_study))
    application.add_handler(CallbackQueryHandler(agent.handle_take_flashcard, pattern="^fc_take$"))
    application.add_handler(CallbackQueryHandler(agent.handle_delete_flashcard, pattern=r"^fc_delete:"))
    application.add_handler(CallbackQueryHandler(agent.handle_show_flashcard, pattern=r"^fc_show:"))
    application.add_handler(CallbackQueryHandler(agent.handle_rate_flashcard, pattern=r"^fc_rate:"))
    return application

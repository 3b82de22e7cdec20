"""Telegram handlers for the flashcard study bot."""

from __future__ import annotations

import logging
from contextlib import suppress
from datetime import datetime, timezone
from html import escape
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from study_aid.review.scheduler import InvalidRating, InvalidState, RecallRating
from study_aid.review.session import CardView, FlashcardNotFound, StudySession


LOGGER = logging.getLogger(__name__)


_RATING_LABELS = (
    (RecallRating.HARD, "Hard"),
    (RecallRating.MEDIUM, "Medium"),
    (RecallRating.EASY, "Easy"),
)


class StudyBotAgent:
    """Handles Telegram updates by delegating to a :class:`StudySession`."""

    def __init__(self, study_session: StudySession) -> None:
        self._study = study_session

    async def _store_user_profile(self, update: Update) -> None:
        chat = update.effective_chat
        user = update.effective_user
        if chat is None or user is None:
            return
        try:
            await self._study.register_user(
                chat.id,
                getattr(user, "first_name", None),
                getattr(user, "last_name", None),
            )
        except Exception:  # pragma: no cover - best effort profile update
            LOGGER.exception("Failed to store profile for chat %s.", chat.id)

    async def handle_start(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Greet the learner and explain the available commands."""
        if not update.message:
            return

        await self._store_user_profile(update)

        greeting = (
            "Hi! I help you memorise things with spaced repetition.\n"
            "- /add question | answer: create a flashcard;\n"
            "- /study: review the next due card.\n\n"
            "Rate each card *Hard*, *Medium* or *Easy* and I will schedule the next review."
        )
        await update.message.reply_text(
            greeting,
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=self._build_take_card_markup(),
        )

    async def handle_add(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Create a flashcard from ``/add front | back``."""
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        front, back = self._parse_add_arguments(getattr(context, "args", None) or [])
        if not front or not back:
            await message.reply_text("Usage: /add question | answer")
            return

        await self._store_user_profile(update)

        card = await self._study.add_card(chat.id, front, back)
        await message.reply_text(
            f"<b>Card added.</b>\n<b>Front:</b> {self._escape_html(card.front)}\n"
            f"<b>Back:</b> {self._escape_html(card.back)}",
            parse_mode=ParseMode.HTML,
            reply_markup=self._build_added_markup(card.id),
        )

    @staticmethod
    def _parse_add_arguments(args: list[str]) -> tuple[Optional[str], Optional[str]]:
        raw = " ".join(args)
        if "|" not in raw:
            return None, None
        front, back = raw.split("|", 1)
        return front.strip() or None, back.strip() or None

    async def handle_study(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return
        await self._send_next_card(message, chat.id)

    async def handle_take_flashcard(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None:
            return

        await query.answer()

        message = query.message
        if message is None or message.chat is None:
            return

        await self._send_next_card(message, message.chat.id)

    async def _send_next_card(self, message: Message, chat_id: int) -> None:
        now = datetime.now(timezone.utc)
        card = await self._study.next_card(chat_id, now=now)

        if card is None:
            await message.reply_text(
                "You have no flashcards yet. Add one with /add question | answer.",
            )
            return

        await message.reply_text(
            self._format_flashcard_question(card, now),
            parse_mode=ParseMode.HTML,
            reply_markup=self._build_reveal_keyboard(card.id),
        )

    async def handle_show_flashcard(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        parts = query.data.split(":")
        if len(parts) != 2 or parts[0] != "fc_show":
            await query.answer()
            return

        try:
            flashcard_id = int(parts[1])
        except ValueError:
            await query.answer("Invalid request.", show_alert=True)
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        card = await self._study.get_card(message.chat.id, flashcard_id)
        if card is None:
            await query.answer("Card not found.", show_alert=True)
            return

        prompt = self._format_flashcard_answer(card)

        try:
            await query.edit_message_text(
                prompt,
                parse_mode=ParseMode.HTML,
                reply_markup=self._build_rating_keyboard(card.id),
            )
        except Exception:  # pragma: no cover - best effort update
            LOGGER.debug("Could not reveal flashcard answer.", exc_info=True)
            await message.reply_text(
                prompt,
                parse_mode=ParseMode.HTML,
                reply_markup=self._build_rating_keyboard(card.id),
            )

        await query.answer()

    async def handle_rate_flashcard(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        parts = query.data.split(":")
        if len(parts) != 3 or parts[0] != "fc_rate":
            await query.answer()
            return

        try:
            flashcard_id = int(parts[1])
        except ValueError:
            await query.answer("Invalid identifier.", show_alert=True)
            return

        try:
            rating = RecallRating.parse(parts[2])
        except InvalidRating:
            await query.answer("Unknown rating.", show_alert=True)
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        chat_id = message.chat.id

        try:
            outcome = await self._study.rate_card(chat_id, flashcard_id, rating)
        except FlashcardNotFound:
            await query.answer("Card not found.", show_alert=True)
            return
        except InvalidState:
            LOGGER.exception("Stored review state of flashcard %s is unusable.", flashcard_id)
            await query.answer("This card could not be rescheduled.", show_alert=True)
            return

        try:
            await query.edit_message_reply_markup(reply_markup=None)
        except Exception:  # pragma: no cover - best effort cleanup
            LOGGER.debug("Could not clear flashcard rating markup.", exc_info=True)

        await query.answer("Rating saved.")

        await message.reply_text(
            f"Rated {rating.value}. Next review {self._describe_interval(outcome.current.interval_days)}.",
            reply_markup=self._build_take_card_markup(),
        )

    async def handle_delete_flashcard(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        parts = query.data.split(":")
        if len(parts) != 2 or parts[0] != "fc_delete":
            await query.answer()
            return

        try:
            flashcard_id = int(parts[1])
        except ValueError:
            await query.answer("Invalid identifier.", show_alert=True)
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        deleted = await self._study.delete_card(message.chat.id, flashcard_id)
        if not deleted:
            await query.answer("Card not found.", show_alert=True)
            return

        await query.answer("Card deleted.")
        with suppress(Exception):
            await query.edit_message_reply_markup(reply_markup=None)

    @staticmethod
    def _build_take_card_markup() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            [[InlineKeyboardButton("Study next card", callback_data="fc_take")]]
        )

    @staticmethod
    def _build_added_markup(flashcard_id: int) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton("Study now", callback_data="fc_take"),
                    InlineKeyboardButton("Delete", callback_data=f"fc_delete:{flashcard_id}"),
                ]
            ]
        )

    @staticmethod
    def _build_reveal_keyboard(flashcard_id: int) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            [[InlineKeyboardButton("Show answer", callback_data=f"fc_show:{flashcard_id}")]]
        )

    @staticmethod
    def _build_rating_keyboard(flashcard_id: int) -> InlineKeyboardMarkup:
        buttons = [
            InlineKeyboardButton(label, callback_data=f"fc_rate:{flashcard_id}:{rating.value}")
            for rating, label in _RATING_LABELS
        ]
        return InlineKeyboardMarkup([buttons])

    @staticmethod
    def _escape_html(text: Optional[str]) -> str:
        if not text:
            return ''
        return escape(text, quote=False)

    def _format_flashcard_question(self, card: CardView, now: datetime) -> str:
        lines = ['<b>Flashcard</b>']
        if card.state.next_review_at > now:
            lines.append('<i>Nothing is due, so here is the next upcoming card.</i>')
        lines.extend(
            [
                '',
                f"<b>Question:</b> {self._escape_html(card.front)}",
                '',
                '<i>Press «Show answer» when you are ready.</i>',
            ]
        )
        return "\n".join(lines).strip()

    def _format_flashcard_answer(self, card: CardView) -> str:
        lines = [
            f"<b>Question:</b> {self._escape_html(card.front)}",
            f"<b>Answer:</b> {self._escape_html(card.back)}",
            '',
            f"<i>Repetitions:</i> {card.state.repetitions}  "
            f"<i>Interval:</i> {card.state.interval_days} d",
            '',
            '<i>How hard was it to recall?</i>',
        ]
        return "\n".join(lines).strip()

    @staticmethod
    def _describe_interval(interval_days: int) -> str:
        if interval_days == 1:
            return "in 1 day"
        if interval_days < 7:
            return f"in {interval_days} days"
        if interval_days % 7 == 0:
            weeks = interval_days // 7
            if weeks == 1:
                return "in 1 week"
            return f"in {weeks} weeks"
        return f"in {interval_days} days"

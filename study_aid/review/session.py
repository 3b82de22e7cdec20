"""Study session flow: pick cards, apply ratings, persist the new schedule."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from study_aid.db import Flashcard
from study_aid.db.flashcards import (
    FlashcardPayload,
    count_due_flashcards,
    create_flashcard,
    delete_flashcard,
    get_next_flashcard_for_user,
    get_user_flashcard,
    load_review_state,
    record_flashcard_review,
)
from study_aid.db.users import ensure_user, upsert_user
from study_aid.review.scheduler import RecallRating, ReviewState, next_state


LOGGER = logging.getLogger(__name__)


class FlashcardNotFound(LookupError):
    """Raised when a flashcard does not exist or belongs to another user."""


@dataclass(frozen=True, slots=True)
class CardView:
    """Detached snapshot of a flashcard for presentation."""

    id: int
    front: str
    back: str
    state: ReviewState

    @classmethod
    def from_record(cls, record: Flashcard) -> "CardView":
        return cls(
            id=record.id,
            front=record.front,
            back=record.back,
            state=load_review_state(record),
        )


@dataclass(frozen=True, slots=True)
class ReviewOutcome:
    """Result of rating a flashcard."""

    flashcard_id: int
    rating: RecallRating
    previous: ReviewState
    current: ReviewState


class StudySession:
    """Coordinates flashcard persistence and spaced-repetition scheduling.

    Ratings for the same flashcard are applied one at a time so that two quick
    ratings never compute their next state from the same stale base.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_interval_days: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self._max_interval_days = max_interval_days
        self._card_locks: Dict[int, asyncio.Lock] = {}
        self._card_lock_users: Dict[int, int] = {}

    @asynccontextmanager
    async def _card_lock(self, flashcard_id: int) -> AsyncIterator[None]:
        # Entries live only while a task holds or waits on the card.
        lock = self._card_locks.setdefault(flashcard_id, asyncio.Lock())
        self._card_lock_users[flashcard_id] = self._card_lock_users.get(flashcard_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._card_lock_users[flashcard_id] - 1
            if remaining:
                self._card_lock_users[flashcard_id] = remaining
            else:
                del self._card_lock_users[flashcard_id]
                del self._card_locks[flashcard_id]

    async def register_user(
        self,
        chat_id: int,
        first_name: Optional[str],
        last_name: Optional[str],
    ) -> None:
        """Create or refresh the profile of the learner behind a chat."""
        async with self._session_factory() as session:
            async with session.begin():
                await upsert_user(session, chat_id, first_name, last_name)

    async def add_card(
        self,
        chat_id: int,
        front: str,
        back: str,
        now: Optional[datetime] = None,
    ) -> CardView:
        """Create a flashcard that is due for review right away."""
        async with self._session_factory() as session:
            async with session.begin():
                await ensure_user(session, chat_id)
                record = await create_flashcard(
                    session, chat_id, FlashcardPayload(front=front, back=back), now=now
                )
                view = CardView.from_record(record)

        LOGGER.info("Added flashcard %s for chat %s.", view.id, chat_id)
        return view

    async def next_card(self, chat_id: int, now: Optional[datetime] = None) -> Optional[CardView]:
        """Return the card the learner should study next, if any."""
        async with self._session_factory() as session:
            record = await get_next_flashcard_for_user(session, chat_id, now=now)
            if record is None:
                return None
            return CardView.from_record(record)

    async def get_card(self, chat_id: int, flashcard_id: int) -> Optional[CardView]:
        async with self._session_factory() as session:
            record = await get_user_flashcard(session, chat_id, flashcard_id)
            if record is None:
                return None
            return CardView.from_record(record)

    async def due_count(self, chat_id: int, now: Optional[datetime] = None) -> int:
        async with self._session_factory() as session:
            return await count_due_flashcards(session, chat_id, now=now)

    async def rate_card(
        self,
        chat_id: int,
        flashcard_id: int,
        rating: RecallRating | str,
        now: Optional[datetime] = None,
    ) -> ReviewOutcome:
        """Apply a recall rating to a flashcard and store its next schedule.

        Raises :class:`InvalidRating` before touching the database when the
        rating is unknown, and :class:`FlashcardNotFound` when the card is not
        the user's. Any failure leaves the stored state untouched.
        """
        parsed = RecallRating.parse(rating)
        if now is None:
            now = datetime.now(timezone.utc)

        async with self._card_lock(flashcard_id):
            async with self._session_factory() as session:
                async with session.begin():
                    record = await get_user_flashcard(session, chat_id, flashcard_id)
                    if record is None:
                        raise FlashcardNotFound(
                            f"Flashcard {flashcard_id} was not found for chat {chat_id}."
                        )

                    previous = load_review_state(record)
                    current = next_state(
                        previous,
                        parsed,
                        now,
                        max_interval_days=self._max_interval_days,
                    )
                    await record_flashcard_review(session, record, parsed, current, now=now)

        LOGGER.info(
            "Flashcard %s rated %s: interval %s -> %s days, ease %.2f -> %.2f.",
            flashcard_id,
            parsed.value,
            previous.interval_days,
            current.interval_days,
            previous.ease_factor,
            current.ease_factor,
        )
        return ReviewOutcome(
            flashcard_id=flashcard_id,
            rating=parsed,
            previous=previous,
            current=current,
        )

    async def delete_card(self, chat_id: int, flashcard_id: int) -> bool:
        async with self._card_lock(flashcard_id):
            async with self._session_factory() as session:
                async with session.begin():
                    deleted = await delete_flashcard(session, chat_id, flashcard_id)
        return deleted

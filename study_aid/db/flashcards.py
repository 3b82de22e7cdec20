"""Helpers for working with flashcard persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from study_aid.review.scheduler import (
    REVIEW_RECORD_FIELDS,
    RecallRating,
    ReviewState,
    initial_state,
)

from . import Flashcard, FlashcardReview


@dataclass(slots=True)
class FlashcardPayload:
    """Question and answer text for a new flashcard."""

    front: str
    back: str

    def normalized(self) -> "FlashcardPayload":
        """Return a payload with leading/trailing whitespace stripped."""
        return FlashcardPayload(front=self.front.strip(), back=self.back.strip())


async def create_flashcard(
    session: AsyncSession,
    chat_id: int,
    payload: FlashcardPayload,
    now: Optional[datetime] = None,
) -> Flashcard:
    """Store a new flashcard with a fresh review state, due immediately."""
    normalized = payload.normalized()
    if not normalized.front or not normalized.back:
        raise ValueError("Flashcards need both a front and a back.")

    flashcard = Flashcard(
        chat_id=chat_id,
        front=normalized.front,
        back=normalized.back,
        **initial_state(now).to_record(iso_timestamps=False),
    )
    session.add(flashcard)
    await session.flush()
    return flashcard


async def get_user_flashcard(
    session: AsyncSession,
    chat_id: int,
    flashcard_id: int,
) -> Optional[Flashcard]:
    """Return the flashcard when it exists and belongs to the given user."""
    flashcard = await session.get(Flashcard, flashcard_id)
    if flashcard is None or flashcard.chat_id != chat_id:
        return None
    return flashcard


async def list_flashcards(session: AsyncSession, chat_id: int) -> Sequence[Flashcard]:
    """Return a user's flashcards, newest first."""
    stmt = (
        select(Flashcard)
        .where(Flashcard.chat_id == chat_id)
        .order_by(Flashcard.created_at.desc(), Flashcard.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_next_flashcard_for_user(
    session: AsyncSession,
    chat_id: int,
    now: Optional[datetime] = None,
    include_future: bool = True,
) -> Optional[Flashcard]:
    """Return the next flashcard a user should study."""
    if now is None:
        now = datetime.now(timezone.utc)

    base_query = (
        select(Flashcard)
        .where(Flashcard.chat_id == chat_id)
        .order_by(Flashcard.next_review, Flashcard.id)
    )

    due_stmt = base_query.where(Flashcard.next_review <= now).limit(1)
    due_result = await session.execute(due_stmt)
    flashcard = due_result.scalars().first()
    if flashcard:
        return flashcard

    if not include_future:
        return None

    future_stmt = base_query.limit(1)
    future_result = await session.execute(future_stmt)
    return future_result.scalars().first()


async def count_due_flashcards(
    session: AsyncSession,
    chat_id: int,
    now: Optional[datetime] = None,
) -> int:
    """Count the user's flashcards whose review is due."""
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = select(func.count(Flashcard.id)).where(
        Flashcard.chat_id == chat_id,
        Flashcard.next_review <= now,
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


def load_review_state(flashcard: Flashcard) -> ReviewState:
    """Read the review state stored on a flashcard record.

    SQLite hands back naive datetimes even for timezone-aware columns; those are
    read as UTC.
    """
    return ReviewState.from_record(
        {field: getattr(flashcard, field) for field in REVIEW_RECORD_FIELDS}
    )


async def record_flashcard_review(
    session: AsyncSession,
    flashcard: Flashcard,
    rating: RecallRating,
    state: ReviewState,
    now: Optional[datetime] = None,
) -> None:
    """Persist a review outcome and append it to the flashcard's history."""
    if now is None:
        now = datetime.now(timezone.utc)

    for field, value in state.to_record(iso_timestamps=False).items():
        setattr(flashcard, field, value)
    flashcard.updated_at = now

    session.add(
        FlashcardReview(
            flashcard_id=flashcard.id,
            rating=rating.value,
            interval_days=state.interval_days,
            ease_factor=state.ease_factor,
            reviewed_at=now,
        )
    )
    await session.flush()


async def delete_flashcard(session: AsyncSession, chat_id: int, flashcard_id: int) -> bool:
    """Delete a user's flashcard together with its review history."""
    flashcard = await get_user_flashcard(session, chat_id, flashcard_id)
    if flashcard is None:
        return False
    await session.delete(flashcard)
    await session.flush()
    return True

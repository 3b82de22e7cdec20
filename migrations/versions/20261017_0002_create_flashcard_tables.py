"""Create flashcards with their review state and the review history."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0002"
down_revision: Union[str, None] = "20261017_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "flashcards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("front", sa.Text(), nullable=False),
        sa.Column("back", sa.Text(), nullable=False),
        sa.Column("interval_days", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("ease_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column("repetitions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "next_review",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ("chat_id",),
            ("users.chat_id",),
            name="fk_flashcards_chat_id_users",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_flashcards_chat_id_next_review",
        "flashcards",
        ("chat_id", "next_review"),
    )

    op.create_table(
        "flashcard_reviews",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("flashcard_id", sa.Integer(), nullable=False),
        sa.Column("rating", sa.String(length=16), nullable=False),
        sa.Column("interval_days", sa.Integer(), nullable=False),
        sa.Column("ease_factor", sa.Float(), nullable=False),
        sa.Column(
            "reviewed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ("flashcard_id",),
            ("flashcards.id",),
            name="fk_flashcard_reviews_flashcard_id",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "rating IN ('hard', 'medium', 'easy')",
            name="ck_flashcard_reviews_rating",
        ),
    )
    op.create_index(
        "ix_flashcard_reviews_flashcard_id",
        "flashcard_reviews",
        ("flashcard_id",),
    )


def downgrade() -> None:
    op.drop_index("ix_flashcard_reviews_flashcard_id", table_name="flashcard_reviews")
    op.drop_table("flashcard_reviews")
    op.drop_index("ix_flashcards_chat_id_next_review", table_name="flashcards")
    op.drop_table("flashcards")

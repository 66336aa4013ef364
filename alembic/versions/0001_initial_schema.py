"""initial schema: users, books, pages, questions, progress, checkpoints, sessions, quiz attempts, badges

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("last_name", sa.String(length=128), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="student"),
        sa.Column("grade_level", sa.String(length=4), nullable=True),
        sa.Column("approval_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )

    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="storybook"),
        sa.Column("subject", sa.String(length=64), nullable=True),
        sa.Column("grade", sa.String(length=4), nullable=True),
        sa.Column("slug", sa.String(length=100), nullable=False, unique=True),
        sa.Column("cover_image", sa.String(length=1000), nullable=True),
        sa.Column("quiz_mode", sa.String(length=16), nullable=False, server_default="retry"),
        sa.Column("added_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    )
    op.create_index(
        "uniq_books_title_grade_subject_ci",
        "books",
        [
            sa.text("lower(title)"),
            sa.text("coalesce(grade, '')"),
            sa.text("coalesce(subject, '')"),
        ],
        unique=True,
    )

    op.create_table(
        "pages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(length=1000), nullable=True),
        sa.Column("audio_url", sa.String(length=1000), nullable=True),
        sa.UniqueConstraint("book_id", "page_number", name="uq_pages_book_page_number"),
    )
    op.create_index("ix_pages_book_id", "pages", ["book_id"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("page_id", sa.Integer(), sa.ForeignKey("pages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("answer_type", sa.String(length=32), nullable=False, server_default="text"),
        sa.Column("correct_answer", sa.Text(), nullable=True),
        sa.Column("options", sa.JSON(), nullable=True),
    )
    op.create_index("ix_questions_page_id", "questions", ["page_id"])

    op.create_table(
        "progress",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("percent_complete", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_reading_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_read_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "book_id", name="uq_progress_user_book"),
    )
    op.create_index("ix_progress_user_id", "progress", ["user_id"])
    op.create_index("ix_progress_book_id", "progress", ["book_id"])

    op.create_table(
        "story_checkpoints",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("page_id", sa.Integer(), sa.ForeignKey("pages.id", ondelete="SET NULL"), nullable=True),
        sa.Column("page_number", sa.Integer(), nullable=True),
        sa.Column("answers_json", sa.JSON(), nullable=True),
        sa.Column("quiz_state_json", sa.JSON(), nullable=True),
        sa.Column("audio_position_sec", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("percent_complete", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_checkpoint_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "book_id", name="uq_story_checkpoints_user_book"),
    )
    op.create_index("ix_story_checkpoints_user_id", "story_checkpoints", ["user_id"])
    op.create_index("ix_story_checkpoints_book_id", "story_checkpoints", ["book_id"])

    # No unique index on active sessions: one active session per (user, book)
    # is an application-level check only.
    op.create_table(
        "reading_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_seconds", sa.Integer(), nullable=True),
    )
    op.create_index("ix_reading_sessions_user_id", "reading_sessions", ["user_id"])
    op.create_index("ix_reading_sessions_book_id", "reading_sessions", ["book_id"])

    op.create_table(
        "quiz_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("page_id", sa.Integer(), sa.ForeignKey("pages.id", ondelete="SET NULL"), nullable=True),
        sa.Column("score_correct", sa.Integer(), nullable=False),
        sa.Column("score_total", sa.Integer(), nullable=False),
        sa.Column("percentage", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(length=16), nullable=False, server_default="retry"),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("duration_sec", sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_quiz_attempts_user_id", "quiz_attempts", ["user_id"])
    op.create_index("ix_quiz_attempts_book_id", "quiz_attempts", ["book_id"])

    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon_url", sa.String(length=1000), nullable=True),
        sa.Column("theme_colors", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_generic", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "book_badges",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_id", sa.Integer(), sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("award_method", sa.String(length=32), nullable=False, server_default="auto_on_book_complete"),
        sa.Column("completion_threshold", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("criteria_json", sa.JSON(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("book_id", "badge_id", name="uq_book_badges_book_badge"),
    )
    op.create_index("ix_book_badges_book_id", "book_badges", ["book_id"])
    op.create_index("ix_book_badges_badge_id", "book_badges", ["badge_id"])

    op.create_table(
        "earned_badges",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("badge_id", sa.Integer(), sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id", ondelete="SET NULL"), nullable=True),
        sa.Column("awarded_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("awarded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_earned_badges_user_badge"),
    )
    op.create_index("ix_earned_badges_user_id", "earned_badges", ["user_id"])
    op.create_index("ix_earned_badges_badge_id", "earned_badges", ["badge_id"])


def downgrade() -> None:
    op.drop_table("earned_badges")
    op.drop_table("book_badges")
    op.drop_table("badges")
    op.drop_table("quiz_attempts")
    op.drop_table("reading_sessions")
    op.drop_table("story_checkpoints")
    op.drop_table("progress")
    op.drop_table("questions")
    op.drop_table("pages")
    op.drop_index("uniq_books_title_grade_subject_ci", table_name="books")
    op.drop_table("books")
    op.drop_table("users")

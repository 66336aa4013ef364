from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, UniqueConstraint, func

from reader_api.db.base_class import Base


class StoryCheckpoint(Base):
    __tablename__ = "story_checkpoints"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)

    # exact resume position
    page_id = Column(Integer, ForeignKey("pages.id", ondelete="SET NULL"), nullable=True)
    page_number = Column(Integer, nullable=True)

    # opaque client state
    answers_json = Column(JSON, nullable=True)
    quiz_state_json = Column(JSON, nullable=True)

    audio_position_sec = Column(Integer, nullable=False, default=0)
    percent_complete = Column(Integer, nullable=False, default=0)

    last_checkpoint_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_story_checkpoints_user_book"),
    )

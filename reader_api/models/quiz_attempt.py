from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from reader_api.db.base_class import Base


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    page_id = Column(Integer, ForeignKey("pages.id", ondelete="SET NULL"), nullable=True)

    score_correct = Column(Integer, nullable=False)
    score_total = Column(Integer, nullable=False)
    # computed server-side from score_correct / score_total
    percentage = Column(Integer, nullable=False)

    mode = Column(String(16), nullable=False, default="retry")  # retry|straight
    attempt_number = Column(Integer, nullable=False, default=1)
    duration_sec = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, func

from reader_api.db.base_class import Base


class ReadingSession(Base):
    __tablename__ = "reading_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)

    start_time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # null while the session is active
    end_time = Column(DateTime(timezone=True), nullable=True)
    total_seconds = Column(Integer, nullable=True)

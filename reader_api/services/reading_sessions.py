from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from reader_api.core.errors import NotFoundError
from reader_api.models.reading_session import ReadingSession
from reader_api.services.books import get_book
from reader_api.services.progress import record_session_end

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def get_active_session(db: Session, user_id: int, book_id: int) -> ReadingSession | None:
    return (
        db.query(ReadingSession)
        .filter(
            ReadingSession.user_id == user_id,
            ReadingSession.book_id == book_id,
            ReadingSession.end_time.is_(None),
        )
        .order_by(ReadingSession.start_time.desc(), ReadingSession.id.desc())
        .first()
    )


def start_session(db: Session, user_id: int, book_id: int) -> tuple[ReadingSession, bool]:
    """
    Returns (session, resumed). An already-active session for the pair is
    returned as-is.

    "At most one active session" is only an existence check here; two
    concurrent starts can both insert.
    """
    get_book(db, book_id)

    active = get_active_session(db, user_id, book_id)
    if active:
        return active, True

    row = ReadingSession(user_id=user_id, book_id=book_id, start_time=_now())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, False


def end_session(db: Session, user_id: int, book_id: int) -> ReadingSession:
    """Closes the active session and adds its whole seconds to progress reading time."""
    active = get_active_session(db, user_id, book_id)
    if not active:
        raise NotFoundError("No active reading session found")

    now = _now()
    elapsed = int((now - _as_utc(active.start_time)).total_seconds())
    elapsed = max(0, elapsed)

    active.end_time = now
    active.total_seconds = elapsed
    record_session_end(db, user_id, book_id, elapsed, commit=False)
    db.commit()
    db.refresh(active)

    logger.info("Reading session %s ended after %ss", active.id, elapsed)
    return active


def session_out(row: ReadingSession) -> dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "bookId": row.book_id,
        "startTime": row.start_time.isoformat() if row.start_time else None,
        "endTime": row.end_time.isoformat() if row.end_time else None,
        "totalSeconds": row.total_seconds,
    }

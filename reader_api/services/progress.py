from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case
from sqlalchemy.orm import Session

from reader_api.core.errors import AuthorizationError
from reader_api.db.upsert import upsert
from reader_api.models.book import Book
from reader_api.models.progress import Progress
from reader_api.models.user import User

_table = Progress.__table__


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp_percent(percent: float) -> int:
    return int(max(0, min(100, round(float(percent)))))


def _load(db: Session, row_id: int) -> Progress:
    return db.get(Progress, row_id, populate_existing=True)


def get_progress(db: Session, user_id: int, book_id: int) -> Progress | None:
    return (
        db.query(Progress)
        .filter(Progress.user_id == user_id, Progress.book_id == book_id)
        .first()
    )


def record_session_end(
    db: Session,
    user_id: int,
    book_id: int,
    elapsed_seconds: int,
    commit: bool = True,
) -> Progress:
    """Adds elapsed_seconds to the reading-time total, creating the row if absent."""
    elapsed = max(0, int(elapsed_seconds))
    now = _now()
    row_id = upsert(
        db,
        _table,
        values={
            "user_id": user_id,
            "book_id": book_id,
            "total_reading_time": elapsed,
            "last_read_at": now,
        },
        index_elements=["user_id", "book_id"],
        update={
            "total_reading_time": lambda ex: _table.c.total_reading_time + ex.total_reading_time,
            "last_read_at": now,
        },
    )
    if commit:
        db.commit()
    return _load(db, row_id)


def set_percent(
    db: Session,
    user_id: int,
    book_id: int,
    percent: float,
    commit: bool = True,
) -> Progress:
    """
    Clamps to [0,100] and stores it, never lowering an existing value.
    A lower value only refreshes last_read_at.
    """
    value = _clamp_percent(percent)
    now = _now()
    row_id = upsert(
        db,
        _table,
        values={
            "user_id": user_id,
            "book_id": book_id,
            "percent_complete": value,
            "last_read_at": now,
        },
        index_elements=["user_id", "book_id"],
        update={
            "percent_complete": lambda ex: case(
                (ex.percent_complete > _table.c.percent_complete, ex.percent_complete),
                else_=_table.c.percent_complete,
            ),
            "last_read_at": now,
        },
    )
    if commit:
        db.commit()
    return _load(db, row_id)


def force_complete(db: Session, user_id: int, book_id: int) -> Progress:
    """
    Completion only: insert at 100 or raise to 100; at 100 this just touches
    last_read_at. Does not commit (runs inside the completion transaction).
    """
    now = _now()
    row_id = upsert(
        db,
        _table,
        values={
            "user_id": user_id,
            "book_id": book_id,
            "percent_complete": 100,
            "last_read_at": now,
        },
        index_elements=["user_id", "book_id"],
        update={"percent_complete": 100, "last_read_at": now},
    )
    return _load(db, row_id)


def list_progress(db: Session, requester_id: int, role: str, student_id: int | None = None) -> list[Progress]:
    """
    Role-scoped listing:
      - student -> own rows only
      - teacher -> rows of approved students
      - admin   -> everything, optionally narrowed to one student
    """
    query = db.query(Progress)

    if role == "student":
        if student_id is not None and student_id != requester_id:
            raise AuthorizationError("Students can only view their own progress")
        query = query.filter(Progress.user_id == requester_id)
    elif role == "teacher":
        query = query.join(User, User.id == Progress.user_id).filter(
            User.role == "student",
            User.approval_status == "approved",
        )
        if student_id is not None:
            query = query.filter(Progress.user_id == student_id)
    elif role == "admin":
        if student_id is not None:
            query = query.filter(Progress.user_id == student_id)
    else:
        raise AuthorizationError()

    return query.order_by(Progress.last_read_at.desc(), Progress.id.desc()).all()


def progress_out(row: Progress, book: Book | None = None) -> dict[str, Any]:
    out = {
        "id": row.id,
        "userId": row.user_id,
        "bookId": row.book_id,
        "percentComplete": int(row.percent_complete or 0),
        "totalReadingTime": int(row.total_reading_time or 0),
        "lastReadAt": row.last_read_at.isoformat() if row.last_read_at else None,
    }
    if book is not None:
        out["book"] = {"id": book.id, "title": book.title, "slug": book.slug, "type": book.type}
    return out

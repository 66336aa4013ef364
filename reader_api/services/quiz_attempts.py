from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from reader_api.core.errors import AuthorizationError, NotFoundError, ValidationError
from reader_api.models.book import Page
from reader_api.models.quiz_attempt import QuizAttempt
from reader_api.models.user import User
from reader_api.services.books import get_book

MAX_DURATION_SEC = 86400


class QuizAttemptIn(BaseModel):
    user_id: int | None = None
    book_id: int
    page_id: int | None = None
    score_correct: int
    score_total: int
    mode: str | None = None
    duration_sec: float | None = Field(default=None, allow_inf_nan=False)


def record_attempt(db: Session, requester_id: int, role: str, payload: QuizAttemptIn) -> QuizAttempt:
    """
    Percentage is always computed here from score_correct / score_total; any
    client-sent percentage is ignored. Students always record for themselves,
    staff may record on behalf of payload.user_id.
    """
    if payload.score_total <= 0:
        raise ValidationError("scoreTotal must be greater than 0")
    if payload.score_correct < 0 or payload.score_correct > payload.score_total:
        raise ValidationError("scoreCorrect must be between 0 and scoreTotal")

    owner_id = requester_id
    if role != "student" and payload.user_id is not None:
        owner_id = payload.user_id
        if db.get(User, owner_id) is None:
            raise NotFoundError("User not found")

    get_book(db, payload.book_id)
    if payload.page_id is not None:
        page = db.get(Page, payload.page_id)
        if page is None or page.book_id != payload.book_id:
            raise NotFoundError("Page not found for this book")

    percentage = round(payload.score_correct / payload.score_total * 100)
    percentage = max(0, min(100, percentage))
    mode = "straight" if (payload.mode or "").strip().lower() == "straight" else "retry"
    duration = None
    if payload.duration_sec is not None:
        duration = int(max(0, min(MAX_DURATION_SEC, round(payload.duration_sec))))

    q = db.query(func.max(QuizAttempt.attempt_number)).filter(
        QuizAttempt.user_id == owner_id,
        QuizAttempt.book_id == payload.book_id,
    )
    if payload.page_id is not None:
        q = q.filter(QuizAttempt.page_id == payload.page_id)
    previous = q.scalar() or 0

    row = QuizAttempt(
        user_id=owner_id,
        book_id=payload.book_id,
        page_id=payload.page_id,
        score_correct=payload.score_correct,
        score_total=payload.score_total,
        percentage=percentage,
        mode=mode,
        attempt_number=int(previous) + 1,
        duration_sec=duration,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_attempts(
    db: Session,
    requester_id: int,
    role: str,
    user_id: int | None = None,
    book_id: int | None = None,
    page_id: int | None = None,
    latest_per_book: bool = False,
) -> list[QuizAttempt]:
    if role == "student":
        if user_id is not None and user_id != requester_id:
            raise AuthorizationError("Students can only view their own attempts")
        user_id = requester_id

    query = db.query(QuizAttempt)
    if user_id is not None:
        query = query.filter(QuizAttempt.user_id == user_id)
    if book_id is not None:
        query = query.filter(QuizAttempt.book_id == book_id)
    if page_id is not None:
        query = query.filter(QuizAttempt.page_id == page_id)

    rows = query.order_by(QuizAttempt.created_at.desc(), QuizAttempt.id.desc()).all()
    if not latest_per_book:
        return rows

    # keep the highest attempt per (user, book)
    latest: dict[tuple[int, int], QuizAttempt] = {}
    for r in rows:
        key = (r.user_id, r.book_id)
        best = latest.get(key)
        if best is None or (r.attempt_number, r.id) > (best.attempt_number, best.id):
            latest[key] = r
    return sorted(latest.values(), key=lambda r: r.id, reverse=True)


def attempt_out(row: QuizAttempt) -> dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "bookId": row.book_id,
        "pageId": row.page_id,
        "scoreCorrect": row.score_correct,
        "scoreTotal": row.score_total,
        "percentage": row.percentage,
        "mode": row.mode,
        "attemptNumber": row.attempt_number,
        "durationSec": row.duration_sec,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }

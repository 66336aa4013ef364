from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from reader_api.core.security import CurrentUser, get_current_user
from reader_api.db.session import get_db
from reader_api.services.payloads import QUIZ_ATTEMPT_ALIASES, parse_payload
from reader_api.services.quiz_attempts import QuizAttemptIn, attempt_out, list_attempts, record_attempt

router = APIRouter(prefix="/api/quiz-attempts", tags=["quiz_attempts"])


@router.post("", status_code=201)
def post_attempt(
    body: Any = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = parse_payload(QuizAttemptIn, body, QUIZ_ATTEMPT_ALIASES)
    row = record_attempt(db, user.user_id, user.role, payload)
    return {"success": True, "attempt": attempt_out(row)}


@router.get("")
def get_attempts(
    user_id: int | None = Query(default=None, alias="userId"),
    book_id: int | None = Query(default=None, alias="bookId"),
    page_id: int | None = Query(default=None, alias="pageId"),
    latest_per_book: bool = Query(default=False, alias="latestPerBook"),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = list_attempts(
        db,
        user.user_id,
        user.role,
        user_id=user_id,
        book_id=book_id,
        page_id=page_id,
        latest_per_book=latest_per_book,
    )
    return {"success": True, "count": len(rows), "attempts": [attempt_out(r) for r in rows]}

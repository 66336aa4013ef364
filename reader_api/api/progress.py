from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from reader_api.core.security import CurrentUser, get_current_user
from reader_api.db.session import get_db
from reader_api.models.book import Book
from reader_api.services.books import get_book
from reader_api.services.payloads import PROGRESS_ALIASES, parse_payload
from reader_api.services.progress import list_progress, progress_out, set_percent

router = APIRouter(prefix="/api/progress", tags=["progress"])


class ProgressUpdateRequest(BaseModel):
    book_id: int
    percent_complete: float = Field(allow_inf_nan=False)


@router.get("")
def get_progress_list(
    student_id: int | None = Query(default=None, alias="studentId"),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = list_progress(db, user.user_id, user.role, student_id=student_id)
    book_ids = {r.book_id for r in rows}
    books = {b.id: b for b in db.query(Book).filter(Book.id.in_(book_ids)).all()} if book_ids else {}
    return {"success": True, "progress": [progress_out(r, books.get(r.book_id)) for r in rows]}


@router.post("")
def post_progress(
    body: Any = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Routine progress update. A lower percentage never overwrites a higher one."""
    req = parse_payload(ProgressUpdateRequest, body, PROGRESS_ALIASES)
    book = get_book(db, req.book_id)
    row = set_percent(db, user.user_id, book.id, req.percent_complete)
    return {"success": True, "progress": progress_out(row, book)}

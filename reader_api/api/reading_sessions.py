from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reader_api.core.security import CurrentUser, get_current_user
from reader_api.db.session import get_db
from reader_api.services.payloads import BOOK_REF_ALIASES, parse_payload
from reader_api.services.reading_sessions import end_session, session_out, start_session

router = APIRouter(prefix="/api/reading-sessions", tags=["reading_sessions"])


class ReadingSessionRequest(BaseModel):
    book_id: int


@router.post("/start")
def post_start(
    body: Any = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    req = parse_payload(ReadingSessionRequest, body, BOOK_REF_ALIASES)
    session, resumed = start_session(db, user.user_id, req.book_id)
    return {
        "success": True,
        "message": "Reading session already active" if resumed else "Reading session started",
        "resumed": resumed,
        "session": session_out(session),
    }


@router.post("/end")
def post_end(
    body: Any = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    req = parse_payload(ReadingSessionRequest, body, BOOK_REF_ALIASES)
    session = end_session(db, user.user_id, req.book_id)
    return {
        "success": True,
        "message": "Reading session ended",
        "totalSeconds": session.total_seconds,
        "session": session_out(session),
    }

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import case
from sqlalchemy.orm import Session

from reader_api.core.errors import ReferentialError
from reader_api.db.upsert import upsert
from reader_api.models.book import Book, Page
from reader_api.models.story_checkpoint import StoryCheckpoint

MAX_AUDIO_POSITION_SEC = 86400

_table = StoryCheckpoint.__table__


class CheckpointState(BaseModel):
    """Partial checkpoint; only fields present in model_fields_set are written."""

    page_id: int | None = None
    page_number: int | None = None
    answers_json: Any = None
    quiz_state_json: Any = None
    audio_position_sec: float | None = Field(default=None, allow_inf_nan=False)
    percent_complete: float | None = Field(default=None, allow_inf_nan=False)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp_int(value: float, lo: int, hi: int) -> int:
    return int(max(lo, min(hi, round(float(value)))))


def get_checkpoint(db: Session, user_id: int, book_id: int) -> StoryCheckpoint | None:
    return (
        db.query(StoryCheckpoint)
        .filter(StoryCheckpoint.user_id == user_id, StoryCheckpoint.book_id == book_id)
        .first()
    )


def _sanitize(db: Session, book_id: int, state: CheckpointState) -> dict[str, Any]:
    supplied = state.model_fields_set
    fields: dict[str, Any] = {}

    if "page_id" in supplied:
        if state.page_id is not None:
            page = db.get(Page, state.page_id)
            if page is None or page.book_id != book_id:
                raise ReferentialError("Page not found for this book")
        fields["page_id"] = state.page_id

    if "page_number" in supplied:
        pn = state.page_number
        fields["page_number"] = pn if (pn is None or pn >= 1) else 1

    if "answers_json" in supplied:
        fields["answers_json"] = state.answers_json
    if "quiz_state_json" in supplied:
        fields["quiz_state_json"] = state.quiz_state_json

    # null means "not supplied" for the two numeric counters (columns are NOT NULL)
    if state.audio_position_sec is not None:
        fields["audio_position_sec"] = _clamp_int(state.audio_position_sec, 0, MAX_AUDIO_POSITION_SEC)
    if state.percent_complete is not None:
        fields["percent_complete"] = _clamp_int(state.percent_complete, 0, 100)

    return fields


def save_checkpoint(
    db: Session,
    user_id: int,
    book_id: int,
    state: CheckpointState,
    commit: bool = True,
) -> StoryCheckpoint:
    """
    Upsert on (user_id, book_id).

    - absent row: insert with the supplied fields, column defaults for the rest
    - present row: merge supplied fields only, always refresh last_checkpoint_at
    - percent_complete is clamped to [0,100] and never lowered on merge
    - audio_position_sec is clamped to [0, 86400]
    """
    if db.get(Book, book_id) is None:
        raise ReferentialError("Book not found")

    fields = _sanitize(db, book_id, state)
    now = _now()

    update: dict[str, Any] = {k: v for k, v in fields.items() if k != "percent_complete"}
    if "percent_complete" in fields:
        update["percent_complete"] = lambda ex: case(
            (ex.percent_complete > _table.c.percent_complete, ex.percent_complete),
            else_=_table.c.percent_complete,
        )
    update["last_checkpoint_at"] = now

    row_id = upsert(
        db,
        _table,
        values={"user_id": user_id, "book_id": book_id, "last_checkpoint_at": now, **fields},
        index_elements=["user_id", "book_id"],
        update=update,
    )
    if commit:
        db.commit()
    return db.get(StoryCheckpoint, row_id, populate_existing=True)


def mark_checkpoint_complete(db: Session, user_id: int, book_id: int) -> StoryCheckpoint:
    """Completion only: percent_complete=100, position fields untouched. Does not commit."""
    now = _now()
    row_id = upsert(
        db,
        _table,
        values={
            "user_id": user_id,
            "book_id": book_id,
            "percent_complete": 100,
            "last_checkpoint_at": now,
        },
        index_elements=["user_id", "book_id"],
        update={"percent_complete": 100, "last_checkpoint_at": now},
    )
    return db.get(StoryCheckpoint, row_id, populate_existing=True)


def reset_checkpoint(db: Session, user_id: int, book_id: int) -> bool:
    """Deletes the row. Returns False when there was nothing to clear."""
    deleted = (
        db.query(StoryCheckpoint)
        .filter(StoryCheckpoint.user_id == user_id, StoryCheckpoint.book_id == book_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted > 0


def checkpoint_out(row: StoryCheckpoint) -> dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "bookId": row.book_id,
        "pageId": row.page_id,
        "pageNumber": row.page_number,
        "answersJson": row.answers_json,
        "quizStateJson": row.quiz_state_json,
        "audioPositionSec": int(row.audio_position_sec or 0),
        "percentComplete": int(row.percent_complete or 0),
        "lastCheckpointAt": row.last_checkpoint_at.isoformat() if row.last_checkpoint_at else None,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }

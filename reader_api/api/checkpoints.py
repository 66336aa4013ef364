from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from reader_api.core.errors import ValidationError
from reader_api.core.security import CurrentUser, get_current_user
from reader_api.db.session import get_db
from reader_api.services.books import resolve_book_ref
from reader_api.services.checkpoints import (
    CheckpointState,
    checkpoint_out,
    get_checkpoint,
    reset_checkpoint,
    save_checkpoint,
)
from reader_api.services.payloads import CHECKPOINT_ALIASES, parse_payload
from reader_api.services.progress import set_percent

router = APIRouter(prefix="/api/stories", tags=["checkpoints"])


@router.get("/{book_ref}/checkpoint")
def read_checkpoint(
    book_ref: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """No checkpoint yet is a normal state: {success: true, checkpoint: null}."""
    book = resolve_book_ref(db, book_ref)
    db.commit()  # a curated slug may have just been registered

    row = get_checkpoint(db, user.user_id, book.id)
    return {"success": True, "checkpoint": checkpoint_out(row) if row else None}


@router.put("/{book_ref}/checkpoint")
def write_checkpoint(
    book_ref: str,
    body: Any = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # validate before touching the store
    state = parse_payload(CheckpointState, body, CHECKPOINT_ALIASES)

    book = resolve_book_ref(db, book_ref)
    row = save_checkpoint(db, user.user_id, book.id, state, commit=False)

    # keep the coarse progress row in step (monotone, never lowers it)
    if "percent_complete" in state.model_fields_set and state.percent_complete is not None:
        set_percent(db, user.user_id, book.id, row.percent_complete, commit=False)

    db.commit()
    return {"success": True, "message": "Checkpoint saved", "checkpoint": checkpoint_out(row)}


@router.post("/{book_ref}/checkpoint")
def checkpoint_action(
    book_ref: str,
    body: Any = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = body.get("action") if isinstance(body, dict) else None
    if action != "reset":
        raise ValidationError('Unsupported action. Use { action: "reset" }.')

    book = resolve_book_ref(db, book_ref)
    cleared = reset_checkpoint(db, user.user_id, book.id)
    return {
        "success": True,
        "message": "Checkpoint cleared" if cleared else "No checkpoint to clear",
    }

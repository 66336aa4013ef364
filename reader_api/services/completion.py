"""
Book completion: the one place that moves a reader to 100%.

A single transaction that
  1. resolves the book (numeric id or slug, curated slugs created lazily),
  2. forces progress to 100,
  3. marks the story checkpoint 100% without touching its position,
  4. grants every enabled auto-on-complete badge mapped to the book, plus the
     curated finisher badge for exclusive stories.

Completion is monotone and idempotent: replaying it refreshes timestamps and
re-tries the awards (which picks up mappings added after the first finish).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reader_api.core.errors import AppError, AuthorizationError, InfrastructureError
from reader_api.models.user import ROLES
from reader_api.services.badges import (
    AUTO_AWARD_NOTE,
    ExclusiveAwardOutcome,
    award_exclusive_by_slug,
    award_if_eligible,
    auto_award_badge_ids,
)
from reader_api.services.books import resolve_book_ref
from reader_api.services.checkpoints import mark_checkpoint_complete
from reader_api.services.progress import force_complete

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "Book marked as completed successfully"


@dataclass
class CompletionResult:
    user_id: int
    book_id: int
    slug: str
    percent_complete: int
    completed_at: datetime
    badges_awarded: list[int] = field(default_factory=list)
    badges_already_owned: list[int] = field(default_factory=list)
    exclusive: ExclusiveAwardOutcome = field(default_factory=lambda: ExclusiveAwardOutcome(attempted=False))

    def data(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "bookId": self.book_id,
            "slug": self.slug,
            "percentComplete": self.percent_complete,
            "completedAt": self.completed_at.isoformat(),
            "badgesAutoAwarded": list(self.badges_awarded),
            "badgesAlreadyOwned": list(self.badges_already_owned),
        }


def complete_book(db: Session, user_id: int, role: str, book_ref: str | int) -> CompletionResult:
    if role not in ROLES:
        raise AuthorizationError()

    try:
        book = resolve_book_ref(db, book_ref)

        progress = force_complete(db, user_id, book.id)
        mark_checkpoint_complete(db, user_id, book.id)

        awarded: list[int] = []
        already: list[int] = []
        for badge_id in auto_award_badge_ids(db, book.id):
            outcome = award_if_eligible(
                db,
                user_id,
                badge_id,
                book_id=book.id,
                note=AUTO_AWARD_NOTE,
                commit=False,
            )
            (awarded if outcome.awarded else already).append(badge_id)

        exclusive = award_exclusive_by_slug(db, user_id, book.slug, book_id=book.id)
        if exclusive.badge_id is not None:
            if exclusive.awarded:
                awarded.append(exclusive.badge_id)
            elif exclusive.badge_id in awarded:
                # granted just now through the book's own mapping
                exclusive.awarded, exclusive.already_had = True, False

        db.commit()
    except AppError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Completion failed for user=%s book=%s", user_id, book_ref)
        raise InfrastructureError("Could not mark book as completed") from e

    logger.info(
        "Book completed user=%s book=%s awarded=%s already=%s",
        user_id,
        book.id,
        awarded,
        already,
        extra={"user_id": user_id, "book_id": book.id, "slug": book.slug},
    )
    return CompletionResult(
        user_id=user_id,
        book_id=book.id,
        slug=book.slug,
        percent_complete=int(progress.percent_complete),
        completed_at=progress.last_read_at,
        badges_awarded=awarded,
        badges_already_owned=[b for b in already if b not in awarded],
        exclusive=exclusive,
    )

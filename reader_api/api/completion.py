from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reader_api.core.security import CurrentUser, get_current_user
from reader_api.db.session import get_db
from reader_api.models.book import Book
from reader_api.services.badges import award_exclusive_by_slug
from reader_api.services.completion import COMPLETED_MESSAGE, complete_book

router = APIRouter(prefix="/api", tags=["completion"])

MAX_SLUG_PARAM_LEN = 200


@router.post("/books/{book_ref}/complete")
def complete_by_id(
    book_ref: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = complete_book(db, user.user_id, user.role, book_ref)
    return {"success": True, "message": COMPLETED_MESSAGE, "data": result.data()}


@router.post("/stories/{slug}/complete")
def complete_by_slug(
    slug: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Same operation and body as /books/{id}/complete. The slug route also keeps
    the keys older story pages read (ok, awardedBadge, badgeAttempted, alreadyHad).
    """
    result = complete_book(db, user.user_id, user.role, slug[:MAX_SLUG_PARAM_LEN])
    ex = result.exclusive
    awarded_badge = None
    if ex.awarded and ex.badge_id is not None:
        awarded_badge = {"badgeId": ex.badge_id, "badgeName": ex.badge_name}

    return {
        "success": True,
        "message": COMPLETED_MESSAGE,
        "data": result.data(),
        "ok": True,
        "awardedBadge": awarded_badge,
        "badgeAttempted": ex.attempted,
        "alreadyHad": ex.already_had,
    }


@router.post("/stories/{slug}/award-exclusive-badge")
def award_exclusive_badge(
    slug: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Grants the finisher badge for a curated story; unknown slugs are a no-op."""
    clean = slug.strip().lower()[:MAX_SLUG_PARAM_LEN]
    book = db.query(Book).filter(Book.slug == clean).first()
    outcome = award_exclusive_by_slug(db, user.user_id, clean, book_id=book.id if book else None)
    db.commit()
    return {
        "success": True,
        "attempted": outcome.attempted,
        "awarded": outcome.awarded,
        "alreadyHad": outcome.already_had,
        "badgeId": outcome.badge_id,
        "badgeName": outcome.badge_name,
    }

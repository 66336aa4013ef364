from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reader_api.core.errors import NotFoundError, ValidationError
from reader_api.db.upsert import insert_or_ignore
from reader_api.models.badge import AWARD_AUTO, AWARD_MANUAL, Badge, BookBadge, EarnedBadge
from reader_api.models.book import Book
from reader_api.models.user import User

logger = logging.getLogger(__name__)

AUTO_AWARD_NOTE = "Auto-awarded on book completion"
EXCLUSIVE_AWARD_NOTE = "Awarded for completing the exclusive 2D story."


@dataclass(frozen=True)
class ExclusiveBadge:
    name: str
    description: str
    theme_colors: dict[str, str]


# Closed set curated by content editors: story slug -> finisher badge.
EXCLUSIVE_BADGES_BY_SLUG: dict[str, ExclusiveBadge] = {
    "necklace-comb": ExclusiveBadge(
        name="Necklace & Comb Finisher",
        description="Thank you for reading 'The Necklace and the Comb'. We hope you enjoyed the story!",
        theme_colors={"primary": "#1A237E", "secondary": "#F4B400", "accent": "#7C3AED"},
    ),
    "sun-moon": ExclusiveBadge(
        name="Sun & Moon Finisher",
        description="We are grateful you completed 'The Sun and the Moon'. Your curiosity means a lot to us!",
        theme_colors={"primary": "#FF9800", "secondary": "#2196F3", "accent": "#FDD835"},
    ),
    "bernardo-carpio": ExclusiveBadge(
        name="Bernardo Carpio Finisher",
        description="Thank you for finishing 'The Legend of Bernardo Carpio'. We appreciate your dedication!",
        theme_colors={"primary": "#4CAF50", "secondary": "#795548", "accent": "#9E9E9E"},
    ),
}


@dataclass
class AwardOutcome:
    awarded: bool
    already_had: bool
    earned_id: int | None = None


@dataclass
class ExclusiveAwardOutcome:
    attempted: bool
    awarded: bool = False
    already_had: bool = False
    badge_id: int | None = None
    badge_name: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------
# Awarding
# -----------------------
def award_if_eligible(
    db: Session,
    user_id: int,
    badge_id: int,
    book_id: int | None = None,
    note: str | None = None,
    awarded_by_id: int | None = None,
    commit: bool = True,
) -> AwardOutcome:
    """
    Insert-or-ignore on (user_id, badge_id). Awarding the same badge any number
    of times leaves exactly one earned_badges row.
    """
    earned_id = insert_or_ignore(
        db,
        EarnedBadge.__table__,
        values={
            "user_id": user_id,
            "badge_id": badge_id,
            "book_id": book_id,
            "note": note,
            "awarded_by_id": awarded_by_id,
            "awarded_at": _now(),
        },
        index_elements=["user_id", "badge_id"],
    )
    if commit:
        db.commit()
    if earned_id is None:
        return AwardOutcome(awarded=False, already_had=True)
    return AwardOutcome(awarded=True, already_had=False, earned_id=earned_id)


def award_exclusive_by_slug(
    db: Session,
    user_id: int,
    slug: str | None,
    book_id: int | None = None,
) -> ExclusiveAwardOutcome:
    """
    Grants the finisher badge curated for `slug`.

    Unknown slug or a badge that has not been seeded yet are silent no-ops, and
    database errors are logged and swallowed: a catalog gap must never fail the
    caller. Runs in a SAVEPOINT so the caller's transaction survives; the caller
    commits.
    """
    meta = EXCLUSIVE_BADGES_BY_SLUG.get((slug or "").strip().lower())
    if meta is None:
        return ExclusiveAwardOutcome(attempted=False)

    try:
        with db.begin_nested():
            badge = db.query(Badge).filter(Badge.name == meta.name).first()
            if badge is None:
                logger.warning("Exclusive badge %r is not seeded; skipping award", meta.name)
                return ExclusiveAwardOutcome(attempted=True)

            outcome = award_if_eligible(
                db,
                user_id,
                badge.id,
                book_id=book_id,
                note=EXCLUSIVE_AWARD_NOTE,
                commit=False,
            )
            return ExclusiveAwardOutcome(
                attempted=True,
                awarded=outcome.awarded,
                already_had=outcome.already_had,
                badge_id=badge.id,
                badge_name=badge.name,
            )
    except SQLAlchemyError:
        logger.exception("Exclusive badge award failed for slug=%s user=%s", slug, user_id)
        return ExclusiveAwardOutcome(attempted=True)


def auto_award_badge_ids(db: Session, book_id: int) -> list[int]:
    """Badges mapped to the book that are granted automatically at 100%."""
    rows = (
        db.query(BookBadge.badge_id)
        .join(Badge, Badge.id == BookBadge.badge_id)
        .filter(
            BookBadge.book_id == book_id,
            BookBadge.is_enabled.is_(True),
            BookBadge.award_method == AWARD_AUTO,
            BookBadge.completion_threshold <= 100,
        )
        .order_by(BookBadge.badge_id)
        .all()
    )
    return [int(r.badge_id) for r in rows]


# -----------------------
# Catalog
# -----------------------
def get_badge(db: Session, badge_id: int) -> Badge:
    badge = db.get(Badge, badge_id)
    if not badge:
        raise NotFoundError("Badge not found")
    return badge


def _clean_name(name: Any) -> str:
    s = str(name or "").strip()
    if len(s) < 2:
        raise ValidationError("Badge name must be at least 2 characters")
    return s[:255]


def create_badge(db: Session, fields: dict[str, Any], created_by_id: int | None = None) -> Badge:
    badge = Badge(
        name=_clean_name(fields.get("name")),
        description=(fields.get("description") or None),
        icon_url=(fields.get("icon_url") or None),
        theme_colors=fields.get("theme_colors"),
        is_active=bool(fields.get("is_active", True)),
        is_generic=bool(fields.get("is_generic", False)),
        created_by_id=created_by_id,
    )
    db.add(badge)
    db.commit()
    db.refresh(badge)
    logger.info("Created badge id=%s name=%r", badge.id, badge.name)
    return badge


def list_badges(db: Session, search: str | None = None, active: bool | None = None) -> list[Badge]:
    query = db.query(Badge)
    if active is not None:
        query = query.filter(Badge.is_active.is_(active))
    if search and search.strip():
        s = f"%{search.strip()}%"
        query = query.filter(or_(Badge.name.ilike(s), Badge.description.ilike(s)))
    return query.order_by(Badge.created_at.desc(), Badge.id.desc()).all()


def update_badge(db: Session, badge_id: int, fields: dict[str, Any]) -> Badge:
    badge = get_badge(db, badge_id)
    if "name" in fields:
        badge.name = _clean_name(fields["name"])
    if "description" in fields:
        badge.description = fields["description"] or None
    if "icon_url" in fields:
        badge.icon_url = fields["icon_url"] or None
    if "theme_colors" in fields:
        badge.theme_colors = fields["theme_colors"]
    if "is_active" in fields:
        badge.is_active = bool(fields["is_active"])
    if "is_generic" in fields:
        badge.is_generic = bool(fields["is_generic"])
    db.commit()
    db.refresh(badge)
    return badge


def delete_badge(db: Session, badge_id: int) -> None:
    """Removes the badge together with its book mappings and earned rows."""
    badge = get_badge(db, badge_id)
    db.query(BookBadge).filter(BookBadge.badge_id == badge_id).delete(synchronize_session=False)
    db.query(EarnedBadge).filter(EarnedBadge.badge_id == badge_id).delete(synchronize_session=False)
    db.delete(badge)
    db.commit()
    logger.info("Deleted badge id=%s", badge_id)


# -----------------------
# Book <-> badge mappings
# -----------------------
def _sanitize_method(method: Any) -> str:
    return AWARD_MANUAL if str(method or "").strip() == AWARD_MANUAL else AWARD_AUTO


def _sanitize_threshold(value: Any) -> int:
    if value is None or value == "":
        return 100
    try:
        n = round(float(value))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("completionThreshold must be a number") from None
    return int(max(1, min(100, n)))


def attach_badge_to_book(
    db: Session,
    book_id: int,
    badge_id: int,
    award_method: Any = None,
    completion_threshold: Any = None,
    is_enabled: bool = True,
    criteria_json: Any = None,
) -> tuple[BookBadge, bool]:
    """Returns (mapping, created). Attaching twice returns the existing mapping."""
    if db.get(Book, book_id) is None:
        raise NotFoundError("Book not found")
    get_badge(db, badge_id)

    values = {
        "book_id": book_id,
        "badge_id": badge_id,
        "award_method": _sanitize_method(award_method),
        "completion_threshold": _sanitize_threshold(completion_threshold),
        "is_enabled": bool(is_enabled),
        "criteria_json": criteria_json,
    }
    new_id = insert_or_ignore(db, BookBadge.__table__, values, index_elements=["book_id", "badge_id"])
    db.commit()

    if new_id is not None:
        return db.get(BookBadge, new_id), True
    existing = (
        db.query(BookBadge)
        .filter(BookBadge.book_id == book_id, BookBadge.badge_id == badge_id)
        .one()
    )
    return existing, False


def list_book_badges(db: Session, book_id: int) -> list[BookBadge]:
    if db.get(Book, book_id) is None:
        raise NotFoundError("Book not found")
    return (
        db.query(BookBadge)
        .filter(BookBadge.book_id == book_id)
        .order_by(BookBadge.id)
        .all()
    )


def detach_badge_from_book(db: Session, book_id: int, badge_id: int) -> None:
    deleted = (
        db.query(BookBadge)
        .filter(BookBadge.book_id == book_id, BookBadge.badge_id == badge_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Book badge mapping not found")
    db.commit()


# -----------------------
# Earned badges
# -----------------------
def list_user_badges(db: Session, user_id: int) -> list[EarnedBadge]:
    if db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    return (
        db.query(EarnedBadge)
        .filter(EarnedBadge.user_id == user_id)
        .order_by(EarnedBadge.awarded_at.desc(), EarnedBadge.id.desc())
        .all()
    )


def award_manually(
    db: Session,
    user_id: int,
    badge_id: int,
    awarded_by_id: int,
    book_id: int | None = None,
    note: str | None = None,
) -> tuple[EarnedBadge, bool]:
    """Staff award. Returns (earned row, created)."""
    if db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    get_badge(db, badge_id)
    if book_id is not None and db.get(Book, book_id) is None:
        raise NotFoundError("Book not found")

    outcome = award_if_eligible(
        db,
        user_id,
        badge_id,
        book_id=book_id,
        note=(note or None),
        awarded_by_id=awarded_by_id,
    )
    row = (
        db.query(EarnedBadge)
        .filter(EarnedBadge.user_id == user_id, EarnedBadge.badge_id == badge_id)
        .one()
    )
    return row, outcome.awarded


# -----------------------
# Serialization
# -----------------------
def badge_out(badge: Badge) -> dict[str, Any]:
    return {
        "id": badge.id,
        "name": badge.name,
        "description": badge.description,
        "iconUrl": badge.icon_url,
        "themeColors": badge.theme_colors,
        "isActive": bool(badge.is_active),
        "isGeneric": bool(badge.is_generic),
        "createdById": badge.created_by_id,
        "createdAt": badge.created_at.isoformat() if badge.created_at else None,
    }


def book_badge_out(row: BookBadge) -> dict[str, Any]:
    return {
        "id": row.id,
        "bookId": row.book_id,
        "badgeId": row.badge_id,
        "awardMethod": row.award_method,
        "completionThreshold": int(row.completion_threshold),
        "isEnabled": bool(row.is_enabled),
        "criteriaJson": row.criteria_json,
        "badge": badge_out(row.badge) if row.badge else None,
    }


def earned_badge_out(row: EarnedBadge) -> dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "badgeId": row.badge_id,
        "bookId": row.book_id,
        "awardedById": row.awarded_by_id,
        "note": row.note,
        "awardedAt": row.awarded_at.isoformat() if row.awarded_at else None,
        "badge": badge_out(row.badge) if row.badge else None,
    }

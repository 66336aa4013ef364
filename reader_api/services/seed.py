"""Idempotent startup seed: curated exclusive stories, finisher badges and their auto-award mappings."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from reader_api.models.badge import AWARD_AUTO, Badge, BookBadge
from reader_api.services.badges import EXCLUSIVE_BADGES_BY_SLUG
from reader_api.services.books import EXCLUSIVE_BOOKS, ensure_exclusive_book

logger = logging.getLogger(__name__)


def seed_exclusive_content(db: Session) -> dict[str, Any]:
    """
    Safe to run on every start: existing books, badges and mappings are reused.
    Returns counts of what was created.
    """
    created = {"badges": 0, "mappings": 0}
    books = {}
    for slug in EXCLUSIVE_BOOKS:
        books[slug] = ensure_exclusive_book(db, slug)
    db.commit()

    for slug, meta in EXCLUSIVE_BADGES_BY_SLUG.items():
        book = books.get(slug)
        if book is None:
            logger.warning("No exclusive book for slug %s; badge %r not mapped", slug, meta.name)
            continue

        badge = db.query(Badge).filter(Badge.name == meta.name).first()
        if badge is None:
            badge = Badge(
                name=meta.name,
                description=meta.description,
                theme_colors=dict(meta.theme_colors),
                is_active=True,
                is_generic=False,
            )
            db.add(badge)
            db.flush()
            created["badges"] += 1
            logger.info("Seeded badge %r", meta.name)

        mapping = (
            db.query(BookBadge)
            .filter(BookBadge.book_id == book.id, BookBadge.badge_id == badge.id)
            .first()
        )
        if mapping is None:
            db.add(
                BookBadge(
                    book_id=book.id,
                    badge_id=badge.id,
                    award_method=AWARD_AUTO,
                    completion_threshold=100,
                    is_enabled=True,
                )
            )
            created["mappings"] += 1
            logger.info("Mapped badge %r to book %r", meta.name, book.title)

    db.commit()
    return {"books": len(books), **created}

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from reader_api.core.errors import InfrastructureError, NotFoundError, ValidationError
from reader_api.db.upsert import insert_or_ignore
from reader_api.models.book import Book, Page
from reader_api.models.progress import Progress
from reader_api.models.story_checkpoint import StoryCheckpoint

logger = logging.getLogger(__name__)

MAX_TITLE_LEN = 255
MAX_DESC_LEN = 2000
MAX_SLUG_LEN = 100

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@dataclass(frozen=True)
class ExclusiveBook:
    title: str
    description: str
    type: str = "storybook"
    grade: str | None = None
    subject: str | None = None


# Curated stories addressed by slug from the student portal.
EXCLUSIVE_BOOKS: dict[str, ExclusiveBook] = {
    "necklace-comb": ExclusiveBook(
        title="The Necklace and the Comb",
        description="A Philippine folktale about sibling rivalry and transformation.",
    ),
    "sun-moon": ExclusiveBook(
        title="The Sun and the Moon",
        description="A Philippine folktale about the origins of day and night.",
    ),
    "bernardo-carpio": ExclusiveBook(
        title="The Legend of Bernardo Carpio",
        description="A Philippine legend about the strong man held between two mountains.",
    ),
    "coconut-man": ExclusiveBook(
        title="The Man with the Coconuts",
        description="A humorous Philippine folktale about greed and wisdom.",
    ),
}


def slugify(text: str) -> str:
    s = (text or "").strip().lower()
    s = re.sub(r"[^\w\s-]", "", s)
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s).strip("-")
    return s[:MAX_SLUG_LEN].rstrip("-")


def ensure_unique_slug(db: Session, base: str) -> str:
    """
    Returns `base` (slugified) if free, else base-2, base-3, ...
    Suffixed slugs still fit in MAX_SLUG_LEN.
    """
    root = slugify(base) or "book"
    candidate = root
    n = 2
    while db.query(Book.id).filter(Book.slug == candidate).first() is not None:
        suffix = f"-{n}"
        candidate = f"{root[: MAX_SLUG_LEN - len(suffix)]}{suffix}"
        n += 1
    return candidate


def get_book(db: Session, book_id: int) -> Book:
    book = db.get(Book, book_id)
    if not book:
        raise NotFoundError("Book not found")
    return book


def _find_existing(db: Session, slug: str, meta: ExclusiveBook) -> Book | None:
    # 1) by slug
    book = db.query(Book).filter(Book.slug == slug).first()
    if book:
        return book

    # 2) legacy row: same (title, grade, subject), case-insensitive title
    return (
        db.query(Book)
        .filter(
            func.lower(Book.title) == meta.title.lower(),
            Book.grade.is_not_distinct_from(meta.grade),
            Book.subject.is_not_distinct_from(meta.subject),
        )
        .first()
    )


def _is_referenced(db: Session, book_id: int) -> bool:
    for model in (Page, Progress, StoryCheckpoint):
        if db.query(model.id).filter(model.book_id == book_id).first() is not None:
            return True
    return False


def ensure_exclusive_book(db: Session, slug: str) -> Book:
    """
    Returns the book row for a curated slug, creating it on first reference.

    Safe under concurrent first references: the insert is ON CONFLICT DO NOTHING
    against both the slug and the title key, and the loser re-selects the
    winner's row. Does not commit.
    """
    meta = EXCLUSIVE_BOOKS.get(slug)
    if meta is None:
        raise NotFoundError(f"Unknown story: {slug}")

    existing = _find_existing(db, slug, meta)
    if existing is not None:
        if existing.slug != slug and not _is_referenced(db, existing.id):
            # legacy row that nothing points at yet: give it the curated slug
            existing.slug = ensure_unique_slug(db, slug)
            db.flush()
            logger.info("Attached slug %s to legacy book id=%s", existing.slug, existing.id)
        return existing

    values = {
        "title": meta.title[:MAX_TITLE_LEN],
        "description": meta.description[:MAX_DESC_LEN],
        "type": meta.type,
        "grade": meta.grade,
        "subject": meta.subject,
        "slug": slug,
    }
    new_id = insert_or_ignore(db, Book.__table__, values)
    if new_id is not None:
        logger.info("Created exclusive book slug=%s id=%s", values["slug"], new_id)
        return db.get(Book, new_id)

    # Lost the race to a concurrent first reference
    winner = _find_existing(db, slug, meta)
    if winner is None:
        raise InfrastructureError("Could not resolve exclusive book")
    logger.info("Exclusive book slug=%s created concurrently, using id=%s", slug, winner.id)
    return winner


def resolve_book_ref(db: Session, ref: str | int) -> Book:
    """
    Accepts a numeric book id or a slug.

    - numeric: must exist (NotFoundError)
    - slug: existing row by slug, else a curated slug is created lazily
    - unknown slug: NotFoundError; malformed ref: ValidationError
    """
    raw = str(ref if ref is not None else "").strip()
    if not raw:
        raise ValidationError("Invalid or missing bookId/slug")

    if raw.isascii() and raw.isdigit():
        return get_book(db, int(raw))

    slug = raw.lower()
    if len(slug) > MAX_SLUG_LEN or not _SLUG_RE.match(slug):
        raise ValidationError("Invalid or missing bookId/slug")

    book = db.query(Book).filter(Book.slug == slug).first()
    if book:
        return book
    if slug in EXCLUSIVE_BOOKS:
        return ensure_exclusive_book(db, slug)
    raise NotFoundError("Book not found")

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reader_api.core.errors import AuthorizationError, ValidationError
from reader_api.core.security import CurrentUser, get_current_user, require_roles
from reader_api.db.session import get_db
from reader_api.services.badges import (
    attach_badge_to_book,
    award_manually,
    badge_out,
    book_badge_out,
    create_badge,
    delete_badge,
    detach_badge_from_book,
    earned_badge_out,
    list_badges,
    list_book_badges,
    list_user_badges,
    update_badge,
)
from reader_api.services.payloads import (
    BADGE_ALIASES,
    BOOK_BADGE_ALIASES,
    EARNED_BADGE_ALIASES,
    normalize_aliases,
    parse_payload,
)

router = APIRouter(prefix="/api", tags=["badges"])

staff_only = require_roles("admin", "teacher")
admin_only = require_roles("admin")


class AttachBadgeRequest(BaseModel):
    badge_id: int
    award_method: str | None = None
    completion_threshold: Any = None
    is_enabled: bool = True
    criteria_json: Any = None


class AwardBadgeRequest(BaseModel):
    badge_id: int
    book_id: int | None = None
    note: str | None = None


def _badge_fields(body: Any) -> dict[str, Any]:
    if body is not None and not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return normalize_aliases(body, BADGE_ALIASES)


# -----------------------
# Catalog
# -----------------------
@router.get("/badges")
def get_badges(
    search: str | None = Query(default=None),
    active: bool | None = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = list_badges(db, search=search, active=active)
    return {"success": True, "badges": [badge_out(b) for b in rows]}


@router.post("/badges", status_code=201)
def post_badge(
    body: Any = Body(default=None),
    user: CurrentUser = Depends(staff_only),
    db: Session = Depends(get_db),
):
    badge = create_badge(db, _badge_fields(body), created_by_id=user.user_id)
    return {"success": True, "message": "Badge created", "badge": badge_out(badge)}


@router.patch("/badges/{badge_id}")
def patch_badge(
    badge_id: int,
    body: Any = Body(default=None),
    user: CurrentUser = Depends(staff_only),
    db: Session = Depends(get_db),
):
    badge = update_badge(db, badge_id, _badge_fields(body))
    return {"success": True, "message": "Badge updated", "badge": badge_out(badge)}


@router.delete("/badges/{badge_id}")
def remove_badge(
    badge_id: int,
    user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    delete_badge(db, badge_id)
    return {"success": True, "message": "Badge deleted"}


# -----------------------
# Book mappings
# -----------------------
@router.post("/books/{book_id}/badges")
def post_book_badge(
    book_id: int,
    body: Any = Body(default=None),
    user: CurrentUser = Depends(staff_only),
    db: Session = Depends(get_db),
):
    req = parse_payload(AttachBadgeRequest, body, BOOK_BADGE_ALIASES)
    mapping, created = attach_badge_to_book(
        db,
        book_id,
        req.badge_id,
        award_method=req.award_method,
        completion_threshold=req.completion_threshold,
        is_enabled=req.is_enabled,
        criteria_json=req.criteria_json,
    )
    content = {
        "success": True,
        "message": "Badge attached to book" if created else "Badge already attached",
        "bookBadge": book_badge_out(mapping),
    }
    return JSONResponse(status_code=201 if created else 200, content=content)


@router.get("/books/{book_id}/badges")
def get_book_badges(
    book_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = list_book_badges(db, book_id)
    return {"success": True, "bookBadges": [book_badge_out(r) for r in rows]}


@router.delete("/books/{book_id}/badges/{badge_id}")
def delete_book_badge(
    book_id: int,
    badge_id: int,
    user: CurrentUser = Depends(staff_only),
    db: Session = Depends(get_db),
):
    detach_badge_from_book(db, book_id, badge_id)
    return {"success": True, "message": "Badge removed from book"}


# -----------------------
# Earned badges
# -----------------------
@router.get("/users/{user_id}/badges")
def get_user_badges(
    user_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if user.role == "student" and user.user_id != user_id:
        raise AuthorizationError("Students can only view their own badges")
    rows = list_user_badges(db, user_id)
    return {"success": True, "earnedBadges": [earned_badge_out(r) for r in rows]}


@router.post("/users/{user_id}/badges")
def post_user_badge(
    user_id: int,
    body: Any = Body(default=None),
    user: CurrentUser = Depends(staff_only),
    db: Session = Depends(get_db),
):
    req = parse_payload(AwardBadgeRequest, body, EARNED_BADGE_ALIASES)
    earned, created = award_manually(
        db,
        user_id,
        req.badge_id,
        awarded_by_id=user.user_id,
        book_id=req.book_id,
        note=req.note,
    )
    content = {
        "success": True,
        "message": "Badge awarded" if created else "Badge already earned",
        "earnedBadge": earned_badge_out(earned),
    }
    return JSONResponse(status_code=201 if created else 200, content=content)

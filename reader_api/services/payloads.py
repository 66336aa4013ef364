"""
Request payload normalization.

Clients send the same field under several names (camelCase from the web app,
snake_case from older callers, a few historical shorthands). Every accepted
alias is mapped to one canonical snake_case name here, before validation, so
business logic only ever sees canonical fields. Omitted fields stay omitted.
"""
from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from reader_api.core.errors import ValidationError

M = TypeVar("M", bound=BaseModel)

CHECKPOINT_ALIASES: dict[str, tuple[str, ...]] = {
    "page_id": ("pageId", "page_id"),
    "page_number": ("pageNumber", "page_number"),
    "answers_json": ("answersJson", "answers_json"),
    "quiz_state_json": ("quizStateJson", "quiz_state_json"),
    "audio_position_sec": ("audioPositionSec", "audio_position_sec"),
    "percent_complete": ("percentComplete", "percent_complete", "percentage", "percent"),
}

QUIZ_ATTEMPT_ALIASES: dict[str, tuple[str, ...]] = {
    "user_id": ("userId", "user_id"),
    "book_id": ("bookId", "book_id"),
    "page_id": ("pageId", "page_id"),
    "score_correct": ("scoreCorrect", "score_correct"),
    "score_total": ("scoreTotal", "score_total"),
    "mode": ("mode",),
    "duration_sec": ("durationSec", "duration_sec", "seconds"),
}

BOOK_REF_ALIASES: dict[str, tuple[str, ...]] = {
    "book_id": ("bookId", "book_id"),
}

PROGRESS_ALIASES: dict[str, tuple[str, ...]] = {
    "book_id": ("bookId", "book_id"),
    "percent_complete": ("percentComplete", "percent_complete", "percentage", "percent"),
}

BADGE_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name",),
    "description": ("description",),
    "icon_url": ("iconUrl", "icon_url"),
    "theme_colors": ("themeColors", "theme_colors"),
    "is_active": ("isActive", "is_active"),
    "is_generic": ("isGeneric", "is_generic"),
}

BOOK_BADGE_ALIASES: dict[str, tuple[str, ...]] = {
    "badge_id": ("badgeId", "badge_id"),
    "award_method": ("awardMethod", "award_method"),
    "completion_threshold": ("completionThreshold", "completion_threshold"),
    "is_enabled": ("isEnabled", "is_enabled"),
    "criteria_json": ("criteriaJson", "criteria_json"),
}

EARNED_BADGE_ALIASES: dict[str, tuple[str, ...]] = {
    "badge_id": ("badgeId", "badge_id"),
    "book_id": ("bookId", "book_id"),
    "note": ("note",),
}


def normalize_aliases(body: Mapping[str, Any] | None, aliases: Mapping[str, tuple[str, ...]]) -> dict[str, Any]:
    """
    Returns a dict keyed by canonical names only.

    The first alias present wins (aliases are listed in priority order);
    unknown keys are dropped. An explicit null is kept as "supplied".
    """
    out: dict[str, Any] = {}
    if not body:
        return out
    for canonical, names in aliases.items():
        for name in names:
            if name in body:
                out[canonical] = body[name]
                break
    return out


def parse_payload(model: type[M], body: Mapping[str, Any] | None, aliases: Mapping[str, tuple[str, ...]]) -> M:
    """Normalize aliases, then validate into `model`. Raises ValidationError (400)."""
    if body is not None and not isinstance(body, Mapping):
        raise ValidationError("Request body must be a JSON object")
    data = normalize_aliases(body, aliases)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ValidationError(f"Invalid {field}: {first.get('msg', 'invalid value')}") from e


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))

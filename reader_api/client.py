from __future__ import annotations

import math
from typing import Any, Dict, Optional, Union

import httpx

from reader_api.services.payloads import CHECKPOINT_ALIASES, clamp, normalize_aliases

MAX_AUDIO_POSITION_SEC = 86400
MAX_SLUG_LEN = 200

# canonical -> wire name expected by the API
_WIRE_NAMES = {
    "page_id": "pageId",
    "page_number": "pageNumber",
    "answers_json": "answersJson",
    "quiz_state_json": "quizStateJson",
    "audio_position_sec": "audioPositionSec",
    "percent_complete": "percentComplete",
}


def to_percent_done(index: int, total: int) -> int:
    """Percent for having reached page `index` (0-based) of `total`."""
    if total <= 0:
        return 0
    return int(clamp(round((index + 1) / total * 100), 0, 100))


def _to_number(value: Any) -> float:
    n = float(value)
    return 0.0 if math.isnan(n) else n


def sanitize_checkpoint(state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Accepts any mix of camelCase / snake_case aliases and returns the camelCase
    body the API expects. Unknown keys are dropped, numbers are clamped
    (NaN counts as 0).
    """
    fields = normalize_aliases(state, CHECKPOINT_ALIASES)

    if fields.get("audio_position_sec") is not None:
        fields["audio_position_sec"] = int(round(clamp(_to_number(fields["audio_position_sec"]), 0, MAX_AUDIO_POSITION_SEC)))
    if fields.get("percent_complete") is not None:
        fields["percent_complete"] = int(round(clamp(_to_number(fields["percent_complete"]), 0, 100)))

    return {_WIRE_NAMES[k]: v for k, v in fields.items()}


class ReaderClient:
    """
    Minimal sync client for the checkpoint / completion endpoints.

    A 404 on checkpoint fetch means "fresh start" and comes back as None.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout_s: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout_s,
            headers={"Authorization": f"Bearer {self.token}"},
            transport=self.transport,
        )

    def get_checkpoint(self, book_ref: Union[int, str]) -> Optional[Dict[str, Any]]:
        with self._client() as client:
            r = client.get(f"/api/stories/{book_ref}/checkpoint")
            if r.status_code == 404:
                return None
            r.raise_for_status()
            data = r.json()
        return data.get("checkpoint")

    def save_checkpoint(self, book_ref: Union[int, str], state: Dict[str, Any]) -> Dict[str, Any]:
        body = sanitize_checkpoint(state)
        with self._client() as client:
            r = client.put(f"/api/stories/{book_ref}/checkpoint", json=body)
            r.raise_for_status()
            data = r.json()
        return data.get("checkpoint") or {}

    def reset_checkpoint(self, book_ref: Union[int, str]) -> bool:
        with self._client() as client:
            r = client.post(f"/api/stories/{book_ref}/checkpoint", json={"action": "reset"})
            r.raise_for_status()
            data = r.json()
        return bool(data.get("success"))

    def mark_complete(self, book: Union[int, str]) -> Dict[str, Any]:
        """Numeric ids go to /api/books/{id}/complete, slugs to /api/stories/{slug}/complete."""
        if isinstance(book, int) or (isinstance(book, str) and book.strip().isdigit()):
            path = f"/api/books/{int(book)}/complete"
        else:
            slug = str(book).strip()[:MAX_SLUG_LEN]
            if not slug:
                raise ValueError("book id or slug is required")
            path = f"/api/stories/{slug}/complete"

        with self._client() as client:
            r = client.post(path)
            r.raise_for_status()
            return r.json()

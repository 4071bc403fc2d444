"""Error kinds raised by the resolver, the normalizer and the Reclaim client."""

from __future__ import annotations

from typing import Any

_MAX_DETAIL_LEN = 150


class ReclaimError(Exception):
    """Base error. Carries an optional HTTP status and structured detail."""

    def __init__(self, message: str, status: int | None = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.detail = detail

    def user_message(self) -> str:
        """Render a short, client-facing description of the failure."""
        text = f"Error {self.status}: {self.message}" if self.status else f"Error: {self.message}"

        extra = None
        detail = self.detail
        if isinstance(detail, dict):
            title = detail.get("title")
            if isinstance(title, str):
                text += f" - {title}"
            inner = detail.get("detail")
            msg = detail.get("message")
            if isinstance(inner, str) and len(inner) < _MAX_DETAIL_LEN:
                extra = inner
            elif isinstance(msg, str) and msg != self.message:
                extra = msg
        elif isinstance(detail, str) and len(detail) < _MAX_DETAIL_LEN and detail != self.message:
            extra = detail

        if extra:
            text += f" ({extra})"
        return text


class InvalidInputError(ReclaimError, ValueError):
    """Malformed or impossible date/time, or a duration that isn't whole chunks."""


class InvalidTimezoneError(ReclaimError, ValueError):
    """Unrecognized IANA time zone identifier."""


class ChunkSizeConflictError(ReclaimError, ValueError):
    """Explicit minimum chunk size exceeds the explicit maximum."""

"""Error taxonomy for the link preview pipeline."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure kinds surfaced to API callers and stored on cached error rows."""

    INVALID_URL = "INVALID_URL"
    FETCH_BLOCKED = "FETCH_BLOCKED"
    TIMEOUT = "TIMEOUT"
    FETCH_ERROR = "FETCH_ERROR"
    NO_METADATA = "NO_METADATA"

    @property
    def http_status(self) -> int:
        """400 when the request itself was bad, 422 when servicing it failed."""
        return 400 if self is ErrorKind.INVALID_URL else 422


class PreviewError(Exception):
    """A terminal failure of a single preview request.

    ``message`` is safe to show to end users; it never contains exception
    text from the transport or parser. ``http_status`` is the upstream
    status code when the failure came from a non-2xx response.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.http_status = http_status

    def __repr__(self) -> str:
        return f"PreviewError({self.kind.value}, {self.message!r})"

"""
Exception hierarchy and backend error normalization.

Every backend failure is turned into a TransferError carrying
(code, message, retry_after) so the retry logic only sees one shape.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx


class UploaderError(Exception):
    """Base class for wauploader errors."""


class AuthenticationError(UploaderError):
    """Raised when the credential provider has no usable credentials."""


class StoreError(UploaderError):
    """Raised when the tabular store cannot be read or written."""


class TransferError(UploaderError):
    """Normalized backend error.

    Attributes:
        code: HTTP-style status code, or None for transport/local failures.
        message: Raw error message.
        retry_after: Server-supplied retry hint in seconds, if any.
        reason: Backend-specific reason string (e.g. "userRateLimitExceeded").
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        retry_after: Optional[float] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retry_after = retry_after
        self.reason = reason

    def __repr__(self) -> str:
        return f"TransferError(code={self.code!r}, message={self.message!r})"

    @property
    def classification_message(self) -> str:
        """Message plus reason, the text inspected by the classifier."""
        if self.reason and self.reason not in self.message:
            return f"{self.message} ({self.reason})"
        return self.message

    @classmethod
    def from_response(cls, response: httpx.Response) -> "TransferError":
        """Build from an error response, parsing Google's JSON error envelope."""
        message = response.reason_phrase or f"HTTP {response.status_code}"
        reason = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
            text = response.text.strip()
            if text:
                message = text[:500]

        if isinstance(payload, dict):
            error = payload.get("error", payload)
            if isinstance(error, dict):
                message = error.get("message") or message
                status = error.get("status")
                details = error.get("errors") or []
                if details and isinstance(details[0], dict):
                    reason = details[0].get("reason")
                if not reason and status:
                    reason = status
            elif isinstance(error, str):
                message = payload.get("error_description") or error

        return cls(
            message=message,
            code=response.status_code,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            reason=reason,
        )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds. HTTP dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def normalize_error(exc: BaseException) -> TransferError:
    """Normalize any exception raised during a transfer into a TransferError."""
    if isinstance(exc, TransferError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        return TransferError.from_response(exc.response)
    if isinstance(exc, httpx.TransportError):
        # Class names carry the signal (ConnectTimeout, ReadTimeout, ConnectError)
        return TransferError(f"{type(exc).__name__}: {exc}")
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return TransferError(f"{type(exc).__name__}: {exc}")
    code = _extract_code(exc)
    return TransferError(str(exc) or type(exc).__name__, code=code)


def _extract_code(exc: Any) -> Optional[int]:
    """Best effort status code from duck-typed SDK errors."""
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 100 <= value < 600:
            return value
    return None

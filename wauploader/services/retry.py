"""Error classification and backoff computation.

This module provides:
- ErrorKind: Permanent / Transient / Quota
- RetryClassifier: pure (code, message) -> ErrorKind, plus backoff delays
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from wauploader.errors import TransferError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds

# Explicit quota / rate-limit signals. Checked before status codes because
# Google reports them as 403 as well as 429.
QUOTA_PATTERN = re.compile(
    r"quota|ratelimitexceeded|userratelimitexceeded|resource_exhausted"
    r"|rate limit exceeded|too many requests",
    re.IGNORECASE,
)

# Transport-level failure messages (requests never reached the backend).
NETWORK_PATTERN = re.compile(
    r"connect|connection|timeout|timed out|reset|econnreset|econnrefused"
    r"|etimedout|enotfound|not found|socket hang up|temporarily unavailable"
    r"|network",
    re.IGNORECASE,
)

TRANSIENT_CODES = frozenset({408, 429})
PERMANENT_CODES = frozenset({400, 401, 403, 404, 405, 409, 410, 411, 412, 413, 415, 422})


class ErrorKind(Enum):
    """Retry category of a transfer error."""
    PERMANENT = "permanent"  # auth/validation - never retried
    TRANSIENT = "transient"  # server/network - bounded retry with backoff
    QUOTA = "quota"          # quota/rate limit - retried indefinitely


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    code: Optional[int]
    message: str
    retry_after: Optional[float] = None


class RetryClassifier:
    """
    Classifies normalized errors and computes transient backoff.

    classify() depends only on its arguments, so the same (code, message)
    always yields the same kind.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    @staticmethod
    def classify(code: Optional[int], message: Optional[str]) -> ErrorKind:
        message = message or ""
        if QUOTA_PATTERN.search(message):
            return ErrorKind.QUOTA
        if code is not None:
            if code in TRANSIENT_CODES or code >= 500:
                return ErrorKind.TRANSIENT
            if code in PERMANENT_CODES or 400 <= code < 500:
                return ErrorKind.PERMANENT
        if NETWORK_PATTERN.search(message):
            return ErrorKind.TRANSIENT
        return ErrorKind.PERMANENT

    def classify_error(self, error: TransferError) -> ClassifiedError:
        kind = self.classify(error.code, error.classification_message)
        return ClassifiedError(
            kind=kind,
            code=error.code,
            message=error.message,
            retry_after=error.retry_after,
        )

    def should_retry(self, kind: ErrorKind, retries_done: int) -> bool:
        """Whether another attempt is allowed after retries_done retries."""
        if kind is ErrorKind.QUOTA:
            return True
        if kind is ErrorKind.TRANSIENT:
            return retries_done < self.max_retries
        return False

    def backoff_delay(self, retries_done: int, retry_after: Optional[float] = None) -> float:
        """Delay before the next transient retry: base * 2^n, or the server hint."""
        if retry_after is not None:
            return retry_after
        return min(self.base_delay * (2 ** retries_done), self.max_delay)

"""
Retry classification for document-store failures.

`RetryClassifier.classify` is a pure function of the error and the attempt
number: it decides whether a failure is transient and how long to back off
before the next try. The client feeds it to tenacity as the retry predicate,
so one failed attempt means exactly one classification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from coachstore.errors import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    StoreValidationError,
)

_FATAL_TYPES = (PermissionDeniedError, StoreValidationError, NotFoundError, AlreadyExistsError)

_FATAL_CODES = frozenset(
    {
        "permission-denied",
        "invalid-argument",
        "not-found",
        "already-exists",
        "failed-precondition",
        "unauthenticated",
    }
)
_RETRYABLE_CODES = frozenset(
    {
        "unavailable",
        "deadline-exceeded",
        "resource-exhausted",
        "aborted",
        "internal",
    }
)
_RETRYABLE_MESSAGE_HINTS = ("network", "timeout", "timed out", "connection", "unavailable")


@dataclass(frozen=True)
class RetryDecision:
    retryable: bool
    delay_ms: int
    reason: str


def backoff_delay_ms(
    attempt: int,
    base_delay_ms: int = 1000,
    max_delay_ms: int = 10_000,
    multiplier: float = 2.0,
) -> int:
    """Exponential backoff for the wait that follows failed attempt number `attempt` (1-based)."""
    exponent = max(attempt, 1) - 1
    return int(min(base_delay_ms * (multiplier**exponent), max_delay_ms))


def _normalized_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if not isinstance(code, str):
        return None
    return code.strip().lower().replace("_", "-")


def _status(error: BaseException) -> Optional[int]:
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_transient(error: BaseException) -> tuple[bool, str]:
    """Return (transient?, reason). Fatal markers are checked before transient ones."""
    if isinstance(error, _FATAL_TYPES):
        return False, f"fatal error type {type(error).__name__}"
    code = _normalized_code(error)
    if code in _FATAL_CODES:
        return False, f"fatal code {code}"

    if isinstance(error, StoreError):
        if error.retryable:
            return True, f"transient store error {error.code}"
        return False, f"non-retryable store error {error.code}"
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True, f"transient {type(error).__name__}"
    if code in _RETRYABLE_CODES:
        return True, f"transient code {code}"

    status = _status(error)
    if status is not None:
        if status >= 500 or status in (408, 429):
            return True, f"transient status {status}"
        return False, f"fatal status {status}"

    message = str(error).lower()
    if any(hint in message for hint in _RETRYABLE_MESSAGE_HINTS):
        return True, "transient message"
    return False, f"unclassified {type(error).__name__}"


class RetryClassifier:
    """
    Maps a failure to a `RetryDecision`.

    Parameters
    ----------
    max_attempts : int
        Total tries allowed, including the first one. A failure on the last
        allowed attempt is never retryable.
    base_delay_ms, max_delay_ms, multiplier :
        Exponential backoff schedule.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 10_000,
        multiplier: float = 2.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.multiplier = multiplier

    @classmethod
    def from_settings(cls, settings) -> "RetryClassifier":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            multiplier=settings.retry_backoff_multiplier,
        )

    def classify(self, error: BaseException, attempt: int = 1) -> RetryDecision:
        transient, reason = is_transient(error)
        if not transient:
            return RetryDecision(retryable=False, delay_ms=0, reason=reason)
        if attempt >= self.max_attempts:
            return RetryDecision(
                retryable=False,
                delay_ms=0,
                reason=f"{reason}; retry budget of {self.max_attempts} attempts exhausted",
            )
        return RetryDecision(
            retryable=True,
            delay_ms=self.delay_for(attempt),
            reason=reason,
        )

    def delay_for(self, attempt: int) -> int:
        return backoff_delay_ms(
            attempt,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            multiplier=self.multiplier,
        )


__all__ = ["RetryClassifier", "RetryDecision", "backoff_delay_ms", "is_transient"]

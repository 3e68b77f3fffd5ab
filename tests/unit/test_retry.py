from __future__ import annotations

import pytest

from coachstore.errors import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    StoreValidationError,
    TransientStoreError,
)
from coachstore.retry import RetryClassifier, backoff_delay_ms, is_transient


class CodedError(Exception):
    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


class HttpError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


@pytest.fixture
def classifier() -> RetryClassifier:
    return RetryClassifier(max_attempts=3, base_delay_ms=100, max_delay_ms=250, multiplier=2.0)


@pytest.mark.parametrize(
    "error",
    [
        TransientStoreError("backend unavailable"),
        StoreError("aborted", code="ABORTED", retryable=True),
        TimeoutError(),
        ConnectionError("reset by peer"),
        CodedError("unavailable"),
        CodedError("DEADLINE_EXCEEDED"),
        CodedError("resource-exhausted"),
        HttpError(503),
        HttpError(429),
        HttpError(408),
        RuntimeError("network is unreachable"),
    ],
)
def test_transient_errors_are_retryable(classifier: RetryClassifier, error: BaseException) -> None:
    decision = classifier.classify(error, attempt=1)

    assert decision.retryable is True
    assert decision.delay_ms == 100


@pytest.mark.parametrize(
    "error",
    [
        PermissionDeniedError("nope"),
        StoreValidationError("bad field"),
        NotFoundError("gone"),
        AlreadyExistsError("dup"),
        CodedError("permission-denied"),
        CodedError("failed-precondition"),
        HttpError(404),
        StoreError("plain failure"),
        ValueError("bad input"),
    ],
)
def test_fatal_errors_are_not_retryable(classifier: RetryClassifier, error: BaseException) -> None:
    decision = classifier.classify(error, attempt=1)

    assert decision.retryable is False
    assert decision.delay_ms == 0


def test_fatal_markers_win_over_transient_message() -> None:
    transient, reason = is_transient(PermissionDeniedError("connection refused for user"))

    assert transient is False
    assert "PermissionDeniedError" in reason


def test_backoff_grows_exponentially_and_caps(classifier: RetryClassifier) -> None:
    assert [classifier.delay_for(attempt) for attempt in (1, 2, 3, 4)] == [100, 200, 250, 250]
    assert backoff_delay_ms(1, base_delay_ms=1000) == 1000
    assert backoff_delay_ms(3, base_delay_ms=1000, multiplier=2.0) == 4000


def test_last_attempt_exhausts_budget(classifier: RetryClassifier) -> None:
    error = TransientStoreError("still down")

    assert classifier.classify(error, attempt=2).retryable is True
    exhausted = classifier.classify(error, attempt=3)

    assert exhausted.retryable is False
    assert exhausted.delay_ms == 0
    assert "exhausted" in exhausted.reason


def test_classify_is_pure(classifier: RetryClassifier) -> None:
    error = TimeoutError()

    assert classifier.classify(error, 2) == classifier.classify(error, 2)


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RetryClassifier(max_attempts=0)

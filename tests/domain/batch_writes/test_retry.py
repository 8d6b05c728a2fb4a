from __future__ import annotations

import asyncio

import pytest

from cardsync.domain.batch_writes import BackoffPolicy, is_retryable, retry_transient
from cardsync.domain.ports.persistence import (
    DocumentNotFoundError,
    StoreDeadlineExceededError,
    StoreError,
    StoreUnavailableError,
)
from tests.support.sleep import RecordingSleep


def test_backoff_delay_doubles_and_is_capped() -> None:
    policy = BackoffPolicy(base_delay=1.0, max_delay=5.0)

    assert [policy.delay(attempt) for attempt in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_only_transient_errors_are_retryable() -> None:
    assert is_retryable(StoreUnavailableError("busy"))
    assert is_retryable(StoreDeadlineExceededError("slow"))
    assert not is_retryable(StoreError("denied"))
    assert not is_retryable(DocumentNotFoundError("cards", "1"))


def test_retry_transient_returns_after_recovering() -> None:
    failures: list[Exception] = [StoreUnavailableError("busy"), StoreDeadlineExceededError("slow")]
    sleep = RecordingSleep()

    async def operation() -> str:
        if failures:
            raise failures.pop(0)
        return "done"

    result = asyncio.run(
        retry_transient(operation, policy=BackoffPolicy(base_delay=0.5), sleep=sleep)
    )

    assert result == "done"
    assert sleep.delays == [0.5, 1.0]


def test_retry_transient_gives_up_after_max_retries() -> None:
    sleep = RecordingSleep()

    async def operation() -> None:
        raise StoreUnavailableError("busy")

    with pytest.raises(StoreUnavailableError):
        asyncio.run(retry_transient(operation, policy=BackoffPolicy(max_retries=3), sleep=sleep))

    assert sleep.delays == [1.0, 2.0, 4.0]


def test_retry_transient_does_not_retry_fatal_errors() -> None:
    sleep = RecordingSleep()

    async def operation() -> None:
        raise StoreError("denied")

    with pytest.raises(StoreError, match="denied"):
        asyncio.run(retry_transient(operation, policy=BackoffPolicy(), sleep=sleep))

    assert sleep.delays == []

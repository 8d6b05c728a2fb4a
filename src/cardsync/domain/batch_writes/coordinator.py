"""Batched, throttled writes against the document store.

``BatchWriteCoordinator`` owns a pool of open batch units. ``submit`` records
each operation into the first unit with room; when the whole pool is full it
hands the least-recently-filled unit to a background commit task and takes a
fresh unit in its place. The number of commits in flight never exceeds the
concurrency ceiling: ``submit`` waits for a commit to finish before starting
another one.

``flush`` commits whatever is left in small chunks. Each commit retries
transient store failures with exponential backoff; when commits keep running
into deadlines, ``flush`` halves the ceiling and tries the remaining units
again instead of failing the run.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cardsync.domain.ports.persistence import StoreDeadlineExceededError

from .retry import BackoffPolicy, Sleep, is_retryable
from .units import BatchState, BatchUnit

if TYPE_CHECKING:
    from cardsync.domain.ports.persistence import DocumentStore

    from .units import WriteOperation

log = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_BATCHES = 50
DEFAULT_MAX_OPERATIONS_PER_BATCH = 500
DEFAULT_COMMIT_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class CoordinatorSettings:
    max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES
    max_operations_per_batch: int = DEFAULT_MAX_OPERATIONS_PER_BATCH
    pool_size: int | None = None
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    commit_timeout: float = DEFAULT_COMMIT_TIMEOUT_SECONDS
    flush_fan_out: int = 5
    flush_pause: float = 0.1
    min_concurrency: int = 1

    def __post_init__(self) -> None:
        for name in ("max_concurrent_batches", "max_operations_per_batch", "flush_fan_out"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.pool_size is not None and self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        if not 1 <= self.min_concurrency <= self.max_concurrent_batches:
            raise ValueError("min_concurrency must be between 1 and max_concurrent_batches")

    @property
    def effective_pool_size(self) -> int:
        return self.pool_size or self.max_concurrent_batches


class BatchWriteCoordinator:
    def __init__(
        self,
        store: DocumentStore,
        settings: CoordinatorSettings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._settings = settings or CoordinatorSettings()
        self._sleep = sleep
        self._ceiling = self._settings.max_concurrent_batches
        self._fill_order = itertools.count()
        self._in_flight: dict[asyncio.Task[None], BatchUnit] = {}
        self._failures: list[tuple[BatchUnit, BaseException]] = []
        self._pool = self._fresh_pool()
        self.submitted_operations = 0
        self.committed_operations = 0
        self.committed_batches = 0

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def pool(self) -> tuple[BatchUnit, ...]:
        return tuple(self._pool)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def submit(self, operation: WriteOperation) -> None:
        """Record ``operation`` into a batch unit, waiting for commit capacity if needed."""

        while True:
            unit = next((unit for unit in self._pool if unit.accepts_operations), None)
            if unit is not None:
                break
            self._reap()
            if len(self._in_flight) >= self._ceiling:
                await self._wait_for_capacity()
                continue
            unit = self._rotate_oldest_full_unit()
            break

        unit.record(operation)
        self.submitted_operations += 1
        if unit.is_full and unit.filled_at is None:
            unit.filled_at = next(self._fill_order)

    async def flush(self) -> None:
        """Commit every non-empty unit and wait for all outstanding commits."""

        while True:
            try:
                await self._flush_once()
            except StoreDeadlineExceededError:
                if self._ceiling <= self._settings.min_concurrency:
                    raise
                previous = self._ceiling
                self._ceiling = max(self._settings.min_concurrency, self._ceiling // 2)
                log.warning(
                    "Commits hit store deadlines; lowering concurrency %d -> %d and retrying flush",
                    previous,
                    self._ceiling,
                )
                continue
            break

        log.info(
            "Flushed writes: %d operations in %d batches committed",
            self.committed_operations,
            self.committed_batches,
        )
        self._pool = self._fresh_pool()

    async def _flush_once(self) -> None:
        pending = [unit for unit in self._pool if not unit.is_empty]
        self._pool = [unit for unit in self._pool if unit.is_empty] or [self._new_unit()]
        fan_out = max(1, min(self._settings.flush_fan_out, self._ceiling))

        for start in range(0, len(pending), fan_out):
            if self._failures:
                # stop dispatching; undispatched units stay for the next attempt
                self._pool.extend(pending[start:])
                break
            if start:
                await self._sleep(self._settings.flush_pause)
            chunk_tasks: list[asyncio.Task[None]] = []
            for unit in pending[start : start + fan_out]:
                await self._wait_for_capacity()
                chunk_tasks.append(self._dispatch(unit))
            await asyncio.wait(chunk_tasks)
            self._reap()

        while self._in_flight:
            await asyncio.wait(tuple(self._in_flight))
            self._reap()
        self._raise_failures()

    def _fresh_pool(self) -> list[BatchUnit]:
        return [self._new_unit() for _ in range(self._settings.effective_pool_size)]

    def _new_unit(self) -> BatchUnit:
        return BatchUnit(
            batch=self._store.batch(),
            max_operations=self._settings.max_operations_per_batch,
        )

    def _rotate_oldest_full_unit(self) -> BatchUnit:
        oldest = min(
            (unit for unit in self._pool if unit.is_full),
            key=lambda unit: unit.filled_at if unit.filled_at is not None else -1,
        )
        replacement = self._new_unit()
        self._pool[self._pool.index(oldest)] = replacement
        self._dispatch(oldest)
        return replacement

    def _dispatch(self, unit: BatchUnit) -> asyncio.Task[None]:
        unit.state = BatchState.COMMITTING
        task = asyncio.create_task(self._commit_unit(unit))
        self._in_flight[task] = unit
        return task

    async def _wait_for_capacity(self) -> None:
        self._reap()
        while len(self._in_flight) >= self._ceiling:
            await asyncio.wait(tuple(self._in_flight), return_when=asyncio.FIRST_COMPLETED)
            self._reap()

    def _reap(self) -> None:
        for task in [task for task in self._in_flight if task.done()]:
            unit = self._in_flight.pop(task)
            if task.cancelled():
                self._failures.append((unit, asyncio.CancelledError()))
                continue
            error = task.exception()
            if error is not None:
                self._failures.append((unit, error))

    def _raise_failures(self) -> None:
        failures, self._failures = self._failures, []
        if not failures:
            return
        for unit, error in failures:
            if not isinstance(error, StoreDeadlineExceededError):
                log.error(
                    "Batch of %d operations failed permanently: %s", unit.operations, error
                )
                raise error
        for unit, _ in failures:
            unit.state = BatchState.OPEN
            self._pool.append(unit)
        raise failures[0][1]

    async def _commit_unit(self, unit: BatchUnit) -> None:
        backoff = self._settings.backoff
        timeout = self._settings.commit_timeout
        attempt = 0
        while True:
            try:
                await asyncio.wait_for(unit.batch.commit(), timeout=timeout)
            except TimeoutError:
                error: Exception = StoreDeadlineExceededError(
                    f"Batch commit did not finish within {timeout:g}s"
                )
            except Exception as exc:
                if not is_retryable(exc):
                    unit.state = BatchState.FAILED
                    raise
                error = exc
            else:
                unit.state = BatchState.COMMITTED
                self.committed_batches += 1
                self.committed_operations += unit.operations
                log.debug("Committed batch of %d operations", unit.operations)
                return

            if attempt >= backoff.max_retries:
                unit.state = BatchState.FAILED
                raise error
            delay = backoff.delay(attempt)
            log.warning(
                "Batch commit failed (%s); retrying in %.1fs (%d/%d)",
                error,
                delay,
                attempt + 1,
                backoff.max_retries,
            )
            await self._sleep(delay)
            attempt += 1

"""State storage for the circuit breaker registry.

Storage holds one record per operation name and applies each transition as a
single locked read-modify-write, so concurrent calls for the same name can
neither double-count a failure nor lose a reset. Custom backends can implement
the interface for multi-process coordination.
"""

import asyncio
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace

from resilient_ops.circuit_breaker.state import BreakerSnapshot, CircuitState


class AbstractBreakerStorage(ABC):
    """Abstract breaker storage interface."""

    @abstractmethod
    async def get_state(self, name: str) -> BreakerSnapshot:
        """Return the record for ``name`` without creating one."""

    @abstractmethod
    async def record_success(self, name: str) -> BreakerSnapshot:
        """Close the circuit for ``name`` and clear its failure count."""

    @abstractmethod
    async def record_failure(
        self,
        name: str,
        *,
        failed_at: float,
        failure_threshold: int,
        force_open: bool = False,
    ) -> BreakerSnapshot:
        """Count one failure and open the circuit when the threshold is reached."""

    @abstractmethod
    async def mark_half_open(self, name: str) -> BreakerSnapshot:
        """Move ``name`` into ``HALF_OPEN`` ahead of a trial call."""

    @abstractmethod
    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset ``name`` to ``CLOSED`` with cleared counters."""


class InMemoryBreakerStorage(AbstractBreakerStorage):
    """In-memory storage with per-name cooperative + optional thread locks."""

    def __init__(self) -> None:
        """Initialize in-memory record and lock registries."""
        self._snapshots: dict[str, BreakerSnapshot] = {}
        self._async_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        async_lock = self._async_locks[name]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[name]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except Exception:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    def _current(self, name: str) -> BreakerSnapshot:
        snapshot = self._snapshots.get(name)
        if snapshot is None:
            return BreakerSnapshot.initial(name)
        return snapshot

    def names(self) -> tuple[str, ...]:
        """Return the operation names that have a stored record."""
        return tuple(self._snapshots)

    async def get_state(self, name: str) -> BreakerSnapshot:
        """Return the stored record, or the initial record when absent."""
        async with self._locked(name):
            return self._current(name)

    async def record_success(self, name: str) -> BreakerSnapshot:
        """Close the circuit and clear the failure count.

        The last failure timestamp is kept for diagnostics. A healthy record is
        left untouched so the hot path does not create entries.
        """
        async with self._locked(name):
            snapshot = self._current(name)
            if snapshot.state == CircuitState.CLOSED and snapshot.failure_count == 0:
                return snapshot
            updated = replace(snapshot, state=CircuitState.CLOSED, failure_count=0)
            self._snapshots[name] = updated
            return updated

    async def record_failure(
        self,
        name: str,
        *,
        failed_at: float,
        failure_threshold: int,
        force_open: bool = False,
    ) -> BreakerSnapshot:
        """Increment the failure count and stamp the failure time."""
        async with self._locked(name):
            snapshot = self._current(name)
            failure_count = snapshot.failure_count + 1
            state = snapshot.state
            if force_open or failure_count >= failure_threshold:
                state = CircuitState.OPEN
            updated = BreakerSnapshot(
                name=name,
                state=state,
                failure_count=failure_count,
                last_failure_at=failed_at,
            )
            self._snapshots[name] = updated
            return updated

    async def mark_half_open(self, name: str) -> BreakerSnapshot:
        """Record that a trial call is about to run."""
        async with self._locked(name):
            updated = replace(self._current(name), state=CircuitState.HALF_OPEN)
            self._snapshots[name] = updated
            return updated

    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset state and counters to the initial record."""
        async with self._locked(name):
            updated = BreakerSnapshot.initial(name)
            self._snapshots[name] = updated
            return updated

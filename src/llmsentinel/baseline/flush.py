# src/llmsentinel/baseline/flush.py
"""
Flush policies for baseline snapshots.

A baseline changes on every analyzed response, but writing it to the durable
store on every change would turn the store into the bottleneck. A flush
policy decides, per update, whether the snapshot is written immediately or
deferred; deferred keys are picked up later by ``BaselineStore.flush_due()``.

The policy is driven by an injectable monotonic clock so tests can advance
time without sleeping.
"""

import abc
import time
from typing import Callable, Dict, List


class FlushPolicy(abc.ABC):
    """Decides when baseline snapshots are persisted."""

    @abc.abstractmethod
    def should_flush_now(self, sample_count: int) -> bool:
        """True if the snapshot at ``sample_count`` must be written immediately."""

    @abc.abstractmethod
    def schedule_delayed(self, key: str) -> None:
        """Arm (or re-arm) a deferred flush for ``key``."""

    @abc.abstractmethod
    def cancel(self, key: str) -> None:
        """Drop any pending deferred flush for ``key``."""

    @abc.abstractmethod
    def due_keys(self) -> List[str]:
        """Return and clear the keys whose deferred flush is due."""

    @abc.abstractmethod
    def pending_keys(self) -> List[str]:
        """Keys with an armed deferred flush, due or not."""


class DebouncedFlushPolicy(FlushPolicy):
    """
    Forced flush every ``force_every``-th sample, otherwise a per-key
    debounce: each update pushes the key's deadline ``quiet_period`` seconds
    into the future, so a burst of updates collapses into one write.

    Args:
        quiet_period: Seconds of inactivity before a deferred flush is due.
        force_every: Sample-count modulus that triggers an immediate flush.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        quiet_period: float = 5.0,
        force_every: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        if quiet_period <= 0:
            raise ValueError("quiet_period must be positive")
        if force_every < 1:
            raise ValueError("force_every must be at least 1")
        self.quiet_period = quiet_period
        self.force_every = force_every
        self._clock = clock
        self._deadlines: Dict[str, float] = {}

    def should_flush_now(self, sample_count: int) -> bool:
        return sample_count % self.force_every == 0

    def schedule_delayed(self, key: str) -> None:
        self._deadlines[key] = self._clock() + self.quiet_period

    def cancel(self, key: str) -> None:
        self._deadlines.pop(key, None)

    def due_keys(self) -> List[str]:
        now = self._clock()
        due = [key for key, deadline in self._deadlines.items() if deadline <= now]
        for key in due:
            del self._deadlines[key]
        return due

    def pending_keys(self) -> List[str]:
        return list(self._deadlines)

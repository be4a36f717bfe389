"""Per-process memory leak detection for memleak."""

import os
from typing import Any

from memleak import system
from memleak.logging import get_logger
from memleak.models import MemorySample, MonitorSnapshot

logger = get_logger(__name__)

# Only size increases larger than this count as growth. True leaks eventually
# cross it; allocator noise and small fluctuations don't.
DEFAULT_THRESHOLD_SIZE = 1024 * 1024 * 10

# Number of confirmed increases before the process is considered leaking.
# Sampled every 10 seconds this covers at least ~3 minutes of growth.
DEFAULT_INCREASE_LIMIT = 20


class ProcessMonitor:
    """
    Tracks the memory usage of a single process and decides whether it leaks.

    A leak shows up as resident size that keeps rising instead of settling. Each
    sample is compared against the largest size seen so far (the baseline); an
    increase beyond threshold_size moves the baseline up and counts once. Drops
    in size are ignored, so a garbage collection pass cannot reset the count.
    """

    def __init__(
        self,
        process_id: int | None = None,
        *,
        threshold_size: int = DEFAULT_THRESHOLD_SIZE,
        increase_limit: int | None = DEFAULT_INCREASE_LIMIT,
        maximum_size_limit: int | None = None,
    ) -> None:
        """
        Initialize the ProcessMonitor.

        Args:
            process_id: Process to monitor. Defaults to the current process.
            threshold_size: Minimum growth in bytes that counts as an increase.
            increase_limit: Increases before the process is leaking, None to disable.
            maximum_size_limit: Resident size in bytes above which the process is
                leaking regardless of its history, None to disable.
        """
        self._process_id = os.getpid() if process_id is None else process_id

        self.threshold_size = threshold_size
        self.increase_limit = increase_limit
        self.maximum_size_limit = maximum_size_limit

        self.sample_count = 0
        self.increase_count = 0
        self.maximum_size: int | None = None

        self._current_size: int | None = None
        self.current_shared_size: int | None = None
        self.current_private_size: int | None = None

    def __repr__(self) -> str:
        return (
            f"<ProcessMonitor process_id={self._process_id} current_size={self._current_size} "
            f"increase_count={self.increase_count}/{self.increase_limit}>"
        )

    @property
    def process_id(self) -> int:
        """Get the monitored process ID."""
        return self._process_id

    @property
    def current_size(self) -> int | None:
        """Get the last sampled resident size, None before the first sample."""
        return self._current_size

    @current_size.setter
    def current_size(self, value: int | None) -> None:
        """Override the resident size without taking a sample."""
        self._current_size = value

    def memory_usage(self) -> MemorySample:
        """Ask the system for the current memory usage of the process."""
        return system.memory_usage(self._process_id)

    def sample(self, usage: MemorySample | int | None = None) -> int:
        """
        Capture a memory usage sample and update the leak tracking state.

        Args:
            usage: Sample obtained elsewhere (e.g. a bulk query), or a bare
                resident size. Queries the system when omitted.

        Returns:
            The sampled resident size in bytes.
        """
        if usage is None:
            usage = self.memory_usage()
        elif isinstance(usage, int):
            usage = MemorySample(resident_size=usage)

        self.sample_count += 1
        self._current_size = usage.resident_size
        self.current_shared_size = usage.shared_size
        self.current_private_size = usage.private_size

        if self.maximum_size is None:
            logger.debug("initial_size_captured", process_id=self._process_id, current_size=self._current_size)
            self.maximum_size = self._current_size
            return self._current_size

        delta = self._current_size - self.maximum_size
        logger.debug(
            "size_captured",
            process_id=self._process_id,
            current_size=self._current_size,
            delta=delta,
            threshold_size=self.threshold_size,
            maximum_size=self.maximum_size,
        )

        if delta > self.threshold_size:
            self.maximum_size = self._current_size
            self.increase_count += 1
            logger.debug(
                "size_increased",
                process_id=self._process_id,
                maximum_size=self.maximum_size,
                increase_count=self.increase_count,
            )

        return self._current_size

    def increase_limit_exceeded(self) -> bool:
        """Check if the process grew at least increase_limit times."""
        return self.increase_limit is not None and self.increase_count >= self.increase_limit

    def maximum_size_limit_exceeded(self) -> bool:
        """Check if the process is larger than maximum_size_limit."""
        return (
            self.maximum_size_limit is not None
            and self._current_size is not None
            and self._current_size > self.maximum_size_limit
        )

    def leaking(self) -> bool:
        """Check if a memory leak has been detected."""
        return self.increase_limit_exceeded() or self.maximum_size_limit_exceeded()

    def snapshot(self) -> MonitorSnapshot:
        """Capture the monitor state as an immutable snapshot."""
        return MonitorSnapshot(
            process_id=self._process_id,
            sample_count=self.sample_count,
            current_size=self._current_size,
            current_shared_size=self.current_shared_size,
            current_private_size=self.current_private_size,
            maximum_size=self.maximum_size,
            maximum_size_limit=self.maximum_size_limit,
            threshold_size=self.threshold_size,
            increase_count=self.increase_count,
            increase_limit=self.increase_limit,
        )

    def as_dict(self) -> dict[str, Any]:
        return self.snapshot().to_dict()

    def to_json(self) -> str:
        return self.snapshot().to_json()

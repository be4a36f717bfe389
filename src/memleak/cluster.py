"""Leak detection and memory limits across a group of processes."""

from collections.abc import Callable, Iterator
from typing import Any

from memleak import system
from memleak.logging import get_logger
from memleak.models import ClusterSnapshot, MemorySample
from memleak.monitor import ProcessMonitor

logger = get_logger(__name__)

# Invoked as callback(process_id, monitor) for leaking processes, and as
# callback(process_id, monitor, size) when a memory policy selects a process.
Callback = Callable[..., Any]


class Cluster:
    """
    Monitors a group of processes for memory leaks and memory pressure.

    Each check samples every process, reports the leaking ones, and then applies
    the cluster wide policies: a limit on the total size of the cluster and a
    minimum of free memory on the host. Processes are reported to a callback
    which is expected to terminate them and remove them from the cluster; the
    cluster itself never signals or removes anything.
    """

    def __init__(
        self,
        total_size_limit: int | None = None,
        free_size_minimum: int | None = None,
        processes: dict[int, ProcessMonitor] | None = None,
    ) -> None:
        """
        Initialize the Cluster.

        Args:
            total_size_limit: Total size in bytes above which processes are terminated.
            free_size_minimum: Free host memory in bytes below which processes are terminated.
            processes: Initial process ID to monitor mapping.
        """
        self.total_size: int | None = None
        self.total_size_limit = total_size_limit
        self.free_size_minimum = free_size_minimum
        self.processes: dict[int, ProcessMonitor] = dict(processes or {})

    def __len__(self) -> int:
        return len(self.processes)

    def __contains__(self, process_id: object) -> bool:
        return process_id in self.processes

    def __iter__(self) -> Iterator[tuple[int, ProcessMonitor]]:
        return iter(list(self.processes.items()))

    def add(self, process_id: int, **options: Any) -> ProcessMonitor:
        """Start monitoring a process, replacing any existing monitor for it."""
        monitor = ProcessMonitor(process_id, **options)
        self.processes[process_id] = monitor
        return monitor

    def remove(self, process_id: int) -> ProcessMonitor | None:
        """Stop monitoring a process. Unknown process IDs are ignored."""
        return self.processes.pop(process_id, None)

    def sample_all(self) -> None:
        """Sample the memory usage of every process with a single bulk query."""
        usages = system.memory_usages(self.processes.keys())

        for process_id, monitor in list(self.processes.items()):
            monitor.sample(usages.get(process_id, MemorySample.unavailable()))

    def _eligible(self) -> list[tuple[int, ProcessMonitor]]:
        """Processes with a known private size, largest first."""
        eligible = [
            (process_id, monitor)
            for process_id, monitor in self.processes.items()
            if monitor.current_private_size is not None
        ]
        eligible.sort(key=lambda item: item[1].current_private_size, reverse=True)
        return eligible

    def apply_limit(
        self,
        callback: Callback,
        total_size_limit: int | None = None,
    ) -> list[tuple[int, ProcessMonitor]]:
        """
        Select processes for termination until the total size fits the limit.

        Shared memory is mapped into every process, so summing resident sizes
        would count it many times. The total is estimated as the largest shared
        size plus the sum of private sizes, over processes where the breakdown
        is known. Processes are selected largest private size first, and the
        largest shared size is kept fixed while the total is reduced.

        Returns:
            The (process_id, monitor) pairs passed to the callback.
        """
        if total_size_limit is None:
            total_size_limit = self.total_size_limit

        eligible = self._eligible()
        maximum_shared_size = max((monitor.current_shared_size or 0 for _, monitor in eligible), default=0)
        sum_private_size = sum(monitor.current_private_size for _, monitor in eligible)
        self.total_size = maximum_shared_size + sum_private_size

        if self.total_size <= total_size_limit:
            logger.info("total_size_within_limit", total_size=self.total_size, total_size_limit=total_size_limit)
            return []

        logger.warning("total_size_exceeded_limit", total_size=self.total_size, total_size_limit=total_size_limit)

        selected = []
        for process_id, monitor in eligible:
            if self.total_size <= total_size_limit:
                break

            # The callback may remove the monitor, take the size first.
            private_size = monitor.current_private_size
            callback(process_id, monitor, self.total_size)
            selected.append((process_id, monitor))

            sum_private_size -= private_size
            self.total_size = maximum_shared_size + sum_private_size

        return selected

    def apply_minimum(
        self,
        callback: Callback,
        free_size_minimum: int | None = None,
    ) -> list[tuple[int, ProcessMonitor]]:
        """
        Select processes for termination until enough host memory would be free.

        Free memory is read once; terminated processes release memory
        asynchronously, so their private sizes are added to an estimate instead
        of reading the free memory again.

        Returns:
            The (process_id, monitor) pairs passed to the callback.
        """
        if free_size_minimum is None:
            free_size_minimum = self.free_size_minimum

        free_size = system.free_memory_size()
        if free_size is None:
            return []

        if free_size >= free_size_minimum:
            logger.info("free_size_above_minimum", free_size=free_size, free_size_minimum=free_size_minimum)
            return []

        logger.warning("free_size_below_minimum", free_size=free_size, free_size_minimum=free_size_minimum)

        selected = []
        freed_size = 0
        for process_id, monitor in self._eligible():
            if free_size + freed_size >= free_size_minimum:
                break

            private_size = monitor.current_private_size
            callback(process_id, monitor, free_size + freed_size)
            selected.append((process_id, monitor))

            freed_size += private_size

        return selected

    def check(self, callback: Callback | None = None) -> list[tuple[int, ProcessMonitor]]:
        """
        Sample all processes, report leaks and apply the memory policies.

        Every leaking process is passed to the callback, in the order the
        processes were added. The total size limit and free size minimum are
        then applied, if configured; they need a callback to act on.

        Returns:
            The (process_id, monitor) pairs found to be leaking.
        """
        self.sample_all()

        leaking = []
        for process_id, monitor in self.processes.items():
            if monitor.leaking():
                logger.debug("memory_leak_detected", process_id=process_id, monitor=monitor.as_dict())
                leaking.append((process_id, monitor))

        if callback is None:
            return leaking

        for process_id, monitor in leaking:
            callback(process_id, monitor)

        if self.total_size_limit is not None:
            self.apply_limit(callback)

        if self.free_size_minimum is not None:
            self.apply_minimum(callback)

        return leaking

    def snapshot(self) -> ClusterSnapshot:
        """Capture the cluster state as an immutable snapshot."""
        return ClusterSnapshot(
            total_size=self.total_size,
            total_size_limit=self.total_size_limit,
            free_size_minimum=self.free_size_minimum,
            processes={process_id: monitor.snapshot() for process_id, monitor in self.processes.items()},
        )

    def as_dict(self) -> dict[str, Any]:
        return self.snapshot().to_dict()

    def to_json(self) -> str:
        return self.snapshot().to_json()

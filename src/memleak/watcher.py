"""Background checking of a cluster for memleak."""

import threading
import time
from dataclasses import dataclass
from queue import Queue
from typing import Any

from memleak import system
from memleak.cluster import Callback, Cluster
from memleak.logging import get_logger
from memleak.models import ClusterSnapshot
from memleak.terminator import Selection, Terminator

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ClusterReport:
    """Outcome of one check cycle."""

    timestamp: float
    snapshot: ClusterSnapshot
    leaking: tuple[int, ...]
    selections: tuple[Selection, ...]
    free_size: int | None
    total_memory_size: int | None


class ClusterWatcher:
    """
    Runs Cluster.check on an interval and publishes a report after each cycle.

    Runs in a separate daemon thread, which is the only thread touching the
    cluster while the watcher is running. Reports are pushed to a thread-safe
    Queue. With a parent process ID, the cluster is kept in sync with the
    children of that process before every check.
    """

    def __init__(
        self,
        cluster: Cluster,
        update_queue: Queue[ClusterReport],
        poll_rate: float = 10.0,
        callback: Callback | None = None,
        parent_pid: int | None = None,
        monitor_options: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the ClusterWatcher.

        Args:
            cluster: Cluster to check.
            update_queue: Thread-safe queue to push reports to.
            poll_rate: How often to check the cluster (in seconds). Default 10.0s.
            callback: Passed to Cluster.check for every selected process.
            parent_pid: Supervisor process whose children are monitored.
            monitor_options: Options for monitors of newly discovered children.
        """
        self.cluster = cluster
        self.callback = callback
        self.parent_pid = parent_pid
        self.monitor_options = monitor_options or {}
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._children: set[int] = set()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the watcher thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the watcher thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="ClusterWatcher",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the watcher thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.check_once())
            except Exception:
                # Keep watching, the next cycle samples afresh
                logger.exception("check_failed", parent_pid=self.parent_pid)

            self._stop_event.wait(timeout=self._poll_rate)

    def sync_children(self) -> None:
        """
        Monitor new children of the parent process and forget the ones that exited.

        Only processes added here are ever removed, processes added to the
        cluster by other means stay monitored.
        """
        if self.parent_pid is None:
            return

        children = system.children_of(self.parent_pid)

        for process_id in children:
            if process_id not in self.cluster:
                logger.info("process_added", process_id=process_id, parent_pid=self.parent_pid)
                self.cluster.add(process_id, **self.monitor_options)
                self._children.add(process_id)

        for process_id in sorted(self._children - set(children)):
            self._children.discard(process_id)
            if process_id in self.cluster:
                logger.info("process_removed", process_id=process_id, parent_pid=self.parent_pid)
                self.cluster.remove(process_id)

    def check_once(self) -> ClusterReport:
        """Run a single check cycle and return its report."""
        self.sync_children()

        leaking = self.cluster.check(self.callback)
        selections = self.callback.drain() if isinstance(self.callback, Terminator) else []

        return ClusterReport(
            timestamp=time.time(),
            snapshot=self.cluster.snapshot(),
            leaking=tuple(process_id for process_id, _ in leaking),
            selections=tuple(selections),
            free_size=system.free_memory_size(),
            total_memory_size=system.total_memory_size(),
        )

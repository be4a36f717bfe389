"""Terminate processes selected by a cluster check."""

from dataclasses import dataclass

import psutil

from memleak.cluster import Cluster
from memleak.logging import get_logger
from memleak.monitor import ProcessMonitor

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class Selection:
    """A process handed to the terminator by a cluster check."""

    process_id: int
    reason: str  # 'leak' or 'memory'
    size: int | None  # Running total or free size estimate, None for leaks
    terminated: bool


class Terminator:
    """
    Check callback that terminates selected processes and drops them from the cluster.

    In dry-run mode, selections are only recorded and logged: nothing is
    signalled and the cluster keeps monitoring the process.
    """

    def __init__(self, cluster: Cluster, dry_run: bool = False, timeout: float | None = None) -> None:
        """
        Initialize the Terminator.

        Args:
            cluster: Cluster the selected processes are removed from.
            dry_run: Record selections without terminating anything.
            timeout: Seconds to wait for each process to exit, None to not wait.
        """
        self._cluster = cluster
        self.dry_run = dry_run
        self.timeout = timeout
        self.selections: list[Selection] = []

    def __call__(self, process_id: int, monitor: ProcessMonitor, size: int | None = None) -> None:
        reason = "leak" if size is None else "memory"

        if self.dry_run:
            logger.warning("process_selected", process_id=process_id, reason=reason, size=size, dry_run=True)
            self.selections.append(Selection(process_id, reason, size, terminated=False))
            return

        logger.warning(
            "terminating_process",
            process_id=process_id,
            reason=reason,
            size=size,
            current_size=monitor.current_size,
        )
        terminated = self.terminate(process_id)
        if terminated:
            self._cluster.remove(process_id)
        self.selections.append(Selection(process_id, reason, size, terminated=terminated))

    def terminate(self, process_id: int) -> bool:
        """
        Send SIGTERM to a process.

        Returns False if the process may not be signalled. A process that is
        already gone counts as terminated.
        """
        try:
            process = psutil.Process(process_id)
            process.terminate()
            if self.timeout is not None:
                process.wait(timeout=self.timeout)
        except psutil.NoSuchProcess:
            logger.debug("process_already_gone", process_id=process_id)
        except psutil.AccessDenied:
            logger.error("termination_denied", process_id=process_id)
            return False
        except psutil.TimeoutExpired:
            logger.warning("process_still_running", process_id=process_id, timeout=self.timeout)

        return True

    def drain(self) -> list[Selection]:
        """Return and forget the selections recorded so far."""
        selections, self.selections = self.selections, []
        return selections

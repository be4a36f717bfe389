"""Process and host memory metrics, collected with psutil."""

from collections.abc import Iterable

import psutil

from memleak.logging import get_logger
from memleak.models import MemorySample

logger = get_logger(__name__)

# Errors that mean "no data for this process right now"
_UNMEASURABLE = (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess)


def _measure(process: psutil.Process) -> MemorySample:
    """
    Measure a single process.

    On platforms exposing USS (Linux, macOS, Windows), the private size is the
    USS and the shared size is whatever remains of the RSS. Reading USS walks
    the process memory maps and usually needs the same privileges as the
    process owner, so fall back to RSS only when it is denied.
    """
    with process.oneshot():
        try:
            info = process.memory_full_info()
        except psutil.AccessDenied:
            info = None

        if info is not None and hasattr(info, "uss"):
            return MemorySample(
                resident_size=info.rss,
                shared_size=max(info.rss - info.uss, 0),
                private_size=info.uss,
            )

        return MemorySample(resident_size=process.memory_info().rss)


def memory_usage(process_id: int) -> MemorySample:
    """
    Get the memory usage of a process.

    Returns MemorySample.unavailable() for dead, zombie, invalid or
    inaccessible process IDs; never raises.
    """
    if process_id <= 0:
        return MemorySample.unavailable()

    try:
        return _measure(psutil.Process(process_id))
    except _UNMEASURABLE as error:
        logger.debug("memory_usage_unavailable", process_id=process_id, error=type(error).__name__)
        return MemorySample.unavailable()


def memory_usages(process_ids: Iterable[int]) -> dict[int, MemorySample]:
    """
    Get the memory usage of several processes at once.

    Processes that cannot be measured are left out of the result.
    """
    usages: dict[int, MemorySample] = {}

    for process_id in process_ids:
        if process_id <= 0:
            continue

        try:
            usages[process_id] = _measure(psutil.Process(process_id))
        except _UNMEASURABLE as error:
            logger.debug("memory_usage_unavailable", process_id=process_id, error=type(error).__name__)
            continue

    return usages


def free_memory_size() -> int | None:
    """Memory available to new allocations on the host, in bytes, or None if unsupported."""
    try:
        return psutil.virtual_memory().available
    except (NotImplementedError, OSError):
        return None


def total_memory_size() -> int | None:
    """Total physical memory of the host, in bytes, or None if unsupported."""
    try:
        return psutil.virtual_memory().total
    except (NotImplementedError, OSError):
        return None


def children_of(process_id: int, recursive: bool = False) -> list[int]:
    """Process IDs of the children of a process, or an empty list if it is gone."""
    try:
        return [child.pid for child in psutil.Process(process_id).children(recursive=recursive)]
    except _UNMEASURABLE:
        return []

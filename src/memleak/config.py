"""Configuration for memleak watchers and command line tools."""

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from memleak.cluster import Cluster
from memleak.monitor import DEFAULT_INCREASE_LIMIT, DEFAULT_THRESHOLD_SIZE

_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)(?:i?B)?\s*$", re.IGNORECASE)


def parse_size(value: str | int | None) -> int | None:
    """
    Parse a size in bytes, accepting binary unit suffixes.

    "512" is 512 bytes, "64K", "10M", "2G" and "1T" (or "10MiB", "10MB") are
    multiples of 1024. Empty values parse to None.
    """
    if value is None or isinstance(value, int):
        return value

    if not value.strip():
        return None

    match = _SIZE_PATTERN.match(value)
    if match is None:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


def _env_size(name: str, default: int | None = None) -> int | None:
    value = os.getenv(name)
    return default if value is None else parse_size(value)


def _env_int(name: str, default: int | None = None) -> int | None:
    value = os.getenv(name)
    return default if value is None or not value.strip() else int(value)


@dataclass(slots=True)
class WatchConfig:
    """Settings for watching a cluster of processes."""

    interval: float = field(default_factory=lambda: float(os.getenv("MEMLEAK_INTERVAL", "10.0")))
    total_size_limit: int | None = field(default_factory=lambda: _env_size("MEMLEAK_TOTAL_SIZE_LIMIT"))
    free_size_minimum: int | None = field(default_factory=lambda: _env_size("MEMLEAK_FREE_SIZE_MINIMUM"))
    threshold_size: int = field(
        default_factory=lambda: _env_size("MEMLEAK_THRESHOLD_SIZE", DEFAULT_THRESHOLD_SIZE)
    )
    increase_limit: int | None = field(
        default_factory=lambda: _env_int("MEMLEAK_INCREASE_LIMIT", DEFAULT_INCREASE_LIMIT)
    )
    maximum_size_limit: int | None = field(default_factory=lambda: _env_size("MEMLEAK_MAXIMUM_SIZE_LIMIT"))
    terminate: bool = False

    def __post_init__(self) -> None:
        for name in ("total_size_limit", "free_size_minimum", "threshold_size", "maximum_size_limit"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must not be negative, got {value}")

        if self.increase_limit is not None and self.increase_limit < 1:
            raise ValueError(f"increase_limit must be at least 1, got {self.increase_limit}")

    def monitor_options(self) -> dict[str, Any]:
        """Keyword arguments for Cluster.add()."""
        return {
            "threshold_size": self.threshold_size,
            "increase_limit": self.increase_limit,
            "maximum_size_limit": self.maximum_size_limit,
        }

    def build_cluster(self, process_ids: Iterable[int] = ()) -> Cluster:
        """Create a cluster with these limits, monitoring the given processes."""
        cluster = Cluster(
            total_size_limit=self.total_size_limit,
            free_size_minimum=self.free_size_minimum,
        )

        options = self.monitor_options()
        for process_id in process_ids:
            cluster.add(process_id, **options)

        return cluster

"""Data models for memleak."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class MemorySample:
    """Immutable memory measurement of a single process."""

    resident_size: int  # Bytes
    shared_size: int | None = None  # Bytes, None where the platform can't tell
    private_size: int | None = None  # Bytes, None where the platform can't tell

    @classmethod
    def unavailable(cls) -> "MemorySample":
        """Sample used for processes that could not be measured."""
        return cls(resident_size=0)


@dataclass(slots=True, frozen=True)
class MonitorSnapshot:
    """Immutable snapshot of a process monitor state."""

    process_id: int
    sample_count: int
    current_size: int | None
    current_shared_size: int | None
    current_private_size: int | None
    maximum_size: int | None
    maximum_size_limit: int | None
    threshold_size: int
    increase_count: int
    increase_limit: int | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("sort_keys", True)
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "MonitorSnapshot":
        return cls.from_dict(json.loads(text))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorSnapshot":
        return cls(
            process_id=int(data["process_id"]),
            sample_count=data["sample_count"],
            current_size=data.get("current_size"),
            current_shared_size=data.get("current_shared_size"),
            current_private_size=data.get("current_private_size"),
            maximum_size=data.get("maximum_size"),
            maximum_size_limit=data.get("maximum_size_limit"),
            threshold_size=data["threshold_size"],
            increase_count=data["increase_count"],
            increase_limit=data.get("increase_limit"),
        )


@dataclass(slots=True, frozen=True)
class ClusterSnapshot:
    """
    Immutable snapshot of a cluster and all of its monitors.

    Serializes to JSON with the process IDs as object keys. Parsing the JSON
    back restores integer process IDs, so a snapshot survives the round trip.
    """

    total_size: int | None
    total_size_limit: int | None
    free_size_minimum: int | None
    processes: dict[int, MonitorSnapshot] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_size": self.total_size,
            "total_size_limit": self.total_size_limit,
            "free_size_minimum": self.free_size_minimum,
            "processes": {
                process_id: snapshot.to_dict()
                for process_id, snapshot in self.processes.items()
            },
        }

    def to_json(self, **kwargs: Any) -> str:
        """Serialize to JSON. Keys are sorted so equal snapshots give equal text."""
        kwargs.setdefault("sort_keys", True)
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClusterSnapshot":
        processes = {
            int(process_id): MonitorSnapshot.from_dict(snapshot)
            for process_id, snapshot in (data.get("processes") or {}).items()
        }
        return cls(
            total_size=data.get("total_size"),
            total_size_limit=data.get("total_size_limit"),
            free_size_minimum=data.get("free_size_minimum"),
            processes=processes,
        )

    @classmethod
    def from_json(cls, text: str) -> "ClusterSnapshot":
        return cls.from_dict(json.loads(text))

"""Pytest configuration and fixtures for memleak tests."""

from collections.abc import Generator

import pytest
import structlog

from memleak import system
from memleak.models import MemorySample


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo any structlog configuration a test (e.g. the CLI) applied."""
    yield
    structlog.reset_defaults()


class FakeSystem:
    """Stands in for the psutil backed metrics source."""

    def __init__(self) -> None:
        self.usages: dict[int, MemorySample] = {}
        self.free_size: int | None = None
        self.queries: list[list[int]] = []

    def memory_usage(self, process_id: int) -> MemorySample:
        return self.usages.get(process_id, MemorySample.unavailable())

    def memory_usages(self, process_ids) -> dict[int, MemorySample]:
        process_ids = list(process_ids)
        self.queries.append(process_ids)
        return {process_id: self.usages[process_id] for process_id in process_ids if process_id in self.usages}

    def free_memory_size(self) -> int | None:
        return self.free_size


@pytest.fixture
def fake_system(monkeypatch: pytest.MonkeyPatch) -> FakeSystem:
    """Replace the system metrics source with controllable values."""
    fake = FakeSystem()
    monkeypatch.setattr(system, "memory_usage", fake.memory_usage)
    monkeypatch.setattr(system, "memory_usages", fake.memory_usages)
    monkeypatch.setattr(system, "free_memory_size", fake.free_memory_size)
    return fake

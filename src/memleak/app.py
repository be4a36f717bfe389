"""memleak - Textual dashboard for a watched cluster."""

from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from memleak.models import MonitorSnapshot
from memleak.watcher import ClusterReport, ClusterWatcher


class SortKey(Enum):
    """Sort keys for the process table."""

    PRIVATE = "private"
    RESIDENT = "resident"
    PID = "pid"
    INCREASES = "increases"


def format_bytes(size: int | None) -> str:
    """Format bytes as human-readable string."""
    if size is None:
        return "    -"
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def usage_bar(used: int, total: int, color: str) -> str:
    """Render a 20 character usage bar."""
    bar_len = int(used * 20 / total) if total > 0 else 0
    bar_len = max(0, min(bar_len, 20))
    # Escaped brackets for the bar container
    return f"\\[[{color}]" + "█" * bar_len + f"[/{color}]" + "[dim]" + "░" * (20 - bar_len) + "[/dim]]"


class HeaderStats(Static):
    """Header widget showing cluster and host memory statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 4;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._report: ClusterReport | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cluster_info(), id="cluster-info"),
            Static(self._get_host_info(), id="host-info"),
        )

    def update_stats(self, report: ClusterReport) -> None:
        """Update the statistics from a cluster report."""
        self._report = report
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            self.query_one("#cluster-info", Static).update(self._get_cluster_info())
            self.query_one("#host-info", Static).update(self._get_host_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_cluster_info(self) -> str:
        """Get cluster info display."""
        if self._report is None:
            return "Waiting for first check..."

        snapshot = self._report.snapshot
        total = snapshot.total_size
        limit = snapshot.total_size_limit
        if limit is not None and total is not None:
            total_line = f"Total{usage_bar(total, limit, 'cyan')} {format_bytes(total)}/{format_bytes(limit)}"
        else:
            total_line = f"Total {format_bytes(total)} (no limit)"

        return (
            f"{total_line}\n"
            f"Processes: {len(snapshot.processes)}  Leaking: {len(self._report.leaking)}"
        )

    def _get_host_info(self) -> str:
        """Get host memory info display."""
        if self._report is None or self._report.free_size is None:
            return "Host memory unavailable"

        free = self._report.free_size
        total = self._report.total_memory_size or 0
        minimum = self._report.snapshot.free_size_minimum
        minimum_str = format_bytes(minimum) if minimum is not None else "none"

        return (
            f"Used{usage_bar(total - free, total, 'yellow')} {format_bytes(total - free)}/{format_bytes(total)}\n"
            f"Free: {format_bytes(free)}  Minimum: {minimum_str}"
        )


class ProcessTable(Container):
    """Container for the monitored process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()
        self._sort_key: SortKey = SortKey.PRIVATE
        self._sort_reverse: bool = True

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        self._sort_key = keys[(current_index + 1) % len(keys)]
        # Sizes and counts descending, PIDs ascending
        self._sort_reverse = self._sort_key is not SortKey.PID
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("RES", key="resident", width=8)
        table.add_column("SHR", key="shared", width=8)
        table.add_column("PRIV", key="private", width=8)
        table.add_column("BASE", key="baseline", width=8)
        table.add_column("INC", key="increases", width=7)
        table.add_column("SAMPLES", key="samples", width=8)
        table.add_column("LEAK", key="leaking", width=5)

    def update_processes(self, processes: list[MonitorSnapshot], leaking: set[int]) -> None:
        """
        Update the process table with new data.

        Rows are rebuilt when the order changes, otherwise updated in place.
        """
        table = self.query_one("#process-table", DataTable)

        sorted_processes = self._sort_processes(processes)
        new_pids = [snapshot.process_id for snapshot in sorted_processes]

        if [int(row.value) for row in table.rows] != new_pids:
            table.clear()
            for snapshot in sorted_processes:
                table.add_row(*self._cells(snapshot, leaking), key=str(snapshot.process_id))
        else:
            for snapshot in sorted_processes:
                self._update_row(table, snapshot, leaking)

        self._current_pids = set(new_pids)

    def _sort_processes(self, processes: list[MonitorSnapshot]) -> list[MonitorSnapshot]:
        """Sort processes based on the current sort key."""
        key_func = {
            SortKey.PRIVATE: lambda p: p.current_private_size or 0,
            SortKey.RESIDENT: lambda p: p.current_size or 0,
            SortKey.PID: lambda p: p.process_id,
            SortKey.INCREASES: lambda p: p.increase_count,
        }
        return sorted(processes, key=key_func[self._sort_key], reverse=self._sort_reverse)

    def _cells(self, snapshot: MonitorSnapshot, leaking: set[int]) -> tuple[str, ...]:
        increase_limit = "-" if snapshot.increase_limit is None else str(snapshot.increase_limit)
        return (
            str(snapshot.process_id),
            format_bytes(snapshot.current_size),
            format_bytes(snapshot.current_shared_size),
            format_bytes(snapshot.current_private_size),
            format_bytes(snapshot.maximum_size),
            f"{snapshot.increase_count}/{increase_limit}",
            str(snapshot.sample_count),
            "[red]YES[/red]" if snapshot.process_id in leaking else "",
        )

    def _update_row(self, table: DataTable, snapshot: MonitorSnapshot, leaking: set[int]) -> None:
        """Update an existing row using update_cell for performance."""
        row_key = str(snapshot.process_id)
        columns = ("pid", "resident", "shared", "private", "baseline", "increases", "samples", "leaking")
        try:
            for column, value in zip(columns, self._cells(snapshot, leaking)):
                table.update_cell(row_key, column, value)
        except Exception:
            pass  # Row may have been removed


class MemleakApp(App):
    """Main memleak dashboard application."""

    TITLE = "memleak"
    SUB_TITLE = "Process Memory Leak Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 4;
    }

    Horizontal {
        height: auto;
    }

    #cluster-info {
        width: 1fr;
        padding-right: 2;
    }

    #host-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, watcher: ClusterWatcher, update_queue: Queue[ClusterReport]) -> None:
        """
        Initialize the MemleakApp.

        Args:
            watcher: Watcher producing the reports, started on mount.
            update_queue: Queue the watcher pushes its reports to.
        """
        super().__init__()
        self._watcher = watcher
        self._update_queue = update_queue

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the watcher when the app is mounted."""
        self._watcher.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent report."""
        report = None
        while True:
            try:
                report = self._update_queue.get_nowait()
            except Empty:
                break

            # Every report's selections are shown, not only the latest
            for selection in report.selections:
                action = "Terminated" if selection.terminated else "Selected"
                self.notify(f"{action} {selection.process_id} ({selection.reason})", severity="warning")

        if report is not None:
            self._update_ui(report)

    def _update_ui(self, report: ClusterReport) -> None:
        """Update the UI with the new cluster report."""
        self.query_one("#header-stats", HeaderStats).update_stats(report)
        self.query_one(ProcessTable).update_processes(
            list(report.snapshot.processes.values()),
            set(report.leaking),
        )

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._watcher.stop()
        self.exit()

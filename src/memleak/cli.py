"""memleak Command Line Interface."""

import os
import time
from importlib.metadata import PackageNotFoundError, version as package_version
from queue import Queue

import typer

from memleak.config import WatchConfig, parse_size
from memleak.logging import configure_logging, get_logger
from memleak.terminator import Terminator
from memleak.watcher import ClusterReport, ClusterWatcher

app = typer.Typer(
    name="memleak",
    help="Detect leaking processes and enforce memory limits across a process cluster.",
    no_args_is_help=True,
)
logger = get_logger(__name__)


def _build_watcher(
    process_ids: list[int],
    children: int | None,
    interval: float,
    total_size_limit: str | None,
    free_size_minimum: str | None,
    threshold_size: str | None,
    increase_limit: int | None,
    maximum_size_limit: str | None,
    terminate: bool,
) -> tuple[ClusterWatcher, Queue[ClusterReport]]:
    if not process_ids and children is None:
        raise typer.BadParameter("Give process IDs to monitor, or --children PID.")

    try:
        defaults = WatchConfig()
        config = WatchConfig(
            interval=interval,
            total_size_limit=parse_size(total_size_limit) if total_size_limit else defaults.total_size_limit,
            free_size_minimum=parse_size(free_size_minimum) if free_size_minimum else defaults.free_size_minimum,
            threshold_size=parse_size(threshold_size) if threshold_size else defaults.threshold_size,
            increase_limit=increase_limit if increase_limit is not None else defaults.increase_limit,
            maximum_size_limit=(
                parse_size(maximum_size_limit) if maximum_size_limit else defaults.maximum_size_limit
            ),
            terminate=terminate,
        )
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error

    cluster = config.build_cluster(process_ids)
    update_queue: Queue[ClusterReport] = Queue()
    watcher = ClusterWatcher(
        cluster,
        update_queue,
        poll_rate=config.interval,
        callback=Terminator(cluster, dry_run=not config.terminate),
        parent_pid=children,
        monitor_options=config.monitor_options(),
    )
    logger.info(
        "watcher_configured",
        process_ids=process_ids,
        parent_pid=children,
        total_size_limit=config.total_size_limit,
        free_size_minimum=config.free_size_minimum,
        terminate=config.terminate,
    )
    return watcher, update_queue


PROCESS_IDS = typer.Argument(None, help="Process IDs to monitor")
CHILDREN = typer.Option(None, "--children", "-c", help="Monitor the children of this process")
INTERVAL = typer.Option(
    float(os.getenv("MEMLEAK_INTERVAL", "10.0")), "--interval", "-i", help="Seconds between checks"
)
TOTAL_SIZE_LIMIT = typer.Option(None, "--total-size-limit", help="Cluster size limit, e.g. 4G")
FREE_SIZE_MINIMUM = typer.Option(None, "--free-size-minimum", help="Minimum free host memory, e.g. 512M")
THRESHOLD_SIZE = typer.Option(None, "--threshold-size", help="Growth that counts as an increase, e.g. 10M")
INCREASE_LIMIT = typer.Option(None, "--increase-limit", help="Increases before a process is leaking")
MAXIMUM_SIZE_LIMIT = typer.Option(None, "--maximum-size-limit", help="Per process size limit, e.g. 1G")
TERMINATE = typer.Option(False, "--terminate", help="Terminate selected processes instead of only reporting")
LOG_LEVEL = typer.Option(
    os.getenv("MEMLEAK_LOG_LEVEL", "INFO"), "--log-level", "-l", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
)
LOG_FORMAT = typer.Option(os.getenv("MEMLEAK_LOG_FORMAT", "console"), "--log-format", help="Log format (console or json)")


@app.command()
def version():
    """Show version information."""
    try:
        typer.echo(f"memleak version {package_version('memleak')}")
    except PackageNotFoundError:
        typer.echo("memleak version unknown")


@app.command()
def check(
    process_ids: list[int] | None = PROCESS_IDS,
    children: int | None = CHILDREN,
    count: int = typer.Option(1, "--count", "-n", help="Number of checks to run, 0 to run until interrupted"),
    interval: float = INTERVAL,
    total_size_limit: str | None = TOTAL_SIZE_LIMIT,
    free_size_minimum: str | None = FREE_SIZE_MINIMUM,
    threshold_size: str | None = THRESHOLD_SIZE,
    increase_limit: int | None = INCREASE_LIMIT,
    maximum_size_limit: str | None = MAXIMUM_SIZE_LIMIT,
    terminate: bool = TERMINATE,
    log_level: str = LOG_LEVEL,
    log_format: str = LOG_FORMAT,
):
    """Check the processes and print a JSON snapshot of the cluster after each check."""
    configure_logging(log_level=log_level, log_format=log_format)

    watcher, _ = _build_watcher(
        process_ids or [],
        children,
        interval,
        total_size_limit,
        free_size_minimum,
        threshold_size,
        increase_limit,
        maximum_size_limit,
        terminate,
    )

    completed = 0
    try:
        while True:
            report = watcher.check_once()
            typer.echo(report.snapshot.to_json())

            completed += 1
            if count and completed >= count:
                break

            time.sleep(watcher.poll_rate)
    except KeyboardInterrupt:
        logger.info("check_interrupted", completed=completed)


@app.command()
def watch(
    process_ids: list[int] | None = PROCESS_IDS,
    children: int | None = CHILDREN,
    interval: float = INTERVAL,
    total_size_limit: str | None = TOTAL_SIZE_LIMIT,
    free_size_minimum: str | None = FREE_SIZE_MINIMUM,
    threshold_size: str | None = THRESHOLD_SIZE,
    increase_limit: int | None = INCREASE_LIMIT,
    maximum_size_limit: str | None = MAXIMUM_SIZE_LIMIT,
    terminate: bool = TERMINATE,
    log_file: str | None = typer.Option(None, "--log-file", help="Write logs to this file"),
    log_level: str = LOG_LEVEL,
):
    """Watch the processes in an interactive dashboard."""
    from memleak.app import MemleakApp

    # The dashboard owns the terminal, logs go to a file or nowhere
    if log_file:
        configure_logging(log_level=log_level, log_format="json", log_file=log_file)
    else:
        configure_logging(log_level="CRITICAL")

    watcher, update_queue = _build_watcher(
        process_ids or [],
        children,
        interval,
        total_size_limit,
        free_size_minimum,
        threshold_size,
        increase_limit,
        maximum_size_limit,
        terminate,
    )
    MemleakApp(watcher, update_queue).run()


def main() -> None:
    """Entry point for the memleak command."""
    app()


if __name__ == "__main__":
    main()

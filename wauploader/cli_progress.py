"""Console logging and progress rendering for backup runs."""
from __future__ import annotations

import logging
import os
import time
from typing import Dict, Iterable, Optional

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .models import ProgressRecord, TrackedFile, TransferOutcome
from .errors import TransferError
from .orchestrator.models import RunSummary, SequencerState
from .utils.events import EventEmitter, FileProgress

console = Console()


def setup_logging(debug: bool = False, log_level: Optional[str] = None) -> str:
    """
    Configure root logging with a rich handler.

    --debug wins over an explicit level; without either, LOG_LEVEL from the
    environment is used (default INFO). Returns the effective level name.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if debug:
        level = logging.DEBUG
    elif log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        env_level = os.getenv("LOG_LEVEL")
        level = getattr(logging, (env_level or "INFO").upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        show_path=debug,
        markup=False,
        console=Console(stderr=True),
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING if level > logging.DEBUG else logging.DEBUG)
    return logging.getLevelName(level)


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


class RunProgressDisplay:
    """
    Event-based console display for a backup run.

    Usage:
        display = RunProgressDisplay()
        display.attach(orchestrator.events)
        summaries = await orchestrator.backup(channels)
        display.close()
        render_summary(summaries)
    """

    def __init__(self, output: Optional[Console] = None, live: bool = True):
        self._console = output or console
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            expand=False,
            console=self._console,
        )
        self._use_live = live
        self._live: Optional[Live] = None
        self._tasks: Dict[str, TaskID] = {}
        self.lines = 0

    def attach(self, events: EventEmitter) -> None:
        events.on("phase", self.on_phase)
        events.on("file_start", self.on_file_start)
        events.on("file_progress", self.on_file_progress)
        events.on("file_complete", self.on_file_complete)
        events.on("file_fail", self.on_file_fail)
        events.on("quota_wait", self.on_quota_wait)
        events.on("progress", self.on_progress)

    def _echo(self, status: str, color: str, message: str) -> None:
        stamp = time.strftime("%H:%M:%S")
        self._console.print(f"[dim]{stamp}[/dim] [{color}]{status:<5}[/{color}] {escape(message)}")
        self.lines += 1

    def _start_live(self) -> None:
        if self._use_live and self._live is None:
            self._live = Live(self._progress, console=self._console, refresh_per_second=8)
            self._live.start()

    def _drop_task(self, file_id: str) -> None:
        task_id = self._tasks.pop(file_id, None)
        if task_id is not None:
            self._progress.remove_task(task_id)

    def on_phase(self, channel_id: str, state: SequencerState) -> None:
        self._echo("PHASE", "blue", f"{channel_id}: {state.value}")
        if state in (SequencerState.COMPLETED, SequencerState.INTERRUPTED):
            self.close()

    def on_file_start(self, tracked: TrackedFile) -> None:
        self._start_live()
        if tracked.id not in self._tasks:
            self._tasks[tracked.id] = self._progress.add_task(
                "upload", label=escape(tracked.name[:60]), total=tracked.descriptor.size or None
            )

    def on_file_progress(self, tracked: TrackedFile, progress: FileProgress) -> None:
        task_id = self._tasks.get(tracked.id)
        if task_id is not None:
            self._progress.update(task_id, completed=progress.bytes_uploaded, total=progress.total_bytes or None)

    def on_file_complete(self, tracked: TrackedFile, outcome: TransferOutcome) -> None:
        self._drop_task(tracked.id)
        self._echo("DONE", "green", f"{tracked.name} {_human_size(tracked.descriptor.size)}")

    def on_file_fail(self, tracked: TrackedFile, error: TransferError) -> None:
        self._drop_task(tracked.id)
        self._echo("FAIL", "red", f"{tracked.name} cause={error.message}")

    def on_quota_wait(self, tracked: TrackedFile, seconds: float) -> None:
        self._echo("QUOTA", "yellow", f"{tracked.name} waited {seconds:.0f}s")

    def on_progress(self, record: ProgressRecord) -> None:
        if self._live is not None:
            self._live.console.log(
                f"{record.channel_name}: {record.processed_files}/{record.total_files} "
                f"(uploaded={record.uploaded} failed={record.failed} skipped={record.skipped})"
            )

    def close(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None


def render_summary(summaries: Iterable[RunSummary], output: Optional[Console] = None) -> Table:
    """Print a table of channel results and return it."""
    table = Table(title="Backup summary")
    table.add_column("Channel", style="bold cyan")
    table.add_column("State")
    table.add_column("Uploaded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Time", justify="right")

    for summary in summaries:
        state = summary.state.value
        if summary.abort_reason:
            state = f"aborted: {summary.abort_reason}"
        table.add_row(
            summary.channel_id,
            state,
            str(summary.uploaded),
            str(summary.failed),
            str(summary.skipped),
            str(summary.pending),
            f"{summary.elapsed:.1f}s",
        )
    (output or console).print(table)
    return table

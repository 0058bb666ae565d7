"""Rich-based progress reporter, collision prompt and logging setup."""
from __future__ import annotations

import logging
import sys
import time
from collections import deque
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from ..core.models import (
    DoneEvent,
    ErrorEvent,
    FolderSnapshot,
    ManifestSummary,
    ProgressEvent,
    RunEvent,
    RunSnapshot,
)
from ..core.protocols import CollisionDecision


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Route the package logger through Rich (and optionally a file)."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logger = logging.getLogger("manifest_sorter")
    logger.setLevel(logging.DEBUG if log_file else level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        level=level,
        show_path=False,
        rich_tracebacks=True,
        console=console or Console(stderr=True),
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class FilesPerSecondColumn(ProgressColumn):
    """Renders files per second as a rolling average."""

    def __init__(self, window_size: int = 10):
        super().__init__()
        self._samples: deque[tuple[float, int]] = deque(maxlen=window_size)
        self._last_completed = 0
        self._start_time: Optional[float] = None

    def render(self, task: Task) -> Text:
        completed = int(task.completed)
        current_time = time.time()

        if self._start_time is None:
            self._start_time = current_time
            self._last_completed = completed
            return Text("-- f/s", style="magenta")

        if completed > self._last_completed:
            self._samples.append((current_time, completed))
            self._last_completed = completed

        if len(self._samples) >= 2:
            oldest_time, oldest_completed = self._samples[0]
            newest_time, newest_completed = self._samples[-1]
            time_diff = newest_time - oldest_time
            if time_diff > 0:
                speed = (newest_completed - oldest_completed) / time_diff
                return Text(f"{speed:.1f} f/s", style="magenta")

        elapsed = current_time - self._start_time
        if elapsed > 0 and completed > 0:
            return Text(f"{completed / elapsed:.1f} f/s", style="magenta")

        return Text("-- f/s", style="magenta")


PROMPT_CHOICES = {
    "o": CollisionDecision.OVERWRITE,
    "s": CollisionDecision.SKIP,
    "oa": CollisionDecision.OVERWRITE_ALL,
    "sa": CollisionDecision.SKIP_ALL,
    "c": CollisionDecision.CANCEL,
}


class RichProgressReporter:
    """Progress sink and collision prompt backed by a Rich console.

    Call it with run events; it keeps a progress bar for the run, prints
    per-file errors and renders the final per-folder report.
    """

    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
    ):
        self._console = console or Console(stderr=True)
        self._verbose = verbose
        self._quiet = quiet
        self._progress: Optional[Progress] = None
        self._current_task_id: Optional[TaskID] = None
        self._phase_name: str = ""
        self.errors: list[str] = []
        self.last_done: Optional[DoneEvent] = None

    # --- ProgressSink ---

    def __call__(self, event: RunEvent) -> None:
        if isinstance(event, ProgressEvent):
            self._on_progress(event)
        elif isinstance(event, ErrorEvent):
            self._on_error(event)
        elif isinstance(event, DoneEvent):
            self._on_done(event)

    def _on_progress(self, event: ProgressEvent) -> None:
        if self._progress is None:
            self.start_phase(self._phase_name or "Processing", event.total_jobs)
        if self._progress is not None and self._current_task_id is not None:
            description = f"{self._phase_name} {event.folder_name}" if event.folder_name else None
            self._progress.update(
                self._current_task_id,
                total=event.total_jobs,
                completed=event.completed + event.failed,
                description=description or self._phase_name,
            )
        if event.image_name:
            self.debug(f"{event.folder_name}/{event.image_name}: {event.outcome.value if event.outcome else 'ok'}")

    def _on_error(self, event: ErrorEvent) -> None:
        self.errors.append(event.error)
        if self._progress is not None and self._current_task_id is not None and event.folder_name:
            self._progress.advance(self._current_task_id, 1)
        if event.fatal:
            self.end_phase()
            self.error(event.error)
        else:
            self.warning(event.error)

    def _on_done(self, event: DoneEvent) -> None:
        if self._progress is not None and self._current_task_id is not None:
            self._progress.update(
                self._current_task_id,
                total=event.total_jobs,
                completed=event.completed + event.failed,
            )
        self.end_phase()
        self.last_done = event

    # --- CollisionPrompt ---

    def ask_collision(self, destination: Path) -> CollisionDecision:
        """Ask the user what to do with an existing destination file."""
        paused = self._progress is not None
        if paused:
            self._progress.stop()
        try:
            self._console.print(f"[yellow]⚠[/yellow] Destination exists: [bold]{destination}[/bold]")
            answer = Prompt.ask(
                "[o]verwrite, [s]kip, overwrite [oa]ll, skip [sa]ll, [c]ancel",
                choices=list(PROMPT_CHOICES),
                default="s",
                console=self._console,
            )
        finally:
            if paused:
                self._progress.start()
        return PROMPT_CHOICES[answer]

    # --- Phase Management ---

    def start_phase(self, name: str, total: int) -> None:
        """Start a new processing phase with progress bar."""
        self._phase_name = name
        if self._quiet:
            return
        self.end_phase()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            MofNCompleteColumn(),
            TextColumn("[cyan]•"),
            FilesPerSecondColumn(),
            TextColumn("[cyan]•"),
            TimeElapsedColumn(),
            TextColumn("[cyan]•"),
            TimeRemainingColumn(),
            console=self._console,
            transient=False,
        )
        self._progress.start()
        self._current_task_id = self._progress.add_task(name, total=total)

    def end_phase(self) -> None:
        if self._progress:
            self._progress.stop()
            self._progress = None
            self._current_task_id = None

    # --- Logging Methods ---

    def info(self, message: str) -> None:
        if not self._quiet:
            self._console.print(f"[blue]ℹ[/blue] {message}")

    def success(self, message: str) -> None:
        if not self._quiet:
            self._console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        self._console.print(f"[yellow]⚠[/yellow] {message}")

    def error(self, message: str) -> None:
        self._console.print(f"[red]✗[/red] {message}", style="red")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._console.print(f"[dim]  {message}[/dim]")

    # --- Specialized Output ---

    def print_header(self, title: str) -> None:
        if self._quiet:
            return
        self._console.print(Panel(Text(title, style="bold cyan"), border_style="cyan"))

    def print_config(self, config_items: dict) -> None:
        if self._quiet:
            return
        table = Table(title="Configuration", show_header=True, header_style="bold")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")
        for key, value in config_items.items():
            table.add_row(key, str(value))
        self._console.print(table)

    def print_folders(self, summary: ManifestSummary) -> None:
        """Folder names found in a manifest with their row counts."""
        table = Table(title="Manifest Folders", show_header=True, header_style="bold")
        table.add_column("Folder", style="cyan")
        table.add_column("Rows", style="green", justify="right")
        for name in summary.folders:
            table.add_row(name, str(summary.folder_counts[name]))
        table.add_row("", "")
        table.add_row("Total rows", str(summary.total_rows))
        table.add_row("Usable rows", str(summary.valid_rows))
        self._console.print(table)

    def print_folder_report(self, per_folder: dict[str, FolderSnapshot], scan: bool = False) -> None:
        if self._quiet:
            return
        table = Table(title="Scan Results" if scan else "Transfer Results", show_header=True, header_style="bold")
        table.add_column("Folder", style="cyan")
        if scan:
            table.add_column("Matched", style="green", justify="right")
            table.add_column("Missing", style="red", justify="right")
        else:
            table.add_column("Transferred", style="green", justify="right")
            table.add_column("Skipped", style="yellow", justify="right")
            table.add_column("Failed", style="red", justify="right")
        for name, report in sorted(per_folder.items()):
            if scan:
                table.add_row(name, str(len(report.matched)), str(len(report.missing)))
            else:
                table.add_row(name, str(report.copied), str(report.skipped), str(report.failed))
        self._console.print(table)

        if scan and self._verbose:
            for name, report in sorted(per_folder.items()):
                for image in report.missing:
                    self._console.print(f"  [red]missing[/red] {name}/{image}")

    def print_stats(self, state: RunSnapshot, elapsed_seconds: float = 0.0) -> None:
        if self._quiet:
            return
        table = Table(title="Run Complete" if not state.cancelled else "Run Cancelled", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Count", style="green", justify="right")
        table.add_row("Total Jobs", str(state.total_jobs))
        table.add_row("Completed", str(state.completed))
        table.add_row("Failed", str(state.failed))
        table.add_row("Rows Skipped (unmapped)", str(state.skipped_rows))
        if elapsed_seconds > 0:
            table.add_row("", "")
            table.add_row("Time Elapsed", f"{elapsed_seconds:.1f}s")
            table.add_row("Processing Rate", f"{state.settled / elapsed_seconds:.1f} files/sec")
        self._console.print(table)

    # --- Context Managers ---

    def __enter__(self) -> "RichProgressReporter":
        return self

    def __exit__(self, *args) -> None:
        self.end_phase()


class QuietProgressReporter:
    """Minimal reporter that only shows errors."""

    def __init__(self):
        self.errors: list[str] = []
        self.last_done: Optional[DoneEvent] = None

    def __call__(self, event: RunEvent) -> None:
        if isinstance(event, ErrorEvent):
            self.errors.append(event.error)
            self.error(event.error)
        elif isinstance(event, DoneEvent):
            self.last_done = event

    def ask_collision(self, destination: Path) -> CollisionDecision:
        # Nobody to ask; never clobber silently
        return CollisionDecision.SKIP

    def start_phase(self, name: str, total: int) -> None:
        pass

    def end_phase(self) -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        print(f"WARNING: {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        print(f"ERROR: {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        pass

    def print_header(self, title: str) -> None:
        pass

    def print_config(self, config_items: dict) -> None:
        pass

    def print_folders(self, summary: ManifestSummary) -> None:
        for name in summary.folders:
            print(f"{name}\t{summary.folder_counts[name]}")

    def print_folder_report(self, per_folder: dict[str, FolderSnapshot], scan: bool = False) -> None:
        pass

    def print_stats(self, state: RunSnapshot, elapsed_seconds: float = 0.0) -> None:
        pass

    def __enter__(self) -> "QuietProgressReporter":
        return self

    def __exit__(self, *args) -> None:
        pass

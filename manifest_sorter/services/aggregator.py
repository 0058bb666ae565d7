"""Run-wide progress bookkeeping."""
from __future__ import annotations

import logging
from typing import Optional

from ..core.models import (
    DoneEvent,
    ErrorEvent,
    FolderSnapshot,
    JobOutcome,
    ManifestRow,
    ProgressEvent,
    RunEvent,
    RunState,
    TransferJob,
    WorkerEvent,
)
from ..core.protocols import ProgressSink

logger = logging.getLogger(__name__)


class ProgressAggregator:
    """Sole owner of :class:`RunState`.

    Every mutation goes through one of the ``record_*`` methods, each of
    which emits an immutable snapshot to the sink. Consumers never see the
    live state object.
    """

    def __init__(self, sink: Optional[ProgressSink] = None, state: Optional[RunState] = None):
        self._sink = sink
        self._state = state or RunState()
        self._snapshots: dict[str, FolderSnapshot] = self._state.folder_snapshots()
        self._finished = False

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._finished

    def _emit(self, event: RunEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    def _per_folder(self, *touched: str) -> dict[str, FolderSnapshot]:
        """Per-folder snapshots, re-taking only the folders that just changed."""
        for name in touched:
            self._snapshots[name] = self._state.folder(name).snapshot()
        return dict(self._snapshots)

    def _progress(self, job_event: WorkerEvent) -> ProgressEvent:
        state = self._state
        return ProgressEvent(
            total_jobs=state.total_jobs,
            completed=state.completed,
            failed=state.failed,
            per_folder=self._per_folder(job_event.folder_name),
            current_file=job_event.source,
            image_name=job_event.image_name,
            folder_name=job_event.folder_name,
            outcome=job_event.outcome,
        )

    # --- Totals ---

    def set_total(self, total: int) -> None:
        self._state.total_jobs = total

    def add_jobs(self, count: int = 1) -> None:
        """Account for jobs discovered while streaming (RAW siblings)."""
        self._state.total_jobs += count

    def finalize_total(self, built: int) -> None:
        """Pin ``total_jobs`` to the number of jobs actually built."""
        if built != self._state.total_jobs:
            logger.debug("Adjusting total jobs %d -> %d", self._state.total_jobs, built)
        self._state.total_jobs = built

    def record_unmapped_row(self, row: ManifestRow) -> None:
        self._state.skipped_rows += 1

    # --- Job results ---

    def record_result(self, event: WorkerEvent) -> None:
        """A worker finished a job (any successful outcome)."""
        state = self._state
        report = state.folder(event.folder_name)
        state.completed += 1
        if event.outcome == JobOutcome.FOUND:
            report.matched.append(event.image_name)
        elif event.outcome == JobOutcome.MISSING:
            report.missing.append(event.image_name)
        elif event.outcome == JobOutcome.SKIPPED:
            report.skipped += 1
        else:
            report.copied += 1
        self._emit(self._progress(event))

    def record_failure(self, folder_name: str, image_name: Optional[str], message: str) -> None:
        """A job failed; the run continues."""
        state = self._state
        state.failed += 1
        state.folder(folder_name).failed += 1
        logger.debug("Failed %s/%s: %s", folder_name, image_name, message)
        self._emit(
            ErrorEvent(
                error=message,
                per_folder=self._per_folder(folder_name),
                folder_name=folder_name,
                image_name=image_name,
            )
        )

    def record_error_event(self, event: WorkerEvent) -> None:
        self.record_failure(event.folder_name, event.image_name, event.error or "unknown error")

    def record_collision_skip(self, job: TransferJob) -> None:
        """A prompt-policy job skipped before dispatch."""
        state = self._state
        state.completed += 1
        state.folder(job.folder_name).skipped += 1
        self._emit(
            ProgressEvent(
                total_jobs=state.total_jobs,
                completed=state.completed,
                failed=state.failed,
                per_folder=self._per_folder(job.folder_name),
                current_file=job.source_path,
                image_name=job.image_name,
                folder_name=job.folder_name,
                outcome=JobOutcome.SKIPPED,
            )
        )

    def record_lost_jobs(self, jobs: list[TransferJob], message: str) -> None:
        """Jobs that were in flight on a crashed worker count as failed."""
        state = self._state
        for job in jobs:
            state.failed += 1
            state.folder(job.folder_name).failed += 1
        self.record_infrastructure_error(message, *dict.fromkeys(job.folder_name for job in jobs))

    def record_infrastructure_error(self, message: str, *touched: str) -> None:
        logger.error(message)
        self._emit(ErrorEvent(error=message, per_folder=self._per_folder(*touched)))

    # --- Terminal ---

    def mark_cancelled(self) -> None:
        self._state.cancelled = True

    def finish(self) -> DoneEvent:
        """Emit the single terminal ``done`` snapshot."""
        if self._finished:
            raise RuntimeError("Run already finished")
        self._finished = True
        state = self._state
        done = DoneEvent(
            total_jobs=state.total_jobs,
            completed=state.completed,
            failed=state.failed,
            per_folder=self._per_folder(),
            skipped=state.skipped_rows,
        )
        self._emit(done)
        return done

    def fatal(self, message: str) -> ErrorEvent:
        """Terminal error event for a run that never started (no report)."""
        self._finished = True
        event = ErrorEvent(error=message, fatal=True)
        self._emit(event)
        return event

"""Worker process: executes batches of jobs and reports events."""
from __future__ import annotations

import errno
import os
import shutil
from multiprocessing.connection import Connection
from multiprocessing.queues import Queue
from pathlib import Path
from typing import Optional

from ..core.config import CollisionPolicy, RunMode
from ..core.errors import MissingSourceFileError, TransferIOError
from ..core.models import EventKind, JobOutcome, TransferJob, WorkerEvent
from .collisions import publish, publish_unique


# Sentinel to signal workers to stop
STOP_SENTINEL = "STOP"


def copy_file(source: Path, target: Path) -> None:
    """Copy a file with metadata preservation."""
    shutil.copy2(source, target)


def move_file(source: Path, target: Path) -> None:
    """Move a file, falling back to copy + delete across filesystems."""
    try:
        os.replace(source, target)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        shutil.copy2(source, target)
        source.unlink()


def partial_path(dest: Path) -> Path:
    """Hidden sibling of ``dest`` that holds the file while it is being written."""
    return dest.with_name(f".{dest.name}.{os.getpid()}.partial")


def _stage(job: TransferJob, staged: Path) -> None:
    if job.mode == RunMode.move:
        move_file(job.source_path, staged)
    else:
        copy_file(job.source_path, staged)


def _unstage(job: TransferJob, staged: Path) -> None:
    """Undo ``_stage``: a moved source goes back, a copy is dropped."""
    try:
        if job.mode == RunMode.move and staged.exists():
            move_file(staged, job.source_path)
        else:
            staged.unlink(missing_ok=True)
    except OSError:
        pass


def _publish(job: TransferJob, staged: Path, dest: Path) -> Optional[Path]:
    """Give the staged file its final name. None if a skip lost the race."""
    if job.collision == CollisionPolicy.rename:
        return publish_unique(staged, dest)
    if job.collision == CollisionPolicy.skip:
        return dest if publish(staged, dest) else None
    os.replace(staged, dest)
    return dest


def execute_job(job: TransferJob) -> tuple[JobOutcome, Optional[Path]]:
    """Run a single job.

    Copies and moves land on a hidden ``.partial`` name first and only take
    the destination name once the data is complete, so an interrupted
    worker never leaves a truncated file under a real photo name.

    Returns:
        (outcome, target) where target is the written destination, if any.

    Raises:
        MissingSourceFileError: the source file does not exist.
        TransferIOError: copying or moving failed.
    """
    source = job.source_path

    if job.mode == RunMode.scan:
        return (JobOutcome.FOUND if source.is_file() else JobOutcome.MISSING), None

    if not source.is_file():
        raise MissingSourceFileError(source)

    dest = job.dest_path
    if job.collision == CollisionPolicy.skip and dest.exists():
        return JobOutcome.SKIPPED, dest

    staged = partial_path(dest)
    try:
        _stage(job, staged)
        target = _publish(job, staged, dest)
    except OSError as e:
        _unstage(job, staged)
        raise TransferIOError(source, dest, e) from e

    if target is None:
        _unstage(job, staged)
        return JobOutcome.SKIPPED, dest
    if job.mode == RunMode.move:
        return JobOutcome.MOVED, target
    return JobOutcome.COPIED, target


def run_job(job: TransferJob, worker_id: int, generation: int = 0) -> WorkerEvent:
    """Execute a job and convert the result into an event."""
    try:
        outcome, target = execute_job(job)
    except Exception as e:
        return WorkerEvent(
            kind=EventKind.ERROR,
            worker_id=worker_id,
            generation=generation,
            job_id=job.job_id,
            folder_name=job.folder_name,
            image_name=job.image_name,
            source=job.source_path,
            outcome=JobOutcome.ERROR,
            error=str(e),
        )
    return WorkerEvent(
        kind=EventKind.PROGRESS,
        worker_id=worker_id,
        generation=generation,
        job_id=job.job_id,
        folder_name=job.folder_name,
        image_name=job.image_name,
        source=job.source_path,
        target=target,
        outcome=outcome,
        processed=1,
    )


def worker_process(
    worker_id: int,
    generation: int,
    inbox: Queue,
    events: Connection,
) -> None:
    """Worker process loop: one batch in, one event per job plus ``batch_done`` out.

    ``events`` is the write end of a pipe only this worker uses.
    """
    try:
        while True:
            batch = inbox.get()
            if batch == STOP_SENTINEL:
                break

            for job in batch:
                events.send(run_job(job, worker_id, generation))

            events.send(
                WorkerEvent(
                    kind=EventKind.BATCH_DONE,
                    worker_id=worker_id,
                    generation=generation,
                    processed=len(batch),
                )
            )
    except (KeyboardInterrupt, BrokenPipeError):
        pass
    finally:
        events.close()

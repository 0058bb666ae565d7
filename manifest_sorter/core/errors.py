"""Exception types raised while preparing and executing a run."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional


class ManifestSorterError(Exception):
    """Base class for all manifest-sorter errors."""


# --- Fatal: stop the run before any job is built ---

class FatalRunError(ManifestSorterError):
    """An error that aborts the whole run."""


class ManifestReadError(FatalRunError):
    """The manifest could not be opened or parsed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read manifest {path}: {reason}")


class NoFoldersMappedError(FatalRunError):
    """None of the manifest folders has a source directory mapped."""

    def __init__(self, discovered: Iterable[str] = ()):
        self.discovered = tuple(discovered)
        super().__init__("No folders mapped. Map at least one folder to proceed.")


# --- Per-job: recorded against the folder, the run continues ---

class JobError(ManifestSorterError):
    """A single job failed."""


class MissingSourceFileError(JobError):
    """The source file was absent when the job ran."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Missing: {path}")


class TransferIOError(JobError):
    """Reading or writing failed while copying or moving a file."""

    def __init__(self, source: Path, target: Optional[Path], cause: BaseException):
        self.source = source
        self.target = target
        self.cause = cause
        where = f"{source} -> {target}" if target else str(source)
        super().__init__(f"Transfer failed ({where}): {cause}")


# --- Infrastructure ---

class WorkerCrashError(ManifestSorterError):
    """A worker process terminated abnormally."""

    def __init__(self, worker_id: int, exitcode: Optional[int], lost_jobs: int = 0):
        self.worker_id = worker_id
        self.exitcode = exitcode
        self.lost_jobs = lost_jobs
        super().__init__(
            f"Worker {worker_id} exited with {exitcode} ({lost_jobs} unfinished jobs marked failed)"
        )


class UserCancelledError(ManifestSorterError):
    """The user cancelled the run from a collision prompt."""

    def __init__(self, destination: Optional[Path] = None):
        self.destination = destination
        super().__init__("Run cancelled by user")

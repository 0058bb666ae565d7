"""Domain models shared by the coordinator and the workers."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from itertools import islice
from pathlib import Path
from types import MappingProxyType
from typing import Any, Optional, Union

from .config import CollisionPolicy, RunMode


@dataclass(frozen=True, slots=True)
class ManifestRow:
    """One usable manifest row."""
    folder_name: str
    image_name: str


@dataclass(frozen=True, slots=True)
class ManifestSummary:
    """Result of the discovery pass over a manifest."""
    folders: tuple[str, ...]
    folder_counts: dict[str, int]
    total_rows: int
    valid_rows: int

    def rows_for(self, folders: set[str]) -> int:
        return sum(self.folder_counts.get(name, 0) for name in folders)


@dataclass(frozen=True, slots=True)
class TransferJob:
    """A single file to check, copy or move. Consumed by exactly one worker."""
    job_id: int
    folder_name: str
    image_name: str
    source_dir: Path
    dest_dir: Optional[Path]
    mode: RunMode
    collision: CollisionPolicy
    raw_sibling: bool = False

    @property
    def source_path(self) -> Path:
        return self.source_dir / self.image_name

    @property
    def dest_path(self) -> Optional[Path]:
        if self.dest_dir is None:
            return None
        return self.dest_dir / self.image_name


class JobOutcome(Enum):
    """What a worker did with a job."""
    COPIED = "copied"
    MOVED = "moved"
    SKIPPED = "skipped"
    FOUND = "found"
    MISSING = "missing"
    ERROR = "error"


class EventKind(Enum):
    PROGRESS = "progress"
    ERROR = "error"
    BATCH_DONE = "batch_done"


@dataclass(frozen=True, slots=True)
class WorkerEvent:
    """Message sent from a worker process to the coordinator."""
    kind: EventKind
    worker_id: int
    generation: int = 0
    job_id: Optional[int] = None
    folder_name: Optional[str] = None
    image_name: Optional[str] = None
    source: Optional[Path] = None
    target: Optional[Path] = None
    outcome: Optional[JobOutcome] = None
    error: Optional[str] = None
    processed: int = 0


@dataclass(slots=True)
class WorkerHandle:
    """Coordinator-side view of one worker slot."""
    id: int
    generation: int = 0
    busy: bool = False
    pending: dict[int, TransferJob] = field(default_factory=dict)

    def assign(self, jobs: list[TransferJob]) -> None:
        self.busy = True
        self.pending = {job.job_id: job for job in jobs}

    def settle(self, job_id: Optional[int]) -> Optional[TransferJob]:
        """Remove a reported job. Returns None if it was not pending here."""
        if job_id is None:
            return None
        return self.pending.pop(job_id, None)

    def release(self) -> list[TransferJob]:
        """Mark idle and return any jobs that never reported back."""
        lost = list(self.pending.values())
        self.pending = {}
        self.busy = False
        return lost


# --- Run state (coordinator only) ---

class AppendOnlyView(Sequence):
    """Read-only view of the first ``len(items)`` entries of a list.

    The list may only ever be appended to. Items appended after the view
    was taken stay invisible, so a view behaves like a copy without the
    cost of one.
    """

    __slots__ = ("_items", "_length")

    def __init__(self, items: Optional[list] = None):
        self._items = items if items is not None else []
        self._length = len(self._items)

    def __len__(self) -> int:
        return self._length

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._items[i] for i in range(*index.indices(self._length)))
        if index < 0:
            index += self._length
        if not 0 <= index < self._length:
            raise IndexError("view index out of range")
        return self._items[index]

    def __iter__(self):
        return islice(self._items, self._length)

    def __eq__(self, other) -> bool:
        if isinstance(other, Sequence) and not isinstance(other, str):
            return len(other) == self._length and all(a == b for a, b in zip(self, other))
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self))

    def __repr__(self) -> str:
        return f"AppendOnlyView({list(self)!r})"

    def __reduce__(self):
        return (AppendOnlyView, (list(self),))


@dataclass(slots=True)
class FolderReport:
    """Mutable per-folder counters, owned by the aggregator.

    ``matched`` and ``missing`` are append-only.
    """
    matched: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    copied: int = 0
    failed: int = 0
    skipped: int = 0

    def snapshot(self) -> "FolderSnapshot":
        return FolderSnapshot(
            matched=AppendOnlyView(self.matched),
            missing=AppendOnlyView(self.missing),
            copied=self.copied,
            failed=self.failed,
            skipped=self.skipped,
        )


@dataclass(frozen=True, slots=True)
class FolderSnapshot:
    """Immutable copy of a FolderReport."""
    matched: Sequence[str] = ()
    missing: Sequence[str] = ()
    copied: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched": list(self.matched),
            "missing": list(self.missing),
            "copied": self.copied,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass(slots=True)
class RunState:
    """Run-wide counters. Mutated only by the coordinator."""
    total_jobs: int = 0
    completed: int = 0
    failed: int = 0
    skipped_rows: int = 0
    cancelled: bool = False
    per_folder: dict[str, FolderReport] = field(default_factory=dict)

    def folder(self, name: str) -> FolderReport:
        report = self.per_folder.get(name)
        if report is None:
            report = self.per_folder[name] = FolderReport()
        return report

    @property
    def settled(self) -> int:
        return self.completed + self.failed

    @property
    def is_drained(self) -> bool:
        return self.settled >= self.total_jobs

    def folder_snapshots(self) -> dict[str, FolderSnapshot]:
        return {name: report.snapshot() for name, report in self.per_folder.items()}

    def snapshot(self) -> "RunSnapshot":
        return RunSnapshot(
            total_jobs=self.total_jobs,
            completed=self.completed,
            failed=self.failed,
            skipped_rows=self.skipped_rows,
            cancelled=self.cancelled,
            per_folder=MappingProxyType(self.folder_snapshots()),
        )


@dataclass(frozen=True, slots=True)
class RunSnapshot:
    """Immutable copy of a RunState, handed out to callers."""
    total_jobs: int = 0
    completed: int = 0
    failed: int = 0
    skipped_rows: int = 0
    cancelled: bool = False
    per_folder: Mapping[str, FolderSnapshot] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def settled(self) -> int:
        return self.completed + self.failed

    @property
    def is_drained(self) -> bool:
        return self.settled >= self.total_jobs


# --- Outward events (immutable snapshots) ---

def _per_folder_dict(per_folder: Optional[dict[str, FolderSnapshot]]) -> Optional[dict[str, Any]]:
    if per_folder is None:
        return None
    return {name: snap.to_dict() for name, snap in per_folder.items()}


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    total_jobs: int
    completed: int
    failed: int
    per_folder: dict[str, FolderSnapshot]
    current_file: Optional[Path] = None
    image_name: Optional[str] = None
    folder_name: Optional[str] = None
    outcome: Optional[JobOutcome] = None

    type = "progress"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "totalJobs": self.total_jobs,
            "completed": self.completed,
            "failed": self.failed,
            "perFolder": _per_folder_dict(self.per_folder),
        }
        if self.current_file is not None:
            data["currentFile"] = str(self.current_file)
        if self.image_name is not None:
            data["imageName"] = self.image_name
        if self.folder_name is not None:
            data["folderName"] = self.folder_name
        return data


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    error: str
    per_folder: Optional[dict[str, FolderSnapshot]] = None
    folder_name: Optional[str] = None
    image_name: Optional[str] = None
    fatal: bool = False

    type = "error"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "error": self.error}
        if self.per_folder is not None:
            data["perFolder"] = _per_folder_dict(self.per_folder)
        return data


@dataclass(frozen=True, slots=True)
class DoneEvent:
    total_jobs: int
    completed: int
    failed: int
    per_folder: dict[str, FolderSnapshot]
    skipped: int

    type = "done"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "totalJobs": self.total_jobs,
            "completed": self.completed,
            "failed": self.failed,
            "perFolder": _per_folder_dict(self.per_folder),
            "skipped": self.skipped,
        }


RunEvent = Union[ProgressEvent, ErrorEvent, DoneEvent]

"""Tests for core domain models."""
import pickle
import pytest
from dataclasses import FrozenInstanceError
from pathlib import Path

from manifest_sorter.core.config import CollisionPolicy, RunMode
from manifest_sorter.core.errors import (
    FatalRunError,
    JobError,
    ManifestReadError,
    MissingSourceFileError,
    NoFoldersMappedError,
    TransferIOError,
    WorkerCrashError,
)
from manifest_sorter.core.models import (
    AppendOnlyView,
    DoneEvent,
    ErrorEvent,
    EventKind,
    FolderReport,
    FolderSnapshot,
    JobOutcome,
    ProgressEvent,
    RunSnapshot,
    RunState,
    TransferJob,
    WorkerEvent,
    WorkerHandle,
)


def make_job(job_id: int = 0, name: str = "a.jpg") -> TransferJob:
    return TransferJob(
        job_id=job_id,
        folder_name="A",
        image_name=name,
        source_dir=Path("/src/a"),
        dest_dir=Path("/out/A"),
        mode=RunMode.copy,
        collision=CollisionPolicy.rename,
    )


class TestTransferJob:
    """Tests for TransferJob."""

    def test_paths(self):
        job = make_job()
        assert job.source_path == Path("/src/a/a.jpg")
        assert job.dest_path == Path("/out/A/a.jpg")

    def test_immutable(self):
        with pytest.raises(FrozenInstanceError):
            make_job().image_name = "b.jpg"

    def test_crosses_process_boundary(self):
        job = make_job(3)
        assert pickle.loads(pickle.dumps(job)) == job

        event = WorkerEvent(kind=EventKind.PROGRESS, worker_id=1, job_id=3, outcome=JobOutcome.COPIED)
        assert pickle.loads(pickle.dumps(event)) == event


class TestWorkerHandle:
    """Tests for WorkerHandle bookkeeping."""

    def test_assign_settle_release(self):
        handle = WorkerHandle(id=0)
        jobs = [make_job(1), make_job(2)]

        handle.assign(jobs)
        assert handle.busy
        assert handle.settle(1) == jobs[0]
        assert handle.settle(1) is None
        assert handle.settle(None) is None

        lost = handle.release()
        assert lost == [jobs[1]]
        assert not handle.busy
        assert handle.pending == {}


class TestRunState:
    """Tests for RunState."""

    def test_drain(self):
        state = RunState(total_jobs=3)
        assert not state.is_drained
        state.completed = 2
        state.failed = 1
        assert state.settled == 3
        assert state.is_drained

    def test_folder_created_on_demand(self):
        state = RunState()
        state.folder("A").copied += 1
        state.folder("A").copied += 1
        assert state.per_folder["A"].copied == 2

    def test_snapshots_are_copies(self):
        state = RunState()
        state.folder("A").matched.append("a.jpg")
        snapshots = state.folder_snapshots()
        state.folder("A").matched.append("b.jpg")

        assert snapshots["A"].matched == ("a.jpg",)

    def test_run_snapshot_is_detached(self):
        state = RunState(total_jobs=2)
        state.completed = 1
        state.folder("A").matched.append("a.jpg")

        snapshot = state.snapshot()
        state.completed = 2
        state.cancelled = True
        state.folder("A").matched.append("b.jpg")
        state.folder("B").copied = 1

        assert isinstance(snapshot, RunSnapshot)
        assert snapshot.completed == 1
        assert not snapshot.cancelled
        assert not snapshot.is_drained
        assert list(snapshot.per_folder) == ["A"]
        assert snapshot.per_folder["A"].matched == ["a.jpg"]

    def test_run_snapshot_is_read_only(self):
        snapshot = RunState().snapshot()
        with pytest.raises(FrozenInstanceError):
            snapshot.completed = 5
        with pytest.raises(TypeError):
            snapshot.per_folder["A"] = FolderSnapshot()


class TestAppendOnlyView:
    """Tests for AppendOnlyView."""

    def test_later_appends_are_hidden(self):
        items = ["a", "b"]
        view = AppendOnlyView(items)
        items.append("c")

        assert len(view) == 2
        assert list(view) == ["a", "b"]
        assert view[-1] == "b"
        assert view[0:5] == ("a", "b")
        assert "c" not in view
        with pytest.raises(IndexError):
            view[2]

    def test_compares_like_a_sequence(self):
        view = AppendOnlyView(["a"])

        assert view == ("a",)
        assert view == ["a"]
        assert ("a",) == view
        assert view != ("a", "b")
        assert view != "a"
        assert AppendOnlyView() == ()
        assert hash(view) == hash(("a",))

    def test_pickles_as_its_visible_items(self):
        items = ["a"]
        view = AppendOnlyView(items)
        items.append("b")

        assert pickle.loads(pickle.dumps(view)) == ("a",)


class TestEvents:
    """Tests for outward event serialization."""

    def test_progress_to_dict(self):
        event = ProgressEvent(
            total_jobs=2,
            completed=1,
            failed=0,
            per_folder={"A": FolderSnapshot(copied=1)},
            current_file=Path("/src/a/a.jpg"),
            image_name="a.jpg",
            folder_name="A",
        )

        data = event.to_dict()

        assert data["type"] == "progress"
        assert data["totalJobs"] == 2
        assert data["currentFile"] == "/src/a/a.jpg"
        assert data["perFolder"]["A"] == {
            "matched": [],
            "missing": [],
            "copied": 1,
            "failed": 0,
            "skipped": 0,
        }

    def test_error_to_dict(self):
        event = ErrorEvent(error="Missing: /src/a/a.jpg", per_folder={"A": FolderSnapshot(failed=1)})
        assert event.to_dict()["perFolder"]["A"]["failed"] == 1

    def test_done_to_dict(self):
        report = FolderReport(matched=["a.jpg"], missing=["b.jpg"])
        event = DoneEvent(total_jobs=2, completed=2, failed=0, per_folder={"A": report.snapshot()}, skipped=4)

        data = event.to_dict()

        assert data["type"] == "done"
        assert data["skipped"] == 4
        assert data["perFolder"]["A"]["matched"] == ["a.jpg"]
        assert data["perFolder"]["A"]["missing"] == ["b.jpg"]


class TestErrors:
    """Tests for the error hierarchy."""

    def test_fatal_errors(self):
        assert issubclass(ManifestReadError, FatalRunError)
        assert issubclass(NoFoldersMappedError, FatalRunError)
        assert str(NoFoldersMappedError()) == "No folders mapped. Map at least one folder to proceed."

    def test_job_errors(self):
        assert issubclass(MissingSourceFileError, JobError)
        assert str(MissingSourceFileError(Path("/src/a.jpg"))) == "Missing: /src/a.jpg"
        error = TransferIOError(Path("/src/a.jpg"), Path("/out/a.jpg"), OSError("disk full"))
        assert "disk full" in str(error)

    def test_worker_crash(self):
        error = WorkerCrashError(2, -9, lost_jobs=5)
        assert "Worker 2" in str(error)
        assert "5 unfinished jobs" in str(error)

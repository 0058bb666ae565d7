"""Tests for the worker process pool."""
import time
import pytest
from pathlib import Path

from manifest_sorter.core.config import CollisionPolicy, RunMode
from manifest_sorter.core.models import EventKind, JobOutcome, TransferJob
from manifest_sorter.services.pool import WorkerPool

from .fixtures import crashing_worker, create_image


def scan_job(tmp_path: Path, job_id: int, name: str) -> TransferJob:
    return TransferJob(
        job_id=job_id,
        folder_name="A",
        image_name=name,
        source_dir=tmp_path,
        dest_dir=None,
        mode=RunMode.scan,
        collision=CollisionPolicy.rename,
    )


def collect(pool: WorkerPool, count: int, timeout: float = 30.0) -> list:
    events = []
    deadline = time.monotonic() + timeout
    while len(events) < count and time.monotonic() < deadline:
        event = pool.next_event(0.1)
        if event is not None:
            events.append(event)
    return events


class TestWorkerPool:
    """Tests for WorkerPool."""

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            WorkerPool(0)

    def test_start_and_shutdown(self):
        pool = WorkerPool(2)
        pool.start()
        try:
            assert pool.started
            assert [handle.id for handle in pool.handles] == [0, 1]
            assert pool.busy_count() == 0
            assert pool.idle_handle() is not None
        finally:
            pool.shutdown()
        assert not pool.started

    def test_batch_round_trip(self, tmp_path: Path):
        create_image(tmp_path / "a.jpg")
        jobs = [scan_job(tmp_path, 0, "a.jpg"), scan_job(tmp_path, 1, "b.jpg")]

        with WorkerPool(1) as pool:
            handle = pool.idle_handle()
            pool.submit(handle, jobs)
            assert handle.busy
            assert pool.idle_handle() is None

            events = collect(pool, 3)

        kinds = [event.kind for event in events]
        assert kinds == [EventKind.PROGRESS, EventKind.PROGRESS, EventKind.BATCH_DONE]
        assert [event.outcome for event in events[:2]] == [JobOutcome.FOUND, JobOutcome.MISSING]
        assert events[2].processed == 2

    def test_submit_to_busy_worker_rejected(self, tmp_path: Path):
        with WorkerPool(1) as pool:
            handle = pool.idle_handle()
            pool.submit(handle, [scan_job(tmp_path, 0, "a.jpg")])
            with pytest.raises(RuntimeError):
                pool.submit(handle, [scan_job(tmp_path, 1, "b.jpg")])

    def test_next_event_times_out(self):
        with WorkerPool(1) as pool:
            assert pool.next_event(0.01) is None
            assert pool.next_event(0) is None

    def test_dead_worker_detected_and_respawned(self, tmp_path: Path):
        with WorkerPool(1, target=crashing_worker) as pool:
            handle = pool.idle_handle()
            pool.submit(handle, [scan_job(tmp_path, 0, "crash.jpg")])

            deadline = time.monotonic() + 30
            dead = []
            while not dead and time.monotonic() < deadline:
                time.sleep(0.05)
                dead = pool.dead_workers()

            assert dead == [(handle, 3)]

            pool.respawn(handle)
            assert handle.generation == 1
            assert not handle.busy
            assert pool.dead_workers() == []

            create_image(tmp_path / "ok.jpg")
            pool.submit(handle, [scan_job(tmp_path, 1, "ok.jpg")])
            events = collect(pool, 2)

        assert [event.generation for event in events] == [1, 1]
        assert events[0].outcome == JobOutcome.FOUND

    def test_worker_death_wakes_the_wait(self, tmp_path: Path):
        with WorkerPool(1, target=crashing_worker) as pool:
            pool.submit(pool.idle_handle(), [scan_job(tmp_path, 0, "crash.jpg")])

            start = time.monotonic()
            deadline = start + 30
            while not pool.dead_workers() and time.monotonic() < deadline:
                assert pool.next_event(20.0) is None

            assert time.monotonic() - start < 15
            assert pool.dead_workers()

    def test_events_sent_before_a_crash_are_delivered(self, tmp_path: Path):
        create_image(tmp_path / "a.jpg")
        jobs = [scan_job(tmp_path, 0, "a.jpg"), scan_job(tmp_path, 1, "crash.jpg")]

        with WorkerPool(1, target=crashing_worker) as pool:
            pool.submit(pool.idle_handle(), jobs)
            events = collect(pool, 2, timeout=5.0)

        assert [(event.job_id, event.outcome) for event in events] == [(0, JobOutcome.FOUND)]

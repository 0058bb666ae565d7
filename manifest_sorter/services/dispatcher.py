"""Feeds jobs to the worker pool and pumps worker events back."""
from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

from ..core.config import DispatchStrategy
from ..core.errors import UserCancelledError, WorkerCrashError
from ..core.models import EventKind, TransferJob, WorkerEvent, WorkerHandle
from .aggregator import ProgressAggregator
from .collisions import CollisionResolver
from .pool import WorkerPool

logger = logging.getLogger(__name__)


def batched(jobs: Iterable[TransferJob], size: int) -> Iterator[list[TransferJob]]:
    batch: list[TransferJob] = []
    for job in jobs:
        batch.append(job)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


class Dispatcher:
    """Single-threaded coordinator loop.

    Pipelined strategy: batches go to whichever worker is idle, up to one
    batch per worker in flight.

    Sequential strategy: exactly one job in flight; collisions are resolved
    (possibly by prompting) right before each dispatch, in manifest order.

    All waiting is a blocking receive on the worker channels with a short
    timeout, followed by a worker liveness check.
    """

    def __init__(
        self,
        pool: WorkerPool,
        aggregator: ProgressAggregator,
        strategy: DispatchStrategy,
        batch_size: int = 200,
        poll_interval: float = 0.05,
        resolver: Optional[CollisionResolver] = None,
    ):
        self._pool = pool
        self._aggregator = aggregator
        self._strategy = strategy
        self._batch_size = batch_size
        self._poll_interval = poll_interval
        self._resolver = resolver or CollisionResolver()
        self.pulled = 0

    def run(self, jobs: Iterable[TransferJob]) -> bool:
        """Dispatch every job and wait for drain.

        Returns:
            True when all jobs settled, False when the user cancelled.
        """
        counted = self._count(jobs)
        try:
            if self._strategy == DispatchStrategy.SEQUENTIAL:
                self._run_sequential(counted)
            else:
                self._run_pipelined(counted)
        except UserCancelledError as e:
            logger.warning("Cancelled at %s; waiting for %d in-flight batches", e.destination, self._pool.busy_count())
            self._aggregator.mark_cancelled()
            self._wait_until_idle()
            return False

        self._aggregator.finalize_total(self.pulled)
        if self._aggregator.state.total_jobs == 0:
            return True
        self._wait_for_drain()
        return True

    def _count(self, jobs: Iterable[TransferJob]) -> Iterator[TransferJob]:
        for job in jobs:
            self.pulled += 1
            if job.raw_sibling:
                self._aggregator.add_jobs(1)
            yield job

    # --- Strategies ---

    def _run_pipelined(self, jobs: Iterable[TransferJob]) -> None:
        for batch in batched(jobs, self._batch_size):
            handle = self._wait_for_idle()
            self._pool.submit(handle, batch)
            self._pump_ready()

    def _run_sequential(self, jobs: Iterable[TransferJob]) -> None:
        for job in jobs:
            resolved = self._resolver.resolve(job)
            if resolved is None:
                self._aggregator.record_collision_skip(job)
                continue
            handle = self._wait_for_idle()
            self._pool.submit(handle, [resolved])
            self._wait_until_idle()

    # --- Waiting ---

    def _wait_for_idle(self) -> WorkerHandle:
        while True:
            handle = self._pool.idle_handle()
            if handle is not None:
                return handle
            self._pump(self._poll_interval)

    def _wait_until_idle(self) -> None:
        while self._pool.busy_count():
            self._pump(self._poll_interval)

    def _wait_for_drain(self) -> None:
        state = self._aggregator.state
        while not (state.is_drained and self._pool.busy_count() == 0):
            self._pump(self._poll_interval)

    def _pump(self, timeout: float) -> None:
        """Handle at most one event (blocking up to ``timeout``), then reap crashes."""
        event = self._pool.next_event(timeout)
        if event is not None:
            self._handle(event)
        self._pump_ready()
        self._reap_dead_workers()

    def _pump_ready(self) -> None:
        while True:
            event = self._pool.next_event(0)
            if event is None:
                return
            self._handle(event)

    # --- Events ---

    def _handle_for(self, event: WorkerEvent) -> Optional[WorkerHandle]:
        handles = self._pool.handles
        if not 0 <= event.worker_id < len(handles):
            return None
        handle = handles[event.worker_id]
        if handle.generation != event.generation:
            logger.debug("Ignoring stale event from worker %d gen %d", event.worker_id, event.generation)
            return None
        return handle

    def _handle(self, event: WorkerEvent) -> None:
        handle = self._handle_for(event)
        if handle is None:
            return

        if event.kind == EventKind.BATCH_DONE:
            lost = handle.release()
            if lost:
                self._aggregator.record_lost_jobs(
                    lost, f"Worker {handle.id} finished a batch without reporting {len(lost)} jobs"
                )
            return

        if handle.settle(event.job_id) is None:
            logger.debug("Ignoring duplicate event for job %s", event.job_id)
            return

        if event.kind == EventKind.PROGRESS:
            self._aggregator.record_result(event)
        elif event.kind == EventKind.ERROR:
            self._aggregator.record_error_event(event)

    def _reap_dead_workers(self) -> None:
        dead = self._pool.dead_workers()
        if not dead:
            return
        # Events a worker sent before dying are still valid
        self._pump_ready()
        for handle, exitcode in dead:
            lost = handle.release()
            error = WorkerCrashError(handle.id, exitcode, len(lost))
            self._aggregator.record_lost_jobs(lost, str(error))
            self._pool.respawn(handle)
            self._pool.crashes += 1

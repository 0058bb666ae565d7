"""Fixed-size pool of worker processes, one private channel pair per worker."""
from __future__ import annotations

import logging
import multiprocessing as mp
from collections import deque
from dataclasses import dataclass
from multiprocessing.connection import wait
from typing import Any, Callable, Optional

from ..core.models import TransferJob, WorkerEvent, WorkerHandle
from .worker import STOP_SENTINEL, worker_process

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    handle: WorkerHandle
    process: Any
    inbox: Any
    events: Any
    eof: bool = False


class WorkerPool:
    """Owns ``size`` worker processes and their idle/busy handles.

    Every worker has a private inbox queue and a private outbound pipe.
    A worker that dies can only damage its own channels, which are thrown
    away when the slot is respawned. Waiting covers the pipe readers and
    the process sentinels together, so a death wakes the coordinator just
    like an event does.
    """

    def __init__(
        self,
        size: int,
        target: Callable[..., None] = worker_process,
        context: Optional[Any] = None,
        join_timeout: float = 10.0,
    ):
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self._size = size
        self._target = target
        self._ctx = context or mp.get_context()
        self._join_timeout = join_timeout
        self._slots: list[_Slot] = []
        self._ready: deque[WorkerEvent] = deque()
        self.crashes = 0

    @property
    def handles(self) -> list[WorkerHandle]:
        return [slot.handle for slot in self._slots]

    @property
    def started(self) -> bool:
        return bool(self._slots)

    # --- Lifecycle ---

    def start(self) -> None:
        if self._slots:
            return
        for i in range(self._size):
            handle = WorkerHandle(id=i)
            self._slots.append(self._spawn(handle))
        logger.debug("Started %d worker processes", self._size)

    def _spawn(self, handle: WorkerHandle) -> _Slot:
        inbox = self._ctx.Queue()
        reader, writer = self._ctx.Pipe(duplex=False)
        process = self._ctx.Process(
            target=self._target,
            args=(handle.id, handle.generation, inbox, writer),
            name=f"manifest-worker-{handle.id}",
            daemon=True,
        )
        process.start()
        # The child holds the only write end we care about
        writer.close()
        return _Slot(handle=handle, process=process, inbox=inbox, events=reader)

    def _close_channels(self, slot: _Slot) -> None:
        slot.inbox.close()
        slot.inbox.cancel_join_thread()
        slot.events.close()

    def respawn(self, handle: WorkerHandle) -> None:
        """Replace a dead worker with a fresh process and fresh channels."""
        slot = self._slots[handle.id]
        self._close_channels(slot)
        handle.generation += 1
        handle.release()
        self._slots[handle.id] = self._spawn(handle)
        logger.debug("Worker %d respawned (generation %d)", handle.id, handle.generation)

    def shutdown(self) -> None:
        """Stop all workers; terminate any that do not exit in time."""
        for slot in self._slots:
            if slot.process.is_alive():
                try:
                    slot.inbox.put(STOP_SENTINEL)
                except (OSError, ValueError):
                    logger.debug("Worker %d inbox already closed", slot.handle.id)
        for slot in self._slots:
            slot.process.join(timeout=self._join_timeout)
            if slot.process.is_alive():
                logger.warning("Worker %d did not stop, terminating", slot.handle.id)
                slot.process.terminate()
                slot.process.join(timeout=self._join_timeout)
            self._close_channels(slot)
        self._slots = []
        self._ready.clear()

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()

    # --- Dispatch ---

    def idle_handle(self) -> Optional[WorkerHandle]:
        for slot in self._slots:
            if not slot.handle.busy and slot.process.is_alive():
                return slot.handle
        return None

    def busy_count(self) -> int:
        return sum(1 for slot in self._slots if slot.handle.busy)

    def submit(self, handle: WorkerHandle, jobs: list[TransferJob]) -> None:
        """Send a batch to an idle worker."""
        if handle.busy:
            raise RuntimeError(f"Worker {handle.id} is busy")
        handle.assign(jobs)
        self._slots[handle.id].inbox.put(jobs)

    def next_event(self, timeout: Optional[float]) -> Optional[WorkerEvent]:
        """Block up to ``timeout`` seconds for the next worker event.

        Returns early (with None) when a worker process exits, so the
        caller can reap it.
        """
        if not self._ready:
            self._receive(0 if timeout is None or timeout <= 0 else timeout)
        if self._ready:
            return self._ready.popleft()
        return None

    def _receive(self, timeout: float) -> None:
        readers = {slot.events: slot for slot in self._slots if not slot.eof}
        sentinels = [slot.process.sentinel for slot in self._slots]
        for ready in wait(list(readers) + sentinels, timeout=timeout):
            slot = readers.get(ready)
            if slot is not None:
                self._drain(slot)

    def _drain(self, slot: _Slot) -> None:
        # Events are small enough to arrive in one pipe write, so poll()
        # only reports whole messages
        try:
            while slot.events.poll():
                self._ready.append(slot.events.recv())
        except (EOFError, OSError):
            slot.eof = True

    def dead_workers(self) -> list[tuple[WorkerHandle, Optional[int]]]:
        """Handles whose process has exited, with the exit code."""
        dead = []
        for slot in self._slots:
            if not slot.process.is_alive():
                dead.append((slot.handle, slot.process.exitcode))
        return dead

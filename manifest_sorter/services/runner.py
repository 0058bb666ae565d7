"""Top-level coordinator for one scan or transfer run."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..core.config import CollisionPolicy, RunMode, RunRequest
from ..core.errors import FatalRunError
from ..core.models import ManifestSummary, RunSnapshot
from ..core.protocols import CollisionPrompt, ProgressSink
from .aggregator import ProgressAggregator
from .collisions import CollisionResolver
from .dispatcher import Dispatcher
from .jobs import JobBuilder
from .manifest import ManifestScanner
from .mapping import validate_mapping
from .pool import WorkerPool

logger = logging.getLogger(__name__)


class TransferRunner:
    """Runs the discovery pass, validates the mapping and drives the pool.

    Usage::

        runner = TransferRunner(request, sink=reporter, prompt=ask_user)
        state = runner.run()

    Fatal errors (unreadable manifest, nothing mapped) are reported to the
    sink as a single error event and re-raised. A cancelled run returns
    normally with ``state.cancelled`` set and no ``done`` event.
    """

    def __init__(
        self,
        request: RunRequest,
        sink: Optional[ProgressSink] = None,
        prompt: Optional[CollisionPrompt] = None,
        pool_factory: Callable[[int], WorkerPool] = WorkerPool,
    ):
        if (
            request.options.mode != RunMode.scan
            and request.options.collision == CollisionPolicy.prompt
            and prompt is None
        ):
            raise ValueError("Collision policy 'prompt' requires a prompt callback")
        self._request = request
        self._prompt = prompt
        self._pool_factory = pool_factory
        self._aggregator = ProgressAggregator(sink)
        self._scanner = ManifestScanner(request.manifest_path)
        self.summary: Optional[ManifestSummary] = None
        self.mapped_folders: list[str] = []
        self.elapsed_seconds = 0.0

    @property
    def state(self) -> RunSnapshot:
        """Frozen copy of the run counters as they are right now."""
        return self._aggregator.state.snapshot()

    @property
    def aggregator(self) -> ProgressAggregator:
        return self._aggregator

    def _prepare(self) -> None:
        options = self._request.options
        self.summary = self._scanner.summarize()
        destination = None if options.mode == RunMode.scan else self._request.destination_root
        self.mapped_folders = validate_mapping(
            self.summary.folders,
            self._request.folder_mapping,
            destination,
        )
        self._aggregator.set_total(self.summary.rows_for(set(self.mapped_folders)))
        logger.info(
            "%d of %d folders mapped, %d jobs planned (%s, %s)",
            len(self.mapped_folders),
            len(self.summary.folders),
            self._aggregator.state.total_jobs,
            options.mode.value,
            options.strategy.value,
        )

    def run(self) -> RunSnapshot:
        start = time.monotonic()
        options = self._request.options
        try:
            self._prepare()
        except FatalRunError as e:
            logger.error("%s", e)
            self._aggregator.fatal(str(e))
            raise

        builder = JobBuilder(
            self._request,
            self.mapped_folders,
            on_unmapped_row=self._aggregator.record_unmapped_row,
        )
        resolver = CollisionResolver(self._prompt)

        try:
            with self._pool_factory(options.max_workers) as pool:
                dispatcher = Dispatcher(
                    pool,
                    self._aggregator,
                    options.strategy,
                    batch_size=options.batch_size,
                    poll_interval=options.poll_interval,
                    resolver=resolver,
                )
                drained = dispatcher.run(builder.build(self._scanner.rows()))
        except FatalRunError as e:
            # The manifest became unreadable during the execution pass
            logger.error("%s", e)
            self._aggregator.fatal(str(e))
            raise
        finally:
            self.elapsed_seconds = time.monotonic() - start

        state = self._aggregator.state
        if drained:
            self._aggregator.finish()
            logger.info(
                "Run complete: %d completed, %d failed, %d rows skipped in %.1fs",
                state.completed,
                state.failed,
                state.skipped_rows,
                self.elapsed_seconds,
            )
        else:
            logger.warning(
                "Run cancelled after %d of %d jobs",
                state.settled,
                state.total_jobs,
            )
        return state.snapshot()


def run_request(
    request: RunRequest,
    sink: Optional[ProgressSink] = None,
    prompt: Optional[CollisionPrompt] = None,
) -> RunSnapshot:
    """Convenience wrapper around :class:`TransferRunner`."""
    return TransferRunner(request, sink=sink, prompt=prompt).run()

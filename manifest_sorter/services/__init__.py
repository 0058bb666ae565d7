"""Service layer: manifest reading, job building, dispatch and bookkeeping."""
from .aggregator import ProgressAggregator
from .collisions import CollisionResolver, publish_unique
from .dispatcher import Dispatcher
from .jobs import RAW_EXTENSIONS, JobBuilder, RawSiblingFinder
from .manifest import ManifestScanner, summarize_manifest
from .mapping import prepare_destinations, resolve_mapped_folders, validate_mapping
from .pool import WorkerPool
from .runner import TransferRunner, run_request
from .worker import execute_job, worker_process

__all__ = [
    "ProgressAggregator",
    "CollisionResolver",
    "publish_unique",
    "Dispatcher",
    "RAW_EXTENSIONS",
    "JobBuilder",
    "RawSiblingFinder",
    "ManifestScanner",
    "summarize_manifest",
    "prepare_destinations",
    "resolve_mapped_folders",
    "validate_mapping",
    "WorkerPool",
    "TransferRunner",
    "run_request",
    "execute_job",
    "worker_process",
]

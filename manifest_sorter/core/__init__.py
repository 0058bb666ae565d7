"""Core domain models, configuration and protocols."""
from .config import (
    CollisionPolicy,
    DispatchStrategy,
    RunMode,
    RunOptions,
    RunRequest,
    dispatch_strategy_for,
)
from .errors import (
    FatalRunError,
    JobError,
    ManifestReadError,
    ManifestSorterError,
    MissingSourceFileError,
    NoFoldersMappedError,
    TransferIOError,
    UserCancelledError,
    WorkerCrashError,
)
from .models import (
    DoneEvent,
    ErrorEvent,
    FolderReport,
    FolderSnapshot,
    JobOutcome,
    ManifestRow,
    ManifestSummary,
    ProgressEvent,
    RunSnapshot,
    RunState,
    TransferJob,
    WorkerHandle,
)
from .protocols import CollisionDecision, CollisionPrompt, ProgressSink

__all__ = [
    # Config
    "CollisionPolicy",
    "DispatchStrategy",
    "RunMode",
    "RunOptions",
    "RunRequest",
    "dispatch_strategy_for",
    # Errors
    "FatalRunError",
    "JobError",
    "ManifestReadError",
    "ManifestSorterError",
    "MissingSourceFileError",
    "NoFoldersMappedError",
    "TransferIOError",
    "UserCancelledError",
    "WorkerCrashError",
    # Models
    "DoneEvent",
    "ErrorEvent",
    "FolderReport",
    "FolderSnapshot",
    "JobOutcome",
    "ManifestRow",
    "ManifestSummary",
    "ProgressEvent",
    "RunSnapshot",
    "RunState",
    "TransferJob",
    "WorkerHandle",
    # Protocols
    "CollisionDecision",
    "CollisionPrompt",
    "ProgressSink",
]
